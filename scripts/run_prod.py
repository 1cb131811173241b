#!/usr/bin/env python3
"""
Production server runner for the SQL-of-Thought API.

No reloading; every worker process attaches its own read-only handle to
the database file.
"""

import sys
from pathlib import Path

# Add the src directory to the Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from dotenv import load_dotenv

env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)
    print(f"✓ Loaded environment variables from {env_file}")
else:
    print(f"⚠ No .env file found at {env_file}")
    print("  Ensure environment variables are set via your deployment system")

if __name__ == "__main__":
    import uvicorn
    from sqlthought.config import get_settings

    settings = get_settings()
    server_config = settings.server

    if server_config.workers > 1 and not settings.database.read_only:
        print("⚠ Several workers share a writable database file; set DATABASE__READ_ONLY=true")

    production_config = {
        "app": server_config.app_module,
        "host": server_config.host,
        "port": server_config.port,
        "workers": server_config.workers,
        "reload": False,  # Never reload in production
        "log_config": None,  # Use our structured logging
        "access_log": False,  # Access logging happens in middleware
        "server_header": False,
        "date_header": False,
    }

    print("🚀 Starting SQL-of-Thought production server...")
    print(f"🌐 Listening: {server_config.host}:{server_config.port}")
    print(f"👥 Workers: {production_config['workers']}")
    print()

    uvicorn.run(**production_config)
