#!/usr/bin/env python3
"""
Development server runner for the SQL-of-Thought API.

Starts uvicorn with hot reloading and loads the project's .env file first,
so settings resolved by the app see the same environment.
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
    print("  Requests must then carry their own apiKey")

if __name__ == "__main__":
    import uvicorn
    from sqlthought.config import get_settings

    settings = get_settings()
    server_config = settings.server

    print("🚀 Starting SQL-of-Thought development server...")
    print(f"📁 Database: {settings.database.database_path} (attached as '{settings.database.catalog_name}')")
    print(f"📊 API Documentation: http://{server_config.host}:{server_config.port}/docs")
    print(f"🔍 Health Check: http://{server_config.host}:{server_config.port}/health")
    print(f"🧠 Pipeline: POST http://{server_config.host}:{server_config.port}/api/sql-of-thought")
    print()

    uvicorn.run(
        server_config.app_module,
        host=server_config.host,
        port=server_config.port,
        reload=server_config.reload,
        reload_dirs=[str(src_path)],
        log_config=None,  # Use our structured logging
        access_log=False  # Access logging happens in middleware
    )
