"""
Configuration module for the SQL-of-Thought application.

This module defines all configuration classes using Pydantic BaseModel and BaseSettings.
Configuration is loaded from environment variables with nested delimiter "__".

Example .env:
    DATABASE__DATABASE_PATH=data/chinook.db
    LLM__OPENAI_API_KEY=sk-xxx
    PIPELINE__MAX_ATTEMPTS=3

Usage:
    from sqlthought.config import get_settings
    settings = get_settings()
    print(settings.database.catalog_name)
"""

from functools import lru_cache
from typing import Optional

from sqlthought.config_constants import (
    DEFAULT_CATALOG_NAME,
    DEFAULT_MAX_ATTEMPTS,
    LogFormat,
    LogLevel,
    OPENAI_API_URL,
    OPENAI_LLM_MODELS,
)

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# DATABASE CONFIGURATION
# =============================================================================

class DatabaseConfig(BaseModel):
    """
    Embedded DuckDB engine configuration.

    The engine itself runs in memory; the target database file is attached
    under `catalog_name` and every generated query is qualified with it.
    """

    # Path to the database that answers questions
    # SQLite files (.db, .sqlite, .sqlite3) are attached through DuckDB's
    # sqlite extension; anything else is attached as a native DuckDB file
    database_path: str = "data/chinook.db"

    # Logical catalog name the database is attached under
    # All generated SQL references tables as <catalog_name>.<table>
    catalog_name: str = DEFAULT_CATALOG_NAME

    # Schema inside the attached catalog that holds the tables
    # SQLite and single-schema DuckDB files both expose "main"
    schema_name: str = "main"

    # If True, attach the database read-only
    # Generated SQL can then never modify the demo data
    read_only: bool = True

    # Worker threads DuckDB may use per query
    # The handle is shared by all requests, so keep this small
    threads: int = 1


# =============================================================================
# LLM CONFIGURATION (OpenAI)
# =============================================================================

class LLMConfig(BaseModel):
    """
    LLM client configuration for the stage agents.

    Each request may bring its own API key and model; these values are the
    fallbacks used when the request leaves them out.
    """

    # Server-side OpenAI API key, used only when a request carries none
    openai_api_key: Optional[str] = None

    # Model used when the request does not name one
    default_model: str = OPENAI_LLM_MODELS.GPT_4O_MINI.value

    # Sampling temperature for every stage
    temperature: float = 0.7

    # Maximum tokens in a single stage response
    # Query plans with many steps are the longest outputs
    max_tokens: int = 2048

    # Maximum characters allowed in one prompt
    # Full schema dumps of large catalogs are the main risk here
    max_input_chars: int = 60000

    # OpenAI-compatible API base URL
    base_url: str = OPENAI_API_URL

    # Seconds the HTTP client waits for a response
    # None leaves the call unbounded; a stalled call stalls only its run
    timeout_seconds: Optional[int] = None


# =============================================================================
# PIPELINE CONFIGURATION
# =============================================================================

class PipelineConfig(BaseModel):
    """
    Configuration for the SQL-of-Thought pipeline and its correction loop.
    """

    # Total execution attempts, counting the first one
    # 3 means: execute, correct, execute, correct, execute, stop
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1, le=3)

    # Rows printed by the demo runner after a successful run
    preview_rows: int = 5


# =============================================================================
# SERVER CONFIGURATION
# =============================================================================

class ServerConfig(BaseModel):
    """
    FastAPI/Uvicorn server configuration.

    Used by run_dev.py and run_prod.py scripts.
    """

    # Network interface to bind (0.0.0.0 = all interfaces)
    host: str = "0.0.0.0"

    # Port number to listen on
    port: int = 3001

    # Python module path for FastAPI app
    app_module: str = "sqlthought.main:app"

    # Enable hot reload on code changes (development only)
    reload: bool = True

    # Number of worker processes (production only, ignored with reload=True)
    # Each worker opens its own DuckDB handle
    workers: int = 1


# =============================================================================
# APPLICATION CONFIGURATION
# =============================================================================

class AppConfig(BaseModel):
    """
    General application settings.
    """

    # Logging level: DEBUG, INFO, WARNING, ERROR
    # DEBUG includes prompts and SQL text
    log_level: LogLevel = LogLevel.INFO

    # Log rendering: "json" (indented JSON, default) or "console" (one colored line)
    log_format: LogFormat = LogFormat.JSON


# =============================================================================
# ROOT SETTINGS (Environment Loading)
# =============================================================================

class Settings(BaseSettings):
    """
    Root settings class that loads all configuration from environment.

    Environment variables use "__" (double underscore) as nested delimiter.
    Example: DATABASE__CATALOG_NAME sets settings.database.catalog_name

    Every field has a default, so the service starts without a .env file;
    runs then need the API key in the request body.
    """

    # Embedded database settings
    database: DatabaseConfig = DatabaseConfig()

    # LLM client settings (OpenAI)
    llm: LLMConfig = LLMConfig()

    # Pipeline and correction loop settings
    pipeline: PipelineConfig = PipelineConfig()

    # FastAPI server settings
    server: ServerConfig = ServerConfig()

    # Application-wide settings
    app: AppConfig = AppConfig()

    model_config = SettingsConfigDict(
        env_file=".env",            # Load from .env file in project root
        env_file_encoding="utf-8",  # UTF-8 encoding for .env file
        case_sensitive=False,       # ENV_VAR and env_var are equivalent
        env_nested_delimiter="__",  # Use __ for nested config (DATABASE__DATABASE_PATH)
        extra="ignore",
    )


# =============================================================================
# SINGLETON ACCESSOR
# =============================================================================

@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance (singleton pattern).

    Settings are loaded once and cached for the lifetime of the application.

    Returns:
        Settings instance with all configuration loaded from environment
    """
    return Settings()
