"""
FastAPI dependencies for dependency injection.

This module provides reusable dependencies that can be injected into
API route handlers following the layered architecture:
- Services (SchemaService, the pipeline builder) for business logic
- Settings for configuration
- Optional client dependencies for health checks only

Routes should depend on services, not infrastructure clients directly.
"""

from typing import Annotated, Awaitable, Callable

from fastapi import Depends, Request

from ..config import Settings
from ..domain.errors import ServiceUnavailableError
from ..domain.pipeline import RunConfig
from ..infrastructure.database_client import DatabaseClient
from ..repositories.schema_repository import SchemaRepository
from ..services.schema_service import SchemaService
from ..services.sql_of_thought_service import SQLOfThoughtService, create_sql_of_thought_service


# Builds the orchestrator for one run from that run's model and key
PipelineBuilder = Callable[[RunConfig], Awaitable[SQLOfThoughtService]]


def get_settings(request: Request) -> Settings:
    """
    Dependency to get the settings from app state.

    Raises:
        RuntimeError: If settings are not initialized
    """
    if not hasattr(request.app.state, "settings"):
        raise RuntimeError("Settings not initialized")

    return request.app.state.settings


def get_db_client_optional(request: Request) -> DatabaseClient | None:
    """Get database client if available, None otherwise."""
    return getattr(request.app.state, "db_client", None)


def get_db_client(request: Request) -> DatabaseClient:
    """
    Get the connected database client.

    Raises:
        ServiceUnavailableError: If the database could not be attached at startup
    """
    db_client = getattr(request.app.state, "db_client", None)
    if db_client is None or not db_client.is_connected():
        raise ServiceUnavailableError("Database is not available")
    return db_client


def get_schema_service(
    settings: Annotated[Settings, Depends(get_settings)],
    db_client: Annotated[DatabaseClient, Depends(get_db_client)],
) -> SchemaService:
    """
    Dependency to get a SchemaService instance.

    SchemaService → SchemaRepository → DatabaseClient (shared)
    """
    schema_repo = SchemaRepository(db_client, settings.database)
    return SchemaService(schema_repository=schema_repo)


def get_pipeline_builder(
    settings: Annotated[Settings, Depends(get_settings)],
    db_client: Annotated[DatabaseClient, Depends(get_db_client)],
) -> PipelineBuilder:
    """
    Dependency to get a builder for per-run SQLOfThoughtService instances.

    The orchestrator cannot be built before the request body is read: its
    stage agents carry the request's model and API key.
    """

    async def build(run_config: RunConfig) -> SQLOfThoughtService:
        return await create_sql_of_thought_service(settings, db_client, run_config)

    return build


# Type aliases for cleaner dependency injection
SchemaServiceDep = Annotated[SchemaService, Depends(get_schema_service)]
PipelineBuilderDep = Annotated[PipelineBuilder, Depends(get_pipeline_builder)]
SettingsDep = Annotated[Settings, Depends(get_settings)]

# Optional client dependencies (used in health checks)
OptionalDatabaseClientDep = Annotated[DatabaseClient | None, Depends(get_db_client_optional)]
