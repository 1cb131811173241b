"""
Main FastAPI application for the SQL-of-Thought system.

This module sets up the FastAPI application with logging, tracing and
error handling middleware, and exposes the streaming pipeline endpoint.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Set, Union

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from .utils.logging import configure_logging, get_module_logger
from .utils.tracing import get_trace_id
from .utils.yaml_loader import load_error_taxonomy
from .domain.errors import BadRequestError, SQLThoughtException
from .domain.pipeline import RunConfig
from .domain.requests import SQLOfThoughtRequest
from .domain.responses import HealthResponse, SchemaResponse
from .api.middleware import (
    trace_id_middleware,
    logging_middleware,
    register_exception_handlers,
    ERROR_RESPONSES,
)
from .api.dependencies import (
    SettingsDep,
    SchemaServiceDep,
    PipelineBuilderDep,
    OptionalDatabaseClientDep,
)
from .config import get_settings
from .infrastructure.database_client import DatabaseClient
from .services.progress import ProgressEmitter


APP_VERSION = "0.1.0"

# Configure logging on module import
configure_logging()
logger = get_module_logger()

# Runs outlive their request when the client disconnects; keep a reference
# so the event loop does not collect them mid-flight
_active_runs: Set["asyncio.Task[object]"] = set()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting SQL-of-Thought API server", version=APP_VERSION)

    # Load settings once at startup
    settings = get_settings()
    app.state.settings = settings
    logger.info("Settings loaded successfully")

    # Attach the demo database
    db_client = DatabaseClient(settings.database)
    try:
        await db_client.connect()
        logger.info("Database client connected successfully")
    except SQLThoughtException as e:
        logger.error(f"Failed to connect database client: {e.message}")
        # Continue without database - health check will report status

    # Fail loudly in the logs if the packaged taxonomy is broken
    try:
        load_error_taxonomy()
    except SQLThoughtException as e:
        logger.error(f"Failed to load error taxonomy: {e.message}")

    app.state.db_client = db_client

    yield

    logger.info("Shutting down SQL-of-Thought API server")

    if _active_runs:
        logger.info("Waiting for in-flight runs", count=len(_active_runs))
        await asyncio.gather(*_active_runs, return_exceptions=True)

    await app.state.db_client.close()
    logger.info("Database client closed")


# Create FastAPI application
app = FastAPI(
    title="SQL-of-Thought API",
    description="Multi-agent text-to-SQL with guided error correction, streamed as Server-Sent Events",
    version=APP_VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register middleware in correct order (last registered = first executed)
app.middleware("http")(logging_middleware)
app.middleware("http")(trace_id_middleware)

register_exception_handlers(app)


# API Routes
@app.get("/", tags=["Root"])
async def root(settings: SettingsDep) -> Dict[str, Union[str, None]]:
    """
    Root endpoint returning basic API information.

    **Response**: Dict with message, version, trace_id, log_level
    """
    trace_id = get_trace_id()
    logger.info("Root endpoint accessed", trace_id=trace_id)

    return {
        "message": "SQL-of-Thought API",
        "version": APP_VERSION,
        "trace_id": trace_id,
        "log_level": settings.app.log_level.value
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health(db_client: OptionalDatabaseClientDep, settings: SettingsDep) -> HealthResponse:
    """
    Health check endpoint.

    **Response Model**: `HealthResponse`
    - status: healthy when the database answers, degraded otherwise
    - database_status, catalog
    """
    trace_id = get_trace_id()
    logger.info("Health check endpoint accessed", trace_id=trace_id)

    database_status = "not_configured"
    if db_client:
        db_health = await db_client.health_check()
        database_status = db_health.get("status", "unknown")

    return HealthResponse(
        status="healthy" if database_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=APP_VERSION,
        database_status=database_status,
        catalog=settings.database.catalog_name,
    )


@app.get(
    "/api/schema",
    response_model=SchemaResponse,
    tags=["Schema"],
    responses={k: v for k, v in ERROR_RESPONSES.items() if k in [500, 503]},
)
async def get_schema(schema_service: SchemaServiceDep) -> SchemaResponse:
    """
    Describe the attached catalog: tables, columns and foreign keys.

    This is the same schema the pipeline's schema-linking stage sees.
    """
    trace_id = get_trace_id()
    logger.info("Schema endpoint accessed", trace_id=trace_id)

    return await schema_service.get_schema_summary()


@app.post(
    "/api/sql-of-thought",
    tags=["SQL-of-Thought"],
    response_class=StreamingResponse,
    responses={k: v for k, v in ERROR_RESPONSES.items() if k in [400, 422, 503]},
)
async def sql_of_thought(
    request: SQLOfThoughtRequest,
    settings: SettingsDep,
    build_pipeline: PipelineBuilderDep,
) -> StreamingResponse:
    """
    Answer a question with the SQL-of-Thought pipeline, streaming progress.

    **Request Model**: `SQLOfThoughtRequest`
    - question: Natural language question (required)
    - model: Model for every stage (default: from config)
    - apiKey: OpenAI API key (default: server-side key, if configured)

    **Response**: `text/event-stream`, one `data: {"type", "data", "timestamp"}`
    message per event, ending with exactly one `complete` or `error` event.

    **Possible Errors** (before the stream starts):
    - 400: Missing question or API key
    - 422: Malformed request body
    - 503: Database unavailable
    """
    trace_id = get_trace_id()

    question = (request.question or "").strip()
    if not question:
        raise BadRequestError("Question is required", details={"field": "question"})

    api_key = request.api_key or settings.llm.openai_api_key
    if not api_key:
        raise BadRequestError("API key is required", details={"field": "apiKey"})

    run_config = RunConfig(
        model=request.model or settings.llm.default_model,
        api_key=api_key,
        temperature=settings.llm.temperature,
    )

    logger.info(
        "SQL-of-Thought run requested",
        question_length=len(question),
        model=run_config.model,
        trace_id=trace_id,
    )

    service = await build_pipeline(run_config)
    emitter = ProgressEmitter()

    task = asyncio.create_task(service.run(question, emitter))
    _active_runs.add(task)
    task.add_done_callback(_active_runs.discard)

    async def event_stream() -> AsyncIterator[str]:
        try:
            async for message in emitter.sse_messages():
                yield message
        finally:
            # Client gone or stream finished: later emits become no-ops
            emitter.close()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# FastAPI app is now ready to be imported and run by uvicorn or other ASGI servers
# Use scripts/run_dev.py for development or scripts/run_prod.py for production
