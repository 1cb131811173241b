"""
Response and result models for the SQL-of-Thought service.

These models define what leaves the service: execution results, the
progress-event envelope, and the JSON bodies of the plain HTTP endpoints.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from .base_enums import EventType
from .schema_nodes import SchemaDescriptor


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Health status", examples=["healthy", "unhealthy"])
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Application version")
    database_status: str = Field(..., description="Database connection status")
    catalog: str = Field(..., description="Logical name the database is attached under")


class ErrorResponse(BaseModel):
    """Response model for error responses."""

    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
    trace_id: Optional[str] = Field(
        default=None,
        description="Trace ID for debugging"
    )
    timestamp: datetime = Field(..., description="Error timestamp")


class SchemaResponse(BaseModel):
    """Response model for the schema endpoint."""

    table_count: int = Field(..., description="Number of base tables in the catalog")
    schema_descriptor: SchemaDescriptor = Field(..., alias="schema", description="Tables, columns, foreign keys")

    model_config = {"populate_by_name": True}


class ExecutionResult(BaseModel):
    """
    Outcome of executing one generated query.

    Success carries rows; failure carries the engine's error message verbatim.
    Either way the wall-clock duration is recorded.
    """

    success: bool = Field(..., description="Whether the engine accepted and ran the query")
    rows: List[Dict[str, Any]] = Field(default_factory=list, description="Result rows, column -> value")
    column_names: List[str] = Field(default_factory=list, description="Result column names in order")
    row_count: int = Field(default=0, description="Number of rows returned")
    execution_time_ms: float = Field(..., description="Wall-clock execution time in milliseconds")
    error: Optional[str] = Field(default=None, description="Raw engine error message (failure only)")

    @classmethod
    def failed(cls, error: str, execution_time_ms: float) -> "ExecutionResult":
        return cls(success=False, error=error, execution_time_ms=execution_time_ms)


class ProgressEvent(BaseModel):
    """Envelope of one streamed progress event."""

    type: EventType = Field(..., description="Event type")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event payload")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        """Render as one Server-Sent-Events message."""
        return f"data: {self.model_dump_json()}\n\n"
