"""
Domain package for the SQL-of-Thought system.

This package contains the domain models, value objects and stage output
types used throughout the application.
"""

from .base_enums import AgentName, EventType, PipelineStage, SQLClause
from .schema_nodes import ColumnNode, RelationshipNode, SchemaDescriptor
from .stage_outputs import (
    CorrectionPlan,
    LinkedSchema,
    ParseError,
    PlanStep,
    QueryPlan,
    Subproblems,
    parse_stage_output,
)
from .requests import SQLOfThoughtRequest
from .responses import (
    ErrorResponse,
    ExecutionResult,
    HealthResponse,
    ProgressEvent,
    SchemaResponse,
)
from .pipeline import RunConfig, RunState

__all__ = [
    # Enums
    "AgentName",
    "EventType",
    "PipelineStage",
    "SQLClause",

    # Schema
    "ColumnNode",
    "RelationshipNode",
    "SchemaDescriptor",

    # Stage outputs
    "CorrectionPlan",
    "LinkedSchema",
    "ParseError",
    "PlanStep",
    "QueryPlan",
    "Subproblems",
    "parse_stage_output",

    # Requests
    "SQLOfThoughtRequest",

    # Responses
    "ErrorResponse",
    "ExecutionResult",
    "HealthResponse",
    "ProgressEvent",
    "SchemaResponse",

    # Pipeline
    "RunConfig",
    "RunState",
]
