"""
Pipeline state models for the SQL-of-Thought system.

`RunConfig` is the per-run configuration handed to the orchestrator when it
is built; `RunState` is the mutable state of the correction loop.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, Field, SecretStr

from .base_enums import AgentName, PipelineStage
from .responses import ExecutionResult
from .schema_nodes import SchemaDescriptor
from .stage_outputs import LinkedSchema


class RunConfig(BaseModel):
    """Per-run model selection and credentials (never process-wide state)."""

    model: str = Field(..., description="Model used by every stage of the run")
    api_key: SecretStr = Field(..., description="API key used by every stage of the run")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


@dataclass
class RunState:
    """
    Mutable state of one question-answering run.

    Invariants:
    - exactly one live query (`sql`); a correction replaces it entirely
    - `attempts` counts executions and only ever increases
    - once `success` is True the loop stops
    """

    question: str
    stage: PipelineStage = PipelineStage.SCHEMA_LINKING
    # Agent whose start event has been sent and whose outcome has not
    active_agent: Optional[AgentName] = None

    schema: Optional[SchemaDescriptor] = None
    linked_schema: Optional[LinkedSchema] = None

    sql: Optional[str] = None
    attempts: int = 0
    success: bool = False
    last_result: Optional[ExecutionResult] = None

    # Every query executed, in order; the last one is `sql`
    sql_history: List[str] = field(default_factory=list)

    def record_execution(self, result: ExecutionResult) -> None:
        self.attempts += 1
        self.last_result = result
        self.success = result.success
        if self.sql is not None:
            self.sql_history.append(self.sql)

    def replace_sql(self, sql: str) -> None:
        self.sql = sql

    @property
    def corrections(self) -> int:
        return max(self.attempts - 1, 0)
