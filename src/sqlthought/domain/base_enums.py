from enum import Enum


class AgentName(str, Enum):
    """Stage identifiers carried in progress events."""
    SCHEMA = "schema"
    SUBPROBLEM = "subproblem"
    QUERY_PLAN = "queryplan"
    SQL = "sql"
    EXECUTE = "execute"
    CORRECTION = "correction"


class EventType(str, Enum):
    """Progress event types streamed to the observer."""
    AGENT_START = "agent_start"
    AGENT_COMPLETE = "agent_complete"
    AGENT_ERROR = "agent_error"
    AGENT_UPDATE = "agent_update"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (EventType.COMPLETE, EventType.ERROR)


class PipelineStage(str, Enum):
    """States of the pipeline state machine."""
    SCHEMA_LINKING = "schema_linking"
    SUBPROBLEM = "subproblem"
    QUERY_PLAN = "query_plan"
    SQL_GENERATION = "sql_generation"
    EXECUTING = "executing"
    CORRECTING = "correcting"
    DONE = "done"


class SQLClause(str, Enum):
    """Clause names the subproblem stage may describe."""
    SELECT = "SELECT"
    FROM = "FROM"
    JOIN = "JOIN"
    WHERE = "WHERE"
    GROUP_BY = "GROUP BY"
    HAVING = "HAVING"
    ORDER_BY = "ORDER BY"
    LIMIT = "LIMIT"
