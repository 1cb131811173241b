"""
SQL Execution Repository.

This repository runs one generated query against the attached catalog and
reports the outcome as an ExecutionResult. A rejected query is an expected
outcome here, not an exception: the engine's message is returned verbatim
so the correction stage can read it.

Result Conversion:
- Rows become ordered column -> value mappings
- 64-bit (and wider) integer values are narrowed to decimal strings; JSON
  consumers that use IEEE-754 doubles would otherwise round them silently
- BLOB values are rendered as hex strings

Usage:
    repo = SQLExecutionRepository(db_client)
    result = await repo.execute("SELECT * FROM chinook.customers")
    if result.success:
        print(f"Returned {result.row_count} rows in {result.execution_time_ms}ms")
    else:
        print(result.error)
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence, Tuple

from sqlthought.config_constants import MAX_SAFE_INTEGER, WIDE_INTEGER_TYPES
from sqlthought.domain.errors import DatabaseQueryError
from sqlthought.domain.responses import ExecutionResult
from sqlthought.infrastructure.database_client import DatabaseClient
from sqlthought.utils.logging import get_module_logger
from sqlthought.utils.text_utils import strip_sql_comments
from sqlthought.utils.tracing import current_trace_id

logger = get_module_logger()


def narrow_value(value: Any, wide_column: bool = False) -> Any:
    """
    Render integers that do not fit a double exactly as decimal strings.

    Values of wide-integer columns are always rendered as strings; other
    integers only when they exceed 2^53 - 1 in magnitude. Booleans are
    left alone. Binary values become lowercase hex strings.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, bool) or not isinstance(value, int):
        return value
    if wide_column or abs(value) > MAX_SAFE_INTEGER:
        return str(value)
    return value


def narrow_rows(
    column_names: Sequence[str],
    column_types: Sequence[str],
    rows: Sequence[Tuple[Any, ...]],
) -> List[Dict[str, Any]]:
    """Convert engine rows into mappings with integer narrowing applied."""
    wide = [type_name.upper() in WIDE_INTEGER_TYPES for type_name in column_types]
    if len(wide) < len(column_names):
        wide.extend([False] * (len(column_names) - len(wide)))

    return [
        {
            name: narrow_value(value, wide[index])
            for index, (name, value) in enumerate(zip(column_names, row))
        }
        for row in rows
    ]


class SQLExecutionRepository:
    """
    Repository for SQL execution.

    Executes generated SQL and never raises for engine-level rejections.
    """

    def __init__(self, db_client: DatabaseClient):
        self.db_client = db_client

    async def execute(self, sql: str) -> ExecutionResult:
        """
        Execute a generated query.

        Args:
            sql: SQL string, already catalog-qualified

        Returns:
            ExecutionResult with rows on success, or the raw engine error
            on failure; elapsed wall-clock time either way
        """
        trace_id = current_trace_id()

        if not strip_sql_comments(sql or ""):
            logger.warning("Refusing to execute empty SQL", trace_id=trace_id)
            return ExecutionResult.failed("Generated SQL is empty", execution_time_ms=0.0)

        logger.info("Executing SQL query", sql_length=len(sql), trace_id=trace_id)
        logger.debug("SQL text", sql=sql, trace_id=trace_id)

        start_time = datetime.now(timezone.utc)

        try:
            column_names, column_types, raw_rows = await self.db_client.fetch(sql)
        except DatabaseQueryError as e:
            execution_time_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
            logger.info(
                "SQL execution failed",
                error=e.engine_error,
                execution_time_ms=round(execution_time_ms, 2),
                trace_id=trace_id,
            )
            return ExecutionResult.failed(e.engine_error, execution_time_ms=execution_time_ms)

        end_time = datetime.now(timezone.utc)
        execution_time_ms = (end_time - start_time).total_seconds() * 1000

        rows = narrow_rows(column_names, column_types, raw_rows)

        result = ExecutionResult(
            success=True,
            rows=rows,
            column_names=list(column_names),
            row_count=len(rows),
            execution_time_ms=execution_time_ms,
        )

        logger.info(
            "SQL execution successful",
            row_count=result.row_count,
            execution_time_ms=round(execution_time_ms, 2),
            trace_id=trace_id,
        )

        return result
