"""
Database client for the embedded DuckDB engine.

This module owns the single DuckDB handle of the process. The target
database is attached under a fixed logical catalog name; SQLite files go
through DuckDB's sqlite extension, DuckDB files are attached natively.

DuckDB is synchronous and one handle must not run two statements at once,
so every call is serialized by an asyncio.Lock and run via asyncio.to_thread.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import duckdb

from ..config import DatabaseConfig
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id
from ..domain.errors import DatabaseConnectionError, DatabaseQueryError


logger = get_module_logger()

SQLITE_SUFFIXES = (".db", ".sqlite", ".sqlite3")

# (column names, column type names, rows)
QueryOutput = Tuple[List[str], List[str], List[Tuple[Any, ...]]]


class DatabaseClient:
    """
    Low-level async wrapper around one DuckDB connection.

    This is a thin infrastructure layer. Schema introspection and query
    execution semantics live in the repositories.

    Features:
    - In-memory engine with the target database attached as `catalog_name`
    - Serialized access (one statement at a time across all requests)
    - Column names and engine type names alongside the rows
    - Structured logging with trace IDs

    Usage:
        client = DatabaseClient(config)
        await client.connect()

        columns, types, rows = await client.fetch("SELECT * FROM chinook.customers")
        count = await client.fetch_scalar("SELECT COUNT(*) FROM chinook.invoices")

        await client.close()
    """

    def __init__(self, config: DatabaseConfig):
        """
        Initialize database client with configuration.

        Args:
            config: Database configuration
        """
        self.config = config
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = asyncio.Lock()
        self._is_connected = False

        logger.info(
            "DatabaseClient initialized",
            database_path=config.database_path,
            catalog=config.catalog_name,
            read_only=config.read_only,
        )

    @property
    def catalog(self) -> str:
        return self.config.catalog_name

    def _attach_statement(self) -> str:
        path = Path(self.config.database_path).as_posix().replace("'", "''")
        options = []
        if Path(path).suffix.lower() in SQLITE_SUFFIXES:
            options.append("TYPE SQLITE")
        if self.config.read_only:
            options.append("READ_ONLY")
        suffix = f" ({', '.join(options)})" if options else ""
        return f"ATTACH '{path}' AS {self.config.catalog_name}{suffix}"

    def _open(self) -> duckdb.DuckDBPyConnection:
        conn = duckdb.connect(":memory:")
        try:
            conn.execute(f"SET threads TO {self.config.threads}")
            if Path(self.config.database_path).suffix.lower() in SQLITE_SUFFIXES:
                conn.execute("INSTALL sqlite")
                conn.execute("LOAD sqlite")
            conn.execute(self._attach_statement())
            # Unqualified names resolve against the attached catalog
            conn.execute(f"USE {self.config.catalog_name}")
        except Exception:
            conn.close()
            raise
        return conn

    async def connect(self) -> None:
        """
        Open the engine and attach the target database.

        Raises:
            DatabaseConnectionError: If the file is missing or cannot be attached
        """
        if self._is_connected:
            logger.warning("Database client already connected")
            return

        trace_id = current_trace_id()
        logger.info("Attaching database", database_path=self.config.database_path, trace_id=trace_id)

        if not Path(self.config.database_path).exists():
            error_msg = f"Database file not found: {self.config.database_path}"
            logger.error(error_msg, trace_id=trace_id)
            raise DatabaseConnectionError(error_msg)

        try:
            self._conn = await asyncio.to_thread(self._open)
        except duckdb.Error as e:
            error_msg = f"Failed to attach database: {e}"
            logger.error(error_msg, error_type=type(e).__name__, trace_id=trace_id)
            raise DatabaseConnectionError(error_msg) from e

        self._is_connected = True
        logger.info(
            "Database attached successfully",
            catalog=self.config.catalog_name,
            trace_id=trace_id
        )

    async def close(self) -> None:
        """Close the engine handle."""
        trace_id = current_trace_id()
        logger.info("Closing database connection", trace_id=trace_id)

        async with self._lock:
            if self._conn is not None:
                await asyncio.to_thread(self._conn.close)

            self._conn = None
            self._is_connected = False

        logger.info("Database connection closed", trace_id=trace_id)

    def is_connected(self) -> bool:
        """Check if database client is connected."""
        return self._is_connected and self._conn is not None

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on the engine handle.

        Returns:
            Dictionary with status and connection details
        """
        trace_id = current_trace_id()

        if not self.is_connected():
            return {
                "status": "unhealthy",
                "connected": False,
                "error": "Database client not connected"
            }

        try:
            result = await self.fetch_scalar("SELECT 1")
        except DatabaseQueryError as e:
            logger.error("Database health check failed", error=e.engine_error, trace_id=trace_id)
            return {"status": "unhealthy", "connected": True, "error": e.engine_error}

        logger.info("Database health check passed", trace_id=trace_id)
        return {
            "status": "healthy" if result == 1 else "unhealthy",
            "connected": True,
            "catalog": self.config.catalog_name,
        }

    def _run(self, query: str, params: Optional[Sequence[Any]]) -> QueryOutput:
        assert self._conn is not None
        if params:
            cursor = self._conn.execute(query, list(params))
            description = cursor.description or []
            return (
                [column[0] for column in description],
                [str(column[1]) for column in description],
                cursor.fetchall(),
            )

        relation = self._conn.sql(query)
        if relation is None:
            # Statement without a result set
            return [], [], []
        return relation.columns, [str(t) for t in relation.types], relation.fetchall()

    async def fetch(
        self,
        query: str,
        params: Optional[Sequence[Any]] = None,
    ) -> QueryOutput:
        """
        Execute a statement and return column names, type names and rows.

        Type names are exact DuckDB spellings ("BIGINT", "VARCHAR", ...) for
        parameterless statements; parameterized statements only report the
        DB-API type codes, which is sufficient for the introspection queries
        that use them.

        Raises:
            DatabaseConnectionError: If the client is not connected
            DatabaseQueryError: If the engine rejects the statement; the
                engine message is kept verbatim in `details["engine_error"]`
        """
        if not self.is_connected():
            raise DatabaseConnectionError("Database client is not connected")

        trace_id = current_trace_id()
        logger.debug("Executing database query", query=query[:200], trace_id=trace_id)

        try:
            async with self._lock:
                columns, types, rows = await asyncio.to_thread(self._run, query, params)
        except duckdb.Error as e:
            engine_error = str(e)
            logger.warning(
                "Query rejected by engine",
                error_type=type(e).__name__,
                engine_error=engine_error,
                query=query[:200],
                trace_id=trace_id
            )
            raise DatabaseQueryError(
                f"Query execution failed: {engine_error}",
                details={"engine_error": engine_error, "error_type": type(e).__name__},
            ) from e

        logger.debug("Query executed successfully", row_count=len(rows), trace_id=trace_id)
        return columns, types, rows

    async def fetch_dicts(
        self,
        query: str,
        params: Optional[Sequence[Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Execute a statement and return rows as dictionaries."""
        columns, _, rows = await self.fetch(query, params)
        return [dict(zip(columns, row)) for row in rows]

    async def fetch_scalar(
        self,
        query: str,
        params: Optional[Sequence[Any]] = None,
    ) -> Any:
        """Execute a statement and return the first column of the first row."""
        _, _, rows = await self.fetch(query, params)
        return rows[0][0] if rows else None
