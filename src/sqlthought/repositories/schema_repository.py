"""
Schema Repository for introspecting the attached catalog.

This module reads table, column and foreign-key metadata from DuckDB's
catalog views and assembles it into one `SchemaDescriptor`.

Sources:
- information_schema.tables: base tables of the attached catalog
- information_schema.columns: columns in declaration order, with nullability
- duckdb_constraints(): FOREIGN KEY constraints (parsed from constraint_text)

A partial schema is never returned: any failure raises SchemaError.

Usage:
    repo = SchemaRepository(db_client, settings.database)
    schema = await repo.get_schema()
    print(schema.table_names)
"""

import re
from typing import Dict, List, Optional, Tuple

from ..config import DatabaseConfig
from ..domain.errors import DatabaseError, SchemaError
from ..domain.schema_nodes import ColumnNode, RelationshipNode, SchemaDescriptor
from ..infrastructure.database_client import DatabaseClient
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id


logger = get_module_logger()

# FOREIGN KEY ("ArtistId") REFERENCES "artists"("ArtistId")
_FOREIGN_KEY_PATTERN = re.compile(
    r'FOREIGN KEY\s*\(([^)]*)\)\s*REFERENCES\s+((?:"?\w+"?\s*\.\s*)*"?\w+"?)\s*\(([^)]*)\)',
    re.IGNORECASE,
)

_IDENTIFIER_PATTERN = re.compile(r"^\w+$")


def _split_columns(text: str) -> List[str]:
    return [part.strip().strip('"') for part in text.split(",") if part.strip()]


def parse_foreign_key(table_name: str, constraint_text: str) -> List[RelationshipNode]:
    """
    Turn one FOREIGN KEY constraint definition into relationship edges.

    Composite keys yield one edge per column pair. Text that does not look
    like a foreign key yields no edges.
    """
    match = _FOREIGN_KEY_PATTERN.search(constraint_text or "")
    if not match:
        return []

    from_columns = _split_columns(match.group(1))
    # Referenced table may be schema-qualified; keep the table part
    to_table = match.group(2).split(".")[-1].strip().strip('"')
    to_columns = _split_columns(match.group(3))

    return [
        RelationshipNode(
            from_table=table_name,
            from_column=from_column,
            to_table=to_table,
            to_column=to_column,
        )
        for from_column, to_column in zip(from_columns, to_columns)
    ]


class SchemaRepository:
    """
    Repository for schema introspection of the attached catalog.

    Uses DatabaseClient for query execution and builds domain models.
    """

    def __init__(self, db_client: DatabaseClient, config: DatabaseConfig):
        """
        Initialize schema repository.

        Args:
            db_client: Connected DatabaseClient instance
            config: Database configuration (catalog and schema names)
        """
        self.db_client = db_client
        self.config = config

    async def get_schema(self, catalog: Optional[str] = None) -> SchemaDescriptor:
        """
        Enumerate tables, columns and foreign keys of the catalog.

        Args:
            catalog: Catalog to describe (default: the configured catalog)

        Returns:
            SchemaDescriptor with tables in lexical order and columns in
            declaration order

        Raises:
            SchemaError: If any part of the enumeration fails
        """
        catalog = catalog or self.config.catalog_name
        trace_id = current_trace_id()
        logger.info("Loading schema", catalog=catalog, trace_id=trace_id)

        try:
            table_names = await self.get_tables(catalog)
            tables: Dict[str, List[ColumnNode]] = {}
            for table_name in table_names:
                tables[table_name] = await self.get_columns(catalog, table_name)
            foreign_keys = await self.get_relationships(catalog)
        except DatabaseError as e:
            error_msg = f"Failed to load schema of catalog '{catalog}': {e.message}"
            logger.error(error_msg, trace_id=trace_id)
            raise SchemaError(error_msg, details={"catalog": catalog}) from e

        schema = SchemaDescriptor(catalog=catalog, tables=tables, foreign_keys=foreign_keys)

        logger.info(
            "Schema loaded successfully",
            catalog=catalog,
            table_count=len(tables),
            foreign_key_count=len(foreign_keys),
            trace_id=trace_id
        )
        return schema

    async def get_tables(self, catalog: str) -> List[str]:
        """Fetch base table names of the catalog in lexical order."""
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_catalog = ?
                AND table_schema = ?
                AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """
        rows = await self.db_client.fetch_dicts(query, [catalog, self.config.schema_name])
        return [row["table_name"] for row in rows]

    async def get_columns(self, catalog: str, table_name: str) -> List[ColumnNode]:
        """Fetch the columns of one table in declaration order."""
        query = """
            SELECT column_name, data_type, is_nullable
            FROM information_schema.columns
            WHERE table_catalog = ?
                AND table_schema = ?
                AND table_name = ?
            ORDER BY ordinal_position
        """
        rows = await self.db_client.fetch_dicts(
            query, [catalog, self.config.schema_name, table_name]
        )
        return [
            ColumnNode(
                name=row["column_name"],
                data_type=row["data_type"],
                is_nullable=(row["is_nullable"] == "YES"),
            )
            for row in rows
        ]

    async def get_relationships(self, catalog: str) -> List[RelationshipNode]:
        """
        Fetch all foreign-key edges of the catalog.

        Edges are ordered by source table, then by constraint text, so two
        loads of the same file produce the same descriptor.
        """
        query = """
            SELECT table_name, constraint_text
            FROM duckdb_constraints()
            WHERE database_name = ?
                AND schema_name = ?
                AND constraint_type = 'FOREIGN KEY'
            ORDER BY table_name, constraint_text
        """
        rows = await self.db_client.fetch_dicts(query, [catalog, self.config.schema_name])

        relationships: List[RelationshipNode] = []
        for row in rows:
            relationships.extend(parse_foreign_key(row["table_name"], row["constraint_text"]))
        return relationships

    async def describe_table(self, table_name: str) -> Optional[List[Tuple[str, str]]]:
        """
        Probe live column metadata of one table.

        Best effort: returns None when the name is not a plain identifier,
        the table does not exist, or the engine rejects the statement.

        Returns:
            [(column_name, column_type), ...] or None
        """
        if not _IDENTIFIER_PATTERN.match(table_name or ""):
            return None

        trace_id = current_trace_id()
        try:
            rows = await self.db_client.fetch_dicts(f"DESCRIBE {self.config.catalog_name}.{table_name}")
        except DatabaseError as e:
            logger.info("Table probe failed", table_name=table_name, error=e.message, trace_id=trace_id)
            return None

        columns = [(row["column_name"], str(row["column_type"])) for row in rows]
        return columns or None
