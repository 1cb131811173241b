"""
Schema Service for the schema inspection endpoint.

Thin layer between the API and SchemaRepository; the pipeline itself talks
to the repository directly.
"""

from ..repositories.schema_repository import SchemaRepository
from ..domain.responses import SchemaResponse
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id


logger = get_module_logger()


class SchemaService:
    """
    Service for schema-related operations.

    Usage:
        schema_service = SchemaService(schema_repo)
        summary = await schema_service.get_schema_summary()
    """

    def __init__(self, schema_repository: SchemaRepository):
        self.schema_repo = schema_repository

    async def get_schema_summary(self) -> SchemaResponse:
        """
        Describe the attached catalog.

        Raises:
            SchemaError: If the schema cannot be enumerated
        """
        schema = await self.schema_repo.get_schema()

        logger.info(
            "Schema summary built",
            catalog=schema.catalog,
            table_count=len(schema.tables),
            trace_id=current_trace_id()
        )

        return SchemaResponse(table_count=len(schema.tables), schema_descriptor=schema)
