"""
Shared fixtures for unit and integration tests.

- `sample_db_path`: a small native DuckDB file shaped like the demo data
  (customers, invoices with a foreign key, a BIGINT column above 2^53)
- `db_config` / `db_client`: the engine attached to that file
- `ScriptedAgents`, `ScriptedExecutor`, `StaticSchemaRepository`:
  deterministic stand-ins for the model-backed and database-backed parts
  of the pipeline
"""

from typing import Any, Dict, List, Optional, Tuple, Union

import duckdb
import pytest

from sqlthought.config import DatabaseConfig, PipelineConfig
from sqlthought.domain.errors import LLMError, SchemaError
from sqlthought.domain.responses import ExecutionResult
from sqlthought.domain.schema_nodes import ColumnNode, RelationshipNode, SchemaDescriptor
from sqlthought.domain.stage_outputs import (
    CorrectionPlan,
    LinkedSchema,
    ParseError,
    PlanStep,
    QueryPlan,
    Subproblems,
)
from sqlthought.infrastructure.database_client import DatabaseClient
from sqlthought.repositories.error_hints import ErrorHints


# Exceeds 2^53 - 1, so a double would round it
BIG_REFERENCE = 9007199254740993


@pytest.fixture
def sample_db_path(tmp_path):
    """Create a native DuckDB file with two related tables."""
    path = tmp_path / "chinook_test.duckdb"
    conn = duckdb.connect(str(path))
    try:
        conn.execute(
            """
            CREATE TABLE customers (
                CustomerId INTEGER PRIMARY KEY,
                FirstName VARCHAR NOT NULL,
                Country VARCHAR
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE invoices (
                InvoiceId INTEGER PRIMARY KEY,
                CustomerId INTEGER REFERENCES customers(CustomerId),
                Total DECIMAL(10, 2),
                ExternalRef BIGINT
            )
            """
        )
        conn.execute(
            "INSERT INTO customers VALUES (1, 'Frank', 'USA'), (2, 'Astrid', 'Canada'), (3, 'Julia', 'USA')"
        )
        conn.execute(
            f"INSERT INTO invoices VALUES (1, 1, 9.99, {BIG_REFERENCE}), (2, 3, 1.98, 42)"
        )
    finally:
        conn.close()
    return path


@pytest.fixture
def db_config(sample_db_path):
    """Database configuration pointing at the sample file."""
    return DatabaseConfig(
        database_path=str(sample_db_path),
        catalog_name="chinook",
        schema_name="main",
        read_only=True,
    )


@pytest.fixture
async def db_client(db_config):
    """Create and connect database client."""
    client = DatabaseClient(db_config)
    await client.connect()
    yield client
    if client.is_connected():
        await client.close()


# =============================================================================
# Deterministic pipeline parts
# =============================================================================


def sample_schema(catalog: str = "chinook") -> SchemaDescriptor:
    return SchemaDescriptor(
        catalog=catalog,
        tables={
            "customers": [
                ColumnNode(name="CustomerId", data_type="INTEGER", is_nullable=False),
                ColumnNode(name="FirstName", data_type="VARCHAR", is_nullable=False),
                ColumnNode(name="Country", data_type="VARCHAR"),
            ],
            "invoices": [
                ColumnNode(name="InvoiceId", data_type="INTEGER", is_nullable=False),
                ColumnNode(name="CustomerId", data_type="INTEGER"),
                ColumnNode(name="Total", data_type="DECIMAL(10,2)"),
                ColumnNode(name="ExternalRef", data_type="BIGINT"),
            ],
        },
        foreign_keys=[
            RelationshipNode(
                from_table="invoices",
                from_column="CustomerId",
                to_table="customers",
                to_column="CustomerId",
            )
        ],
    )


class StaticSchemaRepository:
    """Schema source returning a fixed descriptor."""

    def __init__(
        self,
        schema: Optional[SchemaDescriptor] = None,
        fail: bool = False,
        describe_error: Optional[Exception] = None,
    ):
        self.schema = schema or sample_schema()
        self.fail = fail
        self.describe_error = describe_error
        self.described: List[str] = []

    async def get_schema(self, catalog: Optional[str] = None) -> SchemaDescriptor:
        if self.fail:
            raise SchemaError("Failed to load schema of catalog 'chinook': boom")
        return self.schema

    async def describe_table(self, table_name: str) -> Optional[List[Tuple[str, str]]]:
        self.described.append(table_name)
        if self.describe_error is not None:
            raise self.describe_error
        columns = self.schema.tables.get(table_name)
        if not columns:
            return None
        return [(column.name, column.data_type) for column in columns]


class ScriptedExecutor:
    """Executor that replays a fixed list of results (the last one repeats)."""

    def __init__(self, results: List[ExecutionResult]):
        self.results = list(results)
        self.executed: List[str] = []

    async def execute(self, sql: str) -> ExecutionResult:
        self.executed.append(sql)
        index = min(len(self.executed), len(self.results)) - 1
        return self.results[index]


def ok_result(rows: List[Dict[str, Any]]) -> ExecutionResult:
    return ExecutionResult(
        success=True,
        rows=rows,
        column_names=list(rows[0]) if rows else [],
        row_count=len(rows),
        execution_time_ms=1.5,
    )


def failed_result(error: str) -> ExecutionResult:
    return ExecutionResult.failed(error, execution_time_ms=0.7)


StageAnswer = Union[Any, ParseError, Exception]


class ScriptedAgents:
    """
    Stage agents with canned answers.

    An answer that is an Exception instance is raised instead of returned.
    Correction SQL is taken from `corrected_sqls` in order; the last entry
    repeats.
    """

    def __init__(
        self,
        linked: StageAnswer = None,
        subproblems: StageAnswer = None,
        plan: StageAnswer = None,
        sql: StageAnswer = "SELECT * FROM customers WHERE Country = 'USA'",
        correction_plan: StageAnswer = None,
        corrected_sqls: Optional[List[str]] = None,
    ):
        self.linked = linked if linked is not None else LinkedSchema(
            tables=["customers"],
            columns={"customers": ["CustomerId", "FirstName", "Country"]},
            reasoning="Customers hold the country",
        )
        self.subproblems = subproblems if subproblems is not None else Subproblems(
            clauses={"SELECT": "*", "FROM": "customers", "WHERE": "Country = 'USA'"}
        )
        self.plan = plan if plan is not None else QueryPlan(
            steps=[
                PlanStep(step_number=1, action="Read customers", reasoning="Holds the country"),
                PlanStep(step_number=2, action="Filter Country = 'USA'", reasoning="Question asks for USA"),
            ],
            final_strategy="Single-table filter",
        )
        self.sql = sql
        self.correction_plan = correction_plan if correction_plan is not None else CorrectionPlan(
            error_categories=["schema_link.col_missing"],
            root_cause="Column name is misspelled",
        )
        self.corrected_sqls = list(corrected_sqls or ["SELECT * FROM customers WHERE Country = 'USA'"])
        self.calls: List[str] = []
        self.correction_requests: List[Dict[str, Any]] = []
        self.received_subproblems: Optional[Subproblems] = None

    @staticmethod
    def _answer(value: StageAnswer) -> Any:
        if isinstance(value, Exception):
            raise value
        return value

    async def link_schema(self, question: str, schema: SchemaDescriptor):
        self.calls.append("link_schema")
        return self._answer(self.linked)

    async def identify_subproblems(self, question: str, linked_schema: LinkedSchema):
        self.calls.append("identify_subproblems")
        return self._answer(self.subproblems)

    async def plan_query(self, question: str, linked_schema: LinkedSchema, subproblems: Subproblems):
        self.calls.append("plan_query")
        self.received_subproblems = subproblems
        return self._answer(self.plan)

    async def generate_sql(self, question: str, query_plan: QueryPlan, linked_schema: LinkedSchema):
        self.calls.append("generate_sql")
        return self._answer(self.sql)

    async def plan_correction(
        self,
        question: str,
        failed_sql: str,
        error: str,
        linked_schema: LinkedSchema,
        hints: ErrorHints,
        table_inspection: Optional[str] = None,
    ):
        self.calls.append("plan_correction")
        self.correction_requests.append(
            {
                "failed_sql": failed_sql,
                "error": error,
                "hints": hints,
                "table_inspection": table_inspection,
            }
        )
        return self._answer(self.correction_plan)

    async def generate_correction_sql(
        self,
        question: str,
        failed_sql: str,
        correction_plan: CorrectionPlan,
        linked_schema: LinkedSchema,
        hints: ErrorHints,
    ):
        self.calls.append("generate_correction_sql")
        if len(self.corrected_sqls) > 1:
            return self.corrected_sqls.pop(0)
        return self.corrected_sqls[0]


class RecordingLLMClient:
    """LLM client stand-in that records prompts and replays responses."""

    def __init__(self, responses: List[Union[str, Exception]]):
        self.responses = list(responses)
        self.prompts: List[str] = []
        self.structured: List[bool] = []

    async def complete(self, prompt: str, model: Optional[str] = None, structured_output: bool = False) -> str:
        self.prompts.append(prompt)
        self.structured.append(structured_output)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def pipeline_config():
    return PipelineConfig(max_attempts=3)


@pytest.fixture
def llm_failure():
    return LLMError("LLM completion failed: 401 invalid api key")
