"""
Integration tests for the HTTP API.

The app runs against the sample database; only the stage agents are
scripted (through a dependency override of the pipeline builder), so
schema loading, qualification and execution are real.

Usage:
    pytest tests/integration/test_api.py -v
"""

import json
from typing import Annotated, List

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from conftest import ScriptedAgents
from sqlthought.api.dependencies import SettingsDep, get_db_client, get_pipeline_builder
from sqlthought.config import get_settings
from sqlthought.domain.pipeline import RunConfig
from sqlthought.infrastructure.database_client import DatabaseClient
from sqlthought.main import app
from sqlthought.repositories.schema_repository import SchemaRepository
from sqlthought.repositories.sql_execution import SQLExecutionRepository
from sqlthought.services.sql_of_thought_service import SQLOfThoughtService


QUESTION = "List all customers from USA"


def _start_client(monkeypatch, database_path):
    monkeypatch.setenv("DATABASE__DATABASE_PATH", str(database_path))
    monkeypatch.setenv("LLM__OPENAI_API_KEY", "")
    get_settings.cache_clear()
    return TestClient(app)


@pytest.fixture
def api_client(monkeypatch, sample_db_path):
    """App attached to the sample database."""
    with _start_client(monkeypatch, sample_db_path) as client:
        yield client
    app.dependency_overrides.clear()
    get_settings.cache_clear()


@pytest.fixture
def unavailable_client(monkeypatch, tmp_path):
    """App whose database file does not exist."""
    with _start_client(monkeypatch, tmp_path / "missing.duckdb") as client:
        yield client
    app.dependency_overrides.clear()
    get_settings.cache_clear()


def use_agents(agents: ScriptedAgents) -> List[RunConfig]:
    """Route runs through scripted agents; returns the run configs seen."""
    run_configs: List[RunConfig] = []

    def scripted_pipeline_builder(
        settings: SettingsDep,
        db_client: Annotated[DatabaseClient, Depends(get_db_client)],
    ):
        async def build(run_config: RunConfig) -> SQLOfThoughtService:
            run_configs.append(run_config)
            return SQLOfThoughtService(
                schema_repository=SchemaRepository(db_client, settings.database),
                sql_execution_repository=SQLExecutionRepository(db_client),
                agents=agents,
                config=settings.pipeline,
                catalog=settings.database.catalog_name,
            )

        return build

    app.dependency_overrides[get_pipeline_builder] = scripted_pipeline_builder
    return run_configs


def parse_events(body: str) -> List[dict]:
    messages = [chunk for chunk in body.split("\n\n") if chunk]
    assert all(message.startswith("data: ") for message in messages)
    return [json.loads(message[len("data: "):]) for message in messages]


@pytest.mark.integration
class TestPlainEndpoints:

    def test_root(self, api_client):
        response = api_client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "SQL-of-Thought API"

    def test_trace_id_echoed(self, api_client):
        response = api_client.get("/", headers={"X-Trace-ID": "trace-abc"})
        assert response.headers["X-Trace-ID"] == "trace-abc"
        assert response.json()["trace_id"] == "trace-abc"

    def test_health(self, api_client):
        data = api_client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["database_status"] == "healthy"
        assert data["catalog"] == "chinook"

    def test_schema(self, api_client):
        response = api_client.get("/api/schema")

        assert response.status_code == 200
        data = response.json()
        assert data["table_count"] == 2
        assert list(data["schema"]["tables"]) == ["customers", "invoices"]
        assert data["schema"]["foreign_keys"][0]["to_table"] == "customers"


@pytest.mark.integration
class TestSqlOfThoughtStream:

    def test_first_try_success(self, api_client):
        run_configs = use_agents(ScriptedAgents())

        response = api_client.post(
            "/api/sql-of-thought",
            json={"question": QUESTION, "apiKey": "sk-request", "model": "gpt-4o"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = parse_events(response.text)
        assert [event["type"] for event in events][:2] == ["agent_start", "agent_complete"]
        assert events[-1]["type"] == "complete"
        assert sum(event["type"] in ("complete", "error") for event in events) == 1

        final = events[-1]["data"]
        assert final["success"] is True
        assert final["attempts"] == 1
        assert final["sql"] == "SELECT * FROM chinook.customers WHERE Country = 'USA'"
        assert [row["FirstName"] for row in final["results"]] == ["Frank", "Julia"]
        assert "error" not in final

        assert run_configs[0].model == "gpt-4o"
        assert run_configs[0].api_key.get_secret_value() == "sk-request"

    def test_engine_error_is_corrected(self, api_client):
        agents = ScriptedAgents(
            sql="SELECT * FROM customers WHERE country_name = 'USA'",
            corrected_sqls=["SELECT * FROM customers WHERE Country = 'USA'"],
        )
        use_agents(agents)

        response = api_client.post("/api/sql-of-thought", json={"question": QUESTION, "apiKey": "sk-request"})

        events = parse_events(response.text)
        types = [(event["type"], event["data"].get("agent")) for event in events]
        assert ("agent_error", "execute") in types
        assert ("agent_update", "sql") in types

        [request] = agents.correction_requests
        assert "country_name" in request["error"]

        final = events[-1]["data"]
        assert final["success"] is True
        assert final["attempts"] == 2

    def test_failed_run_still_completes(self, api_client):
        use_agents(ScriptedAgents(sql="SELECT nope FROM customers", corrected_sqls=["SELECT nope FROM customers"]))

        response = api_client.post("/api/sql-of-thought", json={"question": QUESTION, "apiKey": "sk-request"})

        final = parse_events(response.text)[-1]
        assert final["type"] == "complete"
        assert final["data"]["success"] is False
        assert final["data"]["attempts"] == 3
        assert final["data"]["results"] == []
        assert "nope" in final["data"]["error"]

    def test_missing_question(self, api_client):
        use_agents(ScriptedAgents())

        response = api_client.post("/api/sql-of-thought", json={"question": "   ", "apiKey": "sk-request"})

        assert response.status_code == 400
        assert response.json()["message"] == "Question is required"

    def test_missing_api_key(self, api_client):
        use_agents(ScriptedAgents())

        response = api_client.post("/api/sql-of-thought", json={"question": QUESTION})

        assert response.status_code == 400
        assert response.json()["message"] == "API key is required"

    def test_malformed_body(self, api_client):
        use_agents(ScriptedAgents())

        response = api_client.post("/api/sql-of-thought", content="not json", headers={"content-type": "application/json"})

        assert response.status_code == 422


@pytest.mark.integration
class TestDatabaseUnavailable:

    def test_health_degraded(self, unavailable_client):
        data = unavailable_client.get("/health").json()
        assert data["status"] == "degraded"

    def test_schema_unavailable(self, unavailable_client):
        response = unavailable_client.get("/api/schema")
        assert response.status_code == 503

    def test_run_unavailable(self, unavailable_client):
        use_agents(ScriptedAgents())

        response = unavailable_client.post(
            "/api/sql-of-thought", json={"question": QUESTION, "apiKey": "sk-request"}
        )

        assert response.status_code == 503
