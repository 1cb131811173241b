"""
Unit tests for the SQL-of-Thought orchestrator.

Stage agents, schema source and executor are deterministic stand-ins, so
every test checks the exact event sequence a run produces.
"""

import pytest

from conftest import (
    ScriptedAgents,
    ScriptedExecutor,
    StaticSchemaRepository,
    failed_result,
    ok_result,
)
from sqlthought.config import PipelineConfig
from sqlthought.domain.base_enums import AgentName, EventType, PipelineStage
from sqlthought.domain.stage_outputs import ParseError, Subproblems
from sqlthought.services.progress import ProgressEmitter
from sqlthought.services.sql_of_thought_service import DEGRADED_NOTE, SQLOfThoughtService


QUESTION = "List all customers from USA"
USA_ROWS = [
    {"CustomerId": 1, "FirstName": "Frank", "Country": "USA"},
    {"CustomerId": 3, "FirstName": "Julia", "Country": "USA"},
]
COLUMN_ERROR = (
    'Binder Error: Referenced column "country_name" not found in FROM clause!\n'
    'Candidate bindings: "Country"\n'
    'Did you mean "Country"?'
)


def build_service(agents, executor, schema_repo=None, max_attempts=3):
    return SQLOfThoughtService(
        schema_repository=schema_repo or StaticSchemaRepository(),
        sql_execution_repository=executor,
        agents=agents,
        config=PipelineConfig(max_attempts=max_attempts),
        catalog="chinook",
    )


async def run_and_collect(service, question=QUESTION):
    emitter = ProgressEmitter()
    state = await service.run(question, emitter)
    events = [event async for event in emitter.stream()]
    return state, events


def sequence(events):
    """(type, agent) pairs; terminal events have no agent."""
    return [(event.type.value, event.data.get("agent")) for event in events]


def outputs(events, event_type, agent):
    return [
        event.data.get("output") for event in events
        if event.type == event_type and event.data.get("agent") == agent.value
    ]


def assert_start_precedes_outcome(events):
    open_agents = set()
    for event in events:
        agent = event.data.get("agent")
        if event.type == EventType.AGENT_START:
            assert agent not in open_agents
            open_agents.add(agent)
        elif event.type in (EventType.AGENT_COMPLETE, EventType.AGENT_ERROR):
            assert agent in open_agents
            open_agents.discard(agent)
    assert not open_agents


class TestSuccessfulRun:

    @pytest.mark.asyncio
    async def test_first_try_success(self):
        agents = ScriptedAgents(sql="SELECT * FROM customers WHERE Country = 'USA'")
        executor = ScriptedExecutor([ok_result(USA_ROWS)])

        state, events = await run_and_collect(build_service(agents, executor))

        assert sequence(events) == [
            ("agent_start", "schema"), ("agent_complete", "schema"),
            ("agent_start", "subproblem"), ("agent_complete", "subproblem"),
            ("agent_start", "queryplan"), ("agent_complete", "queryplan"),
            ("agent_start", "sql"), ("agent_complete", "sql"),
            ("agent_start", "execute"), ("agent_complete", "execute"),
            ("complete", None),
        ]

        qualified = "SELECT * FROM chinook.customers WHERE Country = 'USA'"
        assert executor.executed == [qualified]
        assert outputs(events, EventType.AGENT_COMPLETE, AgentName.SCHEMA) == ["Tables: customers"]
        assert outputs(events, EventType.AGENT_COMPLETE, AgentName.SQL) == [qualified]
        assert outputs(events, EventType.AGENT_COMPLETE, AgentName.EXECUTE) == ["2 rows returned"]

        final = events[-1].data
        assert final == {"success": True, "sql": qualified, "results": USA_ROWS, "attempts": 1}

        assert state.success
        assert state.attempts == 1
        assert state.stage == PipelineStage.DONE
        assert "plan_correction" not in agents.calls

    @pytest.mark.asyncio
    async def test_query_plan_output_is_rendered(self):
        agents = ScriptedAgents()
        executor = ScriptedExecutor([ok_result(USA_ROWS)])

        _, events = await run_and_collect(build_service(agents, executor))

        [plan_output] = outputs(events, EventType.AGENT_COMPLETE, AgentName.QUERY_PLAN)
        assert plan_output.startswith("Chain-of-Thought Plan (2 steps):")
        assert "1. Read customers" in plan_output
        assert "Strategy: Single-table filter" in plan_output

    @pytest.mark.asyncio
    async def test_empty_result_is_success(self):
        agents = ScriptedAgents(sql="SELECT * FROM customers WHERE Country = 'Atlantis'")
        executor = ScriptedExecutor([ok_result([])])

        state, events = await run_and_collect(build_service(agents, executor))

        assert state.success
        assert events[-1].data["results"] == []
        assert outputs(events, EventType.AGENT_COMPLETE, AgentName.EXECUTE) == ["0 rows returned"]


class TestCorrectionLoop:

    @pytest.mark.asyncio
    async def test_corrected_on_second_attempt(self):
        agents = ScriptedAgents(
            sql="SELECT * FROM customers WHERE country_name = 'USA'",
            corrected_sqls=["SELECT * FROM customers WHERE Country = 'USA'"],
        )
        executor = ScriptedExecutor([failed_result(COLUMN_ERROR), ok_result(USA_ROWS)])

        state, events = await run_and_collect(build_service(agents, executor))

        assert sequence(events)[8:] == [
            ("agent_start", "execute"), ("agent_error", "execute"),
            ("agent_start", "correction"), ("agent_complete", "correction"),
            ("agent_update", "sql"),
            ("agent_start", "execute"), ("agent_complete", "execute"),
            ("complete", None),
        ]

        error_event = events[9]
        assert error_event.data["error"] == COLUMN_ERROR

        [correction_output] = outputs(events, EventType.AGENT_COMPLETE, AgentName.CORRECTION)
        assert correction_output == (
            f"Attempt 2: schema_link.col_missing\nError: {COLUMN_ERROR}\nPlan: Column name is misspelled"
        )

        [update] = outputs(events, EventType.AGENT_UPDATE, AgentName.SQL)
        assert update == "Corrected SQL (Attempt 2):\nSELECT * FROM chinook.customers WHERE Country = 'USA'"

        assert executor.executed[1] == "SELECT * FROM chinook.customers WHERE Country = 'USA'"
        assert events[-1].data["success"] is True
        assert events[-1].data["attempts"] == 2
        assert state.sql_history == [
            "SELECT * FROM chinook.customers WHERE country_name = 'USA'",
            "SELECT * FROM chinook.customers WHERE Country = 'USA'",
        ]

    @pytest.mark.asyncio
    async def test_attempt_ceiling(self):
        agents = ScriptedAgents(
            sql="SELECT * FROM customers WHERE country_name = 'USA'",
            corrected_sqls=[
                "SELECT * FROM customers WHERE nation = 'USA'",
                "SELECT * FROM customers WHERE land = 'USA'",
            ],
        )
        executor = ScriptedExecutor([
            failed_result("error one"),
            failed_result("error two"),
            failed_result("error three"),
        ])

        state, events = await run_and_collect(build_service(agents, executor))

        assert len(executor.executed) == 3
        assert agents.calls.count("plan_correction") == 2
        assert len(outputs(events, EventType.AGENT_UPDATE, AgentName.SQL)) == 2

        # No correction after the last failed execution
        assert sequence(events)[-3:] == [
            ("agent_start", "execute"), ("agent_error", "execute"), ("complete", None),
        ]
        assert events[-1].data == {
            "success": False,
            "sql": "SELECT * FROM chinook.customers WHERE land = 'USA'",
            "results": [],
            "attempts": 3,
            "error": "error three",
        }
        assert not state.success
        assert state.attempts == 3
        assert_start_precedes_outcome(events)

    @pytest.mark.asyncio
    async def test_attempts_match_corrections(self):
        agents = ScriptedAgents()
        executor = ScriptedExecutor([failed_result("error one"), failed_result("error two"), ok_result(USA_ROWS)])

        state, events = await run_and_collect(build_service(agents, executor))

        corrections = len(outputs(events, EventType.AGENT_COMPLETE, AgentName.CORRECTION))
        assert events[-1].data["attempts"] == 1 + corrections == 3
        assert state.corrections == 2

    @pytest.mark.asyncio
    async def test_single_attempt_configuration(self):
        agents = ScriptedAgents()
        executor = ScriptedExecutor([failed_result("error one")])

        _, events = await run_and_collect(build_service(agents, executor, max_attempts=1))

        assert agents.calls.count("plan_correction") == 0
        assert events[-1].data["attempts"] == 1

    @pytest.mark.asyncio
    async def test_database_suggestion_reaches_correction(self):
        agents = ScriptedAgents(sql="SELECT * FROM customers WHERE country_name = 'USA'")
        executor = ScriptedExecutor([failed_result(COLUMN_ERROR), ok_result(USA_ROWS)])

        await run_and_collect(build_service(agents, executor))

        [request] = agents.correction_requests
        assert request["error"] == COLUMN_ERROR
        assert request["hints"].suggestions == ["Country"]
        assert request["hints"].candidate_bindings == ["Country"]
        assert request["failed_sql"] == "SELECT * FROM chinook.customers WHERE country_name = 'USA'"

    @pytest.mark.asyncio
    async def test_table_inspection_for_aliased_table(self):
        schema_repo = StaticSchemaRepository()
        agents = ScriptedAgents(sql="SELECT c.Countri FROM customers c")
        executor = ScriptedExecutor([
            failed_result('Binder Error: Table "c" does not have a column named "Countri"'),
            ok_result(USA_ROWS),
        ])

        await run_and_collect(build_service(agents, executor, schema_repo=schema_repo))

        assert schema_repo.described == ["customers"]
        inspection = agents.correction_requests[0]["table_inspection"]
        assert inspection.startswith("ACTUAL COLUMNS IN customers TABLE (from DESCRIBE):")
        assert "- Country (VARCHAR)" in inspection

    @pytest.mark.asyncio
    async def test_table_inspection_failure_is_ignored(self):
        schema_repo = StaticSchemaRepository(describe_error=RuntimeError("probe failed"))
        agents = ScriptedAgents(sql="SELECT c.Countri FROM customers c")
        executor = ScriptedExecutor([
            failed_result('Binder Error: Table "c" does not have a column named "Countri"'),
            ok_result(USA_ROWS),
        ])

        state, _ = await run_and_collect(build_service(agents, executor, schema_repo=schema_repo))

        assert agents.correction_requests[0]["table_inspection"] is None
        assert state.success

    @pytest.mark.asyncio
    async def test_unparseable_correction_plan_degrades(self):
        agents = ScriptedAgents(correction_plan=ParseError(stage=AgentName.CORRECTION, message="bad", raw_preview="?"))
        executor = ScriptedExecutor([failed_result("error one"), ok_result(USA_ROWS)])

        state, events = await run_and_collect(build_service(agents, executor))

        [correction_output] = outputs(events, EventType.AGENT_COMPLETE, AgentName.CORRECTION)
        assert correction_output == "Attempt 2: Analyzing...\nError: error one\nPlan: Analyzing error..."
        assert "generate_correction_sql" in agents.calls
        assert state.success


class TestFailurePolicy:

    @pytest.mark.asyncio
    async def test_unparseable_schema_linking_is_fatal(self):
        agents = ScriptedAgents(linked=ParseError(stage=AgentName.SCHEMA, message="not JSON", raw_preview="?"))
        executor = ScriptedExecutor([ok_result(USA_ROWS)])

        state, events = await run_and_collect(build_service(agents, executor))

        assert sequence(events) == [
            ("agent_start", "schema"), ("agent_error", "schema"), ("error", None),
        ]
        assert "Schema linking returned an invalid response" in events[-1].data["error"]
        assert executor.executed == []
        assert not state.success

    @pytest.mark.asyncio
    async def test_schema_enumeration_failure_is_fatal(self):
        agents = ScriptedAgents()
        executor = ScriptedExecutor([ok_result(USA_ROWS)])

        _, events = await run_and_collect(
            build_service(agents, executor, schema_repo=StaticSchemaRepository(fail=True))
        )

        assert sequence(events) == [
            ("agent_start", "schema"), ("agent_error", "schema"), ("error", None),
        ]
        assert agents.calls == []

    @pytest.mark.asyncio
    async def test_model_failure_is_fatal(self, llm_failure):
        agents = ScriptedAgents(sql=llm_failure)
        executor = ScriptedExecutor([ok_result(USA_ROWS)])

        _, events = await run_and_collect(build_service(agents, executor))

        assert sequence(events)[-3:] == [
            ("agent_start", "sql"), ("agent_error", "sql"), ("error", None),
        ]
        assert events[-1].data == {"error": llm_failure.message}
        assert events[-2].data["error"] == llm_failure.message
        assert not any(event.type == EventType.COMPLETE for event in events)

    @pytest.mark.asyncio
    async def test_model_failure_during_correction(self, llm_failure):
        agents = ScriptedAgents(correction_plan=llm_failure)
        executor = ScriptedExecutor([failed_result("error one")])

        _, events = await run_and_collect(build_service(agents, executor))

        assert sequence(events)[-3:] == [
            ("agent_start", "correction"), ("agent_error", "correction"), ("error", None),
        ]

    @pytest.mark.asyncio
    async def test_unexpected_exception_ends_with_error_event(self):
        agents = ScriptedAgents(plan=RuntimeError("unexpected"))
        executor = ScriptedExecutor([ok_result(USA_ROWS)])

        _, events = await run_and_collect(build_service(agents, executor))

        assert sequence(events)[-3:] == [
            ("agent_start", "queryplan"), ("agent_error", "queryplan"), ("error", None),
        ]
        assert events[-1].data["error"] == "unexpected"

    @pytest.mark.asyncio
    async def test_unparseable_subproblems_degrade(self):
        agents = ScriptedAgents(subproblems=ParseError(stage=AgentName.SUBPROBLEM, message="bad", raw_preview="?"))
        executor = ScriptedExecutor([ok_result(USA_ROWS)])

        state, events = await run_and_collect(build_service(agents, executor))

        [subproblem_output] = outputs(events, EventType.AGENT_COMPLETE, AgentName.SUBPROBLEM)
        assert subproblem_output.endswith(DEGRADED_NOTE)
        assert agents.received_subproblems == Subproblems()
        assert state.success

    @pytest.mark.asyncio
    async def test_unparseable_plan_degrades(self):
        agents = ScriptedAgents(plan=ParseError(stage=AgentName.QUERY_PLAN, message="bad", raw_preview="?"))
        executor = ScriptedExecutor([ok_result(USA_ROWS)])

        state, events = await run_and_collect(build_service(agents, executor))

        [plan_output] = outputs(events, EventType.AGENT_COMPLETE, AgentName.QUERY_PLAN)
        assert "No steps generated" in plan_output
        assert plan_output.endswith(DEGRADED_NOTE)
        assert state.success


class TestObserverDisconnect:

    @pytest.mark.asyncio
    async def test_run_finishes_after_close(self):
        agents = ScriptedAgents()
        executor = ScriptedExecutor([ok_result(USA_ROWS)])
        emitter = ProgressEmitter()
        emitter.close()

        state = await build_service(agents, executor).run(QUESTION, emitter)

        assert state.success
        assert state.stage == PipelineStage.DONE
        assert [event async for event in emitter.stream()] == []


@pytest.mark.asyncio
async def test_every_start_has_one_outcome():
    agents = ScriptedAgents()
    executor = ScriptedExecutor([failed_result("error one"), ok_result(USA_ROWS)])

    _, events = await run_and_collect(build_service(agents, executor))

    assert_start_precedes_outcome(events)
    assert sum(event.type.is_terminal for event in events) == 1
