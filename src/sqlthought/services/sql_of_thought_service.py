"""
SQL-of-Thought Service - orchestrator of one question-answering run.

This service is a THIN ORCHESTRATOR over the repositories:
1. SchemaRepository - catalog introspection (and table probing for corrections)
2. StageAgents - the model-backed stages
3. SQLExecutionRepository - query execution

Run state machine:

    SchemaLinking -> Subproblem -> QueryPlan -> SqlGeneration -> Executing
    Executing -> Done                       (success, or attempt ceiling reached)
    Executing -> Correcting -> Executing    (failure below the ceiling)

The ceiling counts executions, not corrections: with 3 attempts the run is
execute, correct, execute, correct, execute, stop.

Failure policy:
- Schema enumeration failure, unparseable schema linking and model-client
  failures are fatal: agent_error for the stage, then a terminal error event
- Unparseable subproblem, plan or correction-plan output degrades to the
  empty default and the run continues
- A rejected query is not an exception; it feeds the correction loop
"""

from typing import Any, Dict, Optional

from sqlthought.config import PipelineConfig, Settings
from sqlthought.domain.base_enums import AgentName, EventType, PipelineStage
from sqlthought.domain.errors import SQLThoughtException, StageParseError
from sqlthought.domain.pipeline import RunConfig, RunState
from sqlthought.domain.stage_outputs import CorrectionPlan, ParseError, QueryPlan, Subproblems
from sqlthought.repositories.error_hints import extract_error_hints
from sqlthought.repositories.schema_repository import SchemaRepository
from sqlthought.repositories.sql_execution import SQLExecutionRepository
from sqlthought.repositories.sql_rewriting import qualify_tables
from sqlthought.infrastructure.database_client import DatabaseClient
from sqlthought.infrastructure.llm_client import LLMClient
from sqlthought.repositories.stage_agents import LLMStageAgents, StageAgents
from sqlthought.prompts.templates import format_table_columns
from sqlthought.services.progress import ProgressEmitter
from sqlthought.utils.logging import get_module_logger
from sqlthought.utils.tracing import current_trace_id

logger = get_module_logger()

DEGRADED_NOTE = " (model output could not be parsed, continuing with defaults)"


class SQLOfThoughtService:
    """
    Orchestrator for the SQL-of-Thought pipeline.

    Built per run: the stage agents carry that run's model and API key.
    """

    def __init__(
        self,
        schema_repository: SchemaRepository,
        sql_execution_repository: SQLExecutionRepository,
        agents: StageAgents,
        config: PipelineConfig,
        catalog: str,
    ):
        self.schema_repo = schema_repository
        self.execution_repo = sql_execution_repository
        self.agents = agents
        self.config = config
        self.catalog = catalog

    async def run(self, question: str, emitter: ProgressEmitter) -> RunState:
        """
        Answer one question, reporting progress through `emitter`.

        Never raises: fatal failures end the run with an `error` event,
        everything else with exactly one `complete` event.

        Returns:
            Final RunState (for callers that do not read the event stream)
        """
        trace_id = current_trace_id()
        state = RunState(question=question)

        logger.info(
            "Starting SQL-of-Thought run",
            question_length=len(question),
            max_attempts=self.config.max_attempts,
            trace_id=trace_id,
        )

        try:
            await self._step_schema_linking(state, emitter)
            subproblems = await self._step_subproblems(state, emitter)
            query_plan = await self._step_query_plan(state, emitter, subproblems)
            await self._step_sql_generation(state, emitter, query_plan)
            await self._correction_loop(state, emitter)

        except SQLThoughtException as e:
            logger.error(
                "SQL-of-Thought run failed",
                error=e.message,
                error_code=e.error_code,
                stage=state.stage.value,
                trace_id=trace_id,
            )
            self._fail(state, emitter, e.message)
            return state

        except Exception as e:
            logger.error(
                "SQL-of-Thought run failed unexpectedly",
                error=str(e),
                stage=state.stage.value,
                trace_id=trace_id,
                exc_info=True,
            )
            self._fail(state, emitter, str(e) or type(e).__name__)
            return state

        state.stage = PipelineStage.DONE
        emitter.emit(EventType.COMPLETE, self._complete_payload(state))

        logger.info(
            "SQL-of-Thought run finished",
            success=state.success,
            attempts=state.attempts,
            trace_id=trace_id,
        )
        return state

    # =========================================================================
    # Pipeline Steps
    # =========================================================================

    async def _step_schema_linking(self, state: RunState, emitter: ProgressEmitter) -> None:
        """Step 1: Load the schema and link the question to it."""
        self._start(state, emitter, AgentName.SCHEMA, PipelineStage.SCHEMA_LINKING)

        state.schema = await self.schema_repo.get_schema(self.catalog)
        linked = await self.agents.link_schema(state.question, state.schema)

        if isinstance(linked, ParseError):
            raise StageParseError(
                f"Schema linking returned an invalid response: {linked.message}",
                details={"raw_preview": linked.raw_preview},
            )

        state.linked_schema = linked
        self._complete(state, emitter, AgentName.SCHEMA, linked.summary())

    async def _step_subproblems(self, state: RunState, emitter: ProgressEmitter) -> Subproblems:
        """Step 2: Decompose the question into clause-level subproblems."""
        self._start(state, emitter, AgentName.SUBPROBLEM, PipelineStage.SUBPROBLEM)

        result = await self.agents.identify_subproblems(state.question, state.linked_schema)
        if isinstance(result, ParseError):
            subproblems = Subproblems()
            self._complete(state, emitter, AgentName.SUBPROBLEM, subproblems.summary() + DEGRADED_NOTE)
            return subproblems

        self._complete(state, emitter, AgentName.SUBPROBLEM, result.summary())
        return result

    async def _step_query_plan(
        self, state: RunState, emitter: ProgressEmitter, subproblems: Subproblems
    ) -> QueryPlan:
        """Step 3: Chain-of-thought query plan."""
        self._start(state, emitter, AgentName.QUERY_PLAN, PipelineStage.QUERY_PLAN)

        result = await self.agents.plan_query(state.question, state.linked_schema, subproblems)
        if isinstance(result, ParseError):
            query_plan = QueryPlan()
            self._complete(state, emitter, AgentName.QUERY_PLAN, query_plan.describe() + DEGRADED_NOTE)
            return query_plan

        self._complete(state, emitter, AgentName.QUERY_PLAN, result.describe())
        return result

    async def _step_sql_generation(
        self, state: RunState, emitter: ProgressEmitter, query_plan: QueryPlan
    ) -> None:
        """Step 4: Generate the first query."""
        self._start(state, emitter, AgentName.SQL, PipelineStage.SQL_GENERATION)

        raw_sql = await self.agents.generate_sql(state.question, query_plan, state.linked_schema)
        state.replace_sql(self._qualify(state, raw_sql))

        self._complete(state, emitter, AgentName.SQL, state.sql)

    async def _correction_loop(self, state: RunState, emitter: ProgressEmitter) -> None:
        """Steps 5+: Execute, and correct on failure until success or the ceiling."""
        trace_id = current_trace_id()

        while not state.success:
            self._start(state, emitter, AgentName.EXECUTE, PipelineStage.EXECUTING)

            result = await self.execution_repo.execute(state.sql or "")
            state.record_execution(result)

            if result.success:
                self._complete(state, emitter, AgentName.EXECUTE, f"{result.row_count} rows returned")
                return

            self._error(state, emitter, AgentName.EXECUTE, result.error or "Query failed")

            if state.attempts >= self.config.max_attempts:
                logger.warning(
                    "Attempt ceiling reached",
                    attempts=state.attempts,
                    error=result.error,
                    trace_id=trace_id,
                )
                return

            await self._step_correction(state, emitter, result.error or "")

    async def _step_correction(self, state: RunState, emitter: ProgressEmitter, error: str) -> None:
        """Diagnose the failed query and replace it with a corrected one."""
        trace_id = current_trace_id()
        self._start(state, emitter, AgentName.CORRECTION, PipelineStage.CORRECTING)

        failed_sql = state.sql or ""
        hints = extract_error_hints(error, failed_sql)
        table_inspection = await self._inspect_table(state, hints.table_name)

        logger.info(
            "Planning correction",
            attempt=state.attempts,
            has_hints=not hints.is_empty,
            suggestions=hints.suggestions,
            probed_table=hints.table_name if table_inspection else None,
            trace_id=trace_id,
        )

        plan = await self.agents.plan_correction(
            state.question,
            failed_sql,
            error,
            state.linked_schema,
            hints,
            table_inspection,
        )
        if isinstance(plan, ParseError):
            plan = CorrectionPlan()

        corrected = await self.agents.generate_correction_sql(
            state.question,
            failed_sql,
            plan,
            state.linked_schema,
            hints,
        )

        next_attempt = state.attempts + 1
        categories = ", ".join(plan.error_categories) or "Analyzing..."
        self._complete(
            state,
            emitter,
            AgentName.CORRECTION,
            f"Attempt {next_attempt}: {categories}\n"
            f"Error: {error}\n"
            f"Plan: {plan.root_cause or 'Analyzing error...'}",
        )

        state.replace_sql(self._qualify(state, corrected))
        emitter.emit(
            EventType.AGENT_UPDATE,
            {"agent": AgentName.SQL.value, "output": f"Corrected SQL (Attempt {next_attempt}):\n{state.sql}"},
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _inspect_table(self, state: RunState, table_name: Optional[str]) -> Optional[str]:
        """Best-effort live column listing of a table named in an error."""
        if not table_name:
            return None

        if state.schema is not None:
            table_name = state.schema.resolve_table(table_name) or table_name

        try:
            columns = await self.schema_repo.describe_table(table_name)
        except Exception as e:
            logger.warning(
                "Table inspection failed",
                table_name=table_name,
                error=str(e),
                trace_id=current_trace_id(),
            )
            return None

        return format_table_columns(table_name, columns) if columns else None

    def _qualify(self, state: RunState, sql: str) -> str:
        table_names = state.schema.table_names if state.schema is not None else None
        return qualify_tables(sql, self.catalog, table_names)

    def _start(
        self,
        state: RunState,
        emitter: ProgressEmitter,
        agent: AgentName,
        stage: PipelineStage,
    ) -> None:
        state.stage = stage
        state.active_agent = agent
        logger.info("Stage started", agent=agent.value, trace_id=current_trace_id())
        emitter.emit(EventType.AGENT_START, {"agent": agent.value})

    def _complete(self, state: RunState, emitter: ProgressEmitter, agent: AgentName, output: str) -> None:
        state.active_agent = None
        emitter.emit(EventType.AGENT_COMPLETE, {"agent": agent.value, "output": output})

    def _error(self, state: RunState, emitter: ProgressEmitter, agent: AgentName, error: str) -> None:
        state.active_agent = None
        emitter.emit(EventType.AGENT_ERROR, {"agent": agent.value, "error": error})

    def _fail(self, state: RunState, emitter: ProgressEmitter, message: str) -> None:
        """Close the interrupted stage and end the run with an error event."""
        if state.active_agent is not None:
            self._error(state, emitter, state.active_agent, message)
        state.stage = PipelineStage.DONE
        emitter.emit(EventType.ERROR, {"error": message})

    @staticmethod
    def _complete_payload(state: RunState) -> Dict[str, Any]:
        result = state.last_result
        payload: Dict[str, Any] = {
            "success": state.success,
            "sql": state.sql,
            "results": result.rows if result is not None and result.success else [],
            "attempts": state.attempts,
        }
        if not state.success and result is not None:
            payload["error"] = result.error
        return payload


async def create_sql_of_thought_service(
    settings: Settings,
    db_client: DatabaseClient,
    run_config: RunConfig,
) -> SQLOfThoughtService:
    """
    Build the full dependency tree for one run.

    SQLOfThoughtService (orchestrator)
      ├── SchemaRepository (shared DatabaseClient)
      ├── SQLExecutionRepository (shared DatabaseClient)
      └── LLMStageAgents -> LLMClient (this run's model and key)
    """
    llm_client = LLMClient(settings.llm, run_config)
    await llm_client.connect()

    catalog = settings.database.catalog_name
    return SQLOfThoughtService(
        schema_repository=SchemaRepository(db_client, settings.database),
        sql_execution_repository=SQLExecutionRepository(db_client),
        agents=LLMStageAgents(llm_client, catalog),
        config=settings.pipeline,
        catalog=catalog,
    )
