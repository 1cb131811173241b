"""
Stage Agents Repository.

The five model-backed stages of the pipeline (plus the SQL half of the
correction step) behind one interface:

    link_schema -> identify_subproblems -> plan_query -> generate_sql
    on failure: plan_correction -> generate_correction_sql

The orchestrator depends only on the `StageAgents` protocol, so tests can
drive it with deterministic fakes. `LLMStageAgents` is the production
implementation: prompt building, one model call, output parsing.

Contract:
- Structured stages return their model or a ParseError value; they never
  raise for malformed output
- SQL stages return fence-stripped, trimmed SQL text (not yet qualified)
- Model-client failures propagate as LLMError
"""

from typing import Dict, Optional, Protocol, Union

from sqlthought.domain.base_enums import AgentName
from sqlthought.domain.schema_nodes import SchemaDescriptor
from sqlthought.domain.stage_outputs import (
    CorrectionPlan,
    LinkedSchema,
    ParseError,
    QueryPlan,
    Subproblems,
    parse_stage_output,
)
from sqlthought.infrastructure.llm_client import LLMClient
from sqlthought.prompts import templates
from sqlthought.repositories.error_hints import ErrorHints
from sqlthought.repositories.sql_rewriting import clean_generated_sql
from sqlthought.utils.logging import get_module_logger
from sqlthought.utils.tracing import current_trace_id
from sqlthought.utils.yaml_loader import load_error_taxonomy

logger = get_module_logger()


class StageAgents(Protocol):
    """One method per model-backed stage."""

    async def link_schema(
        self, question: str, schema: SchemaDescriptor
    ) -> Union[LinkedSchema, ParseError]:
        ...

    async def identify_subproblems(
        self, question: str, linked_schema: LinkedSchema
    ) -> Union[Subproblems, ParseError]:
        ...

    async def plan_query(
        self, question: str, linked_schema: LinkedSchema, subproblems: Subproblems
    ) -> Union[QueryPlan, ParseError]:
        ...

    async def generate_sql(
        self, question: str, query_plan: QueryPlan, linked_schema: LinkedSchema
    ) -> str:
        ...

    async def plan_correction(
        self,
        question: str,
        failed_sql: str,
        error: str,
        linked_schema: LinkedSchema,
        hints: ErrorHints,
        table_inspection: Optional[str] = None,
    ) -> Union[CorrectionPlan, ParseError]:
        ...

    async def generate_correction_sql(
        self,
        question: str,
        failed_sql: str,
        correction_plan: CorrectionPlan,
        linked_schema: LinkedSchema,
        hints: ErrorHints,
    ) -> str:
        ...


class LLMStageAgents:
    """
    Stage agents backed by a chat-completion model.

    Every stage is one `LLMClient.complete` call; structured stages use
    JSON mode and go through `parse_stage_output`.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        catalog: str,
        taxonomy: Optional[Dict[str, str]] = None,
    ):
        self.llm_client = llm_client
        self.catalog = catalog
        self.taxonomy = taxonomy if taxonomy is not None else load_error_taxonomy()

    async def _structured(self, prompt: str, model, stage: AgentName):
        raw = await self.llm_client.complete(prompt, structured_output=True)
        parsed = parse_stage_output(raw, model, stage)
        if isinstance(parsed, ParseError):
            logger.warning(
                "Stage output could not be parsed",
                stage=stage.value,
                reason=parsed.message,
                raw_preview=parsed.raw_preview,
                trace_id=current_trace_id(),
            )
        return parsed

    async def _sql(self, prompt: str, stage: AgentName) -> str:
        raw = await self.llm_client.complete(prompt, structured_output=False)
        sql = clean_generated_sql(raw)
        logger.debug("Stage produced SQL", stage=stage.value, sql=sql, trace_id=current_trace_id())
        return sql

    async def link_schema(
        self, question: str, schema: SchemaDescriptor
    ) -> Union[LinkedSchema, ParseError]:
        prompt = templates.schema_linking_prompt(question, schema)
        return await self._structured(prompt, LinkedSchema, AgentName.SCHEMA)

    async def identify_subproblems(
        self, question: str, linked_schema: LinkedSchema
    ) -> Union[Subproblems, ParseError]:
        prompt = templates.subproblem_prompt(question, linked_schema)
        return await self._structured(prompt, Subproblems, AgentName.SUBPROBLEM)

    async def plan_query(
        self, question: str, linked_schema: LinkedSchema, subproblems: Subproblems
    ) -> Union[QueryPlan, ParseError]:
        prompt = templates.query_plan_prompt(question, linked_schema, subproblems)
        return await self._structured(prompt, QueryPlan, AgentName.QUERY_PLAN)

    async def generate_sql(
        self, question: str, query_plan: QueryPlan, linked_schema: LinkedSchema
    ) -> str:
        prompt = templates.sql_generation_prompt(question, query_plan, linked_schema, self.catalog)
        return await self._sql(prompt, AgentName.SQL)

    async def plan_correction(
        self,
        question: str,
        failed_sql: str,
        error: str,
        linked_schema: LinkedSchema,
        hints: ErrorHints,
        table_inspection: Optional[str] = None,
    ) -> Union[CorrectionPlan, ParseError]:
        prompt = templates.correction_plan_prompt(
            question=question,
            failed_sql=failed_sql,
            error=error,
            linked_schema=linked_schema,
            taxonomy=self.taxonomy,
            hints=hints.render(),
            table_inspection=table_inspection,
        )
        return await self._structured(prompt, CorrectionPlan, AgentName.CORRECTION)

    async def generate_correction_sql(
        self,
        question: str,
        failed_sql: str,
        correction_plan: CorrectionPlan,
        linked_schema: LinkedSchema,
        hints: ErrorHints,
    ) -> str:
        prompt = templates.correction_sql_prompt(
            question=question,
            failed_sql=failed_sql,
            correction_plan=correction_plan,
            linked_schema=linked_schema,
            catalog=self.catalog,
            hints=hints.render(),
        )
        return await self._sql(prompt, AgentName.CORRECTION)
