"""
Structured outputs of the SQL-of-Thought stage agents.

Each structured stage answers with a JSON object whose keys are contractual.
`parse_stage_output` turns the raw model text into the stage's model, or
into a `ParseError` value; it never raises. The orchestrator decides per
stage whether a ParseError is fatal (schema linking) or degrades to the
model's empty default (every other stage).
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .base_enums import AgentName
from ..utils.text_utils import extract_json_object, preview, strip_code_fences


def _as_text(value: Any) -> str:
    """Render a loosely-typed JSON value as prompt/display text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class LinkedForeignKey(BaseModel):
    """A join path the schema-linking stage considers relevant."""

    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(..., alias="from", description="Source table.column")
    to: str = Field(..., description="Target table.column")


class LinkedSchema(BaseModel):
    """
    Subset of the schema relevant to one question.

    `tables` is required: without it no later stage has schema context.
    """

    tables: List[str] = Field(..., description="Relevant table names")
    columns: Dict[str, List[str]] = Field(default_factory=dict, description="Table -> relevant columns")
    foreign_keys: List[LinkedForeignKey] = Field(default_factory=list, description="Relevant join paths")
    reasoning: str = Field(default="", description="Why these tables were chosen")

    @field_validator("foreign_keys", mode="before")
    @classmethod
    def _coerce_foreign_keys(cls, value: Any) -> Any:
        # Models sometimes answer with "a.b -> c.d" strings or from_table/... objects
        if not isinstance(value, list):
            return []
        edges = []
        for item in value:
            if isinstance(item, LinkedForeignKey):
                edges.append(item)
            elif isinstance(item, str) and "->" in item:
                source, _, target = item.partition("->")
                edges.append({"from": source.strip(), "to": target.strip()})
            elif isinstance(item, dict) and "from" in item and "to" in item:
                edges.append({"from": _as_text(item["from"]), "to": _as_text(item["to"])})
            elif isinstance(item, dict) and "from_table" in item and "to_table" in item:
                edges.append({
                    "from": f"{item['from_table']}.{item.get('from_column', '')}".rstrip("."),
                    "to": f"{item['to_table']}.{item.get('to_column', '')}".rstrip("."),
                })
        return edges

    def summary(self) -> str:
        return f"Tables: {', '.join(self.tables)}"

    def to_prompt_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), indent=2, ensure_ascii=False)


class Subproblems(BaseModel):
    """Clause name -> intended content of that clause."""

    clauses: Dict[str, str] = Field(default_factory=dict)

    @field_validator("clauses", mode="before")
    @classmethod
    def _coerce_clauses(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        return {str(name).upper(): _as_text(text) for name, text in value.items() if text}

    def summary(self) -> str:
        return f"Clauses: {', '.join(self.clauses)}"


class PlanStep(BaseModel):
    step_number: int = Field(..., description="1-based position in the derivation")
    action: str = ""
    reasoning: str = ""
    sql_fragment: Optional[str] = None


class QueryPlan(BaseModel):
    """Chain-of-thought plan; steps are read top to bottom."""

    steps: List[PlanStep] = Field(default_factory=list)
    final_strategy: str = ""

    @field_validator("steps", mode="before")
    @classmethod
    def _number_steps(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        steps = []
        for position, item in enumerate(value, start=1):
            if isinstance(item, PlanStep):
                steps.append(item)
                continue
            if isinstance(item, str):
                item = {"action": item}
            if isinstance(item, dict):
                step = dict(item)
                step.setdefault("step_number", position)
                step["action"] = _as_text(step.get("action"))
                step["reasoning"] = _as_text(step.get("reasoning"))
                steps.append(step)
        return steps

    def describe(self) -> str:
        """Multi-line rendering shown to the observer."""
        if self.steps:
            body = "\n\n".join(
                f"{step.step_number}. {step.action}\n   -> {step.reasoning}" for step in self.steps
            )
        else:
            body = "No steps generated"
        return (
            f"Chain-of-Thought Plan ({len(self.steps)} steps):\n\n{body}\n\n"
            f"Strategy: {self.final_strategy or 'N/A'}"
        )


class CorrectionSteps(BaseModel):
    steps: List[str] = Field(default_factory=list)

    @field_validator("steps", mode="before")
    @classmethod
    def _coerce_steps(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [_as_text(item) for item in value]


class CorrectionPlan(BaseModel):
    """Diagnosis of a failed query, classified against the error taxonomy."""

    error_categories: List[str] = Field(default_factory=list)
    root_cause: str = ""
    correction_plan: CorrectionSteps = Field(default_factory=CorrectionSteps)
    before_sql: Optional[str] = None
    after_sql: Optional[str] = None

    @field_validator("error_categories", mode="before")
    @classmethod
    def _coerce_categories(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        if not isinstance(value, list):
            return []
        return [_as_text(item) for item in value]

    @field_validator("correction_plan", mode="before")
    @classmethod
    def _coerce_plan(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {"steps": value}
        if not isinstance(value, dict):
            return {}
        return value

    def to_prompt_json(self) -> str:
        return json.dumps(self.model_dump(exclude_none=True), indent=2, ensure_ascii=False)


@dataclass(frozen=True)
class ParseError:
    """A structured stage answered with text that is not the expected JSON object."""

    stage: AgentName
    message: str
    raw_preview: str


StageModel = TypeVar("StageModel", bound=BaseModel)


def parse_stage_output(
    raw: str,
    model: Type[StageModel],
    stage: AgentName,
) -> Union[StageModel, ParseError]:
    """
    Parse a structured stage response.

    Handles:
    - Plain JSON objects
    - Markdown-wrapped JSON (```json ... ```)
    - JSON embedded in surrounding prose (first { to last })

    Returns:
        The validated model, or ParseError describing why parsing failed
    """
    cleaned = strip_code_fences(raw)
    if not cleaned:
        return ParseError(stage=stage, message="Model returned an empty response", raw_preview=preview(raw))

    data: Optional[Dict[str, Any]]
    try:
        parsed = json.loads(cleaned)
        data = parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        data = extract_json_object(cleaned)

    if data is None:
        return ParseError(stage=stage, message="Response is not a JSON object", raw_preview=preview(cleaned))

    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        return ParseError(
            stage=stage,
            message=f"Response does not match the {model.__name__} shape: {e.error_count()} error(s)",
            raw_preview=preview(cleaned),
        )
