"""
Prompt templates for the SQL-of-Thought stage agents.

One builder per stage. Structured stages spell out the exact JSON keys they
expect (and mention JSON explicitly, which OpenAI's JSON mode requires);
the two SQL stages ask for bare SQL text.
"""

import json
from typing import Dict, List, Optional, Tuple

from ..domain.schema_nodes import SchemaDescriptor
from ..domain.stage_outputs import CorrectionPlan, LinkedSchema, QueryPlan, Subproblems


def format_schema(schema: SchemaDescriptor) -> str:
    """Render the full catalog schema as prompt text."""
    lines = ["# Database Schema", ""]

    for table_name, columns in schema.tables.items():
        lines.append(f"## Table: {table_name}")
        lines.append("Columns:")
        for column in columns:
            null_marker = "" if column.is_nullable else " NOT NULL"
            lines.append(f"  - {column.name}: {column.data_type}{null_marker}")
        lines.append("")

    if schema.foreign_keys:
        lines.append("## Foreign Key Relationships")
        for relationship in schema.foreign_keys:
            lines.append(f"  - {relationship.label}")

    return "\n".join(lines).rstrip()


def format_taxonomy(taxonomy: Dict[str, str]) -> str:
    return "\n".join(f"- {category}: {description}" for category, description in taxonomy.items())


def format_table_columns(table_name: str, columns: List[Tuple[str, str]]) -> str:
    listing = "\n".join(f"- {name} ({column_type})" for name, column_type in columns)
    return f"ACTUAL COLUMNS IN {table_name} TABLE (from DESCRIBE):\n{listing}"


def schema_linking_prompt(question: str, schema: SchemaDescriptor) -> str:
    return f"""You are a schema linking expert. Given a database schema and a question, identify the tables, columns and foreign-key relationships needed to answer it.

{format_schema(schema)}

## Question
"{question}"

## Rules
1. Use ONLY table and column names that appear in the schema above, spelled exactly as shown
2. Include every table needed for joins, not only the tables holding the answer
3. List foreign keys as "table.column" pairs

Return ONLY a valid JSON object with:
{{
  "tables": ["table1", "table2"],
  "columns": {{"table1": ["col1", "col2"]}},
  "foreign_keys": [{{"from": "table1.col", "to": "table2.col"}}],
  "reasoning": "brief explanation"
}}"""


def subproblem_prompt(question: str, linked_schema: LinkedSchema) -> str:
    return f"""You are a SQL query decomposition expert. Break the question down into SQL clause-level subproblems.

Question: "{question}"

Relevant tables: {', '.join(linked_schema.tables)}
Relevant columns: {json.dumps(linked_schema.columns, ensure_ascii=False)}

Identify which SQL clauses are needed and what each should accomplish. Return a JSON object with:
{{
  "clauses": {{
    "SELECT": "what to select",
    "FROM": "base table(s)",
    "JOIN": "join conditions needed",
    "WHERE": "filter conditions",
    "GROUP BY": "grouping columns",
    "HAVING": "post-aggregation filters",
    "ORDER BY": "sorting criteria",
    "LIMIT": "row limit"
  }}
}}

Only include clauses that are needed. Return ONLY valid JSON."""


def query_plan_prompt(question: str, linked_schema: LinkedSchema, subproblems: Subproblems) -> str:
    return f"""You are a query planning expert. Create a step-by-step query execution plan using Chain-of-Thought reasoning.

## Question
"{question}"

## Schema Information
{linked_schema.to_prompt_json()}

## Identified Clauses
{json.dumps(subproblems.clauses, indent=2, ensure_ascii=False)}

Each step names one action (which table to start from, which join to add, which filter, grouping or ordering to apply) and the reasoning behind it.

Return ONLY a JSON object with:
{{
  "steps": [
    {{"step_number": 1, "action": "...", "reasoning": "...", "sql_fragment": "optional"}}
  ],
  "final_strategy": "summary"
}}"""


def sql_generation_prompt(
    question: str,
    query_plan: QueryPlan,
    linked_schema: LinkedSchema,
    catalog: str,
) -> str:
    return f"""You are an expert SQL query generator. Given a query plan, generate the exact SQL query.

Question: "{question}"

Query Plan:
{json.dumps(query_plan.model_dump(), indent=2, ensure_ascii=False)}

Schema:
{linked_schema.to_prompt_json()}

## Rules
1. The database is DuckDB; tables live in the catalog "{catalog}" (reference them as {catalog}.<table>)
2. Use the EXACT table and column names from the schema
3. A single SELECT statement (CTEs allowed), no comments

Return ONLY the SQL query, no explanations or markdown."""


def correction_plan_prompt(
    question: str,
    failed_sql: str,
    error: str,
    linked_schema: LinkedSchema,
    taxonomy: Dict[str, str],
    hints: str = "",
    table_inspection: Optional[str] = None,
) -> str:
    sections = [
        "You are a SQL error analysis expert. Analyze this SQL error and provide a correction plan.",
        f'Question: "{question}"',
        f"Failed SQL:\n{failed_sql}",
        f"Error:\n{error}",
        f"Schema Info:\n{linked_schema.to_prompt_json()}",
    ]
    if table_inspection:
        sections.append(table_inspection)
    if hints:
        sections.append(f"HINTS FROM THE DATABASE ERROR:\n{hints}")
    sections.append(f"ERROR TAXONOMY:\n{format_taxonomy(taxonomy)}")
    sections.append(
        """INSTRUCTIONS:
1. Read the error message carefully - it often tells you the exact column names available
2. If the database suggests a name ("Did you mean ..."), use that EXACT name, with its exact case
3. If table inspection is provided above, use those EXACT column names
4. Check foreign_keys in the schema to find correct JOIN conditions
5. Classify the error with one or more categories from the taxonomy

Return ONLY a JSON object with:
{
  "error_categories": ["category from taxonomy"],
  "root_cause": "specific explanation with actual vs expected names",
  "correction_plan": {"steps": ["replace column X with column Y", "..."]}
}"""
    )
    return "\n\n".join(sections)


def correction_sql_prompt(
    question: str,
    failed_sql: str,
    correction_plan: CorrectionPlan,
    linked_schema: LinkedSchema,
    catalog: str,
    hints: str = "",
) -> str:
    hints_section = f"\nHints from the database error:\n{hints}\n" if hints else ""
    return f"""You are an expert SQL query corrector. Fix the SQL query based on the correction plan.

Question: "{question}"

Incorrect SQL:
{failed_sql}

Correction Plan:
{correction_plan.to_prompt_json()}

Schema:
{linked_schema.to_prompt_json()}
{hints_section}
IMPORTANT: Use the EXACT table and column names from the schema and the hints, reference tables as {catalog}.<table>.
Return ONLY the corrected SQL query, no explanations."""
