"""
SQL Rewriting Repository.

Pure text transformations applied to model-generated SQL before execution:
- Code-fence stripping (models often wrap SQL in ```sql blocks)
- Catalog qualification of table references

Qualification Rules:
- `FROM <t>` / `JOIN <t>` with an unqualified identifier gains the
  `<catalog>.` prefix, as do the later tables of a comma-separated
  `FROM a, b` list
- Already-qualified references (`<catalog>.t`, `main.t`) and quoted names
  are left untouched
- Text inside single-quoted literals and double-quoted identifiers is
  never rewritten
- Repeated prefixes (`chinook.chinook.t`) collapse to one
- When the schema's table names are known, only those identifiers are
  rewritten, so CTE names, table functions and `EXTRACT(year FROM col)`
  keep their meaning

The rewrite is idempotent: qualifying already-qualified SQL returns it
unchanged.

Usage:
    sql = clean_generated_sql(raw_model_output)
    sql = qualify_tables(sql, "chinook", schema.table_names)
"""

import re
from typing import Iterable, List, Optional

from sqlthought.utils.text_utils import strip_code_fences


def clean_generated_sql(raw: str) -> str:
    """Strip markdown code fences and surrounding whitespace from model output."""
    return strip_code_fences(raw).strip()


# Quoted spans are copied through untouched; doubled quotes escape
_QUOTED_SPAN = re.compile(r"('(?:[^']|'')*'|\"(?:[^\"]|\"\")*\")")

# Table list of a FROM clause, up to the next clause keyword or bracket
_FROM_LIST = re.compile(
    r"\bFROM\b[^()]*?(?=\b(?:WHERE|GROUP|ORDER|HAVING|LIMIT|OFFSET|UNION|INTERSECT|EXCEPT"
    r"|WINDOW|QUALIFY|JOIN|INNER|LEFT|RIGHT|FULL|CROSS|NATURAL|ON|USING)\b|[();]|$)",
    re.IGNORECASE,
)


def _split_quoted(sql: str) -> List[str]:
    """Split SQL into alternating code and quoted parts (code parts at even indexes)."""
    return _QUOTED_SPAN.split(sql)


def collapse_repeated_prefix(sql: str, catalog: str) -> str:
    """Collapse `catalog.catalog.` (any number of repeats) into `catalog.`."""
    pattern = re.compile(rf"\b(?:{re.escape(catalog)}\s*\.\s*){{2,}}", re.IGNORECASE)
    parts = _split_quoted(sql)
    return "".join(
        pattern.sub(f"{catalog}.", part) if index % 2 == 0 else part
        for index, part in enumerate(parts)
    )


def qualify_tables(
    sql: str,
    catalog: str,
    table_names: Optional[Iterable[str]] = None,
) -> str:
    """
    Prefix unqualified table references with the catalog name.

    Args:
        sql: SQL text (fences already stripped)
        catalog: Logical catalog name, e.g. "chinook"
        table_names: Known table names; if given, only these identifiers
            (matched case-insensitively) are qualified

    Returns:
        Rewritten SQL; the original spelling of each identifier is kept
    """
    if not sql:
        return sql

    known = {name.lower() for name in table_names} if table_names is not None else None
    unqualified = rf"(?!{re.escape(catalog)}\s*\.)(\w+)(?![\w.(])"

    # (FROM|JOIN) <ws> <identifier> not already qualified, not followed by
    # "." (other qualifier), "(" (table function) or more word characters
    keyword_reference = re.compile(rf"\b(FROM|JOIN)(\s+){unqualified}", re.IGNORECASE)
    listed_reference = re.compile(rf"(,\s*){unqualified}", re.IGNORECASE)

    def _prefix(lead: str, identifier: str, original: str) -> str:
        if known is not None and identifier.lower() not in known:
            return original
        return f"{lead}{catalog}.{identifier}"

    def _qualify_keyword(match: "re.Match[str]") -> str:
        return _prefix(match.group(1) + match.group(2), match.group(3), match.group(0))

    def _qualify_listed(match: "re.Match[str]") -> str:
        return _prefix(match.group(1), match.group(2), match.group(0))

    def _qualify_from_list(match: "re.Match[str]") -> str:
        return listed_reference.sub(_qualify_listed, match.group(0))

    def _qualify_code(code: str) -> str:
        code = keyword_reference.sub(_qualify_keyword, code)
        return _FROM_LIST.sub(_qualify_from_list, code)

    parts = _split_quoted(collapse_repeated_prefix(sql, catalog))
    rewritten = "".join(
        _qualify_code(part) if index % 2 == 0 else part
        for index, part in enumerate(parts)
    )
    return collapse_repeated_prefix(rewritten, catalog)
