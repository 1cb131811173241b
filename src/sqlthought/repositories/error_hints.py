"""
Extraction of structural hints from DuckDB error messages.

The correction stage gets the raw engine error verbatim; this module pulls
out the parts models tend to overlook so they can be repeated explicitly:

- `Did you mean "X"?` suggestions
- `Candidate bindings: "a", "b"` lists
- the table named by `Table "t" does not have a column named ...`, with
  aliases resolved against the failed SQL (so `c` becomes `customers`)

Suggestions are kept verbatim and case-preserved: the model must reuse the
exact spelling.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional


_DID_YOU_MEAN_PATTERN = re.compile(r'Did you mean "([^"]+)"', re.IGNORECASE)
_CANDIDATE_LINE_PATTERN = re.compile(r"Candidate bindings:([^\n]*)", re.IGNORECASE)
_QUOTED_PATTERN = re.compile(r'"([^"]+)"')
_TABLE_COLUMN_PATTERN = re.compile(r'Table "(\w+)" does not have a column', re.IGNORECASE)


@dataclass(frozen=True)
class ErrorHints:
    """Hints found in one engine error message."""

    suggestions: List[str] = field(default_factory=list)
    candidate_bindings: List[str] = field(default_factory=list)
    table_name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.suggestions or self.candidate_bindings)

    def render(self) -> str:
        """Prompt section listing the hints, or "" when there are none."""
        if self.is_empty:
            return ""
        lines = []
        for suggestion in self.suggestions:
            lines.append(f'- The database suggests: "{suggestion}" (use this exact spelling)')
        if self.candidate_bindings:
            candidates = ", ".join(f'"{name}"' for name in self.candidate_bindings)
            lines.append(f"- Columns that do exist here: {candidates}")
        return "\n".join(lines)


def _unique(values: List[str]) -> List[str]:
    seen = set()
    unique = []
    for value in values:
        if value not in seen:
            seen.add(value)
            unique.append(value)
    return unique


def resolve_table_alias(name: str, sql: str) -> str:
    """
    Map an alias to the table it stands for in `sql`.

    Looks for `FROM|JOIN [catalog.]table [AS] name`; returns `name`
    unchanged when it is not an alias.
    """
    pattern = re.compile(
        rf"\b(?:FROM|JOIN)\s+(?:\w+\.)*(\w+)\s+(?:AS\s+)?{re.escape(name)}\b",
        re.IGNORECASE,
    )
    match = pattern.search(sql or "")
    return match.group(1) if match else name


def extract_error_hints(error: str, failed_sql: str = "") -> ErrorHints:
    """
    Collect suggestions, candidate bindings and the offending table.

    Args:
        error: Raw engine error message
        failed_sql: The SQL that produced it (for alias resolution)
    """
    if not error:
        return ErrorHints()

    suggestions = _unique(_DID_YOU_MEAN_PATTERN.findall(error))

    candidates: List[str] = []
    for line in _CANDIDATE_LINE_PATTERN.findall(error):
        candidates.extend(_QUOTED_PATTERN.findall(line))

    table_name = None
    match = _TABLE_COLUMN_PATTERN.search(error)
    if match:
        table_name = resolve_table_alias(match.group(1), failed_sql)

    return ErrorHints(
        suggestions=suggestions,
        candidate_bindings=_unique(candidates),
        table_name=table_name,
    )
