"""
Text utilities for LLM requests and responses.

- Prompt size validation before an API call
- Markdown code-fence stripping for raw SQL / JSON answers
- Best-effort JSON object extraction from chatty responses
"""

import json
import re
from typing import Any, Dict, Optional


# ```sql / ```json / ``` fences, opening or closing, with trailing newline
_FENCE_PATTERN = re.compile(r"```[a-zA-Z]*[ \t]*\n?")

# SQL line comments and block comments
_LINE_COMMENT_PATTERN = re.compile(r"--[^\n]*")
_BLOCK_COMMENT_PATTERN = re.compile(r"/\*.*?\*/", re.DOTALL)


class InputValidator:
    """
    Character-count checks against hard limits.
    """

    @staticmethod
    def validate_total_chars(
        prompt: str,
        system_prompt: Optional[str] = None,
        max_chars: int = 0
    ) -> None:
        """
        Validate total character count for an LLM request.

        Args:
            prompt: User prompt text
            system_prompt: Optional system prompt
            max_chars: Maximum allowed total characters

        Raises:
            ValueError: If total exceeds character limit

        Example:
            >>> InputValidator.validate_total_chars("Hello", system_prompt="Hi", max_chars=1000)  # OK
        """
        total_chars = len(prompt)
        if system_prompt:
            total_chars += len(system_prompt)

        if total_chars > max_chars:
            raise ValueError(
                f"Total input too large: {total_chars} characters, "
                f"maximum allowed: {max_chars}"
            )


def strip_code_fences(text: str) -> str:
    """
    Remove every markdown code-fence marker and surrounding whitespace.

    Example:
        >>> strip_code_fences("```sql\\nSELECT 1\\n```")
        'SELECT 1'
    """
    if not text:
        return ""
    return _FENCE_PATTERN.sub("", text).strip()


def strip_sql_comments(sql: str) -> str:
    """Remove `--` and `/* */` comments; used to detect effectively empty SQL."""
    without_blocks = _BLOCK_COMMENT_PATTERN.sub("", sql)
    return _LINE_COMMENT_PATTERN.sub("", without_blocks).strip()


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Try to extract a JSON object from text that may contain extra content.

    Finds the first { and last } and tries to parse what's between.
    """
    start = text.find('{')
    end = text.rfind('}')

    if start == -1 or end == -1 or end <= start:
        return None

    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None

    return parsed if isinstance(parsed, dict) else None


def preview(text: Optional[str], limit: int = 200) -> str:
    """Shorten text for logs and error payloads."""
    if not text:
        return "(empty)"
    return text if len(text) <= limit else text[:limit] + "..."
