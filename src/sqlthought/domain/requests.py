"""
API request models for the SQL-of-Thought service.

All fields include descriptions that appear in Swagger/OpenAPI documentation.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class SQLOfThoughtRequest(BaseModel):
    """
    Request model for a streamed SQL-of-Thought run.

    `question` and `apiKey` are validated by the route rather than by the
    model, so a missing value is answered with a plain 400 before any stage
    runs instead of a schema-validation error.
    """

    model_config = ConfigDict(populate_by_name=True)

    question: Optional[str] = Field(
        default=None,
        description="Natural language question about the attached database. "
                    "Example: 'List all customers from USA'",
        max_length=2000,
        json_schema_extra={"example": "List all customers from USA"}
    )
    model: Optional[str] = Field(
        default=None,
        description="OpenAI model used by every stage of this run. "
                    "If not provided, uses the server's default model.",
        json_schema_extra={"example": "gpt-4o-mini"}
    )
    api_key: Optional[str] = Field(
        default=None,
        alias="apiKey",
        description="OpenAI API key used for this run only. "
                    "If not provided, the server's configured key is used; "
                    "when neither exists the request is rejected."
    )
