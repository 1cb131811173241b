"""
Custom exception hierarchy for the SQL-of-Thought service.

This module defines the exceptions raised across layers, each with:
- A machine-readable error code for API responses
- An HTTP status code mapping for FastAPI
- Optional structured details for debugging

Exception Categories:
- 4xx Client Errors: BadRequestError, ValidationError
- 5xx Server Errors: DatabaseError, SchemaError, LLMError, StageParseError, etc.

Note that a failing *generated* query is not an exception: the executor
returns it as a failed ExecutionResult and the correction loop handles it.

Usage:
    raise BadRequestError("Question is required")
    raise SchemaError("Failed to enumerate tables", details={"catalog": "chinook"})
"""

from typing import Any, Dict, Optional


class SQLThoughtException(Exception):
    """
    Base exception for all SQL-of-Thought errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error code (e.g., "SCHEMA_ERROR")
        http_status: HTTP status code to return (default: 500)
        details: Optional dictionary with additional error context
    """

    error_code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        if http_status:
            self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Client Errors (4xx)
# =============================================================================


class ValidationError(SQLThoughtException):
    """
    Raised when input validation fails.

    HTTP Status: 422 Unprocessable Entity
    """

    error_code = "VALIDATION_ERROR"
    http_status = 422


class BadRequestError(SQLThoughtException):
    """
    Raised when the request is missing something a run cannot start without.

    HTTP Status: 400 Bad Request

    Examples:
        - Missing question
        - Missing API key (neither in the request nor in server configuration)
    """

    error_code = "BAD_REQUEST"
    http_status = 400


# =============================================================================
# Configuration Errors (5xx)
# =============================================================================


class ConfigurationError(SQLThoughtException):
    """
    Raised when configuration is invalid or missing.

    HTTP Status: 500 Internal Server Error
    """

    error_code = "CONFIGURATION_ERROR"
    http_status = 500


# =============================================================================
# Database Errors (5xx)
# =============================================================================


class DatabaseError(SQLThoughtException):
    """
    Base class for database-related errors.

    HTTP Status: 503 Service Unavailable
    """

    error_code = "DATABASE_ERROR"
    http_status = 503


class DatabaseConnectionError(DatabaseError):
    """
    Raised when the engine cannot be opened or the catalog cannot be attached.

    HTTP Status: 503 Service Unavailable

    Examples:
        - Database file missing
        - sqlite extension cannot be installed/loaded
    """

    error_code = "DATABASE_CONNECTION_ERROR"
    http_status = 503


class DatabaseQueryError(DatabaseError):
    """
    Raised when the engine rejects a statement.

    HTTP Status: 500 Internal Server Error

    The engine's own message is kept verbatim in `details["engine_error"]`;
    the correction stage parses it, so it must never be re-worded.
    """

    error_code = "DATABASE_QUERY_ERROR"
    http_status = 500

    @property
    def engine_error(self) -> str:
        return self.details.get("engine_error", self.message)


# =============================================================================
# Schema Errors (5xx)
# =============================================================================


class SchemaError(SQLThoughtException):
    """
    Raised when the schema of the attached catalog cannot be enumerated.

    HTTP Status: 500 Internal Server Error

    A partial schema is never usable, so this is fatal for a run.
    """

    error_code = "SCHEMA_ERROR"
    http_status = 500


# =============================================================================
# LLM Errors (5xx)
# =============================================================================


class LLMError(SQLThoughtException):
    """
    Raised when a language-model call fails.

    HTTP Status: 503 Service Unavailable

    Examples:
        - API unreachable or key rejected
        - Empty response
        - Prompt exceeds the configured character limit
    """

    error_code = "LLM_ERROR"
    http_status = 503


class StageParseError(SQLThoughtException):
    """
    Raised when a stage whose output cannot be defaulted returns unusable JSON.

    HTTP Status: 502 Bad Gateway

    Only schema linking raises this: every later stage depends on its output.
    """

    error_code = "STAGE_PARSE_ERROR"
    http_status = 502


# =============================================================================
# Service Unavailable (5xx)
# =============================================================================


class ServiceUnavailableError(SQLThoughtException):
    """
    Raised when a required service is not available.

    HTTP Status: 503 Service Unavailable

    Examples:
        - Database client not connected at request time
    """

    error_code = "SERVICE_UNAVAILABLE"
    http_status = 503
