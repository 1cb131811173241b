"""
Infrastructure layer for external integrations.

This module contains the clients for the embedded database engine and
the language-model API.
"""

from .database_client import DatabaseClient
from .llm_client import LLMClient

__all__ = ["DatabaseClient", "LLMClient"]
