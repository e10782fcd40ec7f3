"""
Orchestrator module for FinQuery.

Contains:
- ProviderOrchestrator: multi-provider calls with rate-limit fallback
  (and a web-search-only chain for card benefit lookups)
- SessionTracker: per-mode metadata caching
- parse_query_response: backend reply -> QueryObject
- FinanceAssistant: the context object tying them together
"""

from .llm_client import (
    OrchestrationError,
    TransientProviderError,
    FatalProviderError,
    ExhaustionError,
    ProviderAttempt,
    CallRecord,
    RATE_LIMIT_PATTERNS,
    WEB_SEARCH_PROVIDERS,
    is_rate_limit_error,
    ProviderOrchestrator,
    create_llm_client,
)
from .session import Session, SessionTracker
from .json_utils import JSONExtractionError, extract_first_json_block, parse_query_response
from .assistant import FinanceAssistant, UnsupportedModeError, create_assistant

__all__ = [
    "OrchestrationError",
    "TransientProviderError",
    "FatalProviderError",
    "ExhaustionError",
    "ProviderAttempt",
    "CallRecord",
    "RATE_LIMIT_PATTERNS",
    "WEB_SEARCH_PROVIDERS",
    "is_rate_limit_error",
    "ProviderOrchestrator",
    "create_llm_client",
    "Session",
    "SessionTracker",
    "JSONExtractionError",
    "extract_first_json_block",
    "parse_query_response",
    "FinanceAssistant",
    "UnsupportedModeError",
    "create_assistant",
]
