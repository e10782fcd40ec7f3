"""
Shared dependencies for the FinQuery API.

Provides:
- Structured logging
- Singleton assistant (created once, reused per request)
- Configuration constants for API behavior
"""

import logging
from typing import List, Optional

from configs import QUERY_TIMEOUT_SECONDS
from finquery.orchestrator import FinanceAssistant, create_assistant
from finquery.utils import CollectingNotificationSink, setup_logging

from .schemas import NoticeAPI


# =============================================================================
# STRUCTURED LOGGING
# =============================================================================

setup_logging()
logger = logging.getLogger("finquery.api")

__all__ = ["logger", "QUERY_TIMEOUT_SECONDS", "get_assistant", "reset_assistant", "drain_notices"]


# =============================================================================
# SINGLETON ASSISTANT
# =============================================================================

_assistant: Optional[FinanceAssistant] = None


def get_assistant() -> FinanceAssistant:
    """
    Get or create the singleton assistant.

    One assistant means one session, shared by all requests (last mode
    switch wins). Notifications are collected so responses can return them.
    """
    global _assistant
    if _assistant is None:
        logger.info("Creating singleton FinanceAssistant")
        _assistant = create_assistant(notifier=CollectingNotificationSink())
    return _assistant


def reset_assistant() -> None:
    """Close and drop the assistant (on shutdown, and useful for testing)."""
    global _assistant
    if _assistant is not None:
        _assistant.close()
    _assistant = None


def drain_notices(assistant: FinanceAssistant) -> List[NoticeAPI]:
    """Notifications posted since the last drain, if the sink collects them."""
    notifier = getattr(assistant.orchestrator, "notifier", None)
    if not isinstance(notifier, CollectingNotificationSink):
        return []
    return [NoticeAPI(message=n.message, level=n.level) for n in notifier.drain()]
