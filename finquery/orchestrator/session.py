"""
Session tracking for structured queries.

A session remembers which data mode the user is in and whether the
metadata descriptor for that mode has already been sent to the backend.
Switching mode starts a new conversation with a fresh id so the backend
gets the (different) schema again.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger("finquery.session")


@dataclass
class Session:
    mode: str
    conversation_id: str
    metadata_sent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "conversation_id": self.conversation_id,
            "metadata_sent": self.metadata_sent,
        }


class SessionTracker:
    """Holds at most one live Session; all mutations go through these methods."""

    def __init__(self):
        self._session: Optional[Session] = None

    @property
    def current(self) -> Optional[Session]:
        return self._session

    def start_session(self, mode: str) -> Session:
        """Keep the session if the mode is unchanged, otherwise start a new one."""
        if self._session is not None and self._session.mode == mode:
            return self._session

        self._session = Session(mode=mode, conversation_id=uuid.uuid4().hex)
        logger.info("New %s session started: %s", mode, self._session.conversation_id)
        return self._session

    def needs_metadata(self, mode: str) -> bool:
        session = self._session
        if session is None or session.mode != mode:
            return True
        return not session.metadata_sent

    def mark_metadata_sent(self) -> None:
        if self._session is not None and not self._session.metadata_sent:
            self._session.metadata_sent = True
            logger.debug("Metadata marked as sent for %s", self._session.conversation_id)

    def reset(self) -> None:
        self._session = None
