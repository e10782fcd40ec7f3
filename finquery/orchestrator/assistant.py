"""
FinanceAssistant: the context object callers hold.

It owns one ProviderOrchestrator and one SessionTracker, so the lifecycle
of both belongs to whoever created the assistant (CLI loop, API dependency).

Two ways to ask:
    chat(message, mode)   -> free-text advice; context carries the records
    query(question, mode) -> metadata-driven structured query, parsed,
                             validated and executed locally

lookup_card_benefits(card_name) fetches a card's reward rules through the
web-search providers only.
"""

import logging
from typing import Any, Dict, Optional, Union

from configs import (
    CARD_BENEFITS_INSTRUCTION,
    CARD_BENEFITS_PROMPT,
    DATASET_PATH,
    QUERY_RESPONSE_INSTRUCTION,
    SettingsStore,
)
from finquery.adapters import DatasetStore, create_dataset_store
from finquery.models import ChatAnswer, Mode, QueryAnswer, QueryAnswerStatus
from finquery.query_engine import MODE_COLLECTIONS, MetadataGenerator, QueryExecutor, as_number
from finquery.utils.notifications import NotificationSink

from .json_utils import parse_query_response
from .llm_client import ProviderOrchestrator
from .session import Session, SessionTracker

logger = logging.getLogger("finquery.assistant")


class UnsupportedModeError(ValueError):
    """The mode has no collection to run a structured query against."""
    pass


def _mode_value(mode: Union[str, Mode]) -> str:
    return Mode(mode).value


class FinanceAssistant:
    """Answers finance questions over a dataset store via the provider chain."""

    def __init__(
        self,
        settings: SettingsStore,
        datasets: DatasetStore,
        orchestrator: Optional[ProviderOrchestrator] = None,
        notifier: Optional[NotificationSink] = None,
    ):
        self.settings = settings
        self.datasets = datasets
        self.orchestrator = orchestrator or ProviderOrchestrator(settings, notifier=notifier)
        self.sessions = SessionTracker()
        self.metadata_generator = MetadataGenerator(datasets)
        self.executor = QueryExecutor(datasets)

    @property
    def session(self) -> Optional[Session]:
        return self.sessions.current

    def reset_session(self) -> None:
        self.sessions.reset()

    def close(self) -> None:
        """Release provider connections."""
        self.orchestrator.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def metadata(self, mode: Union[str, Mode]) -> Dict[str, Any]:
        return self.metadata_generator.generate(_mode_value(mode))

    # ------------------------------------------------------------------
    # Free-text chat
    # ------------------------------------------------------------------

    def chat_context(self, mode: str) -> Dict[str, Any]:
        """Full-data context for advisory answers."""
        if mode == Mode.EXPENSES.value:
            expenses = self.datasets.get_collection("expenses")
            return {
                "mode": "expenses",
                "expenses": [
                    {
                        "title": e.get("title"),
                        "description": e.get("description"),
                        "amount": e.get("amount"),
                        "category": e.get("category"),
                        "date": e.get("date"),
                        "createdAt": e.get("createdAt"),
                    }
                    for e in expenses
                ],
                "total": sum(as_number(e.get("amount")) for e in expenses),
            }

        if mode == Mode.INVESTMENTS.value:
            investments = self.datasets.get_collection("investments")
            return {
                "mode": "investments",
                "investments": [
                    {
                        "name": i.get("name"),
                        "type": i.get("type"),
                        "goal": i.get("goal"),
                        "amount": as_number(i.get("amount")),
                        "price": i.get("price"),
                        "currency": i.get("currency"),
                        "quantity": i.get("quantity"),
                        "createdAt": i.get("createdAt"),
                        "lastUpdated": i.get("lastUpdated"),
                    }
                    for i in investments
                ],
                "total": sum(as_number(i.get("amount")) for i in investments),
                "exchangeRate": self.metadata_generator.exchange_rate,
            }

        if mode == Mode.CARDS.value:
            # Only credit cards carry benefits; records without cardType are credit
            cards = [
                c for c in self.datasets.get_collection("cards")
                if c.get("cardType", "credit") in (None, "", "credit")
            ]
            return {
                "mode": "credit_cards",
                "available_cards": [
                    {
                        "name": c.get("name"),
                        "benefits": c.get("benefits") or "Benefits not yet fetched",
                        "benefitsFetchedAt": c.get("benefitsFetchedAt"),
                    }
                    for c in cards
                ],
            }

        return {
            "mode": "general",
            "message": "You are a helpful AI assistant. Answer any questions the user has.",
        }

    def chat(self, message: str, mode: Union[str, Mode] = Mode.GENERAL) -> ChatAnswer:
        """
        Ask for a free-text answer.

        Raises:
            ConfigurationError, FatalProviderError, ExhaustionError
        """
        mode_value = _mode_value(mode)
        text = self.orchestrator.call(message, self.chat_context(mode_value))
        record = self.orchestrator.last_call
        return ChatAnswer(
            mode=mode_value,
            answer=text,
            provider=record.provider if record else None,
            fallback_used=record.fallback_used if record else False,
        )

    def lookup_card_benefits(self, card_name: str) -> ChatAnswer:
        """
        Fetch a credit card's reward rules through a web-search provider.

        The host application stores the answer on the card record; later
        card-mode chats read it from there.

        Raises:
            ConfigurationError: Neither Gemini nor Perplexity is configured
            FatalProviderError, ExhaustionError
        """
        prompt = CARD_BENEFITS_PROMPT.format(card_name=card_name)
        text = self.orchestrator.call_with_web_search(
            prompt, {"system_instruction": CARD_BENEFITS_INSTRUCTION}
        )
        record = self.orchestrator.last_call
        return ChatAnswer(
            mode=Mode.CARDS.value,
            answer=text,
            provider=record.provider if record else None,
            fallback_used=record.fallback_used if record else False,
        )

    # ------------------------------------------------------------------
    # Structured queries
    # ------------------------------------------------------------------

    def query(self, question: str, mode: Union[str, Mode]) -> QueryAnswer:
        """
        Answer a question with a structured query executed locally.

        Flow:
            1. start (or keep) the session for the mode
            2. send the metadata descriptor if this session hasn't yet,
               otherwise a short reminder with the conversation id
            3. call the provider chain
            4. mark metadata as sent (only after a successful call)
            5. parse + auto-correct the reply, then execute it

        Raises:
            UnsupportedModeError: mode has no queryable collection
            ConfigurationError, FatalProviderError, ExhaustionError
        """
        mode_value = _mode_value(mode)
        if mode_value not in MODE_COLLECTIONS:
            raise UnsupportedModeError(f"Structured queries need an expenses or investments mode, got: {mode_value}")

        session = self.sessions.start_session(mode_value)
        include_metadata = self.sessions.needs_metadata(mode_value)

        if include_metadata:
            context = dict(self.metadata(mode_value))
        else:
            context = {"mode": mode_value, "metadataAlreadySent": True}
        context["conversationId"] = session.conversation_id
        context["responseFormat"] = QUERY_RESPONSE_INSTRUCTION

        logger.info("Query (%s, metadata=%s): %s", mode_value, include_metadata, question)
        raw = self.orchestrator.call(question, context)

        if include_metadata:
            self.sessions.mark_metadata_sent()

        record = self.orchestrator.last_call
        answer = {
            "mode": mode_value,
            "conversation_id": session.conversation_id,
            "metadata_included": include_metadata,
            "raw_response": raw,
            "provider": record.provider if record else None,
            "fallback_used": record.fallback_used if record else False,
        }

        query = parse_query_response(raw)
        if query is None:
            return QueryAnswer(status=QueryAnswerStatus.UNPARSED, **answer)

        outcome = self.executor.execute(query, mode_value)
        status = QueryAnswerStatus.EXECUTED if outcome.success else QueryAnswerStatus.FAILED
        return QueryAnswer(status=status, query=query, outcome=outcome, **answer)


def create_assistant(
    settings: Optional[SettingsStore] = None,
    dataset_path: Optional[str] = None,
    notifier: Optional[NotificationSink] = None,
) -> FinanceAssistant:
    """Build an assistant from environment settings and the configured dataset file."""
    settings = settings or SettingsStore.from_env()
    return FinanceAssistant(settings, create_dataset_store(dataset_path or DATASET_PATH), notifier=notifier)
