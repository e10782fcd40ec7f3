"""
FinanceAssistant tests: the full question -> answer flow with a scripted backend.
"""

import json

import pytest

from conftest import FakeBackend, bad_request, make_settings
from configs import CARD_BENEFITS_INSTRUCTION, ConfigurationError
from finquery.adapters import InMemoryDatasetStore
from finquery.models import Mode, QueryAnswerStatus
from finquery.orchestrator import (
    FatalProviderError,
    FinanceAssistant,
    ProviderOrchestrator,
    UnsupportedModeError,
    create_assistant,
)

GROCERIES_SUM = json.dumps({
    "operation": "filter",
    "filterCode": "e.category == 'Groceries'",
    "aggregation": "sum",
    "aggregationField": "amount",
    "explanation": "Total spent on groceries",
})


def build_assistant(store, scripts=None, default=GROCERIES_SUM, keys=("groq",)):
    settings = make_settings({pid: f"key-{pid}" for pid in keys})
    backend = FakeBackend(scripts, default=default)
    orchestrator = ProviderOrchestrator(settings, adapter_factory=backend)
    return FinanceAssistant(settings, store, orchestrator=orchestrator), backend


# =============================================================================
# STRUCTURED QUERIES
# =============================================================================

class TestQuery:

    def test_executes_structured_query(self, store):
        assistant, _ = build_assistant(store)
        answer = assistant.query("How much on groceries?", "expenses")

        assert answer.status == QueryAnswerStatus.EXECUTED
        assert answer.mode == Mode.EXPENSES
        assert answer.provider == "groq"
        assert answer.query.filter_expression == "e => e.category === 'Groceries'"
        assert answer.outcome.result.value == 5000
        assert answer.outcome.explanation == "Total spent on groceries"

    def test_metadata_sent_once_per_session(self, store):
        assistant, backend = build_assistant(store)

        first = assistant.query("q1", "expenses")
        second = assistant.query("q2", "expenses")

        first_context = backend.calls[0][2]
        second_context = backend.calls[1][2]
        assert first.metadata_included is True
        assert "schema" in first_context and "statistics" in first_context
        assert second.metadata_included is False
        assert second_context["metadataAlreadySent"] is True
        assert "schema" not in second_context
        assert first_context["conversationId"] == second_context["conversationId"] == first.conversation_id

    def test_mode_switch_resends_metadata(self, store):
        assistant, backend = build_assistant(store)
        first = assistant.query("q1", "expenses")
        second = assistant.query("q2", Mode.INVESTMENTS)

        assert second.metadata_included is True
        assert backend.calls[1][2]["mode"] == "investments"
        assert second.conversation_id != first.conversation_id

    def test_metadata_not_marked_after_failed_call(self, store):
        assistant, backend = build_assistant(store, scripts={"groq": [bad_request("groq"), GROCERIES_SUM]})

        with pytest.raises(FatalProviderError):
            assistant.query("q1", "expenses")
        answer = assistant.query("q1 again", "expenses")

        assert answer.metadata_included is True
        assert "schema" in backend.calls[1][2]

    def test_reset_session_resends_metadata(self, store):
        assistant, _ = build_assistant(store)
        assistant.query("q1", "expenses")
        assistant.reset_session()
        assert assistant.session is None
        assert assistant.query("q2", "expenses").metadata_included is True

    def test_unparsed_reply(self, store):
        assistant, _ = build_assistant(store, default="Sorry, I can't help with that.")
        answer = assistant.query("??", "expenses")
        assert answer.status == QueryAnswerStatus.UNPARSED
        assert answer.query is None
        assert answer.raw_response == "Sorry, I can't help with that."

    def test_blocked_query_reports_failure(self, store):
        reply = json.dumps({"filterCode": "e => fetch('https://x.example')", "aggregation": "none"})
        assistant, _ = build_assistant(store, default=reply)
        answer = assistant.query("leak", "expenses")

        assert answer.status == QueryAnswerStatus.FAILED
        assert answer.outcome.blocked_pattern == r"fetch\s*\("

    def test_general_mode_is_rejected(self, store):
        assistant, backend = build_assistant(store)
        with pytest.raises(UnsupportedModeError):
            assistant.query("hello", "general")
        assert backend.calls == []

    def test_metadata_accessor(self, store):
        assistant, _ = build_assistant(store)
        assert assistant.metadata("investments")["statistics"]["totalRecords"] == 3


# =============================================================================
# CHAT
# =============================================================================

class TestChat:

    def test_chat_with_expense_context(self, store):
        assistant, backend = build_assistant(store, default="Spend less on travel.")
        answer = assistant.chat("Any tips?", "expenses")

        context = backend.calls[0][2]
        assert answer.answer == "Spend less on travel."
        assert answer.provider == "groq"
        assert context["mode"] == "expenses"
        assert context["total"] == 17000
        assert len(context["expenses"]) == 2

    def test_chat_with_investment_context(self, store):
        assistant, backend = build_assistant(store, default="Diversify.")
        assistant.chat("Am I diversified?", Mode.INVESTMENTS)

        context = backend.calls[0][2]
        assert context["total"] == 233000
        assert {i["type"] for i in context["investments"]} == {"SHARES", "FD"}
        assert "exchangeRate" in context

    def test_general_chat(self, store):
        assistant, backend = build_assistant(store, default="Hi!")
        answer = assistant.chat("Hello")
        assert answer.mode == Mode.GENERAL
        assert backend.calls[0][2]["mode"] == "general"

    def test_chat_does_not_touch_session(self, store):
        assistant, _ = build_assistant(store, default="ok")
        assistant.chat("Hello", "expenses")
        assert assistant.session is None

    def test_card_chat_lists_credit_cards_only(self, expenses):
        cards = [
            {"name": "HDFC Millennia", "cardType": "credit", "benefits": "5% on Amazon",
             "benefitsFetchedAt": "2024-11-01T10:00:00Z"},
            {"name": "SBI SimplyCLICK"},
            {"name": "ICICI Debit", "cardType": "debit", "benefits": "none"},
        ]
        assistant, backend = build_assistant(InMemoryDatasetStore(expenses=expenses, cards=cards),
                                             default="Use Millennia.")
        answer = assistant.chat("Which card for Amazon?", "cards")

        context = backend.calls[0][2]
        assert answer.mode == Mode.CARDS
        assert context["mode"] == "credit_cards"
        assert context["available_cards"] == [
            {"name": "HDFC Millennia", "benefits": "5% on Amazon", "benefitsFetchedAt": "2024-11-01T10:00:00Z"},
            {"name": "SBI SimplyCLICK", "benefits": "Benefits not yet fetched", "benefitsFetchedAt": None},
        ]

    def test_cards_mode_is_chat_only(self, store):
        assistant, backend = build_assistant(store)
        with pytest.raises(UnsupportedModeError):
            assistant.query("Best card?", Mode.CARDS)
        assert backend.calls == []


# =============================================================================
# CARD BENEFITS
# =============================================================================

class TestCardBenefits:

    def test_lookup_uses_web_search_provider(self, store):
        assistant, backend = build_assistant(store, default="• Fuel: 1%", keys=("groq", "perplexity"))
        answer = assistant.lookup_card_benefits("HDFC Millennia")

        provider, prompt, context = backend.calls[0]
        assert provider == "perplexity"
        assert '"HDFC Millennia"' in prompt
        assert context == {"system_instruction": CARD_BENEFITS_INSTRUCTION}
        assert answer.mode == Mode.CARDS
        assert answer.answer == "• Fuel: 1%"
        assert answer.provider == "perplexity"

    def test_lookup_without_search_provider(self, store):
        assistant, backend = build_assistant(store, keys=("groq",))
        with pytest.raises(ConfigurationError):
            assistant.lookup_card_benefits("HDFC Millennia")
        assert backend.calls == []


def test_create_assistant_from_file(tmp_path, expenses):
    path = tmp_path / "finance.json"
    path.write_text(json.dumps({"expenses": expenses}), encoding="utf-8")
    assistant = create_assistant(settings=make_settings({"groq": "k"}), dataset_path=str(path))
    assert assistant.datasets.counts() == {"expenses": 2, "investments": 0, "cards": 0}


def test_close_releases_provider_adapters(store):
    assistant, backend = build_assistant(store)
    with assistant:
        assistant.query("q1", "expenses")
    assert backend.adapters and all(adapter.closed for adapter in backend.adapters)
