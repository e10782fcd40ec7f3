"""Test provider and dataset adapters."""
import json

import httpx
import pytest

from conftest import make_settings
from configs import ConfigurationError
from finquery.adapters import (
    ChatCompletionsAdapter,
    DatasetError,
    GroqAdapter,
    InMemoryDatasetStore,
    JSONDatasetStore,
    PerplexityAdapter,
    ProviderError,
    build_messages,
    create_adapter,
    create_dataset_store,
    get_adapter_class,
    list_adapters,
)


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def keyed_settings():
    return make_settings({"gemini": "g-key", "groq": "q-key", "chatgpt": "c-key", "perplexity": "p-key"})


# =============================================================================
# REGISTRY
# =============================================================================

def test_registry_lists_supported_providers():
    assert list_adapters()[:4] == ["gemini", "groq", "chatgpt", "perplexity"]
    assert get_adapter_class("groq") is GroqAdapter
    assert get_adapter_class("unknown") is None


def test_create_adapter_by_provider_id(keyed_settings):
    adapter = create_adapter(keyed_settings.get("perplexity"))
    assert isinstance(adapter, PerplexityAdapter)
    assert adapter.provider_id == "perplexity"
    assert adapter.name == "Perplexity"


# =============================================================================
# CHAT COMPLETIONS WIRE FORMAT
# =============================================================================

def test_request_shape_and_reply(keyed_settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion("Total is 5000"))

    config = keyed_settings.get("chatgpt")
    adapter = create_adapter(config, client=mock_client(handler))

    assert adapter.call("How much?", {"mode": "expenses", "total": 5000}) == "Total is 5000"
    assert seen["url"] == config.endpoint
    assert seen["auth"] == "Bearer c-key"
    assert seen["body"]["model"] == config.model
    roles = [m["role"] for m in seen["body"]["messages"]]
    assert roles == ["system", "user"]
    assert '"total": 5000' in seen["body"]["messages"][0]["content"]
    assert adapter.call_count == 1


def test_groq_caps_tokens(keyed_settings):
    payload = GroqAdapter(keyed_settings.get("groq")).build_payload("hi")
    assert payload["max_tokens"] == 2048


def test_perplexity_payload_flags(keyed_settings):
    payload = PerplexityAdapter(keyed_settings.get("perplexity")).build_payload("hi")
    assert payload["return_citations"] is True
    assert payload["return_images"] is False


def test_error_embeds_provider_model_and_message(keyed_settings):
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "Quota exceeded for requests per minute"}})

    config = keyed_settings.get("gemini")
    adapter = create_adapter(config, client=mock_client(handler))

    with pytest.raises(ProviderError) as exc_info:
        adapter.call("hi")

    message = str(exc_info.value)
    assert "Gemini" in message
    assert config.model in message
    assert "Quota exceeded for requests per minute" in message
    assert exc_info.value.status_code == 429


def test_error_without_body_uses_reason_phrase(keyed_settings):
    adapter = create_adapter(keyed_settings.get("groq"),
                             client=mock_client(lambda request: httpx.Response(500, text="oops")))
    with pytest.raises(ProviderError, match="HTTP 500"):
        adapter.call("hi")


def test_empty_choices(keyed_settings):
    adapter = create_adapter(keyed_settings.get("groq"),
                             client=mock_client(lambda request: httpx.Response(200, json={"choices": []})))
    with pytest.raises(ProviderError, match="No response from Groq API"):
        adapter.call("hi")


def test_transport_error_wrapped(keyed_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    adapter = create_adapter(keyed_settings.get("groq"), client=mock_client(handler))
    with pytest.raises(ProviderError, match="request failed"):
        adapter.call("hi")


def test_missing_credential_fails_before_network():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=completion("never"))

    settings = make_settings({})
    adapter = ChatCompletionsAdapter(settings.get("gemini"), client=mock_client(handler))

    with pytest.raises(ConfigurationError, match="Gemini API key"):
        adapter.call("hi")
    assert calls == []


def test_placeholder_key_counts_as_missing():
    settings = make_settings({"groq": "your_groq_api_key_here"})
    assert settings.configured_providers() == []


# =============================================================================
# MESSAGE BUILDING
# =============================================================================

def test_messages_without_context():
    messages = build_messages("Hello")
    assert messages[1] == {"role": "user", "content": "Hello"}
    assert messages[0]["content"] == "You are a helpful financial assistant."


def test_messages_use_mode_instruction():
    messages = build_messages("Hello", {"mode": "expenses"})
    assert "expense analysis expert" in messages[0]["content"]
    assert messages[1]["content"].startswith("User Query: Hello")


def test_messages_custom_system_instruction():
    messages = build_messages("Hello", {"system_instruction": "Be terse."})
    assert messages == [
        {"role": "system", "content": "Be terse."},
        {"role": "user", "content": "Hello"},
    ]


def test_messages_credit_card_instruction():
    messages = build_messages("Best card for fuel?", {"mode": "credit_cards", "available_cards": []})
    assert "credit card advisor" in messages[0]["content"]
    assert "DO NOT search online" in messages[0]["content"]


# =============================================================================
# DATASET STORES
# =============================================================================

def test_in_memory_snapshot_is_isolated(expenses):
    store = InMemoryDatasetStore(expenses=expenses)
    snapshot = store.get_collection("expenses")
    snapshot[0]["amount"] = 1
    assert store.get_collection("expenses")[0]["amount"] == 5000


def test_unknown_collection():
    with pytest.raises(DatasetError):
        InMemoryDatasetStore().get_collection("loans")


def test_json_store_loads_and_reloads(tmp_path, expenses):
    path = tmp_path / "finance.json"
    path.write_text(json.dumps({"expenses": expenses}), encoding="utf-8")

    store = create_dataset_store(str(path))
    assert isinstance(store, JSONDatasetStore)
    assert store.counts() == {"expenses": 2, "investments": 0, "cards": 0}

    path.write_text(json.dumps({"expenses": [], "investments": [{"amount": 1}]}), encoding="utf-8")
    store.reload()
    assert store.counts() == {"expenses": 0, "investments": 1, "cards": 0}


def test_json_store_missing_file_is_empty(tmp_path):
    store = JSONDatasetStore(tmp_path / "missing.json")
    assert store.counts() == {"expenses": 0, "investments": 0, "cards": 0}


def test_json_store_loads_cards(tmp_path):
    path = tmp_path / "finance.json"
    path.write_text(json.dumps({"cards": [{"name": "HDFC Millennia"}, "junk"]}), encoding="utf-8")
    store = JSONDatasetStore(path)
    assert store.get_collection("cards") == [{"name": "HDFC Millennia"}]


def test_json_store_rejects_bad_shape(tmp_path):
    path = tmp_path / "finance.json"
    path.write_text(json.dumps({"expenses": {"not": "a list"}}), encoding="utf-8")
    with pytest.raises(DatasetError):
        JSONDatasetStore(path)


# =============================================================================
# CONNECTION LIFECYCLE
# =============================================================================

def test_close_releases_own_client(keyed_settings):
    adapter = GroqAdapter(keyed_settings.get("groq"))
    client = adapter._http()
    assert client.is_closed is False

    adapter.close()
    assert client.is_closed is True
    # A later call opens a fresh client
    assert adapter._http() is not client
    adapter.close()


def test_injected_client_left_open(keyed_settings):
    client = mock_client(lambda request: httpx.Response(200, json=completion("hi")))
    with GroqAdapter(keyed_settings.get("groq"), client=client) as adapter:
        assert adapter.call("hello") == "hi"
    assert client.is_closed is False
    client.close()


def test_context_manager_closes_client(keyed_settings):
    with create_adapter(keyed_settings.get("gemini")) as adapter:
        client = adapter._http()
    assert client.is_closed is True
