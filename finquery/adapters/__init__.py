"""
Adapters module for FinQuery.

Contains:
1. Backend adapters (one per generative-text provider) and their registry
2. Dataset store adapters (read-only record collections)
"""

# Provider adapters
from .provider_adapter import BackendAdapter, ProviderError, build_messages
from .chat_adapters import (
    ChatCompletionsAdapter,
    GeminiAdapter,
    GroqAdapter,
    ChatGPTAdapter,
    PerplexityAdapter,
)
from .factory import create_adapter, register_adapter, get_adapter_class, list_adapters

# Dataset stores
from .dataset_store import (
    COLLECTIONS,
    DatasetError,
    DatasetStore,
    InMemoryDatasetStore,
    JSONDatasetStore,
    create_dataset_store,
)

__all__ = [
    # Provider adapters
    "BackendAdapter",
    "ProviderError",
    "build_messages",
    "ChatCompletionsAdapter",
    "GeminiAdapter",
    "GroqAdapter",
    "ChatGPTAdapter",
    "PerplexityAdapter",
    "create_adapter",
    "register_adapter",
    "get_adapter_class",
    "list_adapters",
    # Dataset stores
    "COLLECTIONS",
    "DatasetError",
    "DatasetStore",
    "InMemoryDatasetStore",
    "JSONDatasetStore",
    "create_dataset_store",
]
