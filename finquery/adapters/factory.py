"""
Backend Adapter Factory.

Creates the appropriate provider adapter from its configuration.
Provides a single entry point for adapter creation, keyed by provider id.
"""

from typing import Dict, List, Optional, Type

import httpx

from configs import ConfigurationError, ProviderConfig

from .provider_adapter import BackendAdapter
from .chat_adapters import ChatGPTAdapter, GeminiAdapter, GroqAdapter, PerplexityAdapter


# Global adapter registry (provider id -> adapter class)
_adapter_registry: Dict[str, Type[BackendAdapter]] = {
    "gemini": GeminiAdapter,
    "groq": GroqAdapter,
    "chatgpt": ChatGPTAdapter,
    "perplexity": PerplexityAdapter,
}


def create_adapter(config: ProviderConfig, client: Optional[httpx.Client] = None) -> BackendAdapter:
    """
    Create the adapter registered for config.provider_id.

    Args:
        config: Provider settings (credential, model, endpoint)
        client: Optional shared httpx client (tests inject a MockTransport here)

    Raises:
        ConfigurationError: If no adapter is registered for the provider

    Examples:
        adapter = create_adapter(settings.get("groq"))
        text = adapter.call("How much did I spend?", {"mode": "expenses"})
    """
    adapter_cls = _adapter_registry.get(config.provider_id)
    if adapter_cls is None:
        raise ConfigurationError(f"Unknown AI provider: {config.provider_id}")
    if client is not None:
        return adapter_cls(config, client=client)
    return adapter_cls(config)


def register_adapter(provider_id: str, adapter_cls: Type[BackendAdapter]) -> None:
    """Register an adapter class by provider id."""
    _adapter_registry[provider_id] = adapter_cls


def get_adapter_class(provider_id: str) -> Optional[Type[BackendAdapter]]:
    """Get a registered adapter class by provider id."""
    return _adapter_registry.get(provider_id)


def list_adapters() -> List[str]:
    """List all registered provider ids."""
    return list(_adapter_registry.keys())
