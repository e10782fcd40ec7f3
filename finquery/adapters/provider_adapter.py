"""
Backend Adapter Layer for FinQuery.

This module provides a unified interface for generative-text providers,
so the orchestrator can treat Gemini, Groq, ChatGPT and Perplexity alike.

Design Principles:
- The orchestrator NEVER talks to a provider API directly
- All provider calls go through adapters
- Adapters verify credentials, build requests and translate errors
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from configs import ConfigurationError, ProviderConfig, get_system_instruction


class ProviderError(Exception):
    """A provider call failed (HTTP error, transport error, empty reply)."""

    def __init__(self, message: str, provider: Optional[str] = None,
                 model: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code


class BackendAdapter(ABC):
    """
    Abstract base class for provider adapters.

    All providers must implement this interface to ensure
    compatibility with the fallback chain.
    """

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.call_count = 0

    @property
    def provider_id(self) -> str:
        return self.config.provider_id

    @property
    def name(self) -> str:
        return self.config.display_name

    def ensure_credential(self) -> str:
        """Return the API key or fail before any network attempt."""
        if not self.config.has_credential:
            raise ConfigurationError(
                f"Please configure your {self.name} API key in Settings"
            )
        return self.config.api_key

    @abstractmethod
    def call(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> str:
        """
        Send one prompt to the provider and return the reply text.

        Args:
            prompt: The user question
            context: Optional context (mode, metadata or data) serialized into the request

        Raises:
            ConfigurationError: When no credential is configured
            ProviderError: For any provider failure
        """
        pass

    def close(self) -> None:
        """Release any connections held by the adapter."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def build_messages(prompt: str, context: Optional[Dict[str, Any]] = None) -> List[Dict[str, str]]:
    """
    Build the chat message list shared by all chat-completion providers.

    A context carrying its own system_instruction replaces the mode
    instruction and is not serialized; any other context is appended
    to the system message as JSON.
    """
    context = dict(context) if context else None
    system_message = get_system_instruction(context.get("mode") if context else None)
    user_message = prompt

    if context and context.get("system_instruction"):
        system_message = context["system_instruction"]
    elif context:
        system_message += "\n\nContext Data:\n" + json.dumps(context, indent=2, default=str, ensure_ascii=False)
        user_message = (
            f"User Query: {prompt}\n\n"
            "Provide helpful insights based on the context data provided in the system message."
        )

    return [
        {"role": "system", "content": system_message},
        {"role": "user", "content": user_message},
    ]
