"""
Chat-completion adapters for the supported providers.

Every provider is reached through the same OpenAI-style wire format:
POST {model, messages} with a bearer token, reply in choices[0].message.content,
errors in {error: {message}}.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from configs import LLM_TEMPERATURE, REQUEST_TIMEOUT_SECONDS, ProviderConfig

from .provider_adapter import BackendAdapter, ProviderError, build_messages

logger = logging.getLogger("finquery.adapters")


class ChatCompletionsAdapter(BackendAdapter):
    """Adapter for any OpenAI-compatible chat completions endpoint."""

    def __init__(self, config: ProviderConfig, client: Optional[httpx.Client] = None,
                 temperature: float = LLM_TEMPERATURE, timeout: float = REQUEST_TIMEOUT_SECONDS):
        super().__init__(config)
        self._client = client
        self._owns_client = client is None
        self.temperature = temperature
        self.timeout = timeout

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def build_payload(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": build_messages(prompt, context),
            "temperature": self.temperature,
        }

    def call(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> str:
        api_key = self.ensure_credential()
        payload = self.build_payload(prompt, context)

        logger.debug("Calling %s (%s) at %s", self.name, self.config.model, self.config.endpoint)
        try:
            response = self._http().post(
                self.config.endpoint,
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {api_key}",
                },
            )
        except httpx.HTTPError as e:
            raise ProviderError(
                f"{self.name} ({self.config.model}): request failed: {e}",
                provider=self.provider_id, model=self.config.model,
            ) from e

        if not response.is_success:
            raise ProviderError(
                f"{self.name} ({self.config.model}): {self._error_message(response)} "
                f"[HTTP {response.status_code}]",
                provider=self.provider_id, model=self.config.model,
                status_code=response.status_code,
            )

        try:
            data = response.json()
            choices = data.get("choices") or []
            if not choices:
                raise ProviderError(
                    f"No response from {self.name} API",
                    provider=self.provider_id, model=self.config.model,
                    status_code=response.status_code,
                )
            content = choices[0]["message"]["content"]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ProviderError(
                f"{self.name} ({self.config.model}): malformed response: {e}",
                provider=self.provider_id, model=self.config.model,
                status_code=response.status_code,
            ) from e

        self.call_count += 1
        logger.debug("✓ %s call successful (Total: %d)", self.name, self.call_count)
        return content or ""

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error = response.json().get("error")
        except (ValueError, AttributeError):
            error = None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        return response.reason_phrase or "API request failed"


class GeminiAdapter(ChatCompletionsAdapter):
    """Gemini through Google's OpenAI-compatible endpoint."""


class GroqAdapter(ChatCompletionsAdapter):
    """Groq: fast, generous rate limits; replies capped at 2048 tokens."""

    max_tokens = 2048

    def build_payload(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload = super().build_payload(prompt, context)
        payload["max_tokens"] = self.max_tokens
        return payload


class ChatGPTAdapter(ChatCompletionsAdapter):
    """OpenAI ChatGPT."""


class PerplexityAdapter(ChatCompletionsAdapter):
    """Perplexity online models: citations on, images off."""

    def build_payload(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload = super().build_payload(prompt, context)
        payload["return_citations"] = True
        payload["return_images"] = False
        return payload
