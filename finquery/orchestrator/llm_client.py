"""
Provider Orchestrator with Automatic Fallback.

PURPOSE:
========
Provides one call() for several interchangeable providers (Gemini, Groq,
ChatGPT, Perplexity), trying them in the user's priority order and falling
back to the next one when a provider is rate limited.

WHY THIS EXISTS:
================
Free-tier keys hit RPM/RPD quotas all the time. A quota error on one
provider should not fail the user's question when another key is available,
but a real error (bad request, invalid key) must surface immediately
instead of being hidden behind three more slow calls.

ARCHITECTURE:
=============
- BackendAdapter (adapters/): one per provider, uniform call contract
- is_rate_limit_error(): failure classification
- ProviderOrchestrator: owns the fallback chain

USAGE:
======
    llm = create_llm_client()
    text = llm.call("Total groceries in November?", context={...})
    # Tries providers in priority order, falls back on rate limits only
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from configs import ConfigurationError, ProviderConfig, SettingsStore
from finquery.adapters import BackendAdapter, create_adapter
from finquery.utils.notifications import LoggingNotificationSink, NotificationSink

logger = logging.getLogger("finquery.orchestrator")


# ============================================================
# ERRORS
# ============================================================

class OrchestrationError(Exception):
    """Base exception for orchestrated calls."""
    pass


class TransientProviderError(OrchestrationError):
    """A provider failure classified as rate limit / quota; triggers fallback."""

    def __init__(self, message: str, provider: str):
        super().__init__(message)
        self.provider = provider


class FatalProviderError(OrchestrationError):
    """A non-retryable provider failure; aborts the whole chain."""

    def __init__(self, message: str, provider: str, attempt: int):
        super().__init__(message)
        self.provider = provider
        self.attempt = attempt


class ExhaustionError(OrchestrationError):
    """Every attempted provider failed."""

    def __init__(self, message: str, last_provider: Optional[str],
                 last_error: Optional[BaseException], attempts: List["ProviderAttempt"]):
        super().__init__(message)
        self.last_provider = last_provider
        self.last_error = last_error
        self.attempts = attempts


# ============================================================
# DATA MODELS
# ============================================================

@dataclass
class ProviderAttempt:
    """One step of a fallback chain (for observability)."""
    provider: str
    status: str                  # success | rate_limited | not_configured | failed
    reason: Optional[str] = None


@dataclass
class CallRecord:
    """What happened during the last orchestrated call."""
    provider: Optional[str] = None
    attempt: int = 0
    fallback_used: bool = False
    attempts: List[ProviderAttempt] = field(default_factory=list)


# ============================================================
# FAILURE CLASSIFICATION
# ============================================================

RATE_LIMIT_PATTERNS = (
    "429",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "quota",
    "resource_exhausted",
    "resources exhausted",
    "resource has been exhausted",
    "too many requests",
)


def is_rate_limit_error(error: BaseException) -> bool:
    """Heuristic: should this failure fall back to the next provider?"""
    if getattr(error, "status_code", None) == 429:
        return True
    error_str = str(error).lower()
    return any(pattern in error_str for pattern in RATE_LIMIT_PATTERNS)


# ============================================================
# PROVIDER ORCHESTRATOR
# ============================================================

AdapterFactory = Callable[[ProviderConfig], BackendAdapter]

# Providers with live web search, in preference order
WEB_SEARCH_PROVIDERS = ("gemini", "perplexity")


class ProviderOrchestrator:
    """
    Calls providers with automatic fallback on rate limits.

    FALLBACK CHAIN:
    ===============
    - Order = user priority order, filtered to providers with a credential
    - At most settings.max_attempts (3) providers per call
    - Attempts are strictly sequential

    CLASSIFICATION:
    ===============
    - Rate limit / quota     → try next provider
    - Missing credential     → try next provider
    - Anything else          → FatalProviderError, chain stops
    - Nothing left to try    → ExhaustionError naming the last provider
    """

    def __init__(
        self,
        settings: SettingsStore,
        adapter_factory: AdapterFactory = create_adapter,
        notifier: Optional[NotificationSink] = None,
    ):
        self.settings = settings
        self.adapter_factory = adapter_factory
        self.notifier = notifier or LoggingNotificationSink()
        self._adapters: Dict[str, BackendAdapter] = {}

        self.last_call: Optional[CallRecord] = None
        self.stats = {
            "total_calls": 0,
            "successful_calls": 0,
            "fallbacks": 0,
            "exhausted": 0,
            "fatal_aborts": 0,
            "provider_calls": {},
        }

    def attempt_order(self) -> List[str]:
        """Priority order filtered to configured providers, capped at max_attempts."""
        configured = set(self.settings.configured_providers())
        order = [p for p in self.settings.priority_order if p in configured]
        return order[:max(self.settings.max_attempts, 0)]

    def _adapter_for(self, provider_id: str) -> BackendAdapter:
        config = self.settings.get(provider_id)
        cached = self._adapters.get(provider_id)
        # Rebuild when the user edited this provider's settings
        if cached is None or cached.config != config:
            if cached is not None:
                cached.close()
            cached = self.adapter_factory(config)
            self._adapters[provider_id] = cached
        return cached

    def call(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> str:
        """
        Send prompt (and optional context) through the fallback chain.

        Returns:
            The first successful provider's reply text

        Raises:
            ConfigurationError: No provider has a credential
            FatalProviderError: A non-rate-limit failure (chained from the original)
            ExhaustionError: All attempts failed with retryable errors
        """
        order = self.attempt_order()
        if not order:
            self.stats["total_calls"] += 1
            self.last_call = CallRecord()
            raise ConfigurationError("No AI provider configured. Please add API keys in Settings.")

        logger.info("AI call - attempt order (max %d): %s", len(order), " → ".join(order))
        return self._run_chain(order, prompt, context)

    def web_search_order(self) -> List[str]:
        """Configured providers that can search the web, Gemini first."""
        configured = set(self.settings.configured_providers())
        return [p for p in WEB_SEARCH_PROVIDERS if p in configured]

    def call_with_web_search(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> str:
        """
        Like call(), but only through providers with live web search.

        The user's priority order is ignored: Gemini is tried first, then
        Perplexity, with the same rate-limit fallback rules.

        Raises:
            ConfigurationError: Neither Gemini nor Perplexity has a credential
            FatalProviderError, ExhaustionError: as for call()
        """
        order = self.web_search_order()
        if not order:
            self.stats["total_calls"] += 1
            self.last_call = CallRecord()
            raise ConfigurationError(
                "No web search capable AI provider configured. "
                "Please add Gemini or Perplexity API key in Settings."
            )

        logger.info("🔍 Web search - using providers: %s", " → ".join(order))
        return self._run_chain(order, prompt, context, web_search=True)

    def _run_chain(self, order: List[str], prompt: str, context: Optional[Dict[str, Any]],
                   web_search: bool = False) -> str:
        self.stats["total_calls"] += 1
        record = CallRecord()
        self.last_call = record

        last_error: Optional[BaseException] = None
        last_provider: Optional[str] = None

        for index, provider_id in enumerate(order):
            attempt_no = index + 1
            last_provider = provider_id
            logger.info("🔄 Attempt %d/%d: %s", attempt_no, len(order), provider_id.upper())

            try:
                text = self._adapter_for(provider_id).call(prompt, context)

            except ConfigurationError as e:
                last_error = e
                record.attempts.append(ProviderAttempt(provider_id, "not_configured", str(e)))
                logger.warning("⚠️ Skipping %s: %s", provider_id.upper(), e)
                continue

            except Exception as e:
                last_error = e
                if not is_rate_limit_error(e):
                    record.attempts.append(ProviderAttempt(provider_id, "failed", str(e)))
                    self.stats["fatal_aborts"] += 1
                    logger.error("💥 %s failed with a non-rate-limit error, stopping: %s",
                                 provider_id.upper(), e)
                    raise FatalProviderError(str(e), provider=provider_id, attempt=attempt_no) from e

                transient = TransientProviderError(str(e), provider=provider_id)
                record.attempts.append(ProviderAttempt(provider_id, "rate_limited", str(transient)))
                logger.warning("⚠️ Rate limit detected for %s: %s", provider_id.upper(), e)

                if attempt_no < len(order):
                    next_provider = order[attempt_no]
                    self.notifier.notify(
                        f"⚠️ {provider_id} rate limit - trying {next_provider}...", "warning"
                    )
                continue

            record.provider = provider_id
            record.attempt = attempt_no
            record.fallback_used = attempt_no > 1
            record.attempts.append(ProviderAttempt(provider_id, "success"))
            self._record_success(provider_id, record.fallback_used)

            if web_search:
                logger.info("✅ Web search SUCCESS with %s", provider_id.upper())
                self.notifier.notify(f"🔍 Fetching via {provider_id.upper()} (web search)", "info")
            elif record.fallback_used:
                logger.info("✅ SUCCESS with fallback provider: %s (Priority #%d)", provider_id.upper(), attempt_no)
                self.notifier.notify(f"✅ Response via {provider_id.upper()}", "success")
            else:
                logger.info("✅ SUCCESS with primary provider: %s", provider_id.upper())
                self.notifier.notify(f"🤖 Using {provider_id.upper()}", "info")
            return text

        self.stats["exhausted"] += 1
        last_message = str(last_error) if last_error else "Unknown error"
        logger.error("💥 All %s providers exhausted", "web search" if web_search else "AI")
        prefix = "Web search failed with all providers." if web_search else "All AI providers failed."
        raise ExhaustionError(
            f"{prefix} Last error ({last_provider}): {last_message}",
            last_provider=last_provider,
            last_error=last_error,
            attempts=list(record.attempts),
        )

    def _record_success(self, provider_id: str, fallback_used: bool) -> None:
        self.stats["successful_calls"] += 1
        if fallback_used:
            self.stats["fallbacks"] += 1
        calls = self.stats["provider_calls"]
        calls[provider_id] = calls.get(provider_id, 0) + 1

    def get_stats(self) -> Dict[str, Any]:
        """Usage statistics plus the attempts of the last call."""
        last_attempts = []
        if self.last_call:
            last_attempts = [
                {"provider": a.provider, "status": a.status, "reason": a.reason}
                for a in self.last_call.attempts
            ]
        return {
            **self.stats,
            "provider_calls": dict(self.stats["provider_calls"]),
            "attempt_order": self.attempt_order(),
            "last_provider_attempts": last_attempts,
        }

    def close(self) -> None:
        """Close every cached adapter."""
        for adapter in self._adapters.values():
            adapter.close()
        self._adapters.clear()


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

def create_llm_client(
    settings: Optional[SettingsStore] = None,
    notifier: Optional[NotificationSink] = None,
) -> ProviderOrchestrator:
    """
    Create a provider orchestrator from environment settings.

    Args:
        settings: Settings store (defaults to SettingsStore.from_env())
        notifier: Where fallback notices go (defaults to the log)
    """
    return ProviderOrchestrator(settings or SettingsStore.from_env(), notifier=notifier)
