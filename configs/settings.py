"""
Configuration management for the FinQuery assistant.

This module handles all configuration loading and validation.
Provider credentials, models and endpoints come from the environment
(.env file supported), and are exposed through a small mutable
SettingsStore so the priority order can change at runtime.
"""
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
# interpolate=False prevents $VAR expansion in values (important for keys with $ characters)
load_dotenv(interpolate=False)


# =============================================================================
# CONFIGURATION VALIDATION
# =============================================================================

class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


PLACEHOLDER_VALUES = {
    "",
    "your_gemini_api_key_here",
    "your_google_api_key_here",
    "your_groq_api_key_here",
    "your_openai_api_key_here",
    "your_perplexity_api_key_here",
}


def is_placeholder(value: Optional[str]) -> bool:
    """True when a credential is unset or still holds a template value."""
    return value is None or value.strip() in PLACEHOLDER_VALUES


# =============================================================================
# BASE PATHS
# =============================================================================

BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"

DATASET_PATH = os.getenv("DATASET_PATH", str(DATA_DIR / "finance.json"))

# =============================================================================
# PROVIDER CONFIGURATION
# =============================================================================

# Order matters: this is also the default priority order
SUPPORTED_PROVIDERS = ["gemini", "groq", "chatgpt", "perplexity"]

PROVIDER_DEFAULTS = {
    "gemini": {
        "display_name": "Gemini",
        "key_env": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
        "model": "gemini-2.0-flash-lite",
        "endpoint": "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
    },
    "groq": {
        "display_name": "Groq",
        "key_env": ("GROQ_API_KEY",),
        "model": "llama-3.1-8b-instant",
        "endpoint": "https://api.groq.com/openai/v1/chat/completions",
    },
    "chatgpt": {
        "display_name": "ChatGPT",
        "key_env": ("OPENAI_API_KEY", "CHATGPT_API_KEY"),
        "model": "gpt-4o-mini",
        "endpoint": "https://api.openai.com/v1/chat/completions",
    },
    "perplexity": {
        "display_name": "Perplexity",
        "key_env": ("PERPLEXITY_API_KEY",),
        "model": "sonar",
        "endpoint": "https://api.perplexity.ai/chat/completions",
    },
}

AI_PRIORITY_ORDER = [
    p.strip().lower()
    for p in os.getenv("AI_PRIORITY_ORDER", ",".join(SUPPORTED_PROVIDERS)).split(",")
    if p.strip()
]

# Hard cap on providers tried for one logical call
MAX_PROVIDER_ATTEMPTS = int(os.getenv("MAX_PROVIDER_ATTEMPTS", "3"))

REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "60"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.3"))

# =============================================================================
# SYSTEM SETTINGS
# =============================================================================

VERBOSE = os.getenv("VERBOSE", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if VERBOSE else "INFO").upper()
QUERY_TIMEOUT_SECONDS = int(os.getenv("QUERY_TIMEOUT_SECONDS", "120"))

# USD -> INR rate reported to the model in investment metadata
EXCHANGE_RATE = float(os.getenv("EXCHANGE_RATE", "83"))


@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings for one generative-text provider."""
    provider_id: str
    display_name: str
    model: str
    endpoint: str
    api_key: Optional[str] = None

    @property
    def has_credential(self) -> bool:
        return not is_placeholder(self.api_key)


def _read_key(env_names) -> Optional[str]:
    for name in env_names:
        value = os.getenv(name)
        if not is_placeholder(value):
            return value.strip()
    return None


def load_provider_configs() -> Dict[str, ProviderConfig]:
    """Build a ProviderConfig for every supported provider from the environment."""
    configs = {}
    for provider_id, defaults in PROVIDER_DEFAULTS.items():
        prefix = provider_id.upper()
        configs[provider_id] = ProviderConfig(
            provider_id=provider_id,
            display_name=defaults["display_name"],
            model=os.getenv(f"{prefix}_MODEL", defaults["model"]),
            endpoint=os.getenv(f"{prefix}_ENDPOINT", defaults["endpoint"]),
            api_key=_read_key(defaults["key_env"]),
        )
    return configs


@dataclass
class SettingsStore:
    """
    User-editable provider settings.

    The orchestrator reads priority_order and providers on every call,
    so changes made here take effect on the next question.
    """
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    priority_order: List[str] = field(default_factory=lambda: list(SUPPORTED_PROVIDERS))
    max_attempts: int = MAX_PROVIDER_ATTEMPTS

    @classmethod
    def from_env(cls) -> "SettingsStore":
        return cls(
            providers=load_provider_configs(),
            priority_order=list(AI_PRIORITY_ORDER),
            max_attempts=MAX_PROVIDER_ATTEMPTS,
        )

    def get(self, provider_id: str) -> Optional[ProviderConfig]:
        return self.providers.get(provider_id)

    def configured_providers(self) -> List[str]:
        """Provider ids that have a usable credential."""
        return [pid for pid, cfg in self.providers.items() if cfg.has_credential]

    def set_priority_order(self, order: List[str]) -> None:
        unknown = [p for p in order if p not in self.providers]
        if unknown:
            raise ConfigurationError(f"Unknown AI provider(s) in priority order: {', '.join(unknown)}")
        self.priority_order = list(order)

    def set_api_key(self, provider_id: str, api_key: Optional[str]) -> None:
        config = self.providers.get(provider_id)
        if config is None:
            raise ConfigurationError(f"Unknown AI provider: {provider_id}")
        self.providers[provider_id] = replace(config, api_key=api_key)


def validate_configuration(settings: Optional[SettingsStore] = None) -> SettingsStore:
    """
    Validate provider configuration and return the settings store.

    Raises:
        ConfigurationError: If no provider is usable or the priority order is invalid
    """
    settings = settings or SettingsStore.from_env()
    errors = []

    unknown = [p for p in settings.priority_order if p not in settings.providers]
    if unknown:
        errors.append(f"AI_PRIORITY_ORDER contains unknown providers: {', '.join(unknown)}")

    if not settings.configured_providers():
        errors.append(
            "No AI provider configured. Set at least one of GEMINI_API_KEY, "
            "GROQ_API_KEY, OPENAI_API_KEY or PERPLEXITY_API_KEY in your .env file."
        )

    if settings.max_attempts < 1:
        errors.append(f"MAX_PROVIDER_ATTEMPTS must be at least 1, got: {settings.max_attempts}")

    if errors:
        error_msg = "\n\nConfiguration Errors:\n" + "\n".join(f"  • {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return settings


# =============================================================================
# SYSTEM INSTRUCTIONS
# =============================================================================

DEFAULT_SYSTEM_INSTRUCTION = "You are a helpful financial assistant."

SYSTEM_INSTRUCTIONS = {
    "general": DEFAULT_SYSTEM_INSTRUCTION,

    "expenses": """You are an expense analysis expert. Analyze the expense data provided to answer user queries.
You can: calculate totals, group by categories/months/years, identify spending patterns, compare periods.
Provide insights with specific numbers, dates, and trends.
Use Indian Rupee (₹) for all amounts.""",

    "investments": """You are an expert investment portfolio analyst and financial advisor. Analyze the investment data provided to answer user queries.

Your capabilities:
- Calculate total portfolio value and asset allocation percentages
- Analyze diversification across investment types (SHARES, GOLD, FD, EPF)
- Compare SHORT_TERM vs LONG_TERM allocation
- Identify portfolio gaps and missing asset classes
- Provide diversification recommendations based on risk profile and goals

Investment Data Structure:
- All investments have an "amount" field in INR (Indian Rupees)
- Use the "amount" field for all calculations and analysis

Use Indian Rupee (₹) for all amounts.""",

    "credit_cards": """You are a credit card advisor. Use ONLY the stored benefit information provided. DO NOT search online.
Analyze the stored benefits data to recommend the best card for user queries.
Focus on: reward rates, category-specific benefits, cashback, milestone bonuses.
Never ask for or reference sensitive information like card numbers or CVV.""",
}

QUERY_RESPONSE_INSTRUCTION = """Answer by returning ONLY a JSON query object that follows the query instructions
from the metadata (operation, filterCode, aggregation, aggregationField, groupBy, explanation).
Do not add any other text."""

CARD_BENEFITS_INSTRUCTION = """You are a credit card benefits researcher for the Indian market.
Search the card issuer's official website and list the card's reward rules for every spending category:
healthcare, groceries, fuel, dining, entertainment, travel, online and offline shopping, utilities,
insurance, education and lifestyle. Include caps, exclusions (0 rewards), annual fee and waiver
conditions, welcome benefits and the reward point redemption value.
Use simple bullet points and ### headings, no tables and no LaTeX. Amounts in Indian Rupees (₹) only.
Use only official bank sources; if a benefit is not listed there, do not make it up."""

CARD_BENEFITS_PROMPT = (
    'Search the official "{card_name}" bank website and fetch the complete reward rules for all '
    "spending categories. Do not truncate or skip any category. Use bullet points, no tables, "
    "amounts in rupees (₹)."
)


def get_system_instruction(mode: Optional[str]) -> str:
    """System instruction for a context mode (falls back to the generic assistant)."""
    if not mode:
        return DEFAULT_SYSTEM_INSTRUCTION
    return SYSTEM_INSTRUCTIONS.get(mode, DEFAULT_SYSTEM_INSTRUCTION)
