"""Config module initialization."""
from .settings import (
    # Core configuration
    DATASET_PATH,
    VERBOSE,
    LOG_LEVEL,
    QUERY_TIMEOUT_SECONDS,
    EXCHANGE_RATE,
    # Provider configuration
    SUPPORTED_PROVIDERS,
    PROVIDER_DEFAULTS,
    AI_PRIORITY_ORDER,
    MAX_PROVIDER_ATTEMPTS,
    REQUEST_TIMEOUT_SECONDS,
    LLM_TEMPERATURE,
    ProviderConfig,
    SettingsStore,
    load_provider_configs,
    is_placeholder,
    # Prompts
    SYSTEM_INSTRUCTIONS,
    QUERY_RESPONSE_INSTRUCTION,
    CARD_BENEFITS_INSTRUCTION,
    CARD_BENEFITS_PROMPT,
    get_system_instruction,
    # Validation
    ConfigurationError,
    validate_configuration,
)

__all__ = [
    # Core configuration
    "DATASET_PATH",
    "VERBOSE",
    "LOG_LEVEL",
    "QUERY_TIMEOUT_SECONDS",
    "EXCHANGE_RATE",
    # Provider configuration
    "SUPPORTED_PROVIDERS",
    "PROVIDER_DEFAULTS",
    "AI_PRIORITY_ORDER",
    "MAX_PROVIDER_ATTEMPTS",
    "REQUEST_TIMEOUT_SECONDS",
    "LLM_TEMPERATURE",
    "ProviderConfig",
    "SettingsStore",
    "load_provider_configs",
    "is_placeholder",
    # Prompts
    "SYSTEM_INSTRUCTIONS",
    "QUERY_RESPONSE_INSTRUCTION",
    "CARD_BENEFITS_INSTRUCTION",
    "CARD_BENEFITS_PROMPT",
    "get_system_instruction",
    # Validation
    "ConfigurationError",
    "validate_configuration",
]
