"""
Conftest for FinQuery tests.

Ensures the project root is on sys.path so that 'finquery' and 'configs'
resolve, and provides shared fixtures: sample records, a scripted fake
provider adapter, and settings with test credentials.
"""

import sys
from pathlib import Path
from typing import Dict, List

import pytest

# Add project root to sys.path
project_root = str(Path(__file__).parent.parent)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from configs import PROVIDER_DEFAULTS, ProviderConfig, SettingsStore
from finquery.adapters import BackendAdapter, InMemoryDatasetStore
from finquery.adapters.provider_adapter import ProviderError
from finquery.utils import CollectingNotificationSink


# =============================================================================
# SAMPLE DATA
# =============================================================================

@pytest.fixture
def expenses() -> List[Dict]:
    return [
        {"id": 1, "title": "Weekly groceries", "amount": 5000, "category": "Groceries", "date": "2024-11-05"},
        {"id": 2, "title": "Flight to Goa", "amount": 12000, "category": "Travel", "date": "2024-11-20"},
    ]


@pytest.fixture
def more_expenses() -> List[Dict]:
    return [
        {"id": 1, "title": "Groceries", "amount": "1200", "category": "Groceries", "date": "2024-11-03"},
        {"id": 2, "title": "Vegetables", "amount": "800.50", "category": "Groceries", "date": "2024-11-17"},
        {"id": 3, "title": "Flight", "amount": 5000, "category": "Travel", "date": "2024-12-22"},
        {"id": 4, "title": "Electricity", "amount": "n/a", "category": "Utilities", "date": "2023-10-28"},
        {"id": 5, "title": "Gift", "amount": 700, "category": "Shopping", "createdAt": "2024-12-01T10:00:00Z"},
    ]


@pytest.fixture
def investments() -> List[Dict]:
    return [
        {"id": 1, "name": "NIFTY ETF", "type": "SHARES", "goal": "LONG_TERM", "amount": 50000,
         "currency": "INR", "createdAt": "2023-04-10T00:00:00Z"},
        {"id": 2, "name": "Apple", "type": "SHARES", "goal": "LONG_TERM", "amount": 83000,
         "currency": "USD", "createdAt": "2024-01-15T00:00:00Z"},
        {"id": 3, "name": "SBI FD", "type": "FD", "goal": "SHORT_TERM", "amount": 100000,
         "currency": "INR", "createdAt": "2024-06-01T00:00:00Z"},
    ]


@pytest.fixture
def store(expenses, investments) -> InMemoryDatasetStore:
    return InMemoryDatasetStore(expenses=expenses, investments=investments)


# =============================================================================
# PROVIDERS
# =============================================================================

def make_settings(keys: Dict[str, str], order: List[str] = None, max_attempts: int = 3) -> SettingsStore:
    """Settings with every supported provider, credentials only for `keys`."""
    providers = {
        pid: ProviderConfig(
            provider_id=pid,
            display_name=defaults["display_name"],
            model=defaults["model"],
            endpoint=defaults["endpoint"],
            api_key=keys.get(pid),
        )
        for pid, defaults in PROVIDER_DEFAULTS.items()
    }
    return SettingsStore(
        providers=providers,
        priority_order=list(order or PROVIDER_DEFAULTS.keys()),
        max_attempts=max_attempts,
    )


@pytest.fixture
def settings() -> SettingsStore:
    return make_settings({pid: f"test-{pid}-key" for pid in PROVIDER_DEFAULTS})


class FakeAdapter(BackendAdapter):
    """
    Adapter that replays a script instead of calling a service.

    Each script entry is either a reply string or an exception to raise.
    The last entry repeats once the script runs out.
    """

    def __init__(self, config: ProviderConfig, script: list, log: list):
        super().__init__(config)
        self.script = list(script)
        self.log = log
        self.closed = False

    def call(self, prompt, context=None):
        self.ensure_credential()
        self.log.append((self.provider_id, prompt, context))
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, BaseException):
            raise step
        self.call_count += 1
        return step

    def close(self):
        self.closed = True


class FakeBackend:
    """Adapter factory for the orchestrator; scripts are keyed by provider id."""

    def __init__(self, scripts: Dict[str, list] = None, default: str = "ok"):
        self.scripts = scripts or {}
        self.default = default
        self.calls: list = []
        self.adapters: List[FakeAdapter] = []

    def __call__(self, config: ProviderConfig) -> FakeAdapter:
        adapter = FakeAdapter(config, self.scripts.get(config.provider_id, [self.default]), self.calls)
        self.adapters.append(adapter)
        return adapter

    @property
    def providers_called(self) -> List[str]:
        return [provider for provider, _, _ in self.calls]


def rate_limited(provider: str) -> ProviderError:
    return ProviderError(f"{provider}: Resource has been exhausted (e.g. check quota). [HTTP 429]",
                         provider=provider, status_code=429)


def bad_request(provider: str) -> ProviderError:
    return ProviderError(f"{provider}: Invalid model name [HTTP 400]", provider=provider, status_code=400)


@pytest.fixture
def notifier() -> CollectingNotificationSink:
    return CollectingNotificationSink()
