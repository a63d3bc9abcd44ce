import os
import sys

import pytest

# Add src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))

from progress_kv.config import StaticFeatureFlags
from progress_kv.exceptions import StoreUnavailable
from progress_kv.metrics import StorageMetrics
from progress_kv.storage.memory import InMemoryStore
from progress_kv.storage.migration import MigrationStore

PROGRESS_KV_ENV_VARS = (
    "UPSTASH_REDIS_REST_URL",
    "UPSTASH_REDIS_REST_TOKEN",
    "UPSTASH_NAMESPACE",
    "KV_REST_API_URL",
    "KV_REST_API_TOKEN",
    "APP_ENV",
    "LOG_NS_WARN",
    "USE_KV_FALLBACK",
    "DUAL_WRITE",
    "MIGRATION_DRY_RUN",
    "PROGRESS_KV_REQUEST_TIMEOUT",
    "PROGRESS_KV_METRICS_WINDOW_SECONDS",
    "PROGRESS_KV_METRICS_MAX_SAMPLES",
)


class FakeStore(InMemoryStore):
    """In-memory store that counts calls and can be told to fail."""

    def __init__(self, name="fake", namespace=None, data=None):
        super().__init__(name=name, namespace=namespace, data=data)
        self.get_calls = []
        self.set_calls = []
        self.delete_calls = []
        self.fail_get = False
        self.fail_set = False
        self.fail_delete = False
        # When set, gets fail once this many calls have succeeded
        self.fail_get_after = None
        # When set, writes store this instead of the given value
        self.corrupt_with = None

    async def get(self, key):
        self.get_calls.append(key)
        if self.fail_get or (self.fail_get_after is not None and len(self.get_calls) > self.fail_get_after):
            raise StoreUnavailable(self.name, key, "mock get failure")
        return await super().get(key)

    async def set(self, key, value):
        self.set_calls.append((key, value))
        if self.fail_set:
            raise StoreUnavailable(self.name, key, "mock set failure")
        await super().set(key, self.corrupt_with if self.corrupt_with is not None else value)

    async def delete(self, key):
        self.delete_calls.append(key)
        if self.fail_delete:
            raise StoreUnavailable(self.name, key, "mock delete failure")
        await super().delete(key)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of the tests."""
    for name in PROGRESS_KV_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield monkeypatch


@pytest.fixture
def make_store():
    """Factory for additional FakeStore instances."""
    return FakeStore


@pytest.fixture
def primary():
    return FakeStore(name="upstash", namespace="test")


@pytest.fixture
def legacy():
    return FakeStore(name="vercelKV")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics(clock):
    return StorageMetrics(window_seconds=3600, max_samples=1000, clock=clock)


@pytest.fixture
def flags():
    return StaticFeatureFlags(fallback_enabled=False, dual_write_enabled=False)


@pytest.fixture
def migration_store(primary, legacy, metrics, flags):
    return MigrationStore(primary=primary, legacy=legacy, metrics=metrics, flags=flags)
