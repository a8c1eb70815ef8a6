"""
Pytest configuration and fixtures for Highrise poller tests.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from highrise_poller.config import OAUTH_AUTH_TYPE, Settings
from highrise_poller.state.manager import (
    InMemorySubscriptionStore,
    Subscription,
    SubscriptionState,
    format_timestamp,
)


class FakeHighriseClient:
    """In-process stand-in for the Highrise client."""

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        failures: dict[str, Exception] | None = None,
    ):
        self.responses = responses or {}
        self.failures = failures or {}
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.authorization: str | None = None

    def authorize(self, authorization: str) -> None:
        self.authorization = authorization

    async def get(
        self, path: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        self.calls.append((path, dict(params or {})))
        if path in self.failures:
            raise self.failures[path]
        return self.responses[path]


class RecordingSink:
    """Event sink that records events and fails for chosen entity ids."""

    def __init__(self, fail_ids: set[str] | None = None):
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.attempts: list[str] = []
        self.fail_ids = fail_ids or set()

    async def __call__(self, event_name: str, payload: dict[str, Any]) -> None:
        entity_id = payload.get("id", [{}])[0].get("_")
        self.attempts.append(entity_id)
        if entity_id in self.fail_ids:
            raise RuntimeError(f"sink unavailable for {entity_id}")
        self.events.append((event_name, payload))

    @property
    def names(self) -> list[str]:
        return sorted(name for name, _ in self.events)


@pytest.fixture
def mock_settings() -> Settings:
    """Mock settings for testing."""
    return Settings(
        highrise_account="test-account",
        highrise_api_token="test-token",
        connector_key="highrise",
        subscription_id="sub-1",
        endpoints="people,companies",
        log_level="DEBUG",
    )


@pytest.fixture
def client_factory() -> type[FakeHighriseClient]:
    """Build fake Highrise clients."""
    return FakeHighriseClient


@pytest.fixture
def sink_factory() -> type[RecordingSink]:
    """Build recording event sinks."""
    return RecordingSink


@pytest.fixture
def now() -> datetime:
    """Current UTC time."""
    return datetime.now(UTC)


@pytest.fixture
def record_factory() -> Callable[..., dict[str, Any]]:
    """Build a record in the XML wrapper encoding."""

    def make_record(
        entity_id: str | None,
        created_at: datetime | None = None,
        **fields: str,
    ) -> dict[str, Any]:
        record: dict[str, Any] = {}
        if entity_id is not None:
            record["id"] = [{"_": entity_id, "$": {"type": "integer"}}]
        if created_at is not None:
            record["created-at"] = [
                {"_": format_timestamp(created_at), "$": {"type": "datetime"}}
            ]
        for name, value in fields.items():
            record[name.replace("_", "-")] = [{"_": value}]
        return record

    return make_record


@pytest.fixture
def subscription() -> Subscription:
    """Never-polled Private subscription with two endpoints."""
    return Subscription(
        subscription_id="sub-1",
        tenant_key="highrise",
        endpoints=["people", "companies"],
    )


@pytest.fixture
def oauth_subscription() -> Subscription:
    """OAuth subscription without a credential."""
    return Subscription(
        subscription_id="sub-oauth",
        tenant_key="highrise",
        endpoints=["people"],
        auth_type=OAUTH_AUTH_TYPE,
    )


@pytest.fixture
def store() -> InMemorySubscriptionStore:
    """In-memory subscription store."""
    return InMemorySubscriptionStore()


@pytest.fixture
def state(
    subscription: Subscription, store: InMemorySubscriptionStore
) -> SubscriptionState:
    """Write-through state for the default subscription."""
    return SubscriptionState(subscription, store)


@pytest.fixture
def ago(now: datetime) -> Callable[..., datetime]:
    """Build a time relative to now."""

    def _ago(**kwargs: float) -> datetime:
        return now - timedelta(**kwargs)

    return _ago
