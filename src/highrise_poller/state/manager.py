"""
Subscription state management for the Highrise poller.

Provides the subscription model, the per-endpoint dedup metadata, and
pluggable persistence backends:
- Memory: process-local store, used by tests and one-shot runs
- JSON: file-backed store that survives between invocations
"""

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..config import PRIVATE_AUTH_TYPE
from ..exceptions import StateStoreError

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

LAST_POLLED_KEY = "lastPolled"
SEEN_IDS_KEY = "ids"
_MISSING = object()


def format_timestamp(value: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive timestamps are taken to be UTC. Empty or unparseable values
    yield None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


class EndpointMeta:
    """Poll metadata for one endpoint of a subscription."""

    def __init__(
        self,
        last_polled: datetime | None = None,
        seen_ids: list[str] | None = None,
    ):
        self.last_polled = last_polled
        self.seen_ids: list[str] = []
        self._seen: set[str] = set()
        for entity_id in seen_ids or []:
            if entity_id not in self._seen:
                self._seen.add(entity_id)
                self.seen_ids.append(entity_id)

    def has_seen(self, entity_id: str) -> bool:
        """Check whether an identifier is already in the seen-set."""
        return entity_id in self._seen

    def record(self, entity_id: str, max_ids: int = 0) -> bool:
        """
        Add an identifier to the seen-set.

        Args:
            entity_id: Identifier to record
            max_ids: Keep only the newest N identifiers (0 keeps all)

        Returns:
            True if the identifier was not already present
        """
        if entity_id in self._seen:
            return False

        self._seen.add(entity_id)
        self.seen_ids.append(entity_id)

        if max_ids and len(self.seen_ids) > max_ids:
            dropped = self.seen_ids[: len(self.seen_ids) - max_ids]
            self.seen_ids = self.seen_ids[-max_ids:]
            self._seen.difference_update(dropped)

        return True

    def restore_seen(self, seen_ids: list[str]) -> None:
        """Replace the seen-set with an earlier snapshot."""
        self.seen_ids = list(seen_ids)
        self._seen = set(seen_ids)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            LAST_POLLED_KEY: (
                format_timestamp(self.last_polled) if self.last_polled else None
            ),
            SEEN_IDS_KEY: list(self.seen_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "EndpointMeta":
        """Create EndpointMeta from a stored dictionary."""
        data = data or {}
        return cls(
            last_polled=parse_timestamp(data.get(LAST_POLLED_KEY)),
            seen_ids=[str(entity_id) for entity_id in data.get(SEEN_IDS_KEY) or []],
        )


class Subscription:
    """A tenant's poll configuration plus its persisted poll metadata."""

    def __init__(
        self,
        subscription_id: str,
        tenant_key: str,
        endpoints: list[str],
        auth_type: str = PRIVATE_AUTH_TYPE,
        authorization: str | None = None,
        meta: dict[str, Any] | None = None,
    ):
        self.subscription_id = subscription_id
        self.tenant_key = tenant_key
        # Unique, first occurrence wins; order fixes the budget division
        self.endpoints = list(dict.fromkeys(endpoints))
        self.auth_type = auth_type
        self.authorization = authorization or None
        self.meta: dict[str, Any] = meta or {}

    def get(self, key: str) -> Any | None:
        """Get a metadata value by key."""
        return self.meta.get(key)

    def set(self, key: str, value: Any) -> None:
        """Set a metadata value by key."""
        self.meta[key] = value

    @property
    def last_polled(self) -> datetime | None:
        """Get the subscription-level last poll time."""
        return parse_timestamp(self.meta.get(LAST_POLLED_KEY))

    @property
    def requires_authorization(self) -> bool:
        """Check if the auth mode demands a credential."""
        return self.auth_type != PRIVATE_AUTH_TYPE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "subscription_id": self.subscription_id,
            "tenant_key": self.tenant_key,
            "endpoints": list(self.endpoints),
            "auth_type": self.auth_type,
            "authorization": self.authorization,
            "meta": copy.deepcopy(self.meta),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subscription":
        """Create Subscription from dictionary."""
        return cls(
            subscription_id=data["subscription_id"],
            tenant_key=data["tenant_key"],
            endpoints=data.get("endpoints", []),
            auth_type=data.get("auth_type", PRIVATE_AUTH_TYPE),
            authorization=data.get("authorization"),
            meta=copy.deepcopy(data.get("meta") or {}),
        )

    @classmethod
    def from_settings(
        cls, settings: "Settings", meta: dict[str, Any] | None = None
    ) -> "Subscription":
        """Create Subscription from application settings."""
        return cls(
            subscription_id=settings.subscription_id,
            tenant_key=settings.connector_key,
            endpoints=settings.endpoint_list,
            auth_type=settings.auth_type,
            authorization=settings.highrise_authorization,
            meta=meta,
        )


class SubscriptionStore(ABC):
    """Abstract base class for subscription persistence."""

    @abstractmethod
    def load(self, subscription_id: str) -> Subscription | None:
        """
        Load a subscription by id.

        Args:
            subscription_id: Subscription identifier

        Returns:
            Subscription or None if not found
        """
        pass

    @abstractmethod
    def save(self, subscription: Subscription) -> None:
        """
        Durably persist a subscription.

        Args:
            subscription: Subscription to store
        """
        pass

    @abstractmethod
    def delete(self, subscription_id: str) -> None:
        """
        Remove a subscription and all of its metadata.

        Args:
            subscription_id: Subscription identifier
        """
        pass

    def health_check(self) -> bool:
        """Check if the store backend is healthy."""
        return True


class InMemorySubscriptionStore(SubscriptionStore):
    """Process-local subscription store."""

    def __init__(self) -> None:
        self.subscriptions: dict[str, dict[str, Any]] = {}

    def load(self, subscription_id: str) -> Subscription | None:
        data = self.subscriptions.get(subscription_id)
        if data is None:
            return None
        return Subscription.from_dict(data)

    def save(self, subscription: Subscription) -> None:
        self.subscriptions[subscription.subscription_id] = subscription.to_dict()
        logger.debug(f"Saved subscription {subscription.subscription_id}")

    def delete(self, subscription_id: str) -> None:
        self.subscriptions.pop(subscription_id, None)


class JsonFileSubscriptionStore(SubscriptionStore):
    """Subscription store backed by a single JSON document on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StateStoreError(f"Failed to read state file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StateStoreError(f"State file {self.path} is not a JSON object")
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StateStoreError(f"Failed to write state file {self.path}: {e}") from e

    def load(self, subscription_id: str) -> Subscription | None:
        data = self._read_all().get(subscription_id)
        if data is None:
            return None
        return Subscription.from_dict(data)

    def save(self, subscription: Subscription) -> None:
        data = self._read_all()
        data[subscription.subscription_id] = subscription.to_dict()
        self._write_all(data)
        logger.debug(
            f"Saved subscription {subscription.subscription_id} to {self.path}"
        )

    def delete(self, subscription_id: str) -> None:
        data = self._read_all()
        if data.pop(subscription_id, None) is not None:
            self._write_all(data)

    def health_check(self) -> bool:
        try:
            self._read_all()
        except StateStoreError:
            return False
        return True


class SubscriptionState:
    """
    Write-through view of one subscription used during a poll cycle.

    Every ``set`` updates the in-memory subscription and saves it to the
    store before returning, so the next cycle's gating check sees it.
    """

    def __init__(
        self, subscription: Subscription, store: SubscriptionStore | None = None
    ) -> None:
        self.subscription = subscription
        self.store = store

    def get(self, key: str) -> Any | None:
        """Get a metadata value by key."""
        return self.subscription.get(key)

    def set(self, key: str, value: Any) -> None:
        """
        Set a metadata value and persist the subscription.

        If the store rejects the write, the in-memory value is restored so
        later writes cannot persist it by accident.
        """
        previous = self.subscription.meta.get(key, _MISSING)
        self.subscription.set(key, value)
        if self.store is None:
            return

        try:
            self.store.save(self.subscription)
        except Exception:
            if previous is _MISSING:
                self.subscription.meta.pop(key, None)
            else:
                self.subscription.set(key, previous)
            raise

    def mark_polled(self, when: datetime) -> None:
        """Record the subscription-level last poll time."""
        self.set(LAST_POLLED_KEY, format_timestamp(when))

    def get_endpoint_meta(self, endpoint: str) -> EndpointMeta:
        """Get endpoint metadata, empty if the endpoint was never polled."""
        return EndpointMeta.from_dict(self.get(endpoint))

    def record_seen_ids(self, endpoint: str, seen_ids: list[str]) -> None:
        """Persist an endpoint's seen-set, keeping its last poll time."""
        data = dict(self.get(endpoint) or {})
        data[SEEN_IDS_KEY] = list(seen_ids)
        data.setdefault(LAST_POLLED_KEY, None)
        self.set(endpoint, data)

    def record_endpoint_poll(self, endpoint: str, when: datetime) -> None:
        """Persist an endpoint's last poll time, keeping its seen-set."""
        data = dict(self.get(endpoint) or {})
        data[LAST_POLLED_KEY] = format_timestamp(when)
        data.setdefault(SEEN_IDS_KEY, [])
        self.set(endpoint, data)


class SubscriptionStoreFactory:
    """Factory for creating a subscription store by backend name."""

    @staticmethod
    def create_store(backend: str, **kwargs: Any) -> SubscriptionStore:
        """
        Create subscription store instance based on backend name.

        Args:
            backend: Backend name ('memory' or 'json')
            **kwargs: Backend options ('path' for json)

        Returns:
            SubscriptionStore instance

        Raises:
            ValueError: If backend is not supported
        """
        backend = backend.lower()

        if backend == "memory":
            logger.info("Creating in-memory subscription store")
            return InMemorySubscriptionStore()
        elif backend == "json":
            path = kwargs.get("path")
            if not path:
                raise ValueError("JSON subscription store requires a 'path'")
            logger.info(f"Creating JSON subscription store at {path}")
            return JsonFileSubscriptionStore(path)
        else:
            raise ValueError(
                f"Unknown state backend: {backend}. Supported backends: 'memory', 'json'"
            )

    @staticmethod
    def get_supported_backends() -> list[str]:
        """Get list of supported state backends."""
        return ["memory", "json"]
