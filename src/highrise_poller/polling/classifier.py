"""
Change classification for the Highrise poller.

This module decides whether a fetched entity is new or modified and keeps
the endpoint's seen-set of identifiers up to date.
"""

from datetime import datetime
from enum import Enum

import structlog

from ..state.manager import EndpointMeta, SubscriptionState
from .fetcher import RawEntity

logger = structlog.get_logger(__name__)


class ChangeKind(str, Enum):
    """Kind of change an entity represents."""

    NEW = "new"
    MODIFIED = "modified"


class ChangeClassifier:
    """
    Classifies entities as new or modified.

    An entity is new when its creation timestamp is after the endpoint's
    last poll. Identifier history does not override that signal unless
    ``strict_identity`` is set, in which case an identifier already in the
    seen-set is always modified.
    """

    def __init__(
        self,
        state: SubscriptionState,
        strict_identity: bool = False,
        max_seen_ids: int = 0,
    ):
        """
        Initialize the change classifier.

        Args:
            state: Subscription state the seen-sets are persisted through
            strict_identity: Require an unseen identifier for NEW
            max_seen_ids: Seen identifiers kept per endpoint (0 keeps all)
        """
        self.state = state
        self.strict_identity = strict_identity
        self.max_seen_ids = max_seen_ids

    def decide(
        self,
        entity: RawEntity,
        endpoint_meta: EndpointMeta,
        endpoint_last_poll: datetime | None,
    ) -> ChangeKind:
        """Decide the change kind without touching the seen-set."""
        # Without an id there is no dedup, so the timestamp is not trusted
        if entity.entity_id is None:
            return ChangeKind.MODIFIED

        if (
            entity.created_at is None
            or endpoint_last_poll is None
            or entity.created_at <= endpoint_last_poll
        ):
            return ChangeKind.MODIFIED

        if self.strict_identity and endpoint_meta.has_seen(entity.entity_id):
            return ChangeKind.MODIFIED

        return ChangeKind.NEW

    def classify(
        self,
        endpoint: str,
        entity: RawEntity,
        endpoint_meta: EndpointMeta,
        endpoint_last_poll: datetime | None,
    ) -> ChangeKind:
        """
        Classify an entity and record its identifier.

        Args:
            endpoint: Endpoint the entity came from
            entity: Fetched entity
            endpoint_meta: Endpoint metadata, mutated in place
            endpoint_last_poll: Endpoint last poll time before this cycle

        Returns:
            The change kind

        Raises:
            Exception: Whatever the state store raised; the seen-set is left
                as it was before the call
        """
        change_kind = self.decide(entity, endpoint_meta, endpoint_last_poll)

        previous = list(endpoint_meta.seen_ids)
        if entity.entity_id is not None and endpoint_meta.record(
            entity.entity_id, self.max_seen_ids
        ):
            try:
                self.state.record_seen_ids(endpoint, endpoint_meta.seen_ids)
            except Exception:
                endpoint_meta.restore_seen(previous)
                raise

        logger.debug(
            "Classified entity",
            endpoint=endpoint,
            entity_id=entity.entity_id,
            change_kind=change_kind.value,
        )
        return change_kind
