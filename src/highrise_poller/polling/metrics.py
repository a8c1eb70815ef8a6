"""
Metrics collection for the polling system.

Per-cycle counters, logged when a cycle finishes. They are the only record
of a degraded cycle besides the error logs.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class PollingCycleMetrics:
    """Metrics for a single polling cycle."""

    subscription_id: str
    start_time: datetime
    end_time: datetime | None = None
    endpoints_polled: int = 0
    endpoints_failed: int = 0
    entities_fetched: int = 0
    new_events: int = 0
    modified_events: int = 0
    events_dispatched: int = 0
    events_failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get cycle duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    @property
    def degraded(self) -> bool:
        """Check if any endpoint or event failed."""
        return bool(self.endpoints_failed or self.events_failed or self.errors)

    def record_error(self, error: str) -> None:
        """Record an error message."""
        self.errors.append(error)

    def finish(self) -> None:
        """Close the cycle and log its summary."""
        self.end_time = datetime.now(UTC)
        logger.info("Poll cycle summary", **self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "subscription_id": self.subscription_id,
            "duration_seconds": self.duration_seconds,
            "endpoints_polled": self.endpoints_polled,
            "endpoints_failed": self.endpoints_failed,
            "entities_fetched": self.entities_fetched,
            "new_events": self.new_events,
            "modified_events": self.modified_events,
            "events_dispatched": self.events_dispatched,
            "events_failed": self.events_failed,
            "degraded": self.degraded,
            "errors": list(self.errors),
        }
