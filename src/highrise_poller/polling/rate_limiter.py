"""
Rate budget guard for the Highrise poller.

This module decides whether a poll cycle may start, given a daily API call
budget shared across a subscription's endpoints.
"""

from datetime import UTC, datetime, timedelta

import structlog

from ..config import PollConfig
from ..exceptions import AuthorizationRequired, PollDeniedError, RateLimitExceeded
from ..state.manager import Subscription

logger = structlog.get_logger(__name__)

MINUTES_PER_DAY = 24 * 60


class RateBudgetDecision:
    """Outcome of a gating check."""

    def __init__(
        self,
        allowed: bool,
        minimum_interval: timedelta,
        next_allowed_at: datetime | None,
        reason: PollDeniedError | None = None,
    ):
        self.allowed = allowed
        self.minimum_interval = minimum_interval
        self.next_allowed_at = next_allowed_at
        self.reason = reason


class RateBudgetGuard:
    """
    Gate for poll cycles.

    Every cycle spends one call per endpoint, so a subscription with N
    endpoints may poll at most ``daily_call_budget / N`` times a day.
    """

    def __init__(self, config: PollConfig | None = None):
        """
        Initialize the rate budget guard.

        Args:
            config: Polling configuration
        """
        self.config = config or PollConfig()

    def minimum_interval(self, endpoint_count: int) -> timedelta:
        """Get the minimum time between cycles for an endpoint count."""
        minutes = MINUTES_PER_DAY * endpoint_count / self.config.daily_call_budget
        return timedelta(minutes=minutes)

    def check(
        self, subscription: Subscription, now: datetime | None = None
    ) -> RateBudgetDecision:
        """
        Check whether a subscription may be polled now.

        Args:
            subscription: Subscription to check
            now: Current time (defaults to the wall clock, UTC)

        Returns:
            Decision with the denial reason when not allowed
        """
        now = now or datetime.now(UTC)
        interval = self.minimum_interval(len(subscription.endpoints))
        last_polled = subscription.last_polled
        next_allowed_at = last_polled + interval if last_polled else None

        if next_allowed_at is not None and now < next_allowed_at:
            return RateBudgetDecision(
                allowed=False,
                minimum_interval=interval,
                next_allowed_at=next_allowed_at,
                reason=RateLimitExceeded(
                    f"Subscription {subscription.subscription_id} polled too "
                    f"recently; next poll allowed at {next_allowed_at.isoformat()}",
                    retry_at=next_allowed_at,
                    context={"minimum_interval_minutes": interval.total_seconds() / 60},
                ),
            )

        if subscription.requires_authorization and not subscription.authorization:
            return RateBudgetDecision(
                allowed=False,
                minimum_interval=interval,
                next_allowed_at=next_allowed_at,
                reason=AuthorizationRequired(
                    f"Subscription {subscription.subscription_id} requires "
                    f"authorization for auth type {subscription.auth_type}",
                ),
            )

        return RateBudgetDecision(
            allowed=True,
            minimum_interval=interval,
            next_allowed_at=next_allowed_at,
        )

    def assert_can_poll(
        self, subscription: Subscription, now: datetime | None = None
    ) -> None:
        """
        Raise if a subscription may not be polled now.

        Raises:
            RateLimitExceeded: If the minimum interval has not elapsed
            AuthorizationRequired: If a required credential is missing
        """
        decision = self.check(subscription, now)
        if decision.reason is not None:
            logger.debug(
                "Poll denied",
                subscription_id=subscription.subscription_id,
                reason=decision.reason.code,
            )
            raise decision.reason
