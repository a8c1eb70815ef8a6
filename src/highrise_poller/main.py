"""
Main application entry point for the Highrise poller.

This module configures logging, loads the subscription, and runs a single
poll cycle. Scheduling repeated cycles is left to the caller (cron, a job
runner), which must not start two cycles for one subscription at once.
"""

import asyncio
import logging
import sys
from typing import Any

import structlog

from .config import Settings, get_settings
from .exceptions import RateLimitExceeded
from .polling.dispatcher import EventSink
from .polling.orchestrator import PollClient, PollOutcome, poll_subscription
from .state.manager import Subscription, SubscriptionState, SubscriptionStoreFactory


def setup_logging(settings: Settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level), format="%(message)s"
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if settings.log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def log_event(event_name: str, payload: dict[str, Any]) -> None:
    """Default sink: write each event to the log."""
    structlog.get_logger("highrise_poller.events").info(
        "Event raised", event_name=event_name, payload=payload
    )


def load_subscription(settings: Settings, stored: Subscription | None) -> Subscription:
    """Build the subscription from settings, keeping any stored poll metadata."""
    return Subscription.from_settings(
        settings, meta=stored.meta if stored is not None else None
    )


async def run_once(
    settings: Settings,
    sink: EventSink | None = None,
    client: PollClient | None = None,
) -> PollOutcome:
    """Load subscription state and run one poll cycle."""
    store = SubscriptionStoreFactory.create_store(
        settings.state_backend, path=settings.state_file
    )
    subscription = load_subscription(settings, store.load(settings.subscription_id))
    state = SubscriptionState(subscription, store)
    return await poll_subscription(settings, state, sink or log_event, client)


def main() -> None:
    """Main entry point."""
    settings = get_settings()
    setup_logging(settings)
    logger = structlog.get_logger()

    logger.info(
        "Starting Highrise poller",
        account=settings.highrise_account,
        subscription_id=settings.subscription_id,
        endpoints=settings.endpoint_list,
        state_backend=settings.state_backend,
    )

    outcome = asyncio.run(run_once(settings))

    if outcome.succeeded:
        return

    logger.warning(
        "Poll cycle did not run",
        reason=outcome.error.code if outcome.error else None,
    )
    # Rate-limit denials exit 0; the next scheduled run retries
    if not isinstance(outcome.error, RateLimitExceeded):
        sys.exit(1)


if __name__ == "__main__":
    main()
