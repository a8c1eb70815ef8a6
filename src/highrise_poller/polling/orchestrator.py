"""
Polling orchestrator for the Highrise poller.

This module runs one poll cycle for a subscription: gate on the rate budget,
fan out to every endpoint concurrently, classify and dispatch what comes
back, and record poll state. A cycle never raises to its caller.
"""

import asyncio
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

import structlog

from ..config import PollConfig, Settings
from ..exceptions import FetchError, PollDeniedError
from ..highrise_client import HighriseClient
from ..state.manager import SubscriptionState
from .classifier import ChangeClassifier, ChangeKind
from .dispatcher import ClassifiedEvent, EventDispatcher, EventName, EventSink
from .fetcher import EndpointFetcher, FetchClient
from .metrics import PollingCycleMetrics
from .rate_limiter import RateBudgetGuard

logger = structlog.get_logger(__name__)


class PollClient(FetchClient, Protocol):
    """Interface the orchestrator needs from an API client."""

    def authorize(self, authorization: str) -> None: ...


class CyclePhase(str, Enum):
    """States of a poll cycle."""

    GATING = "gating"
    AUTHORIZING = "authorizing"
    FETCHING = "fetching"
    DISPATCHING = "dispatching"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class PollOutcome:
    """
    Result of a poll cycle.

    Only the gate is reported: a denial, or a gate that could not be
    evaluated, ends ``FAILED``. A cycle in which some endpoints or events
    failed still ends ``DONE``.
    """

    def __init__(
        self,
        phase: CyclePhase,
        subscription_id: str,
        started_at: datetime,
        error: PollDeniedError | None = None,
    ):
        self.phase = phase
        self.subscription_id = subscription_id
        self.started_at = started_at
        self.error = error

    @property
    def succeeded(self) -> bool:
        """Check if the cycle ran."""
        return self.phase == CyclePhase.DONE


class PollOrchestrator:
    """
    Orchestrates a poll cycle across a subscription's endpoints.

    Endpoints are polled concurrently and isolated from each other: a
    failed fetch leaves that endpoint's metadata untouched and does not
    affect its siblings.
    """

    def __init__(
        self,
        client: PollClient,
        config: PollConfig | None = None,
        guard: RateBudgetGuard | None = None,
    ):
        """
        Initialize the polling orchestrator.

        Args:
            client: API client used for every endpoint fetch
            config: Polling configuration
            guard: Rate budget guard (built from config when omitted)
        """
        self.client = client
        self.config = config or PollConfig()
        self.guard = guard or RateBudgetGuard(self.config)
        self.fetcher = EndpointFetcher(client, self.config.endpoint_singulars)

    async def poll_subscription(
        self, state: SubscriptionState, sink: EventSink
    ) -> PollOutcome:
        """
        Run one poll cycle.

        Args:
            state: Subscription state, persisted as the cycle progresses
            sink: Callable receiving ``(event_name, payload)``

        Returns:
            The cycle outcome
        """
        subscription = state.subscription
        now = datetime.now(UTC)
        phase = CyclePhase.GATING

        try:
            decision = self.guard.check(subscription, now)
        except Exception as e:
            logger.error(
                "Poll cycle gating failed",
                subscription_id=subscription.subscription_id,
                error=str(e),
            )
            return PollOutcome(CyclePhase.FAILED, subscription.subscription_id, now)

        if decision.reason is not None:
            logger.error(
                "Poll cycle denied",
                subscription_id=subscription.subscription_id,
                reason=decision.reason.code,
                error=str(decision.reason),
            )
            return PollOutcome(
                CyclePhase.FAILED,
                subscription.subscription_id,
                now,
                error=decision.reason,
            )

        metrics = PollingCycleMetrics(
            subscription_id=subscription.subscription_id, start_time=now
        )

        try:
            phase = CyclePhase.AUTHORIZING
            state.mark_polled(now)

            if subscription.authorization:
                logger.info("Setting auth")
                self.client.authorize(subscription.authorization)
            else:
                logger.info("No auth to set")

            phase = CyclePhase.FETCHING
            classifier = ChangeClassifier(
                state,
                strict_identity=self.config.strict_identity,
                max_seen_ids=self.config.max_seen_ids,
            )
            dispatcher = EventDispatcher(sink)

            logger.info(
                "Polling endpoints",
                subscription_id=subscription.subscription_id,
                endpoints=subscription.endpoints,
            )
            tasks = [
                asyncio.create_task(
                    self._poll_endpoint(
                        endpoint, state, classifier, dispatcher, metrics
                    )
                )
                for endpoint in subscription.endpoints
            ]
            results = await asyncio.gather(*tasks, return_exceptions=True)

            phase = CyclePhase.FINALIZING
            for endpoint, result in zip(subscription.endpoints, results):
                if isinstance(result, BaseException):
                    logger.error(
                        "Endpoint pipeline failed",
                        endpoint=endpoint,
                        error=str(result),
                    )
                    metrics.record_error(f"{endpoint}: {result}")

        except Exception as e:
            logger.error("Polling error", phase=phase.value, error=str(e))
            metrics.record_error(f"{phase.value}: {e}")

        metrics.finish()
        logger.info("Done with poll", subscription_id=subscription.subscription_id)
        return PollOutcome(CyclePhase.DONE, subscription.subscription_id, now)

    async def _poll_endpoint(
        self,
        endpoint: str,
        state: SubscriptionState,
        classifier: ChangeClassifier,
        dispatcher: EventDispatcher,
        metrics: PollingCycleMetrics,
    ) -> None:
        """Fetch, classify and dispatch one endpoint."""
        meta = state.get_endpoint_meta(endpoint)

        try:
            result = await self.fetcher.fetch(endpoint, meta.last_polled)
        except FetchError as e:
            metrics.endpoints_failed += 1
            metrics.record_error(f"{endpoint}: {e}")
            logger.error(
                "Failed to fetch endpoint",
                endpoint=endpoint,
                status_code=e.status_code,
                error=str(e),
            )
            return

        metrics.endpoints_polled += 1
        metrics.entities_fetched += len(result.entities)

        logger.debug(
            "Handling results",
            endpoint=endpoint,
            phase=CyclePhase.DISPATCHING.value,
            entity_count=len(result.entities),
        )

        events = []
        unclassified = 0
        for entity in result.entities:
            try:
                change_kind = classifier.classify(
                    endpoint, entity, meta, result.last_polled
                )
            except Exception as e:
                unclassified += 1
                metrics.record_error(f"{endpoint}/{entity.entity_id}: {e}")
                logger.error(
                    "Failed to classify entity",
                    endpoint=endpoint,
                    entity_id=entity.entity_id,
                    error=str(e),
                )
                continue

            if change_kind == ChangeKind.NEW:
                metrics.new_events += 1
            else:
                metrics.modified_events += 1

            events.append(
                ClassifiedEvent(
                    EventName(
                        state.subscription.tenant_key, result.entity_kind, change_kind
                    ),
                    entity.payload,
                )
            )

        delivered = await dispatcher.dispatch_all(events)
        metrics.events_dispatched += sum(delivered)
        metrics.events_failed += len(delivered) - sum(delivered)

        # Undispatched entities must come back in the next since= fetch
        if unclassified:
            logger.warning(
                "Endpoint poll time held back",
                endpoint=endpoint,
                unclassified=unclassified,
            )
            return

        state.record_endpoint_poll(endpoint, result.fetched_at)


async def poll_subscription(
    settings: Settings,
    state: SubscriptionState,
    sink: EventSink,
    client: PollClient | None = None,
) -> PollOutcome:
    """Run one poll cycle with components built from settings."""
    client = client or HighriseClient(settings.client_config)
    orchestrator = PollOrchestrator(client, settings.poll_config)
    return await orchestrator.poll_subscription(state, sink)
