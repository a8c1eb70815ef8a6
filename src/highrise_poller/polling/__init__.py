"""
Polling system for the Highrise poller.

This package contains the poll cycle components: rate gating, endpoint
fetching, change classification, event dispatch and orchestration.
"""

from .classifier import ChangeClassifier, ChangeKind
from .dispatcher import ClassifiedEvent, EventDispatcher, EventName
from .fetcher import EndpointFetcher, FetchResult, RawEntity
from .orchestrator import CyclePhase, PollOrchestrator, PollOutcome
from .rate_limiter import RateBudgetDecision, RateBudgetGuard

__all__ = [
    "ChangeClassifier",
    "ChangeKind",
    "ClassifiedEvent",
    "CyclePhase",
    "EndpointFetcher",
    "EventDispatcher",
    "EventName",
    "FetchResult",
    "PollOrchestrator",
    "PollOutcome",
    "RateBudgetDecision",
    "RateBudgetGuard",
    "RawEntity",
]
