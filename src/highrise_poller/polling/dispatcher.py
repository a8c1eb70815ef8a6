"""
Event dispatch for the Highrise poller.

This module formats classified entities as named events and hands them to
the downstream sink, containing failures per event.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ..exceptions import DispatchError
from .classifier import ChangeKind

logger = structlog.get_logger(__name__)

EventSink = Callable[[str, dict[str, Any]], Awaitable[Any] | Any]


class EventName:
    """Structured event name, formatted only when dispatched."""

    def __init__(self, tenant_key: str, entity_kind: str, change_kind: ChangeKind):
        self.tenant_key = tenant_key
        self.entity_kind = entity_kind
        self.change_kind = change_kind

    def __str__(self) -> str:
        return f"{self.tenant_key}:{self.entity_kind.lower()}:{self.change_kind.value}"

    def __repr__(self) -> str:
        return f"EventName({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EventName):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))


class ClassifiedEvent:
    """A classified entity ready for dispatch."""

    def __init__(self, name: EventName, payload: dict[str, Any]):
        self.name = name
        self.payload = payload


class EventDispatcher:
    """
    Dispatches classified events to a sink.

    The sink may be a plain or async callable taking the event name and the
    entity payload. A failing sink never propagates past ``dispatch``.
    """

    def __init__(self, sink: EventSink):
        self.sink = sink

    async def dispatch(self, event: ClassifiedEvent) -> bool:
        """
        Dispatch a single event.

        Args:
            event: Event to emit

        Returns:
            True if the sink accepted the event
        """
        event_name = str(event.name)
        logger.info("Raising event", event_name=event_name)

        try:
            result = self.sink(event_name, event.payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            error = DispatchError(
                f"Sink rejected {event_name}: {e}", event_name=event_name
            )
            logger.error(
                "Failed to dispatch event",
                event_name=error.event_name,
                error=str(error),
            )
            return False

        return True

    async def dispatch_all(self, events: list[ClassifiedEvent]) -> list[bool]:
        """Dispatch events concurrently, waiting for every one to settle."""
        if not events:
            return []
        results = await asyncio.gather(
            *(self.dispatch(event) for event in events), return_exceptions=True
        )
        return [result is True for result in results]
