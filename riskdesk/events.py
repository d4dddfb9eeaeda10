"""Domain events published by the execution engine."""

import asyncio
import logging
from abc import ABC
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from riskdesk.time_utils import now_utc

if TYPE_CHECKING:
    from riskdesk.execution.engine import ExecutionResult

log = logging.getLogger(__name__)


__all__ = [
    "DomainEvent",
    "EventDispatcher",
    "EventHandler",
    "ExecutionCompletedEvent",
    "event",
    "get_dispatcher",
]


def event(cls):
    return dataclass(frozen=True, slots=True, kw_only=True)(cls)


@dataclass(frozen=True, slots=True, kw_only=True)
class DomainEvent(ABC):
    timestamp: datetime = field(default_factory=now_utc)


@event
class ExecutionCompletedEvent(DomainEvent):
    """One finished ``execute_trade_command`` call, executed or not."""
    command_type: str
    command: dict[str, Any]
    result: "ExecutionResult"

    @property
    def executed(self) -> bool:
        return self.result.executed


EventHandler = Callable[[DomainEvent], None | Awaitable[None]]


class EventDispatcher:
    """Async dispatcher keyed by event class.

    Handlers may be sync or async. A failing handler is logged and the
    remaining handlers still run.
    """

    def __init__(self):
        self._handlers: dict[type[DomainEvent], list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    async def publish(self, evt: DomainEvent) -> None:
        """
        Deliver ``evt`` to handlers of its exact type, in subscription order.

        Args:
            evt: The domain event to dispatch
        """
        for handler in list(self._handlers[type(evt)]):
            try:
                result = handler(evt)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                log.error(
                    "Event handler %s failed for %s: %s",
                    getattr(handler, "__name__", repr(handler)),
                    type(evt).__name__,
                    e,
                    exc_info=True,
                )


_dispatcher: EventDispatcher | None = None


def get_dispatcher() -> EventDispatcher:
    """Process-wide dispatcher, created on first use."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = EventDispatcher()
    return _dispatcher
