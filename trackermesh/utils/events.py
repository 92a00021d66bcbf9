"""Typed notifications for trackermesh components.

Every component owns an :class:`EventEmitter` and declares the notifications it
sends as enum members. Callers register handlers per notification kind; there
is no process-wide bus. Delivery is synchronous and in registration order so
each state transition is fully processed before the next signal is handled.
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Union

from trackermesh.utils.exceptions import TrackerMeshError
from trackermesh.utils.logging_config import get_logger
from trackermesh.utils.tasks import BackgroundTaskGroup

logger = get_logger(__name__)


class SessionEvent(Enum):
    """Public notifications of a discovery session."""

    PEER_CONNECT = "peerconnect"
    PEER_CLOSE = "peerclose"
    TRACKER_CONNECT = "trackerconnect"
    TRACKER_WARNING = "trackerwarning"


class TrackerEvent(Enum):
    """Signals a tracker client sends to the registry."""

    PEER = "peer"
    UPDATE = "update"
    WARNING = "warning"


class ChannelEvent(Enum):
    """Signals a peer channel sends about its own lifecycle."""

    CONNECT = "connect"
    ERROR = "error"
    CLOSE = "close"


EventName = Union[str, Enum]
Handler = Callable[..., Any]


class EventError(TrackerMeshError):
    """Exception raised for event-related errors."""


def event_name(event: EventName) -> str:
    """Normalize an enum member or string to the notification name."""
    name = event.value if isinstance(event, Enum) else event
    if not isinstance(name, str) or not name:
        msg = f"Invalid event name: {event!r}"
        raise EventError(msg)
    return name


class EventEmitter:
    """Per-component handler registry.

    Handler exceptions are logged and never propagate to the emitter, so a
    faulty listener cannot break session state. Coroutine handlers are
    scheduled on the running loop and tracked until they finish.
    """

    def __init__(self, name: str = "emitter") -> None:
        """Initialize an emitter with no handlers."""
        self.name = name
        self._handlers: dict[str, list[Handler]] = {}
        self._tasks = BackgroundTaskGroup()
        self.stats = {
            "events_emitted": 0,
            "handler_errors": 0,
        }

    def on(self, event: EventName, handler: Handler) -> Handler:
        """Register ``handler`` for ``event`` and return it."""
        if not callable(handler):
            msg = f"Handler for '{event_name(event)}' is not callable"
            raise EventError(msg)
        self._handlers.setdefault(event_name(event), []).append(handler)
        return handler

    def once(self, event: EventName, handler: Handler) -> Handler:
        """Register ``handler`` to run for the next ``event`` only."""

        def _once(*args: Any) -> Any:
            self.off(event, _once)
            return handler(*args)

        return self.on(event, _once)

    def off(self, event: EventName, handler: Handler) -> bool:
        """Unregister ``handler``; returns False when it was not registered."""
        handlers = self._handlers.get(event_name(event))
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._handlers[event_name(event)]
        return True

    def listener_count(self, event: EventName) -> int:
        """Number of handlers registered for ``event``."""
        return len(self._handlers.get(event_name(event), ()))

    def remove_all_listeners(self, event: EventName | None = None) -> None:
        """Drop handlers for ``event``, or for every event when omitted."""
        if event is None:
            self._handlers.clear()
        else:
            self._handlers.pop(event_name(event), None)

    def emit(self, event: EventName, *args: Any) -> bool:
        """Deliver ``event`` to its handlers; returns True if any were called."""
        name = event_name(event)
        handlers = list(self._handlers.get(name, ()))
        self.stats["events_emitted"] += 1
        if not handlers:
            logger.debug("No handlers registered for %s on %s", name, self.name)
            return False

        for handler in handlers:
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    self._schedule(name, result)
            except Exception:
                self.stats["handler_errors"] += 1
                logger.exception("Error in %s handler on %s", name, self.name)
        return True

    def _schedule(self, name: str, awaitable: Any) -> None:
        task = self._tasks.create(awaitable)

        def _log_failure(done: asyncio.Future[Any]) -> None:
            if done.cancelled():
                return
            exc = done.exception()
            if exc is not None:
                self.stats["handler_errors"] += 1
                logger.error(
                    "Error in async %s handler on %s: %s",
                    name,
                    self.name,
                    exc,
                    exc_info=exc,
                )

        task.add_done_callback(_log_failure)

    async def drain(self) -> None:
        """Wait for scheduled coroutine handlers to finish."""
        await self._tasks.wait()

    async def close(self) -> None:
        """Cancel pending coroutine handlers and drop every registration."""
        await self._tasks.cancel_and_wait()
        self._handlers.clear()
