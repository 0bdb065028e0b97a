"""
Event Channel — ordered, unbounded fan-out of AgentEvents.

One channel per session.  The agent loop is the single producer; any number
of consumers observe it:

- **Subscriptions** get their own unbounded ``asyncio.Queue`` and read at
  their own pace (UI renderers, SSE bridges, tests).
- **Listeners** are plain callables invoked synchronously inside ``emit`` in
  registration order (the session's stats fold).

``emit`` never awaits, so a slow or absent consumer cannot stall the loop.
Every consumer observes events in exactly the order they were emitted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

from .stream_events import AgentEvent, is_terminal

logger = logging.getLogger(__name__)

_CLOSED = object()

Listener = Callable[[AgentEvent], None]


class ChannelClosedError(RuntimeError):
    """Raised when emitting on a closed channel."""


class EventSubscription:
    """
    A single consumer's view of a channel.

    Usage::

        sub = channel.subscribe()
        async for event in sub:
            render(event)

    Iteration ends when the channel is closed or the subscription is
    cancelled via ``close()``.  Only events emitted after ``subscribe()``
    are observed.
    """

    def __init__(self, channel: "EventChannel"):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def _push(self, item) -> None:
        self._queue.put_nowait(item)

    @property
    def pending(self) -> int:
        """Number of events delivered but not yet consumed."""
        return self._queue.qsize()

    async def get(self) -> Optional[AgentEvent]:
        """Next event, or None once the channel/subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            return None
        return item

    def get_nowait(self) -> Optional[AgentEvent]:
        """Next already-delivered event, or None if nothing is pending."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if item is _CLOSED:
            self._closed = True
            return None
        return item

    def drain(self) -> list[AgentEvent]:
        """All already-delivered events, in order."""
        events = []
        while True:
            event = self.get_nowait()
            if event is None:
                return events
            events.append(event)

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        return self

    async def __anext__(self) -> AgentEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def until_terminal(self) -> AsyncIterator[AgentEvent]:
        """Yield events up to and including the next Done/Cancelled/Error."""
        async for event in self:
            yield event
            if is_terminal(event):
                return

    def close(self) -> None:
        """Stop receiving events; a pending ``get`` returns None."""
        if self._closed:
            return
        self._channel.unsubscribe(self)
        self._push(_CLOSED)

    async def __aenter__(self) -> "EventSubscription":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()


class EventChannel:
    """Single-producer, multi-consumer FIFO conduit for one session's events."""

    def __init__(self, name: str = ""):
        self.name = name
        self._subscriptions: list[EventSubscription] = []
        self._listeners: list[Listener] = []
        self._closed = False
        self._emitted = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def emitted_count(self) -> int:
        return self._emitted

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> EventSubscription:
        if self._closed:
            raise ChannelClosedError(f"Event channel {self.name!r} is closed")
        sub = EventSubscription(self)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: EventSubscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: AgentEvent) -> None:
        """Deliver ``event`` to every listener and subscription.  Never blocks."""
        if self._closed:
            raise ChannelClosedError(f"Event channel {self.name!r} is closed")
        self._emitted += 1
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Listener failures are logged, delivery continues
                logger.exception(f"Event listener {listener!r} failed on {type(event).__name__}")
        for sub in list(self._subscriptions):
            sub._push(event)

    def close(self) -> None:
        """End every subscription's iteration.  Further emits raise."""
        if self._closed:
            return
        self._closed = True
        for sub in list(self._subscriptions):
            sub._push(_CLOSED)
        self._subscriptions.clear()
