"""Broadcast sinks for engine events.

The engine hands every ``AnnotatedMessage``, ``ReactionTransition`` and
``PinSnapshotChanged`` to a broadcaster. Transport to remote clients is
the consumer's business: it subscribes and drains a queue.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Union, runtime_checkable

from chatbridge.models import AnnotatedMessage, PinSnapshotChanged, ReactionTransition
from chatbridge.utils.logging import redact_pii

logger = logging.getLogger(__name__)

BridgeEvent = Union[AnnotatedMessage, ReactionTransition, PinSnapshotChanged]


def event_kind(event: BridgeEvent) -> str:
    if isinstance(event, AnnotatedMessage):
        return "message"
    if isinstance(event, ReactionTransition):
        return "tapback"
    if isinstance(event, PinSnapshotChanged):
        return "pins"
    return type(event).__name__


@runtime_checkable
class Broadcaster(Protocol):
    async def emit(self, event: BridgeEvent) -> None:
        """Deliver an event. Raising makes the engine retry it later."""
        ...


class InMemoryBroadcaster:
    """Fan events out to subscriber queues.

    A subscriber whose queue is full is dropped rather than blocking the
    engine; it has to subscribe again.
    """

    def __init__(self, queue_size: int = 1000):
        self.queue_size = queue_size
        self._subscribers: set[asyncio.Queue] = set()
        self._lock = asyncio.Lock()
        self.emitted = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self) -> asyncio.Queue:
        """Subscribe to events, returns a queue to receive them."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        async with self._lock:
            self._subscribers.add(queue)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        async with self._lock:
            self._subscribers.discard(queue)

    async def emit(self, event: BridgeEvent) -> None:
        async with self._lock:
            self.emitted += 1
            dead_queues = []
            for queue in self._subscribers:
                try:
                    queue.put_nowait(event)
                except asyncio.QueueFull:
                    logger.warning("Subscriber queue full, dropping subscriber")
                    dead_queues.append(queue)
            for queue in dead_queues:
                self._subscribers.discard(queue)

    async def close(self) -> None:
        async with self._lock:
            self._subscribers.clear()


class LoggingBroadcaster:
    """Log events instead of delivering them."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def emit(self, event: BridgeEvent) -> None:
        kind = event_kind(event)
        if isinstance(event, AnnotatedMessage):
            logger.log(
                self.level,
                "message %s in %s: %s",
                event.id,
                event.conversation_id,
                redact_pii(event.text),
            )
        elif isinstance(event, ReactionTransition):
            logger.log(
                self.level,
                "tapback %s %s on %s",
                event.action.value,
                event.tapback.display_emoji,
                event.tapback.message_guid,
            )
        elif isinstance(event, PinSnapshotChanged):
            logger.log(
                self.level,
                "pins %s",
                [pin.conversation_id for pin in event.pins],
            )
        else:
            logger.log(self.level, "%s event", kind)
