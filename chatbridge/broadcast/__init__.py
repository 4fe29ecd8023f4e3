from chatbridge.broadcast.broadcaster import (
    BridgeEvent,
    Broadcaster,
    InMemoryBroadcaster,
    LoggingBroadcaster,
    event_kind,
)

__all__ = [
    "BridgeEvent",
    "Broadcaster",
    "InMemoryBroadcaster",
    "LoggingBroadcaster",
    "event_kind",
]
