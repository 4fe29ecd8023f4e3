"""
Exception hierarchy for the chatbridge engine.

Polling loops catch these, log them and retry on the next cycle, so every
error carries a stable ``error_code`` from a controlled vocabulary that is
safe to use as a metric label.
"""

from typing import Optional


class BridgeError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, detail: str, error_code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code or self.__class__.__name__


# Store Exceptions


class StoreReadError(BridgeError):
    """Raised when a read against the message store fails."""

    def __init__(self, detail: str, operation: str):
        # Map to controlled vocabulary to prevent high cardinality
        operation_map = {
            "messages": "MESSAGES",
            "association_events": "ASSOCIATION_EVENTS",
            "conversations": "CONVERSATIONS",
            "baseline": "BASELINE",
        }
        normalized_op = operation_map.get(operation.lower(), "UNKNOWN")
        super().__init__(
            f"Store read '{operation}' failed: {detail}",
            error_code=f"STORE_{normalized_op}_READ_ERROR",
        )
        self.operation = operation


class StoreUnavailableError(BridgeError):
    """Raised when the message store cannot be opened at all."""

    def __init__(self, path: str, detail: str = ""):
        message = f"Message store at '{path}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, error_code="STORE_UNAVAILABLE")
        self.path = path


# Dispatch Exceptions


class DispatchError(BridgeError):
    """Raised when an event could not be handed to the broadcaster."""

    def __init__(self, detail: str, event_kind: str = "unknown"):
        super().__init__(
            f"Dispatch of {event_kind} failed: {detail}",
            error_code="DISPATCH_ERROR",
        )
        self.event_kind = event_kind


# Snapshot Exceptions


class SnapshotUnavailableError(BridgeError):
    """Raised when the pinned-conversation UI snapshot cannot be read."""

    def __init__(self, detail: str):
        super().__init__(
            f"Pin snapshot unavailable: {detail}",
            error_code="SNAPSHOT_UNAVAILABLE",
        )
