"""Read contract for the external message store."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from chatbridge.models import AssociationEvent, Conversation, Message


@runtime_checkable
class MessageStore(Protocol):
    """Read-only view of an append-only message store.

    Every call must be safe to repeat with an unchanged argument: rows are
    never deleted between calls, so the same watermark yields the same rows
    plus anything appended since.
    """

    def messages_newer_than(self, message_id: int, limit: int) -> list[Message]:
        """Messages with id > ``message_id``, ascending, at most ``limit``."""

    def association_events_newer_than(
        self, row_id: int, limit: int
    ) -> list[AssociationEvent]:
        """Association rows with row id > ``row_id``, ascending, at most ``limit``."""

    def latest_message_id(self) -> int:
        """Current maximum message id, 0 for an empty store."""

    def latest_association_row_id(self) -> int:
        """Current maximum association row id, 0 when there are none."""

    def recent_conversations(self, limit: int) -> list[Conversation]:
        """Conversations ordered by most recent activity first."""
