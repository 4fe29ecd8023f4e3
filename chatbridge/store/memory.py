"""Process-local message store backed by plain lists."""

from __future__ import annotations

import threading
from typing import Iterable

from chatbridge.models import AssociationEvent, Conversation, Message


class InMemoryMessageStore:
    """Append-only store kept in memory.

    Useful for replaying captured data and for exercising the engine
    without a chat database on disk.
    """

    def __init__(
        self,
        messages: Iterable[Message] = (),
        association_events: Iterable[AssociationEvent] = (),
        conversations: Iterable[Conversation] = (),
    ) -> None:
        self._guard = threading.Lock()
        self._messages: list[Message] = []
        self._events: list[AssociationEvent] = []
        self._conversations: list[Conversation] = list(conversations)
        for message in messages:
            self.append_message(message)
        for event in association_events:
            self.append_association_event(event)

    def append_message(self, message: Message) -> None:
        with self._guard:
            if self._messages and message.id <= self._messages[-1].id:
                raise ValueError(
                    f"Message id {message.id} does not increase past "
                    f"{self._messages[-1].id}"
                )
            self._messages.append(message)

    def append_association_event(self, event: AssociationEvent) -> None:
        with self._guard:
            if self._events and event.row_id <= self._events[-1].row_id:
                raise ValueError(
                    f"Row id {event.row_id} does not increase past "
                    f"{self._events[-1].row_id}"
                )
            self._events.append(event)

    def set_conversations(self, conversations: Iterable[Conversation]) -> None:
        with self._guard:
            self._conversations = list(conversations)

    def messages_newer_than(self, message_id: int, limit: int) -> list[Message]:
        with self._guard:
            return [m for m in self._messages if m.id > message_id][:limit]

    def association_events_newer_than(
        self, row_id: int, limit: int
    ) -> list[AssociationEvent]:
        with self._guard:
            return [e for e in self._events if e.row_id > row_id][:limit]

    def latest_message_id(self) -> int:
        with self._guard:
            return self._messages[-1].id if self._messages else 0

    def latest_association_row_id(self) -> int:
        with self._guard:
            return self._events[-1].row_id if self._events else 0

    def recent_conversations(self, limit: int) -> list[Conversation]:
        with self._guard:
            ordered = sorted(
                self._conversations, key=lambda c: c.last_activity, reverse=True
            )
            return ordered[:limit]
