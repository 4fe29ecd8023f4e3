"""
Pytest configuration and fixtures for the chatbridge engine.

This module provides:
- Test settings with an isolated environment
- Message, association row and conversation factories
- An in-memory store and a recording broadcaster
- A temporary chat.db with the schema subset the SQLite store reads
"""

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import pytest

from chatbridge.core.config import Settings
from chatbridge.models import (
    AssociationEvent,
    Conversation,
    Handle,
    Message,
)
from chatbridge.store import InMemoryMessageStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

CHAT_DB_SCHEMA = """
CREATE TABLE handle (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    service TEXT NOT NULL DEFAULT 'iMessage'
);
CREATE TABLE chat (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    guid TEXT UNIQUE NOT NULL,
    style INTEGER,
    chat_identifier TEXT,
    display_name TEXT
);
CREATE TABLE message (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    guid TEXT UNIQUE NOT NULL,
    text TEXT,
    attributedBody BLOB,
    handle_id INTEGER DEFAULT 0,
    date INTEGER,
    is_from_me INTEGER DEFAULT 0,
    cache_has_attachments INTEGER DEFAULT 0,
    associated_message_guid TEXT,
    associated_message_type INTEGER DEFAULT 0,
    associated_message_emoji TEXT
);
CREATE TABLE chat_message_join (
    chat_id INTEGER,
    message_id INTEGER,
    PRIMARY KEY (chat_id, message_id)
);
CREATE TABLE chat_handle_join (
    chat_id INTEGER,
    handle_id INTEGER,
    UNIQUE (chat_id, handle_id)
);
"""


class RecordingBroadcaster:
    """Broadcaster double that keeps every event and can be told to fail."""

    def __init__(self):
        self.events: list = []
        self.fail_on: Optional[Callable[[object], bool]] = None

    async def emit(self, event) -> None:
        if self.fail_on is not None and self.fail_on(event):
            raise ConnectionError("subscriber went away")
        self.events.append(event)

    def of_type(self, cls) -> list:
        return [e for e in self.events if isinstance(e, cls)]


@pytest.fixture
def test_settings() -> Settings:
    """Settings with fast intervals and no host integrations."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="testing",
        CHAT_DB_PATH="/nonexistent/chat.db",
        POLL_INTERVAL_SECONDS=0.01,
        HINT_CHECK_INTERVAL_SECONDS=0.01,
        CHANGE_HINTS_ENABLED=False,
        PIN_POLL_INTERVAL_SECONDS=60,
        PIN_CONFIRMATION_DELAY_SECONDS=0,
    )


@pytest.fixture
def make_message() -> Callable[..., Message]:
    def _make(
        message_id: int,
        text: Optional[str] = "hello",
        conversation_id: str = "+15550001111",
        is_from_me: bool = False,
        sender_address: Optional[str] = "+15550001111",
        guid: Optional[str] = None,
    ) -> Message:
        return Message(
            id=message_id,
            guid=guid or f"MSG-{message_id}",
            text=text,
            date=BASE_TIME + timedelta(seconds=message_id),
            is_from_me=is_from_me,
            conversation_id=conversation_id,
            sender_address=None if is_from_me else sender_address,
        )

    return _make


@pytest.fixture
def make_event() -> Callable[..., AssociationEvent]:
    def _make(
        row_id: int,
        target_guid: Optional[str] = "MSG-1",
        type_code: int = 2000,
        sender: str = "+15550001111",
        is_from_me: bool = False,
        emoji: Optional[str] = None,
        conversation_id: Optional[str] = "+15550001111",
        date: Optional[datetime] = None,
    ) -> AssociationEvent:
        return AssociationEvent(
            row_id=row_id,
            guid=f"ASSOC-{row_id}",
            target_guid=target_guid,
            type_code=type_code,
            sender="" if is_from_me else sender,
            is_from_me=is_from_me,
            date=date or BASE_TIME + timedelta(seconds=row_id),
            emoji=emoji,
            conversation_id=conversation_id,
        )

    return _make


@pytest.fixture
def make_conversation() -> Callable[..., Conversation]:
    counter = {"handle": 0}

    def _make(
        conversation_id: str,
        participants: Iterable[str] = (),
        display_name: Optional[str] = None,
        is_group: Optional[bool] = None,
        last_active_minutes: int = 0,
        unread_count: int = 0,
        addresses: Optional[List[str]] = None,
    ) -> Conversation:
        names = list(participants)
        handles = []
        for position, name in enumerate(names):
            counter["handle"] += 1
            address = (
                addresses[position]
                if addresses is not None
                else f"{name.lower().replace(' ', '.')}@example.com"
            )
            handles.append(
                Handle(id=counter["handle"], address=address, contact_name=name)
            )
        last_message = Message(
            id=1000 + last_active_minutes,
            guid=f"LAST-{conversation_id}",
            text="last",
            date=BASE_TIME + timedelta(minutes=last_active_minutes),
            conversation_id=conversation_id,
        )
        return Conversation(
            id=conversation_id,
            guid=f"iMessage;-;{conversation_id}",
            display_name=display_name,
            participants=handles,
            last_message=last_message,
            is_group=len(handles) > 1 if is_group is None else is_group,
            unread_count=unread_count,
        )

    return _make


@pytest.fixture
def memory_store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def chat_db(tmp_path: Path) -> Path:
    """Empty chat.db with the tables the SQLite store reads."""
    path = tmp_path / "chat.db"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(CHAT_DB_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return path
