"""
Read-only access to a Messages ``chat.db`` SQLite database.

The database belongs to the Messages app and is written continuously while
we read it. Every query opens its own read-only connection, so no locks are
taken on the writer's side and each call sees a consistent snapshot.

Reactions live in the same ``message`` table as ordinary messages and share
its ROWID sequence. They are told apart by ``associated_message_type``:
0 for plain messages, 2000-3006 for tapback add/remove rows.
"""

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from chatbridge.core.exceptions import StoreReadError, StoreUnavailableError
from chatbridge.models import AssociationEvent, Conversation, Handle, Message

logger = logging.getLogger(__name__)

APPLE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

# chat.style for group conversations (45 is one-on-one)
GROUP_CHAT_STYLE = 43

ContactLookup = Callable[[str], Optional[str]]

# Tapback rows reference their target as "p:N/GUID" (message part N),
# "bp:GUID" (balloon provider, e.g. link previews) or a bare GUID.
_STRIP_TARGET_PREFIX_SQL = """
    CASE WHEN m.associated_message_guid LIKE 'p:%/%'
         THEN SUBSTR(m.associated_message_guid, INSTR(m.associated_message_guid, '/') + 1)
         WHEN m.associated_message_guid LIKE 'bp:%'
         THEN SUBSTR(m.associated_message_guid, 4)
         ELSE m.associated_message_guid
    END
"""


def apple_timestamp_to_datetime(raw_value: Optional[int]) -> datetime:
    """Convert a chat.db ``date`` value to an aware UTC datetime.

    Rows written since macOS 10.13 store nanoseconds since 2001-01-01;
    older rows store seconds. The magnitude tells them apart.
    """
    if not raw_value:
        return APPLE_EPOCH
    value = int(raw_value)
    if value > 1_000_000_000_000:
        return APPLE_EPOCH + timedelta(microseconds=value / 1_000)
    return APPLE_EPOCH + timedelta(seconds=value)


def strip_target_prefix(raw_guid: Optional[str]) -> Optional[str]:
    """Python twin of the SQL prefix stripping, for rows read elsewhere."""
    if not raw_guid:
        return None
    if raw_guid.startswith("p:") and "/" in raw_guid:
        return raw_guid.split("/", 1)[1] or None
    if raw_guid.startswith("bp:"):
        return raw_guid[3:] or None
    return raw_guid


def decode_attributed_body(blob: Optional[bytes]) -> Optional[str]:
    """Extract the plain string from a typedstream ``attributedBody``.

    Newer clients leave ``message.text`` empty and only fill the archived
    attributed string. The string follows the ``NSString`` class marker,
    prefixed by a one-byte length or ``0x81`` plus a two-byte length.
    """
    if not blob:
        return None
    data = bytes(blob)
    marker = data.find(b"NSString")
    if marker < 0:
        return None
    cursor = marker + len(b"NSString") + 5
    if cursor >= len(data):
        return None
    length = data[cursor]
    cursor += 1
    if length == 0x81:
        length = int.from_bytes(data[cursor : cursor + 2], "little")
        cursor += 2
    text = data[cursor : cursor + length].decode("utf-8", errors="replace")
    return text or None


class ChatDatabaseStore:
    """``MessageStore`` implementation over a chat.db file."""

    def __init__(
        self,
        db_path: str,
        contact_lookup: Optional[ContactLookup] = None,
        timeout_seconds: float = 5.0,
    ):
        self.db_path = Path(db_path)
        self.contact_lookup = contact_lookup
        self.timeout_seconds = timeout_seconds

    def _connect(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise StoreUnavailableError(str(self.db_path), "file not found")
        try:
            conn = sqlite3.connect(
                f"file:{self.db_path}?mode=ro",
                uri=True,
                timeout=self.timeout_seconds,
            )
        except sqlite3.Error as e:
            raise StoreUnavailableError(str(self.db_path), str(e)) from e
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch_all(self, operation: str, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            with closing(self._connect()) as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreReadError(str(e), operation) from e

    # ------------------------------------------------------------------
    # Incremental reads
    # ------------------------------------------------------------------

    def messages_newer_than(self, message_id: int, limit: int) -> List[Message]:
        rows = self._fetch_all(
            "messages",
            """
            SELECT
                m.ROWID AS id,
                m.guid,
                m.text,
                m.attributedBody AS attributed_body,
                m.date,
                m.is_from_me,
                m.handle_id,
                m.cache_has_attachments,
                c.chat_identifier AS conversation_id,
                h.id AS sender_address
            FROM message m
            JOIN chat_message_join cmj ON cmj.message_id = m.ROWID
            JOIN chat c ON c.ROWID = cmj.chat_id
            LEFT JOIN handle h ON h.ROWID = m.handle_id
            WHERE m.ROWID > ?
              AND COALESCE(m.associated_message_type, 0) = 0
            ORDER BY m.ROWID ASC
            LIMIT ?
            """,
            (message_id, limit),
        )
        messages: List[Message] = []
        seen_ids = set()
        for row in rows:
            # A message joined to two chats appears twice; keep the first
            if row["id"] in seen_ids:
                continue
            seen_ids.add(row["id"])
            messages.append(self._message_from_row(row))
        return messages

    def association_events_newer_than(
        self, row_id: int, limit: int
    ) -> List[AssociationEvent]:
        rows = self._fetch_all(
            "association_events",
            f"""
            SELECT
                m.ROWID AS row_id,
                m.guid,
                {_STRIP_TARGET_PREFIX_SQL} AS target_guid,
                m.associated_message_type AS type_code,
                m.associated_message_emoji AS emoji,
                m.is_from_me,
                m.date,
                COALESCE(h.id, '') AS sender,
                (
                    SELECT c.chat_identifier
                    FROM chat_message_join cmj
                    JOIN chat c ON c.ROWID = cmj.chat_id
                    WHERE cmj.message_id = m.ROWID
                    LIMIT 1
                ) AS conversation_id
            FROM message m
            LEFT JOIN handle h ON h.ROWID = m.handle_id
            WHERE m.ROWID > ?
              AND m.associated_message_type BETWEEN 2000 AND 3006
            ORDER BY m.ROWID ASC
            LIMIT ?
            """,
            (row_id, limit),
        )
        return [
            AssociationEvent(
                row_id=row["row_id"],
                guid=row["guid"] or "",
                target_guid=row["target_guid"] or None,
                type_code=row["type_code"],
                sender=row["sender"] or "",
                is_from_me=bool(row["is_from_me"]),
                date=apple_timestamp_to_datetime(row["date"]),
                emoji=row["emoji"],
                conversation_id=row["conversation_id"],
            )
            for row in rows
        ]

    def latest_message_id(self) -> int:
        return self._max_rowid()

    def latest_association_row_id(self) -> int:
        # Tapbacks share the message ROWID sequence, so the same baseline applies
        return self._max_rowid()

    def _max_rowid(self) -> int:
        rows = self._fetch_all("baseline", "SELECT MAX(ROWID) AS max_id FROM message")
        if not rows or rows[0]["max_id"] is None:
            return 0
        return int(rows[0]["max_id"])

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def recent_conversations(self, limit: int) -> List[Conversation]:
        try:
            with closing(self._connect()) as conn:
                chat_rows = conn.execute(
                    """
                    SELECT
                        c.ROWID AS chat_rowid,
                        c.chat_identifier,
                        c.guid,
                        c.display_name,
                        c.style,
                        m.ROWID AS message_id,
                        m.guid AS message_guid,
                        m.text,
                        m.attributedBody AS attributed_body,
                        m.date,
                        m.is_from_me,
                        m.handle_id,
                        m.cache_has_attachments,
                        h.id AS sender_address
                    FROM chat c
                    JOIN chat_message_join cmj ON cmj.chat_id = c.ROWID
                    JOIN message m ON m.ROWID = cmj.message_id
                    LEFT JOIN handle h ON h.ROWID = m.handle_id
                    WHERE m.ROWID = (
                        SELECT MAX(cmj2.message_id)
                        FROM chat_message_join cmj2
                        WHERE cmj2.chat_id = c.ROWID
                    )
                    ORDER BY m.date DESC
                    LIMIT ?
                    """,
                    (limit,),
                ).fetchall()
                participants = self._participants_by_chat(
                    conn, [row["chat_rowid"] for row in chat_rows]
                )
        except sqlite3.Error as e:
            raise StoreReadError(str(e), "conversations") from e

        conversations = []
        for row in chat_rows:
            handles = participants.get(row["chat_rowid"], [])
            last_message = self._message_from_row(
                {
                    "id": row["message_id"],
                    "guid": row["message_guid"],
                    "text": row["text"],
                    "attributed_body": row["attributed_body"],
                    "date": row["date"],
                    "is_from_me": row["is_from_me"],
                    "handle_id": row["handle_id"],
                    "cache_has_attachments": row["cache_has_attachments"],
                    "conversation_id": row["chat_identifier"],
                    "sender_address": row["sender_address"],
                }
            )
            conversations.append(
                Conversation(
                    id=row["chat_identifier"],
                    guid=row["guid"],
                    display_name=row["display_name"] or None,
                    participants=handles,
                    last_message=last_message,
                    is_group=row["style"] == GROUP_CHAT_STYLE or len(handles) > 1,
                )
            )
        return conversations

    def _participants_by_chat(
        self, conn: sqlite3.Connection, chat_rowids: List[int]
    ) -> Dict[int, List[Handle]]:
        if not chat_rowids:
            return {}
        placeholders = ", ".join("?" for _ in chat_rowids)
        rows = conn.execute(
            f"""
            SELECT chj.chat_id, h.ROWID AS id, h.id AS address, h.service
            FROM chat_handle_join chj
            JOIN handle h ON h.ROWID = chj.handle_id
            WHERE chj.chat_id IN ({placeholders})
            ORDER BY chj.chat_id, h.ROWID
            """,
            tuple(chat_rowids),
        ).fetchall()
        result: Dict[int, List[Handle]] = {}
        for row in rows:
            result.setdefault(row["chat_id"], []).append(
                Handle(
                    id=row["id"],
                    address=row["address"],
                    service=row["service"] or "iMessage",
                    contact_name=self._lookup_contact(row["address"]),
                )
            )
        return result

    def _lookup_contact(self, address: str) -> Optional[str]:
        if self.contact_lookup is None:
            return None
        try:
            return self.contact_lookup(address)
        except Exception:
            logger.debug("Contact lookup failed for a handle", exc_info=True)
            return None

    @staticmethod
    def _message_from_row(row: Any) -> Message:
        text = row["text"]
        if not text:
            text = decode_attributed_body(row["attributed_body"])
        return Message(
            id=row["id"],
            guid=row["guid"],
            text=text,
            date=apple_timestamp_to_datetime(row["date"]),
            is_from_me=bool(row["is_from_me"]),
            conversation_id=row["conversation_id"],
            sender_address=row["sender_address"],
            handle_id=row["handle_id"] or None,
            has_attachments=bool(row["cache_has_attachments"]),
        )
