"""Message store models.

Read-only views of rows owned by the external chat database.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DISTANT_PAST = datetime.min.replace(tzinfo=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so every date compares with every other."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Handle(BaseModel):
    """A remote participant (phone number or email address)."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Store row id of the handle")
    address: str = Field(..., description="Phone number or email address")
    service: str = Field(default="iMessage", description="iMessage, SMS or RCS")
    contact_name: Optional[str] = Field(
        default=None, description="Name from the address book, if resolved"
    )

    @property
    def display_name(self) -> str:
        return self.contact_name or self.address

    @property
    def first_name(self) -> str:
        name = self.display_name
        return name.split(" ")[0] if name else name


class Message(BaseModel):
    """A message row. ``id`` is monotonic and doubles as the watermark."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Store-assigned monotonic row id")
    guid: str = Field(..., description="Globally unique message identifier")
    text: Optional[str] = Field(default=None)
    date: datetime = Field(..., description="Send time (UTC)")
    is_from_me: bool = Field(default=False)
    conversation_id: str = Field(..., description="Chat identifier")
    sender_address: Optional[str] = Field(
        default=None, description="Handle address of the sender (None for local)"
    )
    handle_id: Optional[int] = Field(default=None)
    has_attachments: bool = Field(default=False)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Conversation(BaseModel):
    """A chat with its participants and most recent message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Chat identifier")
    guid: str = Field(..., description="Chat GUID")
    display_name: Optional[str] = Field(
        default=None, description="User-set name (group chats only)"
    )
    participants: List[Handle] = Field(default_factory=list)
    last_message: Optional[Message] = Field(default=None)
    is_group: bool = Field(default=False)
    unread_count: int = Field(default=0)
    pinned_index: Optional[int] = Field(default=None)

    @property
    def has_custom_name(self) -> bool:
        return bool(self.display_name)

    @property
    def resolved_display_name(self) -> str:
        """Name shown for the conversation.

        Unnamed groups list the first three participants and append
        ``+N`` for the rest.
        """
        if self.display_name:
            return self.display_name
        if len(self.participants) == 1:
            return self.participants[0].display_name
        if not self.participants:
            return "Unknown"
        names = [p.display_name for p in self.participants[:3]]
        suffix = ""
        if len(self.participants) > 3:
            suffix = f" +{len(self.participants) - 3}"
        return ", ".join(names) + suffix

    @property
    def full_participant_name(self) -> str:
        """All participant names, never truncated."""
        return ", ".join(p.display_name for p in self.participants)

    @property
    def participant_addresses(self) -> frozenset:
        return frozenset(p.address for p in self.participants)

    @property
    def last_activity(self) -> datetime:
        if self.last_message is None:
            return DISTANT_PAST
        return self.last_message.date
