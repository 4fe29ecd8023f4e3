"""Tapback (reaction) models.

Reactions are stored as association rows whose type code encodes both the
reaction kind and whether the row adds or removes it:

- 2000-2005: add a classic tapback (love, like, dislike, laugh, emphasis, question)
- 2006: add a custom emoji tapback, the emoji travels as the row payload
- 3000-3006: remove the corresponding tapback (add code + 1000)
"""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chatbridge.models.message import ensure_utc

REMOVAL_OFFSET = 1000


class TapbackType(IntEnum):
    """Reaction kinds keyed by their add type code."""

    LOVE = 2000
    LIKE = 2001
    DISLIKE = 2002
    LAUGH = 2003
    EMPHASIS = 2004
    QUESTION = 2005
    CUSTOM_EMOJI = 2006

    @property
    def emoji(self) -> str:
        return _TAPBACK_EMOJI.get(self, "")

    @classmethod
    def parse(cls, type_code: int) -> Optional[Tuple["TapbackType", bool]]:
        """Parse a raw type code into ``(type, is_removal)``.

        Returns None for codes outside both the add and the removal ranges.
        """
        try:
            return cls(type_code), False
        except ValueError:
            pass
        try:
            return cls(type_code - REMOVAL_OFFSET), True
        except ValueError:
            return None


_TAPBACK_EMOJI = {
    TapbackType.LOVE: "\u2764\ufe0f",  # ❤️
    TapbackType.LIKE: "\U0001f44d",  # 👍
    TapbackType.DISLIKE: "\U0001f44e",  # 👎
    TapbackType.LAUGH: "\U0001f602",  # 😂
    TapbackType.EMPHASIS: "\u203c\ufe0f",  # ‼️
    TapbackType.QUESTION: "\u2753",  # ❓
}


class AssociationEvent(BaseModel):
    """A raw association row as read from the store."""

    model_config = ConfigDict(frozen=True)

    row_id: int = Field(..., description="Monotonic store row id")
    guid: str = Field(default="", description="GUID of the association row itself")
    target_guid: Optional[str] = Field(
        default=None, description="GUID of the reacted-to message, prefix stripped"
    )
    type_code: int = Field(..., description="Raw association type code")
    sender: str = Field(default="", description="Handle address of the reactor")
    is_from_me: bool = Field(default=False)
    date: datetime = Field(...)
    emoji: Optional[str] = Field(default=None, description="Custom emoji payload")
    conversation_id: Optional[str] = Field(default=None)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Tapback(BaseModel):
    """A resolved reaction currently present on a message."""

    model_config = ConfigDict(frozen=True)

    type: TapbackType
    sender: str
    is_from_me: bool
    date: datetime
    message_guid: str
    emoji: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def display_emoji(self) -> str:
        if self.type == TapbackType.CUSTOM_EMOJI and self.emoji:
            return self.emoji
        return self.type.emoji


class TransitionAction(str, Enum):
    ADDED = "added"
    REMOVED = "removed"


class ReactionTransition(BaseModel):
    """A discrete change in reaction state, emitted to subscribers."""

    model_config = ConfigDict(frozen=True)

    action: TransitionAction
    tapback: Tapback
    conversation_id: Optional[str] = Field(
        default=None,
        description="Conversation of the target message when the store knows it",
    )
