"""Enriched message models produced by the processor pipeline."""

from enum import Enum
from typing import Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from chatbridge.models.message import Message
from chatbridge.models.tapback import Tapback


class HighlightKind(str, Enum):
    CODE = "code"
    PHONE_NUMBER = "phone_number"
    LINK = "link"
    MENTION = "mention"


class CodeConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


class TextHighlight(BaseModel):
    """A span of message text claimed by a processor.

    ``start`` and ``end`` are character offsets, ``end`` exclusive.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    kind: HighlightKind

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end


class DetectedCode(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    confidence: CodeConfidence = CodeConfidence.HIGH


class Mention(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    handle: Optional[str] = None


class AnnotatedMessage(BaseModel):
    """A message plus everything the enrichment pipeline learned about it.

    Immutable: processors return a new instance built with ``model_copy``.
    """

    model_config = ConfigDict(frozen=True)

    message: Message
    highlights: Tuple[TextHighlight, ...] = ()
    detected_codes: Tuple[DetectedCode, ...] = ()
    mentions: Tuple[Mention, ...] = ()
    tapbacks: Tuple[Tapback, ...] = ()
    is_emoji_only: bool = False

    @classmethod
    def from_message(
        cls, message: Message, tapbacks: Iterable[Tapback] = ()
    ) -> "AnnotatedMessage":
        return cls(message=message, tapbacks=tuple(tapbacks))

    @property
    def id(self) -> int:
        return self.message.id

    @property
    def guid(self) -> str:
        return self.message.guid

    @property
    def text(self) -> Optional[str]:
        return self.message.text

    @property
    def conversation_id(self) -> str:
        return self.message.conversation_id

    def is_span_claimed(self, start: int, end: int) -> bool:
        """True when an earlier processor already highlighted part of the span."""
        return any(h.overlaps(start, end) for h in self.highlights)

    def with_highlights(self, *highlights: TextHighlight, **update) -> "AnnotatedMessage":
        """Copy with highlights appended; other fields replaced from ``update``."""
        return self.model_copy(
            update={"highlights": self.highlights + tuple(highlights), **update}
        )
