"""Pinned conversation models."""

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class PinnedConversation(BaseModel):
    """A conversation pinned at ``index`` in the sidebar order."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    index: int = Field(..., ge=0)


class PinSnapshotChanged(BaseModel):
    """Emitted when the confirmed set or order of pins changes."""

    model_config = ConfigDict(frozen=True)

    pins: List[PinnedConversation] = Field(default_factory=list)
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
