from chatbridge.models.annotated import (
    AnnotatedMessage,
    CodeConfidence,
    DetectedCode,
    HighlightKind,
    Mention,
    TextHighlight,
)
from chatbridge.models.message import Conversation, Handle, Message
from chatbridge.models.pins import PinnedConversation, PinSnapshotChanged
from chatbridge.models.tapback import (
    AssociationEvent,
    ReactionTransition,
    Tapback,
    TapbackType,
    TransitionAction,
)

__all__ = [
    "AnnotatedMessage",
    "AssociationEvent",
    "CodeConfidence",
    "Conversation",
    "DetectedCode",
    "Handle",
    "HighlightKind",
    "Mention",
    "Message",
    "PinnedConversation",
    "PinSnapshotChanged",
    "ReactionTransition",
    "Tapback",
    "TapbackType",
    "TextHighlight",
    "TransitionAction",
]
