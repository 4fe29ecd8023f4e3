"""Message processor contract for the enrichment pipeline."""

import logging
from abc import ABC, abstractmethod
from typing import Protocol

from chatbridge.models import AnnotatedMessage

logger = logging.getLogger(__name__)


# =============================================================================
# Processor Priority
# =============================================================================


class ProcessorPriority:
    """Processor execution priority (higher = earlier)."""

    CRITICAL = 200  # Security-relevant content such as one-time codes
    HIGH = 150  # Phone numbers, ahead of links that may embed digits
    ELEVATED = 120  # Links, ahead of mentions inside URLs
    PRIMARY = 100  # Span detectors
    SECONDARY = 50  # Whole-message classification


# =============================================================================
# Processor Protocol
# =============================================================================


class MessageProcessor(Protocol):
    """Protocol for enrichment processors.

    A processor receives the message as annotated by every earlier
    processor and returns a new ``AnnotatedMessage``. It must not claim a
    text span that an earlier processor already highlighted.
    """

    processor_id: str
    priority: int

    def process(self, message: AnnotatedMessage) -> AnnotatedMessage:
        ...


# =============================================================================
# Base Processor Class
# =============================================================================


class BaseProcessor(ABC):
    """Base class for processors.

    Example:
        class ShoutDetector(BaseProcessor):
            def __init__(self):
                super().__init__("shout", ProcessorPriority.SECONDARY)

            def process(self, message):
                return message
    """

    def __init__(self, processor_id: str, priority: int = ProcessorPriority.PRIMARY):
        self.processor_id = processor_id
        self.priority = priority

    @abstractmethod
    def process(self, message: AnnotatedMessage) -> AnnotatedMessage:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(priority={self.priority})"
