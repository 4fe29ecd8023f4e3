"""Ordered chain of message processors."""

import logging
from typing import Any, Dict, Iterable, List

from chatbridge.models import AnnotatedMessage
from chatbridge.processors.base import MessageProcessor

logger = logging.getLogger(__name__)


class EnrichmentPipeline:
    """Run processors over a message in descending priority.

    Processors with equal priority keep their registration order. A
    processor that raises is skipped and the message continues with the
    last good value.
    """

    def __init__(self, processors: Iterable[MessageProcessor] = ()):
        self._processors: List[MessageProcessor] = []
        for processor in processors:
            self._processors.append(processor)
        self._sort()

    @property
    def processors(self) -> List[MessageProcessor]:
        return list(self._processors)

    def register(self, processor: MessageProcessor) -> None:
        """Insert a processor into the chain."""
        self._processors.append(processor)
        self._sort()
        logger.info(
            "Registered processor '%s' with priority %s",
            processor.processor_id,
            processor.priority,
        )

    def process(self, message: AnnotatedMessage) -> AnnotatedMessage:
        current = message
        for processor in self._processors:
            try:
                current = processor.process(current)
            except Exception:
                logger.exception(
                    "Processor '%s' failed on message %s; skipping",
                    processor.processor_id,
                    message.id,
                )
        return current

    def get_processor_info(self) -> List[Dict[str, Any]]:
        return [
            {"processor_id": p.processor_id, "priority": p.priority}
            for p in self._processors
        ]

    def _sort(self) -> None:
        # list.sort is stable, so registration order breaks ties
        self._processors.sort(key=lambda p: -p.priority)
