from typing import List

from chatbridge.processors.base import (
    BaseProcessor,
    MessageProcessor,
    ProcessorPriority,
)
from chatbridge.processors.code_detector import CodeDetector
from chatbridge.processors.emoji_only import DEFAULT_MAX_EMOJI, EmojiOnlyClassifier
from chatbridge.processors.link_detector import LinkDetector
from chatbridge.processors.mention_extractor import MentionExtractor
from chatbridge.processors.phone_detector import PhoneNumberDetector
from chatbridge.processors.pipeline import EnrichmentPipeline


def default_processors(max_emoji_count: int = DEFAULT_MAX_EMOJI) -> List[BaseProcessor]:
    """The standard enrichment chain, in registration order."""
    return [
        CodeDetector(),
        PhoneNumberDetector(),
        LinkDetector(),
        MentionExtractor(),
        EmojiOnlyClassifier(max_count=max_emoji_count),
    ]


__all__ = [
    "BaseProcessor",
    "CodeDetector",
    "EmojiOnlyClassifier",
    "EnrichmentPipeline",
    "LinkDetector",
    "MentionExtractor",
    "MessageProcessor",
    "PhoneNumberDetector",
    "ProcessorPriority",
    "default_processors",
]
