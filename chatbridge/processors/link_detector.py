"""Link highlighting for http(s) URLs and bare www. hosts."""

import re

from chatbridge.models import AnnotatedMessage, HighlightKind, TextHighlight
from chatbridge.processors.base import BaseProcessor, ProcessorPriority

LINK_PATTERN = re.compile(r"(?:https?://|\bwww\.)[^\s<>\"]+", re.IGNORECASE)

# Sentence punctuation that usually follows a link rather than belonging to it
TRAILING_PUNCTUATION = ".,;:!?'\")]}"


class LinkDetector(BaseProcessor):
    def __init__(self):
        super().__init__("link-detector", ProcessorPriority.ELEVATED)

    def process(self, message: AnnotatedMessage) -> AnnotatedMessage:
        text = message.text
        if not text:
            return message

        found = []
        for match in LINK_PATTERN.finditer(text):
            start, end = match.span()
            link = match.group(0)
            while link and link[-1] in TRAILING_PUNCTUATION:
                # Keep a closing paren that balances one inside the link
                if link[-1] == ")" and link.count("(") >= link.count(")"):
                    break
                link = link[:-1]
                end -= 1
            if message.is_span_claimed(start, end):
                continue
            found.append(
                TextHighlight(text=link, start=start, end=end, kind=HighlightKind.LINK)
            )
        if not found:
            return message
        return message.with_highlights(*found)
