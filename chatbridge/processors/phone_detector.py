"""Phone number highlighting."""

import re

from chatbridge.models import AnnotatedMessage, HighlightKind, TextHighlight
from chatbridge.processors.base import BaseProcessor, ProcessorPriority

# North American style numbers with optional country code:
# 555-123-4567, (555) 123-4567, +1-555-123-4567, 555.123.4567
PHONE_PATTERN = re.compile(
    r"(?<![\w+(])(?:\+\d{1,3}[-. ]?)?(?:\(\d{3}\)|\d{3})[-. ]?\d{3}[-. ]?\d{4}\b"
)


class PhoneNumberDetector(BaseProcessor):
    def __init__(self):
        super().__init__("phone-number-detector", ProcessorPriority.HIGH)

    def process(self, message: AnnotatedMessage) -> AnnotatedMessage:
        text = message.text
        if not text:
            return message

        found = []
        for match in PHONE_PATTERN.finditer(text):
            start, end = match.span()
            if message.is_span_claimed(start, end):
                continue
            found.append(
                TextHighlight(
                    text=match.group(0),
                    start=start,
                    end=end,
                    kind=HighlightKind.PHONE_NUMBER,
                )
            )
        if not found:
            return message
        return message.with_highlights(*found)
