"""One-time verification code detection.

Codes are only looked for when the message mentions a verification
context, so ordinary numbers ("I have 123456 items") are left alone.

| Message | Detected |
|---------|----------|
| "Your verification code is 847293" | 847293 |
| "Your Google code is G-582941" | G-582941 |
| "I have 123456 items" | nothing |
| "Your code is 123" | nothing (too short) |
"""

import re
from typing import List, Tuple

from chatbridge.models import (
    AnnotatedMessage,
    CodeConfidence,
    DetectedCode,
    HighlightKind,
    TextHighlight,
)
from chatbridge.processors.base import BaseProcessor, ProcessorPriority

CONTEXT_WORDS = (
    "code",
    "verify",
    "verification",
    "confirm",
    "otp",
    "pin",
    "password",
    "passcode",
    "2fa",
    "mfa",
    "security",
    "authentication",
    "login",
    "sign in",
)

# Letter prefix codes such as G-123456; matched before bare digits so the
# digits inside them are not reported twice
FORMATTED_CODE_PATTERN = re.compile(r"\b([A-Z]-?\d{5,8})\b")
NUMERIC_CODE_PATTERN = re.compile(r"\b(\d{4,8})\b")


def has_code_context(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in CONTEXT_WORDS)


def numeric_confidence(value: str) -> CodeConfidence:
    """Six digits is the common one-time code length; other lengths are less certain."""
    return CodeConfidence.HIGH if len(value) == 6 else CodeConfidence.MEDIUM


class CodeDetector(BaseProcessor):
    def __init__(self):
        super().__init__("code-detector", ProcessorPriority.CRITICAL)

    def process(self, message: AnnotatedMessage) -> AnnotatedMessage:
        text = message.text
        if not text or not has_code_context(text):
            return message

        spans: List[Tuple[int, int]] = []
        codes: List[DetectedCode] = []
        highlights: List[TextHighlight] = []

        for match in FORMATTED_CODE_PATTERN.finditer(text):
            start, end = match.span(1)
            if message.is_span_claimed(start, end):
                continue
            spans.append((start, end))
            codes.append(DetectedCode(value=match.group(1), confidence=CodeConfidence.HIGH))
            highlights.append(
                TextHighlight(
                    text=match.group(1), start=start, end=end, kind=HighlightKind.CODE
                )
            )

        for match in NUMERIC_CODE_PATTERN.finditer(text):
            start, end = match.span(1)
            if message.is_span_claimed(start, end):
                continue
            if any(start < s_end and s_start < end for s_start, s_end in spans):
                continue
            codes.append(
                DetectedCode(value=match.group(1), confidence=numeric_confidence(match.group(1)))
            )
            highlights.append(
                TextHighlight(
                    text=match.group(1), start=start, end=end, kind=HighlightKind.CODE
                )
            )

        if not codes:
            return message
        return message.with_highlights(
            *highlights, detected_codes=message.detected_codes + tuple(codes)
        )
