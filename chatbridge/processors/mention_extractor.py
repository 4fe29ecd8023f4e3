"""@mention extraction.

"Hey @john_doe" yields the mention "@john_doe". The handle is left unset:
resolving a mention to a participant is up to the consumer.
"""

import re

from chatbridge.models import AnnotatedMessage, HighlightKind, Mention, TextHighlight
from chatbridge.processors.base import BaseProcessor, ProcessorPriority

# Not preceded by a word character, so e-mail addresses are not mentions
MENTION_PATTERN = re.compile(r"(?<!\w)@(\w+)")


class MentionExtractor(BaseProcessor):
    def __init__(self):
        super().__init__("mention-extractor", ProcessorPriority.PRIMARY)

    def process(self, message: AnnotatedMessage) -> AnnotatedMessage:
        text = message.text
        if not text:
            return message

        mentions = []
        highlights = []
        for match in MENTION_PATTERN.finditer(text):
            start, end = match.span()
            if message.is_span_claimed(start, end):
                continue
            mentions.append(Mention(text=match.group(0)))
            highlights.append(
                TextHighlight(
                    text=match.group(0), start=start, end=end, kind=HighlightKind.MENTION
                )
            )
        if not mentions:
            return message
        return message.with_highlights(
            *highlights, mentions=message.mentions + tuple(mentions)
        )
