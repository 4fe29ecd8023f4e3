"""Process-local high-water marks for the polled store streams."""

import logging
from typing import Optional

from chatbridge.metrics import engine_metrics

logger = logging.getLogger(__name__)


class Watermark:
    """Highest row id of one stream that has been fully handled.

    The value only moves forward. It is never persisted: a restart takes a
    fresh baseline from the store, so history is not replayed.

    Attributes:
        stream: Stream name, used as the metrics label
        value: Current watermark, ``None`` until a baseline is taken
    """

    def __init__(self, stream: str, value: Optional[int] = None):
        self.stream = stream
        self.value: Optional[int] = None
        if value is not None:
            self.reset(value)

    @property
    def is_initialized(self) -> bool:
        return self.value is not None

    def reset(self, value: int) -> None:
        """Set the baseline, discarding any previous value."""
        self.value = value
        engine_metrics.watermark.labels(stream=self.stream).set(value)
        logger.debug("Watermark %s baseline set to %s", self.stream, value)

    def advance(self, value: int) -> bool:
        """Move forward to ``value``.

        Returns:
            True if the watermark moved, False if ``value`` is not ahead
        """
        if self.value is not None and value <= self.value:
            return False
        self.value = value
        engine_metrics.watermark.labels(stream=self.stream).set(value)
        return True

    def require(self) -> int:
        if self.value is None:
            raise RuntimeError(f"Watermark '{self.stream}' has no baseline yet")
        return self.value

    def __repr__(self) -> str:
        return f"Watermark(stream={self.stream!r}, value={self.value!r})"
