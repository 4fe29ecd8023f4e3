from chatbridge.detection.change_detector import ChangeDetector, PollResult
from chatbridge.detection.hints import FileChangeHintSource
from chatbridge.detection.watermark import Watermark

__all__ = ["ChangeDetector", "FileChangeHintSource", "PollResult", "Watermark"]
