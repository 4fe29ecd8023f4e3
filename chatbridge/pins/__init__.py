from chatbridge.pins.matcher import (
    PinMatcher,
    PinMatchResult,
    extract_names,
    normalize_for_matching,
)
from chatbridge.pins.snapshot_source import (
    AppleScriptPinSource,
    PinSnapshotSource,
    StaticPinSource,
    parse_display_names,
)
from chatbridge.pins.watcher import PinWatcher

__all__ = [
    "AppleScriptPinSource",
    "PinMatchResult",
    "PinMatcher",
    "PinSnapshotSource",
    "PinWatcher",
    "StaticPinSource",
    "extract_names",
    "normalize_for_matching",
    "parse_display_names",
]
