"""Prometheus metrics for the relay engine.

Provides observability into:
- Incremental change detection (rows dispatched, watermarks, poll timing)
- Hint coalescing
- Tapback transitions
- Pinned conversation scans and confirmations
"""

from prometheus_client import Counter, Gauge, Histogram

# ============================================
# Change detection
# ============================================

messages_dispatched_total = Counter(
    "chatbridge_messages_dispatched_total",
    "Annotated messages handed to the broadcaster",
)

poll_errors_total = Counter(
    "chatbridge_poll_errors_total",
    "Failed poll cycles by stream and error code",
    ["stream", "error_code"],  # stream: messages, tapbacks, pins
)

poll_duration_seconds = Histogram(
    "chatbridge_poll_duration_seconds",
    "Duration of one change detection cycle",
    ["trigger"],  # scheduled, hint
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

watermark = Gauge(
    "chatbridge_watermark",
    "Last dispatched row id by stream",
    ["stream"],  # messages, tapbacks
)

hints_total = Counter(
    "chatbridge_change_hints_total",
    "Change hints received by outcome",
    ["outcome"],  # scheduled, coalesced
)

# ============================================
# Tapbacks
# ============================================

tapback_transitions_total = Counter(
    "chatbridge_tapback_transitions_total",
    "Reaction transitions emitted",
    ["action"],  # added, removed
)

tapback_rows_skipped_total = Counter(
    "chatbridge_tapback_rows_skipped_total",
    "Association rows skipped during reconciliation",
    ["reason"],  # unknown_type, missing_target
)

# ============================================
# Pinned conversations
# ============================================

pin_scans_total = Counter(
    "chatbridge_pin_scans_total",
    "Pin snapshot scans by outcome",
    # outcome: changed, unchanged, unavailable, store_error,
    # confirmed_drop, rejected_drop
    ["outcome"],
)

pins_current = Gauge(
    "chatbridge_pins_current",
    "Number of pinned conversations in the confirmed snapshot",
)

pin_names_unmatched_total = Counter(
    "chatbridge_pin_names_unmatched_total",
    "Sidebar names that matched no conversation",
)
