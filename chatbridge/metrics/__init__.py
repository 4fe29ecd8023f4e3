"""Centralized metrics module for Prometheus instrumentation.

Usage:
    from chatbridge.metrics.engine_metrics import messages_dispatched_total
"""

from chatbridge.metrics import engine_metrics

__all__ = ["engine_metrics"]
