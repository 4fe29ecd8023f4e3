from chatbridge.tapbacks.reconciler import (
    LOCAL_SENDER_KEY,
    ReconciliationResult,
    TapbackReconciler,
)

__all__ = ["LOCAL_SENDER_KEY", "ReconciliationResult", "TapbackReconciler"]
