"""Event-sourced reconstruction of reaction state.

The store records a reaction as an "add" row and its withdrawal as a
separate "remove" row. Neither row is ever updated, so the current set of
reactions on a message only exists as the result of replaying its rows in
row-id order. Timestamps are not used for ordering: they tie and arrive
out of order.

Reconciliation is two-phase so the caller can hold back state changes
until every transition of a window has been dispatched:

    result = reconciler.reconcile(window)
    for transition in result.transitions:
        await sink.emit(transition)
    reconciler.commit(result)
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from chatbridge.metrics import engine_metrics
from chatbridge.models import (
    AssociationEvent,
    ReactionTransition,
    Tapback,
    TapbackType,
    TransitionAction,
)

logger = logging.getLogger(__name__)

# The store is inconsistent about how it records the local user's handle,
# so all of "my" reactions share one sender key.
LOCAL_SENDER_KEY = "__me__"

# (target guid, sender key, type, payload)
StateKey = Tuple[str, str, int, str]


def sender_key(event: AssociationEvent) -> str:
    if event.is_from_me:
        return LOCAL_SENDER_KEY
    return event.sender.strip()


def state_key(event: AssociationEvent, tapback_type: TapbackType) -> StateKey:
    # Only custom emoji reactions are distinguished by payload: a sender may
    # leave several different custom emoji on one message.
    payload = (event.emoji or "") if tapback_type == TapbackType.CUSTOM_EMOJI else ""
    return (event.target_guid or "", sender_key(event), int(tapback_type), payload)


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation pass, not yet committed."""

    transitions: List[ReactionTransition] = field(default_factory=list)
    max_row_id: Optional[int] = None
    skipped: int = 0
    pending_history: Dict[str, List[AssociationEvent]] = field(default_factory=dict)
    pending_state: Dict[str, Dict[StateKey, Tapback]] = field(default_factory=dict)
    pending_conversations: Dict[str, str] = field(default_factory=dict)


class TapbackReconciler:
    """Replays association rows into current reaction state.

    Keeps the row history of every target message it has seen (bounded by
    ``max_targets``, least recently touched evicted first) and replays the
    full history of each touched target on every pass, which keeps the
    result identical to a full replay even when rows arrive out of order.
    """

    def __init__(self, max_targets: int = 5000):
        self.max_targets = max_targets
        self._history: "OrderedDict[str, List[AssociationEvent]]" = OrderedDict()
        self._state: Dict[str, Dict[StateKey, Tapback]] = {}
        self._conversations: Dict[str, str] = {}

    @property
    def tracked_targets(self) -> int:
        return len(self._history)

    def reconcile(self, events: Iterable[AssociationEvent]) -> ReconciliationResult:
        """Compute transitions for a window of rows without committing them."""
        result = ReconciliationResult()
        for event in events:
            if result.max_row_id is None or event.row_id > result.max_row_id:
                result.max_row_id = event.row_id

            if not event.target_guid:
                result.skipped += 1
                engine_metrics.tapback_rows_skipped_total.labels(
                    reason="missing_target"
                ).inc()
                logger.debug("Skipping association row %s without target", event.row_id)
                continue
            if TapbackType.parse(event.type_code) is None:
                result.skipped += 1
                engine_metrics.tapback_rows_skipped_total.labels(
                    reason="unknown_type"
                ).inc()
                logger.debug(
                    "Skipping association row %s with unrecognized type %s",
                    event.row_id,
                    event.type_code,
                )
                continue

            target = event.target_guid
            history = result.pending_history.get(target)
            if history is None:
                history = list(self._history.get(target, ()))
                result.pending_history[target] = history
            # A retried window re-delivers rows that were already applied
            if any(existing.row_id == event.row_id for existing in history):
                continue
            history.append(event)
            if event.conversation_id:
                result.pending_conversations[target] = event.conversation_id

        ordered: List[Tuple[int, ReactionTransition]] = []
        for target, history in result.pending_history.items():
            history.sort(key=lambda e: e.row_id)
            new_state, last_row = self._replay(history)
            old_state = self._state.get(target, {})
            conversation_id = result.pending_conversations.get(
                target, self._conversations.get(target)
            )

            for key, tapback in old_state.items():
                if key not in new_state:
                    ordered.append(
                        (
                            last_row.get(key, 0),
                            ReactionTransition(
                                action=TransitionAction.REMOVED,
                                tapback=tapback,
                                conversation_id=conversation_id,
                            ),
                        )
                    )
            for key, tapback in new_state.items():
                if key not in old_state:
                    ordered.append(
                        (
                            last_row.get(key, 0),
                            ReactionTransition(
                                action=TransitionAction.ADDED,
                                tapback=tapback,
                                conversation_id=conversation_id,
                            ),
                        )
                    )
            result.pending_state[target] = new_state

        ordered.sort(key=lambda item: item[0])
        result.transitions = [transition for _, transition in ordered]
        return result

    def commit(self, result: ReconciliationResult) -> None:
        """Adopt the state computed by ``reconcile``."""
        for target, history in result.pending_history.items():
            self._history[target] = history
            self._history.move_to_end(target)
            state = result.pending_state.get(target, {})
            if state:
                self._state[target] = state
            else:
                self._state.pop(target, None)
        self._conversations.update(result.pending_conversations)

        while len(self._history) > self.max_targets:
            evicted, _ = self._history.popitem(last=False)
            self._state.pop(evicted, None)
            self._conversations.pop(evicted, None)
            logger.debug("Evicted tapback history for target %s", evicted)

    def apply(self, events: Iterable[AssociationEvent]) -> List[ReactionTransition]:
        """Reconcile and commit in one step."""
        result = self.reconcile(events)
        self.commit(result)
        return result.transitions

    def active_tapbacks(self, message_guid: str) -> List[Tapback]:
        """Reactions currently present on one message, oldest first."""
        state = self._state.get(message_guid, {})
        return sorted(state.values(), key=lambda t: t.date)

    def reset(self) -> None:
        self._history.clear()
        self._state.clear()
        self._conversations.clear()

    @staticmethod
    def _replay(
        history: List[AssociationEvent],
    ) -> Tuple[Dict[StateKey, Tapback], Dict[StateKey, int]]:
        state: Dict[StateKey, Tapback] = {}
        last_row: Dict[StateKey, int] = {}
        for event in history:
            parsed = TapbackType.parse(event.type_code)
            if parsed is None:
                continue
            tapback_type, is_removal = parsed
            key = state_key(event, tapback_type)
            last_row[key] = event.row_id
            if is_removal:
                state.pop(key, None)
                continue
            state[key] = Tapback(
                type=tapback_type,
                sender=event.sender,
                is_from_me=event.is_from_me,
                date=event.date,
                message_guid=event.target_guid or "",
                emoji=event.emoji if tapback_type == TapbackType.CUSTOM_EMOJI else None,
            )
        return state, last_row
