"""Pinned-conversation watcher.

Reads the sidebar snapshot on its own schedule, matches it against recent
conversations and emits ``PinSnapshotChanged`` only for confirmed changes.
The snapshot is noisy: it can be empty while the app is closed and can
lose entries while the sidebar animates, so a drop in the pin count is
only believed after a second scan agrees.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Optional, Sequence

from chatbridge.core.exceptions import BridgeError, DispatchError
from chatbridge.metrics import engine_metrics
from chatbridge.models import Conversation, PinnedConversation, PinSnapshotChanged
from chatbridge.pins.matcher import PinMatcher, PinMatchResult
from chatbridge.pins.snapshot_source import PinSnapshotSource
from chatbridge.store.base import MessageStore

logger = logging.getLogger(__name__)


class PinWatcher:
    """Keep a confirmed, cached view of the pinned conversations."""

    def __init__(
        self,
        store: MessageStore,
        source: PinSnapshotSource,
        broadcaster: Any,
        matcher: PinMatcher | None = None,
        poll_interval_seconds: float = 60.0,
        confirmation_delay_seconds: float = 0.5,
        conversation_fetch_limit: int = 200,
        restart_delay_seconds: float = 3.0,
    ) -> None:
        self.store = store
        self.source = source
        self.broadcaster = broadcaster
        self.matcher = matcher or PinMatcher()
        self.poll_interval_seconds = poll_interval_seconds
        self.confirmation_delay_seconds = confirmation_delay_seconds
        self.conversation_fetch_limit = conversation_fetch_limit
        self.restart_delay_seconds = restart_delay_seconds
        self._pins: list[PinnedConversation] = []
        self._conversations: dict[str, Conversation] = {}
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pinned_conversations(self) -> list[PinnedConversation]:
        return list(self._pins)

    @property
    def cached_conversations(self) -> dict[str, Conversation]:
        return dict(self._conversations)

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Pin watcher started (interval: %ss)", self.poll_interval_seconds
        )

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._pins = []
        self._conversations = {}
        engine_metrics.pins_current.set(0)
        logger.info("Pin watcher stopped")

    # ============================================
    # Polling
    # ============================================

    async def poll(self) -> Optional[PinSnapshotChanged]:
        """Scan once; returns the emitted event when the pins changed."""
        async with self._lock:
            names = await self._read_snapshot()
            if not names:
                logger.debug("No pinned names in snapshot, keeping cache")
                engine_metrics.pin_scans_total.labels(outcome="unavailable").inc()
                return None

            scan = await self._scan(names)
            if scan is None:
                engine_metrics.pin_scans_total.labels(outcome="store_error").inc()
                return None
            logger.debug(
                "Matched %d/%d pinned names", len(scan.pins), len(names)
            )

            if len(scan.pins) < len(self._pins):
                scan = await self._confirm_drop(scan)
                if scan is None:
                    return None

            if scan.pins == self._pins:
                engine_metrics.pin_scans_total.labels(outcome="unchanged").inc()
                return None

            event = PinSnapshotChanged(pins=list(scan.pins))
            try:
                await self.broadcaster.emit(event)
            except Exception as e:
                raise DispatchError(str(e), event_kind="pins") from e

            # Pins and their conversations are replaced together so the
            # overlay never sees one without the other
            self._pins = list(scan.pins)
            self._conversations = dict(scan.conversations)
            engine_metrics.pins_current.set(len(self._pins))
            engine_metrics.pin_scans_total.labels(outcome="changed").inc()
            logger.info("Pins changed, now %d pinned conversations", len(self._pins))
            return event

    async def _confirm_drop(self, scan: PinMatchResult) -> Optional[PinMatchResult]:
        logger.info(
            "Pin count dropped (%d -> %d), re-scanning to confirm",
            len(self._pins),
            len(scan.pins),
        )
        await asyncio.sleep(self.confirmation_delay_seconds)

        names = await self._read_snapshot()
        confirmation = await self._scan(names) if names else None
        # A lower count must repeat; a count back at or above the cache
        # needs no further confirmation
        if confirmation is None or (
            len(confirmation.pins) != len(scan.pins)
            and len(confirmation.pins) < len(self._pins)
        ):
            logger.info(
                "Pin drop not confirmed (confirmation matched %s), keeping %d cached pins",
                "nothing" if confirmation is None else len(confirmation.pins),
                len(self._pins),
            )
            engine_metrics.pin_scans_total.labels(outcome="rejected_drop").inc()
            return None

        engine_metrics.pin_scans_total.labels(outcome="confirmed_drop").inc()
        return confirmation

    async def _read_snapshot(self) -> list[str]:
        try:
            return await self.source.current_display_names()
        except BridgeError as e:
            logger.debug("Pin snapshot unavailable: %s", e.detail)
        except Exception:
            logger.exception("Pin snapshot source failed")
        engine_metrics.poll_errors_total.labels(
            stream="pins", error_code="SNAPSHOT_UNAVAILABLE"
        ).inc()
        return []

    async def _scan(self, names: Sequence[str]) -> Optional[PinMatchResult]:
        try:
            conversations = await asyncio.to_thread(
                self.store.recent_conversations, self.conversation_fetch_limit
            )
        except BridgeError as e:
            logger.warning("Could not fetch conversations for pin matching: %s", e.detail)
            engine_metrics.poll_errors_total.labels(
                stream="pins", error_code=e.error_code
            ).inc()
            return None

        result = self.matcher.match(names, conversations)
        if result.unmatched:
            engine_metrics.pin_names_unmatched_total.inc(len(result.unmatched))
        return result

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.poll()
                await asyncio.sleep(self.poll_interval_seconds)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Pin watcher loop crashed; retrying")
                await asyncio.sleep(self.restart_delay_seconds)

    # ============================================
    # Overlay
    # ============================================

    def overlay_pins(self, conversations: Sequence[Conversation]) -> list[Conversation]:
        """Annotate a conversation list with the cached pin order.

        Conversations are matched to pins by id, then by participant set
        (the same group may exist under several chat ids). Pinned
        conversations missing from ``conversations`` are appended from the
        cache with their unread count reset, since the cached count is stale.
        """
        pin_index = {}
        for pin in self._pins:
            pin_index.setdefault(pin.conversation_id, pin.index)

        by_participants: list[tuple[frozenset, int]] = []
        for pin in self._pins:
            cached = self._conversations.get(pin.conversation_id)
            if cached is not None:
                by_participants.append((cached.participant_addresses, pin.index))

        existing_ids = {c.id for c in conversations}
        overlaid_sets: set[frozenset] = set()
        result: list[Conversation] = []

        for conversation in conversations:
            index = pin_index.get(conversation.id)
            addresses = conversation.participant_addresses
            if index is None and addresses:
                index = next(
                    (i for members, i in by_participants if members == addresses), None
                )
            if index is None:
                result.append(conversation)
                continue
            overlaid_sets.add(addresses)
            result.append(conversation.model_copy(update={"pinned_index": index}))

        for pin in self._pins:
            if pin.conversation_id in existing_ids:
                continue
            cached = self._conversations.get(pin.conversation_id)
            if cached is None:
                logger.debug(
                    "Pinned conversation %s is neither listed nor cached",
                    pin.conversation_id,
                )
                continue
            if cached.participant_addresses and cached.participant_addresses in overlaid_sets:
                continue
            logger.debug("Injecting pinned conversation %s", pin.conversation_id)
            result.append(
                cached.model_copy(update={"unread_count": 0, "pinned_index": pin.index})
            )
        return result

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "pinned_count": len(self._pins),
            "cached_conversations": len(self._conversations),
        }
