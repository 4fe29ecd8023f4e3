"""Incremental change detection over the message store.

Two streams are polled: plain messages, which go through the enrichment
pipeline, and association rows, which go through the tapback reconciler.
Each stream has its own watermark that only advances once the rows below
it have been handed to the broadcaster.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from chatbridge.core.exceptions import BridgeError, DispatchError, StoreReadError
from chatbridge.detection.watermark import Watermark
from chatbridge.metrics import engine_metrics
from chatbridge.models import AnnotatedMessage, AssociationEvent, Message
from chatbridge.processors.pipeline import EnrichmentPipeline
from chatbridge.store.base import MessageStore
from chatbridge.tapbacks.reconciler import TapbackReconciler
from chatbridge.utils.logging import redact_address, redact_pii

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    """What one poll cycle handed to the broadcaster."""

    messages_dispatched: int = 0
    transitions_emitted: int = 0
    baseline_taken: bool = False
    errors: int = 0


class ChangeDetector:
    """Poll the store for new rows and dispatch them in order.

    Scheduled polls run every ``poll_interval_seconds``. ``notify_change``
    requests an extra poll from a hint source; hints that arrive while a
    poll is running or another hinted poll is pending are coalesced.
    """

    def __init__(
        self,
        store: MessageStore,
        pipeline: EnrichmentPipeline,
        reconciler: TapbackReconciler,
        broadcaster: Any,
        poll_interval_seconds: float = 0.5,
        batch_limit: int = 20,
        restart_delay_seconds: float = 3.0,
        hint_source: Any | None = None,
    ) -> None:
        self.store = store
        self.pipeline = pipeline
        self.reconciler = reconciler
        self.broadcaster = broadcaster
        self.poll_interval_seconds = poll_interval_seconds
        self.batch_limit = batch_limit
        self.restart_delay_seconds = restart_delay_seconds
        self.hint_source = hint_source
        self.message_watermark = Watermark("messages")
        self.tapback_watermark = Watermark("tapbacks")
        self.coalesced_hints = 0
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._hint_task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def has_baseline(self) -> bool:
        return (
            self.message_watermark.is_initialized
            and self.tapback_watermark.is_initialized
        )

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._loop = asyncio.get_running_loop()
        try:
            await self.establish_baseline()
        except BridgeError as e:
            # The loop retries the baseline before its first poll
            logger.warning("Could not take store baseline at startup: %s", e.detail)
        self._task = asyncio.create_task(self._run_loop())
        if self.hint_source is not None:
            self.hint_source.set_callback(self.notify_change)
            await self.hint_source.start()
        logger.info(
            "Change detector started (messages after %s, tapbacks after %s)",
            self.message_watermark.value,
            self.tapback_watermark.value,
        )

    async def stop(self) -> None:
        self._running = False
        if self.hint_source is not None:
            await self.hint_source.stop()
            self.hint_source.set_callback(None)
        for task in (self._hint_task, self._task):
            if task is not None:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._hint_task = None
        self._task = None
        self._loop = None
        # Derived state is rebuilt from a fresh baseline on the next start
        self.message_watermark = Watermark("messages")
        self.tapback_watermark = Watermark("tapbacks")
        self.reconciler.reset()
        logger.info("Change detector stopped")

    async def establish_baseline(self) -> None:
        """Start both watermarks at the store's current maximum ids."""
        try:
            latest_message = await asyncio.to_thread(self.store.latest_message_id)
            latest_association = await asyncio.to_thread(
                self.store.latest_association_row_id
            )
        except BridgeError:
            raise
        except Exception as e:
            raise StoreReadError(str(e), operation="baseline") from e
        self.message_watermark.reset(latest_message)
        self.tapback_watermark.reset(latest_association)

    # ============================================
    # Store reads
    # ============================================

    async def poll_new_messages(self, since_id: int, limit: int) -> list[Message]:
        return await asyncio.to_thread(self.store.messages_newer_than, since_id, limit)

    async def poll_new_association_events(
        self, since_row_id: int, limit: int
    ) -> list[AssociationEvent]:
        return await asyncio.to_thread(
            self.store.association_events_newer_than, since_row_id, limit
        )

    # ============================================
    # Polling
    # ============================================

    async def poll_once(self, trigger: str = "scheduled") -> PollResult:
        """Run one cycle: messages first, then association rows."""
        result = PollResult()
        async with self._lock:
            with engine_metrics.poll_duration_seconds.labels(trigger=trigger).time():
                if not self.has_baseline:
                    try:
                        await self.establish_baseline()
                    except BridgeError as e:
                        self._record_error("baseline", e)
                        result.errors += 1
                        return result
                    result.baseline_taken = True
                    return result

                try:
                    result.messages_dispatched = await self._poll_messages()
                except BridgeError as e:
                    self._record_error("messages", e)
                    result.errors += 1
                except Exception as e:
                    logger.exception("Unexpected failure polling messages")
                    self._record_error("messages", e)
                    result.errors += 1

                try:
                    result.transitions_emitted = await self._poll_tapbacks()
                except BridgeError as e:
                    self._record_error("tapbacks", e)
                    result.errors += 1
                except Exception as e:
                    logger.exception("Unexpected failure polling tapbacks")
                    self._record_error("tapbacks", e)
                    result.errors += 1
        return result

    async def _poll_messages(self) -> int:
        since = self.message_watermark.require()
        messages = await self.poll_new_messages(since, self.batch_limit)
        if not messages:
            return 0

        logger.info("Found %d new message(s) after id %s", len(messages), since)
        dispatched = 0
        for message in messages:
            if message.id <= since:
                continue
            annotated = AnnotatedMessage.from_message(
                message, tapbacks=self.reconciler.active_tapbacks(message.guid)
            )
            annotated = self.pipeline.process(annotated)
            try:
                await self.broadcaster.emit(annotated)
            except Exception as e:
                raise DispatchError(str(e), event_kind="message") from e
            self.message_watermark.advance(message.id)
            dispatched += 1
            engine_metrics.messages_dispatched_total.inc()
            logger.debug(
                "Dispatched message %s from %s: %s",
                message.id,
                redact_address(message.sender_address) if not message.is_from_me else "me",
                redact_pii(message.text),
            )
        return dispatched

    async def _poll_tapbacks(self) -> int:
        since = self.tapback_watermark.require()
        events = await self.poll_new_association_events(since, self.batch_limit)
        if not events:
            return 0

        logger.info("Found %d new association row(s) after id %s", len(events), since)
        result = self.reconciler.reconcile(events)
        for transition in result.transitions:
            try:
                await self.broadcaster.emit(transition)
            except Exception as e:
                raise DispatchError(str(e), event_kind="tapback") from e
        self.reconciler.commit(result)
        if result.max_row_id is not None:
            self.tapback_watermark.advance(result.max_row_id)

        for transition in result.transitions:
            engine_metrics.tapback_transitions_total.labels(
                action=transition.action.value
            ).inc()
            logger.debug(
                "Tapback %s %s on %s by %s",
                transition.action.value,
                transition.tapback.type.name.lower(),
                transition.tapback.message_guid,
                "me"
                if transition.tapback.is_from_me
                else redact_address(transition.tapback.sender),
            )
        return len(result.transitions)

    def _record_error(self, stream: str, error: Exception) -> None:
        error_code = getattr(error, "error_code", "UNEXPECTED_ERROR")
        engine_metrics.poll_errors_total.labels(
            stream=stream, error_code=error_code
        ).inc()
        if isinstance(error, BridgeError):
            logger.warning("Poll of %s failed (%s): %s", stream, error_code, error.detail)

    # ============================================
    # Hints
    # ============================================

    def notify_change(self) -> None:
        """Request an extra poll soon. Must be called on the event loop."""
        if not self._running:
            return
        pending = self._hint_task is not None and not self._hint_task.done()
        if self._lock.locked() or pending:
            self.coalesced_hints += 1
            engine_metrics.hints_total.labels(outcome="coalesced").inc()
            return
        engine_metrics.hints_total.labels(outcome="scheduled").inc()
        self._hint_task = asyncio.create_task(self._run_hinted_poll())

    def notify_change_threadsafe(self) -> None:
        """``notify_change`` for callers on other threads."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.notify_change)

    async def _run_hinted_poll(self) -> None:
        try:
            await self.poll_once(trigger="hint")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Hinted poll failed")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
                await asyncio.sleep(self.poll_interval_seconds)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Change detection loop crashed; retrying")
                await asyncio.sleep(self.restart_delay_seconds)

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "message_watermark": self.message_watermark.value,
            "tapback_watermark": self.tapback_watermark.value,
            "coalesced_hints": self.coalesced_hints,
            "tracked_tapback_targets": self.reconciler.tracked_targets,
        }
