"""Engine wiring: store, detection loop, reconciler, pipeline and pins."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from chatbridge.broadcast import InMemoryBroadcaster
from chatbridge.core.config import Settings
from chatbridge.detection import ChangeDetector, FileChangeHintSource
from chatbridge.models import Conversation
from chatbridge.pins import AppleScriptPinSource, PinSnapshotSource, PinWatcher
from chatbridge.processors import EnrichmentPipeline, default_processors
from chatbridge.store import ChatDatabaseStore, MessageStore
from chatbridge.tapbacks import TapbackReconciler

logger = logging.getLogger(__name__)


class BridgeEngine:
    """Owns every long-running component and their lifecycle.

    Components are injected; ``from_settings`` builds the production set.
    """

    def __init__(
        self,
        store: MessageStore,
        broadcaster: Any,
        change_detector: ChangeDetector,
        pin_watcher: PinWatcher | None = None,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.change_detector = change_detector
        self.pin_watcher = pin_watcher
        self._started = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: MessageStore | None = None,
        broadcaster: Any | None = None,
        pin_source: PinSnapshotSource | None = None,
        processors: Sequence[Any] | None = None,
    ) -> "BridgeEngine":
        if store is None:
            store = ChatDatabaseStore(settings.CHAT_DB_FILE_PATH)
        if broadcaster is None:
            broadcaster = InMemoryBroadcaster(queue_size=settings.SUBSCRIBER_QUEUE_SIZE)
        if processors is None:
            processors = default_processors(max_emoji_count=settings.EMOJI_ONLY_MAX_COUNT)

        hint_source = None
        if settings.CHANGE_HINTS_ENABLED and isinstance(store, ChatDatabaseStore):
            hint_source = FileChangeHintSource(
                store.db_path,
                check_interval_seconds=settings.HINT_CHECK_INTERVAL_SECONDS,
            )

        change_detector = ChangeDetector(
            store=store,
            pipeline=EnrichmentPipeline(processors),
            reconciler=TapbackReconciler(
                max_targets=settings.TAPBACK_HISTORY_MAX_TARGETS
            ),
            broadcaster=broadcaster,
            poll_interval_seconds=settings.POLL_INTERVAL_SECONDS,
            batch_limit=settings.POLL_BATCH_LIMIT,
            restart_delay_seconds=settings.POLL_RESTART_DELAY_SECONDS,
            hint_source=hint_source,
        )

        pin_watcher = None
        if settings.PINS_ENABLED:
            pin_watcher = PinWatcher(
                store=store,
                source=pin_source
                or AppleScriptPinSource(
                    timeout_seconds=settings.PIN_SNAPSHOT_TIMEOUT_SECONDS
                ),
                broadcaster=broadcaster,
                poll_interval_seconds=settings.PIN_POLL_INTERVAL_SECONDS,
                confirmation_delay_seconds=settings.PIN_CONFIRMATION_DELAY_SECONDS,
                conversation_fetch_limit=settings.PIN_CONVERSATION_FETCH_LIMIT,
                restart_delay_seconds=settings.POLL_RESTART_DELAY_SECONDS,
            )

        return cls(
            store=store,
            broadcaster=broadcaster,
            change_detector=change_detector,
            pin_watcher=pin_watcher,
        )

    @property
    def is_running(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        logger.info("Starting relay engine...")
        await self.change_detector.start()
        if self.pin_watcher is not None:
            await self.pin_watcher.start()
        self._started = True
        logger.info("Relay engine started")

    async def stop(self) -> None:
        if not self._started:
            return
        logger.info("Stopping relay engine...")
        if self.pin_watcher is not None:
            await self.pin_watcher.stop()
        await self.change_detector.stop()
        close = getattr(self.broadcaster, "close", None)
        if close is not None:
            await close()
        self._started = False
        logger.info("Relay engine stopped")

    def conversations_with_pins(
        self, conversations: Sequence[Conversation]
    ) -> list[Conversation]:
        """Overlay the confirmed pin order onto a conversation list."""
        if self.pin_watcher is None:
            return list(conversations)
        return self.pin_watcher.overlay_pins(conversations)

    def status(self) -> dict[str, Any]:
        return {
            "running": self._started,
            "change_detector": self.change_detector.status(),
            "pins": self.pin_watcher.status() if self.pin_watcher else None,
            "subscribers": getattr(self.broadcaster, "subscriber_count", None),
        }
