import pytest

from chatbridge.broadcast import InMemoryBroadcaster
from chatbridge.detection import FileChangeHintSource
from chatbridge.engine import BridgeEngine
from chatbridge.models import AnnotatedMessage
from chatbridge.pins import AppleScriptPinSource, StaticPinSource
from chatbridge.store import ChatDatabaseStore


@pytest.mark.unit
class TestWiring:
    def test_builds_from_settings(self, test_settings, memory_store, broadcaster):
        engine = BridgeEngine.from_settings(
            test_settings,
            store=memory_store,
            broadcaster=broadcaster,
            pin_source=StaticPinSource(),
        )

        detector = engine.change_detector
        assert detector.store is memory_store
        assert detector.poll_interval_seconds == 0.01
        assert detector.batch_limit == 20
        assert detector.hint_source is None
        assert engine.pin_watcher.confirmation_delay_seconds == 0
        assert isinstance(engine.pin_watcher.source, StaticPinSource)

    def test_production_defaults(self, test_settings, chat_db):
        settings = test_settings.model_copy(
            update={"CHAT_DB_PATH": str(chat_db), "CHANGE_HINTS_ENABLED": True}
        )

        engine = BridgeEngine.from_settings(settings)

        assert isinstance(engine.store, ChatDatabaseStore)
        assert isinstance(engine.broadcaster, InMemoryBroadcaster)
        assert isinstance(engine.change_detector.hint_source, FileChangeHintSource)
        assert engine.change_detector.hint_source.db_path == chat_db
        assert isinstance(engine.pin_watcher.source, AppleScriptPinSource)

    def test_pins_can_be_disabled(self, test_settings, memory_store, make_conversation):
        settings = test_settings.model_copy(update={"PINS_ENABLED": False})
        conversations = [make_conversation("chat-1", ["Ann Lee"])]

        engine = BridgeEngine.from_settings(settings, store=memory_store)

        assert engine.pin_watcher is None
        assert engine.conversations_with_pins(conversations) == conversations
        assert engine.status()["pins"] is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestLifecycle:
    async def test_start_poll_stop(
        self, test_settings, memory_store, broadcaster, make_message
    ):
        engine = BridgeEngine.from_settings(
            test_settings,
            store=memory_store,
            broadcaster=broadcaster,
            pin_source=StaticPinSource(),
        )

        await engine.start()
        try:
            assert engine.is_running is True
            memory_store.append_message(make_message(1))
            await engine.change_detector.poll_once()

            assert [e.id for e in broadcaster.of_type(AnnotatedMessage)] == [1]
            status = engine.status()
            assert status["running"] is True
            assert status["change_detector"]["message_watermark"] == 1
            assert status["pins"]["running"] is True
        finally:
            await engine.stop()

        assert engine.is_running is False
        assert engine.change_detector.is_running is False
        assert engine.pin_watcher.is_running is False

    async def test_start_and_stop_are_idempotent(self, test_settings, memory_store):
        engine = BridgeEngine.from_settings(
            test_settings, store=memory_store, pin_source=StaticPinSource()
        )

        await engine.start()
        await engine.start()
        await engine.stop()
        await engine.stop()

        assert engine.is_running is False

    async def test_stop_closes_broadcaster(self, test_settings, memory_store):
        engine = BridgeEngine.from_settings(
            test_settings, store=memory_store, pin_source=StaticPinSource()
        )
        await engine.start()
        await engine.broadcaster.subscribe()
        assert engine.status()["subscribers"] == 1

        await engine.stop()

        assert engine.broadcaster.subscriber_count == 0
