import pytest

from chatbridge.core.exceptions import (
    DispatchError,
    SnapshotUnavailableError,
    StoreReadError,
)
from chatbridge.models import PinSnapshotChanged
from chatbridge.pins import PinWatcher, StaticPinSource
from chatbridge.store import InMemoryMessageStore

NINE = [f"Chat {i}" for i in range(9)]


class BrokenConversationStore(InMemoryMessageStore):
    def recent_conversations(self, limit):
        raise StoreReadError("database is locked", operation="conversations")


@pytest.fixture
def pinned_store(memory_store, make_conversation):
    memory_store.set_conversations(
        make_conversation(
            f"chat-{i}",
            [f"Person {i}"],
            display_name=f"Chat {i}",
            last_active_minutes=i,
            unread_count=3,
        )
        for i in range(9)
    )
    return memory_store


@pytest.fixture
def make_watcher(pinned_store, broadcaster):
    def _make(*snapshots, store=None):
        return PinWatcher(
            store=store or pinned_store,
            source=StaticPinSource(*snapshots),
            broadcaster=broadcaster,
            confirmation_delay_seconds=0,
        )

    return _make


def pinned_ids(watcher):
    return [pin.conversation_id for pin in watcher.pinned_conversations]


@pytest.mark.unit
@pytest.mark.asyncio
class TestConfirmedChanges:
    async def test_first_snapshot_is_emitted(self, make_watcher, broadcaster):
        watcher = make_watcher(NINE)

        event = await watcher.poll()

        assert isinstance(event, PinSnapshotChanged)
        assert [p.index for p in event.pins] == list(range(9))
        assert broadcaster.of_type(PinSnapshotChanged) == [event]
        assert len(watcher.cached_conversations) == 9

    async def test_unchanged_snapshot_emits_nothing(self, make_watcher, broadcaster):
        watcher = make_watcher(NINE)

        await watcher.poll()
        second = await watcher.poll()

        assert second is None
        assert len(broadcaster.events) == 1

    async def test_reorder_is_a_change(self, make_watcher):
        watcher = make_watcher(NINE, list(reversed(NINE)))
        await watcher.poll()

        event = await watcher.poll()

        assert event is not None
        assert pinned_ids(watcher)[0] == "chat-8"

    async def test_transient_drop_is_rejected(self, make_watcher, broadcaster):
        watcher = make_watcher(NINE, NINE[:4], NINE)
        await watcher.poll()

        event = await watcher.poll()

        assert event is None
        assert watcher.source.calls == 3
        assert len(watcher.pinned_conversations) == 9
        assert len(broadcaster.events) == 1

    async def test_confirmed_drop_is_adopted(self, make_watcher):
        watcher = make_watcher(NINE, NINE[:7], NINE[:7])
        await watcher.poll()

        event = await watcher.poll()

        assert len(event.pins) == 7
        assert pinned_ids(watcher) == [f"chat-{i}" for i in range(7)]

    async def test_drop_with_empty_confirmation_is_rejected(self, make_watcher):
        watcher = make_watcher(NINE, NINE[:7], [])
        await watcher.poll()

        assert await watcher.poll() is None
        assert len(watcher.pinned_conversations) == 9

    async def test_confirmation_above_cached_count_is_adopted(self, make_watcher):
        watcher = make_watcher(NINE[:5], NINE[:2], NINE[:6])
        await watcher.poll()

        event = await watcher.poll()

        assert len(event.pins) == 6
        assert watcher.source.calls == 3
        assert pinned_ids(watcher) == [f"chat-{i}" for i in range(6)]

    async def test_confirmation_between_counts_is_rejected(self, make_watcher):
        watcher = make_watcher(NINE, NINE[:4], NINE[:6])
        await watcher.poll()

        assert await watcher.poll() is None
        assert len(watcher.pinned_conversations) == 9

    async def test_growth_needs_no_confirmation(self, make_watcher):
        watcher = make_watcher(NINE[:2], NINE[:3])
        await watcher.poll()

        event = await watcher.poll()

        assert len(event.pins) == 3
        assert watcher.source.calls == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestUnavailableSnapshots:
    async def test_empty_snapshot_keeps_cache(self, make_watcher):
        watcher = make_watcher(NINE, [])
        await watcher.poll()

        assert await watcher.poll() is None
        assert len(watcher.pinned_conversations) == 9

    @pytest.mark.parametrize(
        "error",
        [SnapshotUnavailableError("Messages is not running"), RuntimeError("osascript crashed")],
    )
    async def test_source_errors_keep_cache(self, make_watcher, error):
        watcher = make_watcher(NINE, error)
        await watcher.poll()

        assert await watcher.poll() is None
        assert len(watcher.pinned_conversations) == 9

    async def test_store_error_is_not_a_change(self, make_watcher, broadcaster):
        watcher = make_watcher(NINE, store=BrokenConversationStore())

        assert await watcher.poll() is None
        assert watcher.pinned_conversations == []
        assert broadcaster.events == []

    async def test_failed_emission_leaves_cache_untouched(
        self, make_watcher, broadcaster
    ):
        watcher = make_watcher(NINE)
        broadcaster.fail_on = lambda e: isinstance(e, PinSnapshotChanged)

        with pytest.raises(DispatchError):
            await watcher.poll()
        assert watcher.pinned_conversations == []

        broadcaster.fail_on = None
        assert await watcher.poll() is not None


@pytest.mark.unit
@pytest.mark.asyncio
class TestOverlay:
    async def test_pinned_index_by_id(self, make_watcher, pinned_store):
        watcher = make_watcher(["Chat 2", "Chat 5"])
        await watcher.poll()

        listing = pinned_store.recent_conversations(limit=9)
        result = {c.id: c.pinned_index for c in watcher.overlay_pins(listing)}

        assert result["chat-8"] is None
        assert result["chat-2"] == 0
        assert result["chat-5"] == 1

    async def test_missing_pins_are_injected_with_zero_unread(
        self, make_watcher, make_conversation
    ):
        watcher = make_watcher(["Chat 0", "Chat 1"])
        await watcher.poll()
        other = make_conversation("chat-other", ["Someone Else"])

        result = watcher.overlay_pins([other])

        assert [c.id for c in result] == ["chat-other", "chat-0", "chat-1"]
        assert [c.unread_count for c in result[1:]] == [0, 0]
        assert [c.pinned_index for c in result[1:]] == [0, 1]

    async def test_participant_set_matches_other_chat_id(
        self, make_watcher, make_conversation
    ):
        watcher = make_watcher(["Chat 0"])
        await watcher.poll()
        sms_variant = make_conversation("chat-0-sms", ["Person 0"], unread_count=2)

        result = watcher.overlay_pins([sms_variant])

        # The cached chat-0 is represented by its variant and not injected
        assert [(c.id, c.pinned_index, c.unread_count) for c in result] == [
            ("chat-0-sms", 0, 2)
        ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stop_clears_cache(make_watcher):
    watcher = make_watcher(NINE)
    await watcher.poll()

    await watcher.start()
    await watcher.stop()

    assert watcher.is_running is False
    assert watcher.pinned_conversations == []
    assert watcher.cached_conversations == {}
    assert watcher.status() == {
        "running": False,
        "pinned_count": 0,
        "cached_conversations": 0,
    }
