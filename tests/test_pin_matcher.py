import logging
from datetime import datetime, timezone

import pytest

from chatbridge.models import Message
from chatbridge.pins import PinMatcher, extract_names, normalize_for_matching


def matched_ids(result):
    return [pin.conversation_id for pin in result.pins]


@pytest.mark.unit
class TestNameHelpers:
    def test_normalize_ampersand_and_double_spaces(self):
        assert normalize_for_matching("Jamie,  Carlos & Juwan") == "Jamie, Carlos, Juwan"

    def test_extract_names(self):
        assert extract_names("Jamie,  Carlos & Juwan") == {"Jamie", "Carlos", "Juwan"}
        assert extract_names("Carol") == {"Carol"}


@pytest.mark.unit
class TestCascade:
    def test_exact_custom_name(self, make_conversation):
        club = make_conversation("chat-club", ["Ann Lee", "Ben Ito"], display_name="Book Club")

        result = PinMatcher().match(["Book Club"], [club])

        assert matched_ids(result) == ["chat-club"]
        assert result.conversations["chat-club"] is club

    def test_raw_identifier(self, make_conversation):
        dana = make_conversation(
            "dana@example.com", ["Dana Scully"], addresses=["dana@example.com"]
        )

        result = PinMatcher().match(["dana@example.com"], [dana])

        assert matched_ids(result) == ["dana@example.com"]

    def test_ampersand_group_name(self, make_conversation):
        family = make_conversation("chat-family", ["Jamie", "Mom"])

        result = PinMatcher().match(["Jamie & Mom"], [family])

        assert matched_ids(result) == ["chat-family"]

    def test_large_unnamed_group_uses_full_participant_list(self, make_conversation):
        group = make_conversation("chat-four", ["Ann", "Ben", "Cat", "Dee"])
        assert group.resolved_display_name == "Ann, Ben, Cat +1"

        result = PinMatcher().match(["Ann,  Ben,  Cat & Dee"], [group])

        assert matched_ids(result) == ["chat-four"]

    def test_first_name_of_one_on_one(self, make_conversation):
        carol = make_conversation("+15550001111", ["Carol Lesniewski"])

        result = PinMatcher().match(["Carol"], [carol])

        assert matched_ids(result) == ["+15550001111"]

    def test_first_name_prefers_most_recent(self, make_conversation):
        older = make_conversation("carol-old", ["Carol Lesniewski"], last_active_minutes=1)
        newer = make_conversation("carol-new", ["Carol Danvers"], last_active_minutes=9)

        result = PinMatcher().match(["Carol", "Carol"], [older, newer])

        assert matched_ids(result) == ["carol-new", "carol-old"]

    def test_naive_dates_compare_with_conversations_without_messages(
        self, make_conversation
    ):
        quiet = make_conversation("carol-quiet", ["Carol Danvers"]).model_copy(
            update={"last_message": None}
        )
        naive_last = Message(
            id=7,
            guid="NAIVE",
            text="hi",
            date=datetime(2024, 5, 1, 9, 30),
            conversation_id="carol-recent",
        )
        recent = make_conversation("carol-recent", ["Carol Lesniewski"]).model_copy(
            update={"last_message": naive_last}
        )

        result = PinMatcher().match(["Carol"], [quiet, recent])

        assert matched_ids(result) == ["carol-recent"]
        assert recent.last_activity.tzinfo is timezone.utc

    def test_group_missing_the_local_user(self, make_conversation):
        # Only Carol is stored; the sidebar adds the local user's first name
        group = make_conversation("chat-jc", ["Carol Lesniewski"], is_group=True)

        result = PinMatcher().match(["Jamie & Carol"], [group])

        assert matched_ids(result) == ["chat-jc"]

    def test_group_subset_prefers_closest_size(self, make_conversation):
        exact = make_conversation(
            "chat-exact", ["Jamie Fox", "Carol Lesniewski"], last_active_minutes=1
        )
        partial = make_conversation(
            "chat-partial", ["Carol Lesniewski"], is_group=True, last_active_minutes=30
        )

        result = PinMatcher().match(["Jamie & Carol"], [partial, exact])

        assert matched_ids(result) == ["chat-exact"]

    def test_group_subset_needs_two_names(self, make_conversation):
        group = make_conversation("chat-solo", ["Carol Lesniewski"], is_group=True)

        result = PinMatcher().match(["Carol"], [group])

        assert result.pins == []
        assert result.unmatched == ["Carol"]


@pytest.mark.unit
class TestUniqueness:
    def test_same_participants_under_two_ids_match_once(self, make_conversation):
        addresses = ["+15550001111", "+15550002222"]
        sms = make_conversation(
            "chat-sms", ["Jamie", "Mom"], addresses=addresses, last_active_minutes=1
        )
        imessage = make_conversation(
            "chat-imessage", ["Jamie", "Mom"], addresses=addresses, last_active_minutes=5
        )

        result = PinMatcher().match(["Jamie & Mom", "Jamie & Mom"], [sms, imessage])

        assert matched_ids(result) == ["chat-imessage"]
        assert result.unmatched == ["Jamie & Mom"]

    def test_index_follows_sidebar_position(self, make_conversation):
        carol = make_conversation("+15550001111", ["Carol Lesniewski"])

        result = PinMatcher().match(["Nobody Known", "Carol"], [carol])

        assert [(p.conversation_id, p.index) for p in result.pins] == [
            ("+15550001111", 1)
        ]

    def test_unmatched_names_are_logged_with_candidates(
        self, make_conversation, caplog
    ):
        group = make_conversation("chat-x", ["Ann Lee", "Ben Ito"])
        caplog.set_level(logging.DEBUG, logger="chatbridge.pins.matcher")

        result = PinMatcher().match(["Zed & Yan"], [group])

        assert result.unmatched == ["Zed & Yan"]
        assert "Unmatched pinned name 'Zed & Yan'" in caplog.text
        assert "candidate id=chat-x" in caplog.text
