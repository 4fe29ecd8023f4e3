"""Match sidebar display names to conversations.

The sidebar snapshot carries names only, formatted differently from the
store: unnamed groups show up as "Jamie & Mom" or "Jamie,  Carlos & Juwan"
and contacts by first name. Each name goes through a cascade of
progressively looser rules; the first rule that yields an unmatched
conversation wins.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from chatbridge.models import Conversation, PinnedConversation

logger = logging.getLogger(__name__)

MAX_DIAGNOSTIC_CANDIDATES = 20


def normalize_for_matching(name: str) -> str:
    """Bring sidebar and store naming onto a common format.

    "A & B" becomes "A, B" and the sidebar's double-spaced separators are
    collapsed.
    """
    return name.replace(" & ", ", ").replace(",  ", ", ").strip()


def extract_names(sidebar_name: str) -> Set[str]:
    """Individual names in a sidebar entry such as "A,  B,  C & D"."""
    names = normalize_for_matching(sidebar_name).split(", ")
    return {name.strip() for name in names if name.strip()}


def first_names(conversation: Conversation) -> Set[str]:
    return {participant.first_name for participant in conversation.participants}


@dataclass
class PinMatchResult:
    """Matched pins plus the conversations they resolved to."""

    pins: List[PinnedConversation] = field(default_factory=list)
    conversations: Dict[str, Conversation] = field(default_factory=dict)
    unmatched: List[str] = field(default_factory=list)


class _MatchTracker:
    """Conversations already claimed by an earlier sidebar name.

    Claims are by id and by participant set: the same group can exist
    under several chat ids (SMS and iMessage variants).
    """

    def __init__(self) -> None:
        self.ids: Set[str] = set()
        self.participant_sets: Set[FrozenSet[str]] = set()

    def record(self, conversation: Conversation) -> None:
        self.ids.add(conversation.id)
        addresses = conversation.participant_addresses
        if addresses:
            self.participant_sets.add(addresses)

    def is_matched(self, conversation: Conversation) -> bool:
        if conversation.id in self.ids:
            return True
        addresses = conversation.participant_addresses
        return bool(addresses) and addresses in self.participant_sets


def _most_recent(
    candidates: Iterable[Conversation], tracker: _MatchTracker
) -> Optional[Conversation]:
    available = [c for c in candidates if not tracker.is_matched(c)]
    if not available:
        return None
    return max(available, key=lambda c: c.last_activity)


class PinMatcher:
    """Resolve an ordered list of sidebar names to pinned conversations."""

    def __init__(self, max_diagnostic_candidates: int = MAX_DIAGNOSTIC_CANDIDATES):
        self.max_diagnostic_candidates = max_diagnostic_candidates

    def match(
        self, display_names: Sequence[str], conversations: Sequence[Conversation]
    ) -> PinMatchResult:
        by_name: Dict[str, List[Conversation]] = {}
        by_normalized_name: Dict[str, List[Conversation]] = {}
        by_full_name: Dict[str, List[Conversation]] = {}
        by_id: Dict[str, Conversation] = {}

        for conversation in conversations:
            name = conversation.resolved_display_name
            by_name.setdefault(name, []).append(conversation)
            by_normalized_name.setdefault(normalize_for_matching(name), []).append(
                conversation
            )
            # Unnamed groups of four or more are truncated in the resolved
            # name; the sidebar lists everyone
            if conversation.is_group and not conversation.has_custom_name:
                full_name = normalize_for_matching(conversation.full_participant_name)
                by_full_name.setdefault(full_name, []).append(conversation)
            by_id.setdefault(conversation.id, conversation)

        result = PinMatchResult()
        tracker = _MatchTracker()

        for index, display_name in enumerate(display_names):
            matched = self._match_one(
                display_name,
                conversations,
                tracker,
                by_name,
                by_id,
                by_normalized_name,
                by_full_name,
            )
            if matched is None:
                result.unmatched.append(display_name)
                self._log_unmatched(display_name, conversations)
                continue
            tracker.record(matched)
            result.pins.append(PinnedConversation(conversation_id=matched.id, index=index))
            result.conversations[matched.id] = matched

        return result

    def _match_one(
        self,
        display_name: str,
        conversations: Sequence[Conversation],
        tracker: _MatchTracker,
        by_name: Dict[str, List[Conversation]],
        by_id: Dict[str, Conversation],
        by_normalized_name: Dict[str, List[Conversation]],
        by_full_name: Dict[str, List[Conversation]],
    ) -> Optional[Conversation]:
        normalized = normalize_for_matching(display_name)
        sidebar_names = extract_names(display_name)

        rules: List[Callable[[], Optional[Conversation]]] = [
            lambda: _most_recent(by_name.get(display_name, ()), tracker),
            lambda: self._match_identifier(display_name, by_id, tracker),
            lambda: _most_recent(by_normalized_name.get(normalized, ()), tracker),
            lambda: _most_recent(by_full_name.get(normalized, ()), tracker),
            lambda: self._match_first_name(sidebar_names, conversations, tracker),
            lambda: self._match_group_subset(sidebar_names, conversations, tracker),
        ]
        for rule in rules:
            matched = rule()
            if matched is not None:
                return matched
        return None

    @staticmethod
    def _match_identifier(
        display_name: str, by_id: Dict[str, Conversation], tracker: _MatchTracker
    ) -> Optional[Conversation]:
        # Unresolved phone numbers and e-mail addresses appear verbatim
        conversation = by_id.get(display_name)
        if conversation is None or tracker.is_matched(conversation):
            return None
        return conversation

    @staticmethod
    def _match_first_name(
        sidebar_names: Set[str],
        conversations: Sequence[Conversation],
        tracker: _MatchTracker,
    ) -> Optional[Conversation]:
        """One-on-one chat whose participant's first name is the sidebar name."""
        if len(sidebar_names) != 1:
            return None
        (sidebar_name,) = sidebar_names
        candidates = [
            c
            for c in conversations
            if not c.is_group
            and c.participants
            and c.participants[0].first_name == sidebar_name
        ]
        return _most_recent(candidates, tracker)

    @staticmethod
    def _match_group_subset(
        sidebar_names: Set[str],
        conversations: Sequence[Conversation],
        tracker: _MatchTracker,
    ) -> Optional[Conversation]:
        """Group whose participant first names all appear in the sidebar name.

        The store leaves the local user out of the participants, so the
        sidebar may list one extra name. Overlapping groups can still be
        confused with each other.
        """
        if len(sidebar_names) < 2:
            return None
        candidates = []
        for conversation in conversations:
            if not conversation.is_group or tracker.is_matched(conversation):
                continue
            names = first_names(conversation)
            if not names.issubset(sidebar_names):
                continue
            if 0 <= len(sidebar_names) - len(names) <= 1:
                candidates.append(conversation)
        if not candidates:
            return None
        # Closest participant count first, then most recent activity
        return min(
            candidates,
            key=lambda c: (
                abs(len(sidebar_names) - len(c.participants)),
                -c.last_activity.timestamp(),
            ),
        )

    def _log_unmatched(
        self, display_name: str, conversations: Sequence[Conversation]
    ) -> None:
        sidebar_names = extract_names(display_name)
        logger.info(
            "Unmatched pinned name %r (tokens: {%s})",
            display_name,
            ", ".join(sorted(sidebar_names)),
        )
        want_groups = len(sidebar_names) >= 2
        candidates = [c for c in conversations if c.is_group == want_groups]
        for candidate in candidates[: self.max_diagnostic_candidates]:
            logger.debug(
                "  candidate id=%s first_names=[%s] full_names=[%s]",
                candidate.id,
                ", ".join(p.first_name for p in candidate.participants),
                candidate.full_participant_name,
            )
