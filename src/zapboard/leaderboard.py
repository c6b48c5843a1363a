"""Aggregation over a board's message stream.

The pure functions recompute from the full message list; message volume
per board is small, so there is no incremental bookkeeping to get wrong.
``BoardView`` holds one board's list and notifies on change.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from zapboard.constants import LEADERBOARD_SIZE
from zapboard.models import ZapMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankChange:
    """A message that entered the leaderboard, with its 1-based rank."""

    message_id: str
    rank: int


@dataclass(frozen=True)
class BoardSnapshot:
    total_sats: int
    feed: list[ZapMessage] = field(default_factory=list)
    leaderboard: list[ZapMessage] = field(default_factory=list)
    message_count: int = 0


def total_sats(messages: Iterable[ZapMessage]) -> int:
    return sum(m.zap_amount for m in messages)


def feed(messages: Iterable[ZapMessage]) -> list[ZapMessage]:
    """Newest first."""
    return sorted(messages, key=lambda m: m.timestamp, reverse=True)


def top_messages(messages: Iterable[ZapMessage], k: int = LEADERBOARD_SIZE) -> list[ZapMessage]:
    """Largest zaps first; the earlier message wins a tie."""
    if k <= 0:
        return []
    return sorted(messages, key=lambda m: (-m.zap_amount, m.timestamp))[:k]


def rank_changes(
    prev_top_ids: Iterable[str], leaderboard: list[ZapMessage],
) -> list[RankChange]:
    """Entries of ``leaderboard`` not present in the previous top ids.

    Ranks are 1-based: the top message is rank 1, not index 0.
    """
    previous = set(prev_top_ids)
    return [
        RankChange(message.id, rank)
        for rank, message in enumerate(leaderboard, start=1)
        if message.id not in previous
    ]


def aggregate(messages: list[ZapMessage], k: int = LEADERBOARD_SIZE) -> BoardSnapshot:
    return BoardSnapshot(
        total_sats=total_sats(messages),
        feed=feed(messages),
        leaderboard=top_messages(messages, k),
        message_count=len(messages),
    )


UpdateCallback = Callable[[BoardSnapshot, list[RankChange]], None]


class BoardView:
    """One board's live message list.

    Feed it from ``ReceiptMonitor.subscribe(..., on_message=view.add)``.
    Duplicate ids are ignored, so a view can be fed from several sources.
    """

    def __init__(
        self,
        board_id: str,
        on_update: UpdateCallback | None = None,
        *,
        leaderboard_size: int = LEADERBOARD_SIZE,
    ) -> None:
        self.board_id = board_id
        self._on_update = on_update
        self._k = leaderboard_size
        self._messages: list[ZapMessage] = []
        self._ids: set[str] = set()
        self._refs: set[str] = set()
        self._snapshot = aggregate([], leaderboard_size)

    @property
    def snapshot(self) -> BoardSnapshot:
        return self._snapshot

    @property
    def messages(self) -> list[ZapMessage]:
        return list(self._messages)

    def has_ref(self, ref: str) -> bool:
        """True once a message carrying correlation id ``ref`` has arrived."""
        return ref in self._refs

    def add(self, message: ZapMessage) -> list[RankChange]:
        """Append ``message`` and return leaderboard entries it caused."""
        if message.id in self._ids:
            return []
        self._ids.add(message.id)
        if message.ref:
            self._refs.add(message.ref)
        self._messages.append(message)

        previous = [m.id for m in self._snapshot.leaderboard]
        self._snapshot = aggregate(self._messages, self._k)
        changes = rank_changes(previous, self._snapshot.leaderboard)
        for change in changes:
            logger.debug(
                "Board %s: message %s entered the leaderboard at #%d.",
                self.board_id, change.message_id[:16], change.rank,
            )
        if self._on_update is not None:
            self._on_update(self._snapshot, changes)
        return changes
