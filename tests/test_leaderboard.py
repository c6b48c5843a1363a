"""Tests for aggregation: totals, feed, top-K, rank changes and BoardView."""

from zapboard.leaderboard import (
    BoardView,
    RankChange,
    aggregate,
    feed,
    rank_changes,
    top_messages,
    total_sats,
)
from zapboard.models import ZapMessage


def _msg(mid: str, sats: int, ts: int, ref: str | None = None) -> ZapMessage:
    return ZapMessage(id=mid, content=f"msg {mid}", zap_amount=sats, timestamp=ts, ref=ref)


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------


class TestPureAggregation:
    def test_total(self) -> None:
        assert total_sats([_msg("a", 10, 1), _msg("b", 32, 2)]) == 42
        assert total_sats([]) == 0

    def test_feed_newest_first(self) -> None:
        msgs = [_msg("a", 1, 100), _msg("b", 1, 300), _msg("c", 1, 200)]
        assert [m.id for m in feed(msgs)] == ["b", "c", "a"]

    def test_top_by_amount(self) -> None:
        msgs = [_msg("a", 5, 1), _msg("b", 50, 2), _msg("c", 20, 3), _msg("d", 1, 4)]
        assert [m.id for m in top_messages(msgs)] == ["b", "c", "a"]

    def test_tie_goes_to_earlier_message(self) -> None:
        msgs = [_msg("late", 100, 20), _msg("early", 100, 10), _msg("small", 1, 5)]
        assert [m.id for m in top_messages(msgs, 2)] == ["early", "late"]

    def test_fewer_than_k(self) -> None:
        assert [m.id for m in top_messages([_msg("a", 1, 1)], 3)] == ["a"]
        assert top_messages([_msg("a", 1, 1)], 0) == []

    def test_rank_is_one_based(self) -> None:
        board = [_msg("a", 30, 1), _msg("b", 20, 2), _msg("c", 10, 3)]
        assert [c.rank for c in rank_changes([], board)] == [1, 2, 3]
        assert rank_changes(["a", "b"], board) == [RankChange("c", 3)]

    def test_rank_changes_only_new_entries(self) -> None:
        board = [_msg("x", 100, 3), _msg("a", 50, 1), _msg("b", 20, 2)]
        assert rank_changes(["a", "b", "c"], board) == [RankChange("x", 1)]
        assert rank_changes([], board[:1]) == [RankChange("x", 1)]
        assert rank_changes(["x", "a", "b"], board) == []

    def test_aggregate_snapshot(self) -> None:
        msgs = [_msg("a", 10, 1), _msg("b", 30, 2), _msg("c", 20, 3), _msg("d", 40, 4)]
        snap = aggregate(msgs, 3)
        assert snap.total_sats == 100
        assert snap.message_count == 4
        assert [m.id for m in snap.feed] == ["d", "c", "b", "a"]
        assert [m.id for m in snap.leaderboard] == ["d", "b", "c"]


# ---------------------------------------------------------------------------
# BoardView
# ---------------------------------------------------------------------------


class TestBoardView:
    def test_updates_and_rank_changes(self) -> None:
        updates = []
        view = BoardView("b1", lambda snap, changes: updates.append((snap, changes)))

        assert view.add(_msg("a", 10, 1)) == [RankChange("a", 1)]
        view.add(_msg("b", 5, 2))
        view.add(_msg("c", 1, 3))
        changes = view.add(_msg("d", 50, 4))

        assert changes == [RankChange("d", 1)]
        assert view.snapshot.total_sats == 66
        assert [m.id for m in view.snapshot.leaderboard] == ["d", "a", "b"]
        assert len(updates) == 4

    def test_small_zap_outside_top_produces_no_change(self) -> None:
        view = BoardView("b1")
        for i, sats in enumerate([100, 90, 80]):
            view.add(_msg(f"m{i}", sats, i))
        assert view.add(_msg("tiny", 1, 10)) == []
        assert view.snapshot.message_count == 4

    def test_duplicate_ids_ignored(self) -> None:
        updates = []
        view = BoardView("b1", lambda snap, changes: updates.append(snap))
        view.add(_msg("a", 10, 1))
        assert view.add(_msg("a", 10, 1)) == []
        assert view.snapshot.total_sats == 10
        assert len(updates) == 1
        assert len(view.messages) == 1

    def test_has_ref(self) -> None:
        view = BoardView("b1")
        assert not view.has_ref("mine")
        view.add(_msg("a", 10, 1, ref="mine"))
        assert view.has_ref("mine")

    def test_leaderboard_size(self) -> None:
        view = BoardView("b1", leaderboard_size=1)
        view.add(_msg("a", 10, 1))
        view.add(_msg("b", 20, 2))
        assert [m.id for m in view.snapshot.leaderboard] == ["b"]
