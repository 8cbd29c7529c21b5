from __future__ import annotations

from livequiz.core.models import LeaderboardEntry, Player
from livequiz.core.services.scoreboard import ScoreChange, Scoreboard


def players(*scores: int) -> list[Player]:
    return [
        Player(name=name, join_order=order, score=score)
        for order, (name, score) in enumerate(zip("ABCDE", scores), start=1)
    ]


def test_finalize_is_stable_for_ties():
    board = Scoreboard()
    roster = players(2, 3, 2, 3)
    # Input order must not matter, only join order.
    ranked = board.finalize(list(reversed(roster)))
    assert [(e.name, e.score) for e in ranked] == [("B", 3), ("D", 3), ("A", 2), ("C", 2)]
    assert board.get_winners() == [LeaderboardEntry("B", 3), LeaderboardEntry("D", 3)]


def test_all_zero_scores_all_win():
    board = Scoreboard()
    board.finalize(players(0, 0, 0))
    assert [e.name for e in board.get_winners()] == ["A", "B", "C"]


def test_empty_roster_and_clear():
    board = Scoreboard()
    assert board.finalize([]) == []
    assert board.get_winners() == []
    board.finalize(players(1))
    board.clear()
    assert board.get_leaderboard() == []


def test_score_change_payload():
    change = ScoreChange(previous_score=1, new_score=2, is_correct=True)
    assert change.to_dict() == {
        "previous_score": 1,
        "new_score": 2,
        "score_changed": True,
        "is_correct": True,
    }
