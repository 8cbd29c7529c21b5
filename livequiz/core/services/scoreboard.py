"""Service for ranking players once a game is over."""

from __future__ import annotations

from dataclasses import dataclass

from livequiz.core.models import LeaderboardEntry, Player


@dataclass(slots=True, frozen=True)
class ScoreChange:
    """Per-player outcome of a single advance."""

    previous_score: int
    new_score: int
    is_correct: bool

    @property
    def score_changed(self) -> bool:
        return self.previous_score != self.new_score

    def to_dict(self) -> dict[str, object]:
        return {
            "previous_score": self.previous_score,
            "new_score": self.new_score,
            "score_changed": self.score_changed,
            "is_correct": self.is_correct,
        }


class Scoreboard:
    """Holds the final standings of the current game."""

    def __init__(self) -> None:
        self._leaderboard: list[LeaderboardEntry] = []
        self._winners: list[LeaderboardEntry] = []

    def finalize(self, players: list[Player]) -> list[LeaderboardEntry]:
        """Rank players by score; equal scores keep join order."""
        by_join_order = sorted(players, key=lambda p: p.join_order)
        # sorted() is stable, so ties stay in join order
        ranked = sorted(by_join_order, key=lambda p: p.score, reverse=True)
        self._leaderboard = [LeaderboardEntry(name=p.name, score=p.score) for p in ranked]
        top_score = max((entry.score for entry in self._leaderboard), default=0)
        self._winners = [entry for entry in self._leaderboard if entry.score == top_score]
        return list(self._leaderboard)

    def get_leaderboard(self) -> list[LeaderboardEntry]:
        return list(self._leaderboard)

    def get_winners(self) -> list[LeaderboardEntry]:
        return list(self._winners)

    def clear(self) -> None:
        self._leaderboard = []
        self._winners = []
