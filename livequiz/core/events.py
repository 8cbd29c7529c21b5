"""Domain events emitted by the game session.

Every state mutation returns the events it caused. Events are immutable
and carry everything an observer needs, so the gateway never reads the
session again to render them. ``to_payload(include_answer=...)`` decides
whether the correct option is revealed (host screens) or withheld
(player devices).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from livequiz.core.models import LeaderboardEntry
from livequiz.core.services.scoreboard import ScoreChange


@dataclass(slots=True, frozen=True)
class PlayerView:
    name: str
    score: int
    connected: bool


@dataclass(slots=True, frozen=True)
class QuestionView:
    id: int
    prompt: str
    prompt_html: str
    options: tuple[str, ...]
    image: str | None
    correct_option: str

    def to_payload(self, include_answer: bool) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": self.id,
            "prompt": self.prompt,
            "prompt_html": self.prompt_html,
            "options": list(self.options),
            "image": self.image,
        }
        if include_answer:
            payload["correct_option"] = self.correct_option
        return payload


def players_payload(players: tuple[PlayerView, ...]) -> dict[str, dict[str, object]]:
    return {p.name: {"score": p.score, "connected": p.connected} for p in players}


@dataclass(slots=True, frozen=True)
class GameEvent:
    type: ClassVar[str] = "event"

    def to_payload(self, include_answer: bool = False) -> dict[str, object]:
        return {"type": self.type}


@dataclass(slots=True, frozen=True)
class PlayerJoined(GameEvent):
    type: ClassVar[str] = "player_joined"

    name: str
    resolution: str
    players: tuple[PlayerView, ...]

    def to_payload(self, include_answer: bool = False) -> dict[str, object]:
        return {
            "type": self.type,
            "name": self.name,
            "resolution": self.resolution,
            "players": players_payload(self.players),
        }


@dataclass(slots=True, frozen=True)
class PlayerLeft(GameEvent):
    type: ClassVar[str] = "player_left"

    name: str
    players: tuple[PlayerView, ...]

    def to_payload(self, include_answer: bool = False) -> dict[str, object]:
        return {"type": self.type, "name": self.name, "players": players_payload(self.players)}


@dataclass(slots=True, frozen=True)
class PlayerAnswered(GameEvent):
    type: ClassVar[str] = "player_answered"

    name: str
    question_index: int
    answered_count: int
    player_count: int

    def to_payload(self, include_answer: bool = False) -> dict[str, object]:
        return {
            "type": self.type,
            "name": self.name,
            "question_index": self.question_index,
            "answered_count": self.answered_count,
            "player_count": self.player_count,
        }


@dataclass(slots=True, frozen=True)
class GameStarted(GameEvent):
    type: ClassVar[str] = "game_started"

    game_id: str
    question: QuestionView
    question_index: int
    total_questions: int
    players: tuple[PlayerView, ...]

    def to_payload(self, include_answer: bool = False) -> dict[str, object]:
        return {
            "type": self.type,
            "game_id": self.game_id,
            "question": self.question.to_payload(include_answer),
            "question_index": self.question_index,
            "total_questions": self.total_questions,
            "players": players_payload(self.players),
        }


@dataclass(slots=True, frozen=True)
class QuestionAdvanced(GameEvent):
    type: ClassVar[str] = "question_advanced"

    question: QuestionView
    question_index: int
    total_questions: int
    players: tuple[PlayerView, ...]
    score_changes: dict[str, ScoreChange] = field(default_factory=dict)

    def to_payload(self, include_answer: bool = False) -> dict[str, object]:
        return {
            "type": self.type,
            "question": self.question.to_payload(include_answer),
            "question_index": self.question_index,
            "total_questions": self.total_questions,
            "players": players_payload(self.players),
            "score_changes": {
                name: change.to_dict() for name, change in self.score_changes.items()
            },
        }


@dataclass(slots=True, frozen=True)
class GameOver(GameEvent):
    type: ClassVar[str] = "game_over"

    game_id: str
    total_questions: int
    players: tuple[PlayerView, ...]
    leaderboard: tuple[LeaderboardEntry, ...]
    winners: tuple[LeaderboardEntry, ...]
    score_changes: dict[str, ScoreChange] = field(default_factory=dict)

    def to_payload(self, include_answer: bool = False) -> dict[str, object]:
        return {
            "type": self.type,
            "game_id": self.game_id,
            "total_questions": self.total_questions,
            "players": players_payload(self.players),
            "leaderboard": [entry.to_dict() for entry in self.leaderboard],
            "winners": [entry.to_dict() for entry in self.winners],
            "score_changes": {
                name: change.to_dict() for name, change in self.score_changes.items()
            },
        }


@dataclass(slots=True, frozen=True)
class GameReset(GameEvent):
    type: ClassVar[str] = "game_reset"
