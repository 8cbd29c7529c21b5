"""Domain models for the live quiz game."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class GamePhase(str, Enum):
    """Top-level phase of the single live game."""

    LOBBY = "lobby"
    IN_PROGRESS = "in_progress"
    OVER = "over"


@dataclass(slots=True)
class QuizQuestion:
    """Multiple-choice question with one correct option."""

    id: int
    prompt: str
    options: list[str]
    correct_option_index: int
    image: str | None = None

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_option_index]

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "options": list(self.options),
            "correct_option_index": self.correct_option_index,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuizQuestion":
        return cls(
            id=int(data["id"]),
            prompt=data["prompt"],
            options=list(data["options"]),
            correct_option_index=int(data["correct_option_index"]),
            image=data.get("image"),
        )


@dataclass(slots=True)
class Player:
    """A participant keyed by display name; survives connection churn."""

    name: str
    join_order: int
    connection_id: str | None = None
    score: int = 0
    pending_answer: str | None = None
    pending_answer_at: datetime | None = None

    @property
    def connected(self) -> bool:
        return self.connection_id is not None

    def clear_pending_answer(self) -> None:
        self.pending_answer = None
        self.pending_answer_at = None


@dataclass(slots=True)
class DisconnectRecord:
    """Provisional-disconnect entry waiting for a reconnection."""

    player_name: str
    disconnected_at: datetime
    token: int
    timer: object | None = None  # cancelable handle from a Scheduler


@dataclass(slots=True)
class AnswerRecord:
    """The scored answer of one player for one question."""

    player_name: str
    question_index: int
    question_prompt: str
    selected_option: str
    correct_option: str
    is_correct: bool
    submitted_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "player_name": self.player_name,
            "question_index": self.question_index,
            "question_prompt": self.question_prompt,
            "selected_option": self.selected_option,
            "correct_option": self.correct_option,
            "is_correct": self.is_correct,
            "submitted_at": self.submitted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnswerRecord":
        return cls(
            player_name=data["player_name"],
            question_index=int(data["question_index"]),
            question_prompt=data.get("question_prompt", ""),
            selected_option=data["selected_option"],
            correct_option=data["correct_option"],
            is_correct=bool(data["is_correct"]),
            submitted_at=datetime.fromisoformat(data["submitted_at"]),
        )


@dataclass(slots=True, frozen=True)
class LeaderboardEntry:
    """Final standing of one player."""

    name: str
    score: int

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "score": self.score}


@dataclass(slots=True)
class GameRecord:
    """Immutable summary of a finished game handed to the results archive."""

    game_id: str
    finished_at: datetime
    total_questions: int
    scores: dict[str, int]
    responses: dict[str, list[AnswerRecord]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "game_id": self.game_id,
            "finished_at": self.finished_at.isoformat(),
            "total_questions": self.total_questions,
            "scores": dict(self.scores),
            "responses": {
                name: [record.to_dict() for record in records]
                for name, records in self.responses.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GameRecord":
        return cls(
            game_id=data["game_id"],
            finished_at=datetime.fromisoformat(data["finished_at"]),
            total_questions=int(data["total_questions"]),
            scores={name: int(score) for name, score in data.get("scores", {}).items()},
            responses={
                name: [AnswerRecord.from_dict(item) for item in records]
                for name, records in data.get("responses", {}).items()
            },
        )
