"""Service owning the authoritative state of the single live game."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable
from uuid import uuid4

from livequiz.core.errors import CommandRejected
from livequiz.core.events import (
    GameEvent,
    GameOver,
    GameReset,
    GameStarted,
    PlayerAnswered,
    PlayerJoined,
    PlayerLeft,
    PlayerView,
    QuestionAdvanced,
    QuestionView,
    players_payload,
)
from livequiz.core.markdown_math_renderer import renderer
from livequiz.core.models import (
    AnswerRecord,
    DisconnectRecord,
    GamePhase,
    GameRecord,
    LeaderboardEntry,
    Player,
    QuizQuestion,
)
from livequiz.core.services.player_registry import JoinOutcome, PlayerRegistry
from livequiz.core.services.question_pool import QuestionPool
from livequiz.core.services.scoreboard import ScoreChange, Scoreboard

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GameSession:
    """Phase machine: lobby -> in_progress -> over, reset back to lobby.

    Not thread-safe on its own; ``QuizManager`` serializes every call.
    Mutating methods return the domain events they caused.
    """

    def __init__(
        self,
        pool: QuestionPool,
        registry: PlayerRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._pool = pool
        self._registry = registry or PlayerRegistry()
        self._scoreboard = Scoreboard()
        self._clock = clock
        self._phase = GamePhase.LOBBY
        self._questions: list[QuizQuestion] = []
        self._question_index: int = 0
        self._game_id: str = uuid4().hex
        self._answer_records: list[AnswerRecord] = []

    # --- Queries ---

    @property
    def registry(self) -> PlayerRegistry:
        return self._registry

    @property
    def phase(self) -> GamePhase:
        return self._phase

    @property
    def game_id(self) -> str:
        return self._game_id

    @property
    def question_index(self) -> int:
        return self._question_index

    @property
    def total_questions(self) -> int:
        return len(self._questions)

    def get_current_question(self) -> QuizQuestion | None:
        if self._phase is not GamePhase.IN_PROGRESS:
            return None
        return self._questions[self._question_index]

    def get_answer_records(self) -> list[AnswerRecord]:
        return list(self._answer_records)

    def get_leaderboard(self) -> list[LeaderboardEntry]:
        return self._scoreboard.get_leaderboard()

    def get_winners(self) -> list[LeaderboardEntry]:
        return self._scoreboard.get_winners()

    # --- Commands ---

    def join(self, name: str, connection_id: str) -> tuple[JoinOutcome, list[GameEvent]]:
        if self._phase is GamePhase.OVER and self._registry.get(name) is None:
            raise CommandRejected("game_over", "Game is over; wait for the host to reset")
        outcome = self._registry.resolve_join(
            name,
            connection_id,
            allow_new=self._phase is GamePhase.LOBBY,
            now=self._clock(),
        )
        event = PlayerJoined(
            name=outcome.player.name,
            resolution=outcome.resolution.value,
            players=self._player_views(),
        )
        return outcome, [event]

    def disconnect(self, connection_id: str) -> DisconnectRecord | None:
        return self._registry.release_connection(connection_id, self._clock())

    def expire(self, name: str, token: int) -> list[GameEvent]:
        player = self._registry.expire(name, token)
        if player is None:
            return []
        return [PlayerLeft(name=player.name, players=self._player_views())]

    def start(self, questions_per_game: int) -> list[GameEvent]:
        if self._phase is GamePhase.IN_PROGRESS:
            raise CommandRejected("game_in_progress", "Game already in progress")
        if self._phase is GamePhase.OVER:
            raise CommandRejected("game_over", "Game is over; reset before starting a new one")
        if self._registry.get_player_count() == 0:
            raise CommandRejected("no_players", "Need at least one player to start")

        questions = self._pool.draw(questions_per_game)
        if not questions:
            raise CommandRejected("no_questions", "The question bank is empty")

        self._questions = questions
        self._question_index = 0
        self._game_id = uuid4().hex
        self._answer_records = []
        self._scoreboard.clear()
        for player in self._registry.get_players():
            player.score = 0
            player.clear_pending_answer()
        self._phase = GamePhase.IN_PROGRESS
        logger.info(
            "Game %s started with %d questions and %d players",
            self._game_id,
            len(questions),
            self._registry.get_player_count(),
        )
        return [
            GameStarted(
                game_id=self._game_id,
                question=self._current_view(),
                question_index=self._question_index,
                total_questions=self.total_questions,
                players=self._player_views(),
            )
        ]

    def submit_answer(self, connection_id: str, option: str) -> tuple[Player, list[GameEvent]]:
        if self._phase is not GamePhase.IN_PROGRESS:
            raise CommandRejected("not_in_progress", "Cannot submit answer at this time")
        player = self._registry.get_by_connection(connection_id)
        if player is None:
            raise CommandRejected("unknown_player", "Please rejoin the game")
        question = self._questions[self._question_index]
        if option not in question.options:
            raise CommandRejected("invalid_option", f"'{option}' is not an option of this question")

        # Later submissions overwrite earlier ones; only the last one is scored.
        player.pending_answer = option
        player.pending_answer_at = self._clock()
        players = self._registry.get_players()
        answered = sum(1 for p in players if p.pending_answer is not None)
        return player, [
            PlayerAnswered(
                name=player.name,
                question_index=self._question_index,
                answered_count=answered,
                player_count=len(players),
            )
        ]

    def advance(self) -> tuple[list[GameEvent], GameRecord | None]:
        """Score the current question and move on.

        Returns the game record to archive when this advance ended the game.
        """
        if self._phase is not GamePhase.IN_PROGRESS:
            raise CommandRejected("not_in_progress", "No question is in progress")

        question = self._questions[self._question_index]
        correct_option = question.correct_option
        changes: dict[str, ScoreChange] = {}
        for player in self._registry.get_players():
            previous = player.score
            is_correct = player.pending_answer == correct_option
            if player.pending_answer is not None:
                self._answer_records.append(
                    AnswerRecord(
                        player_name=player.name,
                        question_index=self._question_index,
                        question_prompt=question.prompt,
                        selected_option=player.pending_answer,
                        correct_option=correct_option,
                        is_correct=is_correct,
                        submitted_at=player.pending_answer_at or self._clock(),
                    )
                )
            if is_correct:
                player.score += 1
            changes[player.name] = ScoreChange(
                previous_score=previous, new_score=player.score, is_correct=is_correct
            )
            player.clear_pending_answer()

        self._question_index += 1
        if self._question_index < self.total_questions:
            logger.info("Moving to question %d of %d", self._question_index + 1, self.total_questions)
            return [
                QuestionAdvanced(
                    question=self._current_view(),
                    question_index=self._question_index,
                    total_questions=self.total_questions,
                    players=self._player_views(),
                    score_changes=changes,
                )
            ], None

        self._phase = GamePhase.OVER
        leaderboard = self._scoreboard.finalize(self._registry.get_players())
        logger.info(
            "Game %s over, leaderboard: %s",
            self._game_id,
            ", ".join(f"{entry.name}={entry.score}" for entry in leaderboard),
        )
        event = GameOver(
            game_id=self._game_id,
            total_questions=self.total_questions,
            players=self._player_views(),
            leaderboard=tuple(leaderboard),
            winners=tuple(self._scoreboard.get_winners()),
            score_changes=changes,
        )
        return [event], self._build_game_record()

    def reset(self) -> list[GameEvent]:
        self._registry.clear()
        self._scoreboard.clear()
        self._questions = []
        self._question_index = 0
        self._answer_records = []
        self._phase = GamePhase.LOBBY
        logger.info("Game reset")
        return [GameReset()]

    # --- Views ---

    def snapshot(self, include_answer: bool = False) -> dict[str, object]:
        """Full current state for an observer that just connected."""
        question = self._current_view()
        over = self._phase is GamePhase.OVER
        return {
            "type": "state",
            "phase": self._phase.value,
            "game_id": self._game_id,
            "players": players_payload(self._player_views()),
            "question_index": self._question_index,
            "total_questions": self.total_questions,
            "question": question.to_payload(include_answer) if question else None,
            "leaderboard": [e.to_dict() for e in self._scoreboard.get_leaderboard()] if over else [],
            "winners": [e.to_dict() for e in self._scoreboard.get_winners()] if over else [],
        }

    def _player_views(self) -> tuple[PlayerView, ...]:
        return tuple(
            PlayerView(name=p.name, score=p.score, connected=p.connected)
            for p in self._registry.get_players()
        )

    def _current_view(self) -> QuestionView | None:
        question = self.get_current_question()
        if question is None:
            return None
        return QuestionView(
            id=question.id,
            prompt=question.prompt,
            prompt_html=renderer.render_fragment(question.prompt),
            options=tuple(question.options),
            image=question.image,
            correct_option=question.correct_option,
        )

    def _build_game_record(self) -> GameRecord:
        responses: dict[str, list[AnswerRecord]] = {}
        for record in self._answer_records:
            responses.setdefault(record.player_name, []).append(record)
        return GameRecord(
            game_id=self._game_id,
            finished_at=self._clock(),
            total_questions=self.total_questions,
            scores={p.name: p.score for p in self._registry.get_players()},
            responses=responses,
        )
