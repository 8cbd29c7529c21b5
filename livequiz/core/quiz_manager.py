"""Business logic shared by the websocket gateway and the REST endpoints."""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
import logging
from threading import Lock
from typing import Callable

from livequiz.constants.quiz_constants import (
    DEFAULT_QUESTIONS_PER_GAME,
    DISCONNECT_GRACE_SECONDS,
    MAX_NAME_LENGTH,
)
from livequiz.core.errors import CommandRejected
from livequiz.core.events import GameEvent
from livequiz.core.models import (
    AnswerRecord,
    DisconnectRecord,
    GamePhase,
    Player,
    QuizQuestion,
)
from livequiz.core.name_assigner import NameAssigner
from livequiz.core.quiz_exporter import serialize_questions
from livequiz.core.quiz_importer import parse_quiz_text
from livequiz.core.services.game_session import GameSession, utc_now
from livequiz.core.services.question_bank import QuestionBank
from livequiz.core.services.question_pool import QuestionPool
from livequiz.core.services.results_archive import ResultsArchive
from livequiz.utils.scheduler import Scheduler, TimerScheduler

logger = logging.getLogger(__name__)

EventListener = Callable[[list[GameEvent]], None]


@dataclass(slots=True)
class CommandResult:
    """Events caused by a command plus an optional reply for its caller."""

    events: list[GameEvent] = field(default_factory=list)
    reply: dict[str, object] | None = None
    archive_future: Future | None = None


class QuizManager:
    """Single-writer facade over the bank, the live session and the archive.

    Every public method runs under one lock, so commands are applied one at
    a time and atomically. Events are handed to listeners while the lock is
    still held; listeners must only enqueue them and never call back into
    the manager.
    """

    def __init__(
        self,
        bank: QuestionBank | None = None,
        archive: ResultsArchive | None = None,
        scheduler: Scheduler | None = None,
        *,
        questions_per_game: int = DEFAULT_QUESTIONS_PER_GAME,
        grace_seconds: float = DISCONNECT_GRACE_SECONDS,
        name_assigner: NameAssigner | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._lock = Lock()

        # Services
        self._bank = bank or QuestionBank()
        self._pool = QuestionPool(self._bank)
        self._session = GameSession(self._pool, clock=clock)
        self._archive = archive or ResultsArchive()
        self._scheduler = scheduler or TimerScheduler()
        self._names = name_assigner or NameAssigner.from_file(None)

        self._questions_per_game = _validate_questions_per_game(questions_per_game)
        self._grace_seconds = grace_seconds
        self._listeners: list[EventListener] = []

    # --- Listeners ---

    def add_listener(self, listener: EventListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _publish(self, events: list[GameEvent]) -> None:
        if not events:
            return
        for listener in list(self._listeners):
            try:
                listener(events)
            except Exception:
                logger.exception("Event listener %r failed", listener)

    # --- Game commands ---

    def join(self, connection_id: str, name: str | None) -> CommandResult:
        with self._lock:
            cleaned = (name or "").strip()
            if not cleaned:
                taken = {p.name for p in self._session.registry.get_players()}
                cleaned = self._names.next_name(taken)
            if len(cleaned) > MAX_NAME_LENGTH:
                raise CommandRejected(
                    "invalid_name", f"Names are limited to {MAX_NAME_LENGTH} characters"
                )
            outcome, events = self._session.join(cleaned, connection_id)
            if outcome.released is not None:
                self._schedule_expiry(outcome.released)
            self._publish(events)
            reply = {
                "type": "joined",
                "name": outcome.player.name,
                "resolution": outcome.resolution.value,
                "retired_connection": outcome.retired_connection,
                "you": _personal(outcome.player),
                "state": self._session.snapshot(include_answer=False),
            }
            return CommandResult(events=events, reply=reply)

    def release_connection(self, connection_id: str) -> None:
        """Handle a dropped connection; its player gets a grace period."""
        with self._lock:
            record = self._session.disconnect(connection_id)
            if record is not None:
                self._schedule_expiry(record)

    def start_game(self) -> CommandResult:
        with self._lock:
            events = self._session.start(self._questions_per_game)
            self._publish(events)
            return CommandResult(events=events)

    def submit_answer(self, connection_id: str, option: str) -> CommandResult:
        with self._lock:
            player, events = self._session.submit_answer(connection_id, option)
            self._publish(events)
            reply = {
                "type": "answer_submitted",
                "option": option,
                "question_index": self._session.question_index,
            }
            logger.debug("Player %s submitted answer %r", player.name, option)
            return CommandResult(events=events, reply=reply)

    def advance_question(self) -> CommandResult:
        with self._lock:
            events, record = self._session.advance()
            self._publish(events)
            future = None
            if record is not None:
                # GameOver is already out; the write must not hold up the game.
                future = self._archive.submit(record)
            return CommandResult(events=events, archive_future=future)

    def reset_game(self) -> CommandResult:
        with self._lock:
            events = self._session.reset()
            self._names.reset_cycle()
            self._publish(events)
            return CommandResult(events=events)

    def _schedule_expiry(self, record: DisconnectRecord) -> None:
        timer = self._scheduler.call_later(
            self._grace_seconds, self._expire_player, record.player_name, record.token
        )
        self._session.registry.attach_timer(record.player_name, record.token, timer)

    def _expire_player(self, name: str, token: int) -> CommandResult:
        with self._lock:
            events = self._session.expire(name, token)
            self._publish(events)
            return CommandResult(events=events)

    # --- Game queries ---

    def snapshot(self, include_answer: bool = False) -> dict[str, object]:
        with self._lock:
            return self._session.snapshot(include_answer=include_answer)

    def snapshot_for(
        self,
        connection_id: str,
        include_answer: bool = False,
        sink: Callable[[dict[str, object]], None] | None = None,
    ) -> dict[str, object]:
        """Snapshot plus the caller's own player state, if it is bound to one.

        ``sink`` receives the snapshot before the lock is released, so it is
        ordered against published events.
        """
        with self._lock:
            state = self._session.snapshot(include_answer=include_answer)
            player = self._session.registry.get_by_connection(connection_id)
            state["you"] = _personal(player) if player is not None else None
            if sink is not None:
                sink(state)
            return state

    def get_phase(self) -> GamePhase:
        with self._lock:
            return self._session.phase

    def get_player(self, name: str) -> Player | None:
        with self._lock:
            return self._session.registry.get(name)

    def get_players(self) -> list[Player]:
        with self._lock:
            return self._session.registry.get_players()

    def is_disconnected(self, name: str) -> bool:
        with self._lock:
            return self._session.registry.is_disconnected(name)

    def get_leaderboard(self) -> dict[str, object]:
        with self._lock:
            if self._session.phase is not GamePhase.OVER:
                return {"game_over": False, "leaderboard": [], "winners": []}
            return {
                "game_over": True,
                "leaderboard": [e.to_dict() for e in self._session.get_leaderboard()],
                "winners": [e.to_dict() for e in self._session.get_winners()],
            }

    def get_answer_records(self) -> list[AnswerRecord]:
        with self._lock:
            return self._session.get_answer_records()

    # --- Question bank delegation ---

    def list_questions(self) -> list[QuizQuestion]:
        with self._lock:
            return self._bank.get_questions()

    def get_question(self, question_id: int) -> QuizQuestion:
        with self._lock:
            return self._bank.get_question(question_id)

    def add_question(self, question: QuizQuestion) -> QuizQuestion:
        with self._lock:
            return self._bank.add_question(question)

    def update_question(self, question_id: int, question: QuizQuestion) -> QuizQuestion:
        with self._lock:
            return self._bank.update_question(question_id, question)

    def delete_question(self, question_id: int) -> QuizQuestion:
        with self._lock:
            return self._bank.delete_question(question_id)

    def import_questions(self, text: str) -> int:
        questions = parse_quiz_text(text)
        with self._lock:
            self._bank.replace_all(questions)
            return self._bank.get_question_count()

    def export_questions(self) -> str:
        with self._lock:
            questions = self._bank.get_questions()
        if not questions:
            return ""
        return serialize_questions(questions)

    def set_shuffle_seed(self, seed: int | None) -> None:
        with self._lock:
            self._pool.set_seed(seed)

    # --- Settings ---

    def get_settings(self) -> dict[str, object]:
        with self._lock:
            bank_size = self._bank.get_question_count()
            return {
                "questions_per_game": self._questions_per_game,
                "question_bank_size": bank_size,
                "effective_questions_per_game": min(self._questions_per_game, bank_size),
                "grace_seconds": self._grace_seconds,
            }

    def set_questions_per_game(self, count: int) -> None:
        with self._lock:
            self._questions_per_game = _validate_questions_per_game(count)
            logger.info("Questions per game set to %d", count)

    # --- Results archive delegation ---

    def dashboard(self) -> dict[str, object]:
        return self._archive.dashboard()

    def student_history(self, name: str) -> dict[str, object] | None:
        return self._archive.student_history(name)

    def clear_results(self) -> None:
        self._archive.clear()

    def shutdown(self) -> None:
        self._archive.shutdown(wait=True)


def _personal(player: Player) -> dict[str, object]:
    return {
        "name": player.name,
        "score": player.score,
        "pending_answer": player.pending_answer,
    }


def _validate_questions_per_game(count: int) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ValueError("Questions per game must be a positive integer.")
    return count
