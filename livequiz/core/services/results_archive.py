"""Append-only archive of finished games and the teacher dashboard queries.

Each finished game is one JSON line in ``results.jsonl``. The in-memory
index (games plus game ids per student) is rebuilt from that log at
startup. The live game only ever writes here; nothing in the core reads
the archive back.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
import json
import logging
from pathlib import Path
from threading import Lock

from livequiz.core.models import GameRecord

logger = logging.getLogger(__name__)


def _percentage(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(correct / total * 100, 1)


class ResultsArchive:
    """Durable log of game records indexed by player name."""

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._lock = Lock()
        self._games: list[GameRecord] = []
        self._games_by_student: dict[str, list[str]] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ResultsArchive")
        if log_path is not None and log_path.exists():
            self._load()

    # --- Writes ---

    def submit(self, record: GameRecord) -> Future:
        """Schedule ``record`` for writing and return immediately."""
        return self._executor.submit(self._append_logged, record)

    def append(self, record: GameRecord) -> None:
        """Write ``record`` synchronously. Raises on I/O failure."""
        with self._lock:
            if self._log_path is not None:
                self._log_path.parent.mkdir(parents=True, exist_ok=True)
                with self._log_path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(record.to_dict()) + "\n")
            self._index(record)
        logger.info("Archived game %s (%d players)", record.game_id, len(record.scores))

    def clear(self) -> None:
        with self._lock:
            self._games = []
            self._games_by_student = {}
            if self._log_path is not None and self._log_path.exists():
                self._log_path.write_text("", encoding="utf-8")
        logger.info("Results archive cleared")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _append_logged(self, record: GameRecord) -> None:
        try:
            self.append(record)
        except Exception:
            # The live outcome stands even when the archive cannot be written.
            logger.exception("Failed to archive game %s", record.game_id)

    def _index(self, record: GameRecord) -> None:
        self._games.append(record)
        names = set(record.scores) | set(record.responses)
        for name in sorted(names):
            self._games_by_student.setdefault(name, []).append(record.game_id)

    def _load(self) -> None:
        assert self._log_path is not None
        with self._log_path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = GameRecord.from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError) as exc:
                    logger.warning(
                        "Skipping corrupt archive line %d in %s: %s", line_number, self._log_path, exc
                    )
                    continue
                self._index(record)
        logger.info("Loaded %d archived games from %s", len(self._games), self._log_path)

    # --- Dashboard queries ---

    def get_games(self) -> list[GameRecord]:
        with self._lock:
            return list(self._games)

    def dashboard(self) -> dict[str, object]:
        """Per-game aggregates plus overall totals, newest game first."""
        with self._lock:
            games = list(self._games)
            student_count = len(self._games_by_student)

        total_correct = 0
        total_answers = 0
        summaries = []
        for game in sorted(games, key=lambda g: g.finished_at, reverse=True):
            students = []
            for name in sorted(set(game.scores) | set(game.responses)):
                responses = game.responses.get(name, [])
                correct = sum(1 for r in responses if r.is_correct)
                total_correct += correct
                total_answers += len(responses)
                students.append(
                    {
                        "name": name,
                        "correct": correct,
                        "answered": len(responses),
                        "total_questions": game.total_questions,
                        "percentage": _percentage(correct, game.total_questions),
                    }
                )
            summaries.append(
                {
                    "game_id": game.game_id,
                    "finished_at": game.finished_at.isoformat(),
                    "total_questions": game.total_questions,
                    "student_count": len(students),
                    "students": students,
                }
            )

        return {
            "total_students": student_count,
            "total_games": len(games),
            "average_percentage": _percentage(total_correct, total_answers),
            "games": summaries,
        }

    def student_history(self, name: str) -> dict[str, object] | None:
        """Aggregate one student's results across every archived game."""
        with self._lock:
            game_ids = list(self._games_by_student.get(name, []))
            games = {game.game_id: game for game in self._games}
        if not game_ids:
            return None

        history = []
        correct_total = 0
        question_total = 0
        for game_id in game_ids:
            game = games[game_id]
            responses = game.responses.get(name, [])
            correct = sum(1 for r in responses if r.is_correct)
            correct_total += correct
            question_total += game.total_questions
            history.append(
                {
                    "game_id": game.game_id,
                    "finished_at": game.finished_at.isoformat(),
                    "score": game.scores.get(name, correct),
                    "correct": correct,
                    "total_questions": game.total_questions,
                    "percentage": _percentage(correct, game.total_questions),
                    "responses": [r.to_dict() for r in responses],
                }
            )

        return {
            "name": name,
            "games_played": len(history),
            "correct": correct_total,
            "total_questions": question_total,
            "percentage": _percentage(correct_total, question_total),
            "games": history,
        }
