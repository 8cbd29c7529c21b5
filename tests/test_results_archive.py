from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from livequiz.core.models import AnswerRecord, GameRecord
from livequiz.core.services.results_archive import ResultsArchive

FINISHED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def answer(name: str, index: int, selected: str, correct: str = "A") -> AnswerRecord:
    return AnswerRecord(
        player_name=name,
        question_index=index,
        question_prompt=f"Question {index}?",
        selected_option=selected,
        correct_option=correct,
        is_correct=selected == correct,
        submitted_at=FINISHED,
    )


def make_record(game_id: str, finished_at: datetime = FINISHED) -> GameRecord:
    return GameRecord(
        game_id=game_id,
        finished_at=finished_at,
        total_questions=2,
        scores={"alice": 2, "bob": 0},
        responses={
            "alice": [answer("alice", 0, "A"), answer("alice", 1, "A")],
            "bob": [answer("bob", 0, "C")],
        },
    )


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / "data" / "results.jsonl"


def test_append_writes_one_line_per_game(log_path):
    archive = ResultsArchive(log_path)
    archive.append(make_record("g1"))
    archive.append(make_record("g2"))
    archive.shutdown()

    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert [g.game_id for g in archive.get_games()] == ["g1", "g2"]


def test_index_is_rebuilt_from_log(log_path):
    archive = ResultsArchive(log_path)
    archive.append(make_record("g1"))
    archive.shutdown()

    reloaded = ResultsArchive(log_path)
    (game,) = reloaded.get_games()
    assert game.responses["alice"][1].is_correct is True
    assert reloaded.student_history("bob")["games_played"] == 1
    reloaded.shutdown()


def test_corrupt_lines_are_skipped(log_path):
    archive = ResultsArchive(log_path)
    archive.append(make_record("g1"))
    archive.shutdown()
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")
        handle.write('{"game_id": "missing fields"}\n')

    reloaded = ResultsArchive(log_path)
    assert [g.game_id for g in reloaded.get_games()] == ["g1"]
    reloaded.shutdown()


def test_submit_writes_in_background(log_path):
    archive = ResultsArchive(log_path)
    future = archive.submit(make_record("g1"))
    future.result(timeout=5)
    assert archive.dashboard()["total_games"] == 1
    archive.shutdown()


def test_failed_write_is_logged_not_raised(tmp_path, caplog):
    blocked = tmp_path / "results.jsonl"
    archive = ResultsArchive(blocked)
    # A directory in place of the log file makes the append fail.
    blocked.mkdir()

    future = archive.submit(make_record("g1"))

    assert future.result(timeout=5) is None
    assert "Failed to archive game g1" in caplog.text
    archive.shutdown()


def test_dashboard_aggregates(log_path):
    archive = ResultsArchive(log_path)
    archive.append(make_record("old", FINISHED))
    archive.append(make_record("new", FINISHED + timedelta(hours=1)))

    dashboard = archive.dashboard()

    assert dashboard["total_students"] == 2
    assert dashboard["total_games"] == 2
    # 4 correct out of 6 recorded answers
    assert dashboard["average_percentage"] == 66.7
    assert [g["game_id"] for g in dashboard["games"]] == ["new", "old"]
    alice, bob = dashboard["games"][0]["students"]
    assert alice == {
        "name": "alice",
        "correct": 2,
        "answered": 2,
        "total_questions": 2,
        "percentage": 100.0,
    }
    assert (bob["correct"], bob["answered"], bob["percentage"]) == (0, 1, 0.0)
    archive.shutdown()


def test_student_history(log_path):
    archive = ResultsArchive(log_path)
    archive.append(make_record("g1"))
    archive.append(make_record("g2"))

    history = archive.student_history("alice")

    assert history["games_played"] == 2
    assert history["correct"] == 4
    assert history["total_questions"] == 4
    assert history["percentage"] == 100.0
    assert history["games"][0]["responses"][0]["selected_option"] == "A"
    assert archive.student_history("nobody") is None
    archive.shutdown()


def test_clear_empties_archive_and_log(log_path):
    archive = ResultsArchive(log_path)
    archive.append(make_record("g1"))

    archive.clear()

    assert archive.get_games() == []
    assert archive.dashboard()["total_games"] == 0
    assert log_path.read_text(encoding="utf-8") == ""
    archive.shutdown()
