from __future__ import annotations

import pytest

from livequiz.core.errors import CommandRejected
from livequiz.core.events import GameOver, GameStarted, PlayerJoined, PlayerLeft, QuestionAdvanced
from livequiz.core.models import GamePhase
from livequiz.core.services.game_session import GameSession
from livequiz.core.services.question_bank import QuestionBank
from livequiz.core.services.question_pool import QuestionPool

from tests.conftest import make_bank


def correct_option(manager) -> str:
    return manager.snapshot(include_answer=True)["question"]["correct_option"]


def play_question(manager, answers: dict[str, str | None]) -> None:
    """Submit one answer per connection (``None`` skips) and advance."""
    for connection_id, option in answers.items():
        if option is not None:
            manager.submit_answer(connection_id, option)
    manager.advance_question()


def test_start_requires_players(manager):
    with pytest.raises(CommandRejected) as excinfo:
        manager.start_game()
    assert excinfo.value.code == "no_players"
    assert manager.get_phase() is GamePhase.LOBBY


def test_start_requires_questions(manager_factory):
    manager = manager_factory(question_count=0)
    manager.join("c1", "alice")
    with pytest.raises(CommandRejected) as excinfo:
        manager.start_game()
    assert excinfo.value.code == "no_questions"
    assert manager.get_phase() is GamePhase.LOBBY


def test_start_twice_is_rejected(manager):
    manager.join("c1", "alice")
    manager.start_game()
    with pytest.raises(CommandRejected) as excinfo:
        manager.start_game()
    assert excinfo.value.code == "game_in_progress"


def test_start_from_over_requires_reset(manager_factory):
    manager = manager_factory(question_count=1, questions_per_game=1)
    manager.join("c1", "alice")
    manager.start_game()
    manager.advance_question()
    with pytest.raises(CommandRejected) as excinfo:
        manager.start_game()
    assert excinfo.value.code == "game_over"


def test_start_emits_first_question(manager, recorder):
    manager.join("c1", "alice")
    result = manager.start_game()

    (event,) = result.events
    assert isinstance(event, GameStarted)
    assert event.question_index == 0
    assert event.total_questions == 5
    assert recorder.of_type(GameStarted) == [event]
    assert "correct_option" not in event.to_payload(include_answer=False)["question"]
    assert "correct_option" in event.to_payload(include_answer=True)["question"]


def test_total_questions_capped_by_bank_size(manager_factory, recorder):
    manager = manager_factory(question_count=3, questions_per_game=5)
    manager.join("c1", "alice")
    manager.start_game()
    assert manager.snapshot()["total_questions"] == 3

    manager.advance_question()
    manager.advance_question()
    assert manager.get_phase() is GamePhase.IN_PROGRESS
    manager.advance_question()

    assert manager.get_phase() is GamePhase.OVER
    assert manager.snapshot()["question_index"] == 3
    assert len(recorder.of_type(QuestionAdvanced)) == 2
    assert len(recorder.of_type(GameOver)) == 1


def test_drawn_questions_are_distinct(manager):
    manager.join("c1", "alice")
    manager.start_game()
    seen = []
    while manager.get_phase() is GamePhase.IN_PROGRESS:
        seen.append(manager.snapshot()["question"]["id"])
        manager.advance_question()
    assert len(seen) == 5
    assert len(set(seen)) == 5


def test_score_changes_match_correct_answers(manager):
    manager.join("c1", "alice")
    manager.join("c2", "bob")
    manager.start_game()

    for round_number in range(5):
        right = correct_option(manager)
        wrong = next(o for o in ["A", "B", "C", "D"] if o != right)
        play_question(
            manager,
            {"c1": right, "c2": wrong if round_number % 2 else right},
        )

    records = manager.get_answer_records()
    assert len(records) == 10
    for name in ("alice", "bob"):
        correct_records = [r for r in records if r.player_name == name and r.is_correct]
        assert manager.get_player(name).score == len(correct_records)
    assert manager.get_player("alice").score == 5
    assert manager.get_player("bob").score == 3


def test_scores_never_decrease(manager, recorder):
    manager.join("c1", "alice")
    manager.start_game()
    play_question(manager, {"c1": correct_option(manager)})
    play_question(manager, {"c1": None})

    first, second = recorder.of_type(QuestionAdvanced)[:2]
    assert first.score_changes["alice"].new_score == 1
    assert first.score_changes["alice"].score_changed is True
    assert second.score_changes["alice"].score_changed is False
    for event in recorder.of_type(QuestionAdvanced):
        for change in event.score_changes.values():
            assert change.new_score >= change.previous_score


def test_only_last_submission_is_scored(manager):
    manager.join("c1", "alice")
    manager.start_game()
    right = correct_option(manager)
    wrong = next(o for o in ["A", "B", "C", "D"] if o != right)

    manager.submit_answer("c1", right)
    manager.submit_answer("c1", wrong)
    manager.advance_question()

    assert manager.get_player("alice").score == 0
    (record,) = manager.get_answer_records()
    assert record.selected_option == wrong
    assert record.is_correct is False


def test_unanswered_question_scores_nothing(manager):
    manager.join("c1", "alice")
    manager.start_game()
    manager.advance_question()
    assert manager.get_player("alice").score == 0
    assert manager.get_answer_records() == []


def test_submit_outside_game_is_rejected(manager):
    manager.join("c1", "alice")
    with pytest.raises(CommandRejected) as excinfo:
        manager.submit_answer("c1", "A")
    assert excinfo.value.code == "not_in_progress"


def test_submit_from_unknown_connection_is_rejected(manager):
    manager.join("c1", "alice")
    manager.start_game()
    with pytest.raises(CommandRejected) as excinfo:
        manager.submit_answer("stranger", "A")
    assert excinfo.value.code == "unknown_player"


def test_submit_invalid_option_is_rejected(manager):
    manager.join("c1", "alice")
    manager.start_game()
    with pytest.raises(CommandRejected) as excinfo:
        manager.submit_answer("c1", "Z")
    assert excinfo.value.code == "invalid_option"
    assert manager.get_player("alice").pending_answer is None


def test_advance_outside_game_is_rejected(manager):
    with pytest.raises(CommandRejected) as excinfo:
        manager.advance_question()
    assert excinfo.value.code == "not_in_progress"


def test_ties_rank_in_join_order(manager_factory):
    manager = manager_factory(question_count=3, questions_per_game=3)
    for connection_id, name in (("c1", "A"), ("c2", "B"), ("c3", "C")):
        manager.join(connection_id, name)
    manager.start_game()

    # Each player misses a different question, so everyone ends on 2.
    for missing in ("c3", "c1", "c2"):
        right = correct_option(manager)
        play_question(
            manager,
            {conn: (None if conn == missing else right) for conn in ("c1", "c2", "c3")},
        )

    board = manager.get_leaderboard()
    assert board["game_over"] is True
    assert board["leaderboard"] == [
        {"name": "A", "score": 2},
        {"name": "B", "score": 2},
        {"name": "C", "score": 2},
    ]
    assert [w["name"] for w in board["winners"]] == ["A", "B", "C"]


def test_leaderboard_orders_by_score(manager_factory):
    manager = manager_factory(question_count=2, questions_per_game=2)
    manager.join("c1", "first")
    manager.join("c2", "second")
    manager.start_game()
    play_question(manager, {"c2": correct_option(manager)})
    play_question(manager, {"c1": correct_option(manager), "c2": correct_option(manager)})

    board = manager.get_leaderboard()
    assert board["leaderboard"] == [
        {"name": "second", "score": 2},
        {"name": "first", "score": 1},
    ]
    assert board["winners"] == [{"name": "second", "score": 2}]


def test_all_incorrect_game_makes_everyone_a_winner(manager_factory):
    manager = manager_factory(question_count=2, questions_per_game=2)
    manager.join("c1", "alice")
    manager.join("c2", "bob")
    manager.start_game()
    for _ in range(2):
        right = correct_option(manager)
        wrong = next(o for o in ["A", "B", "C", "D"] if o != right)
        play_question(manager, {"c1": wrong, "c2": wrong})

    board = manager.get_leaderboard()
    assert [entry["score"] for entry in board["leaderboard"]] == [0, 0]
    assert [w["name"] for w in board["winners"]] == ["alice", "bob"]


def test_leaderboard_empty_before_game_over(manager):
    manager.join("c1", "alice")
    manager.start_game()
    assert manager.get_leaderboard() == {"game_over": False, "leaderboard": [], "winners": []}


def test_new_names_rejected_while_in_progress(manager):
    manager.join("c1", "alice")
    manager.start_game()
    with pytest.raises(CommandRejected) as excinfo:
        manager.join("c2", "latecomer")
    assert excinfo.value.code == "game_in_progress"
    assert manager.get_player("latecomer") is None


def test_new_names_rejected_after_game_over(manager_factory):
    manager = manager_factory(question_count=1, questions_per_game=1)
    manager.join("c1", "alice")
    manager.start_game()
    manager.advance_question()
    assert manager.get_phase() is GamePhase.OVER

    with pytest.raises(CommandRejected) as excinfo:
        manager.join("c2", "latecomer")
    assert excinfo.value.code == "game_over"
    assert manager.get_player("latecomer") is None

    # Known players can still rebind to see the final results.
    assert manager.join("c3", "alice").reply["resolution"] == "rebound"


def test_known_name_can_rejoin_while_in_progress(manager):
    manager.join("c1", "alice")
    manager.start_game()
    result = manager.join("c2", "alice")
    assert result.reply["resolution"] == "rebound"
    assert result.reply["retired_connection"] == "c1"
    assert len(manager.get_players()) == 1


def test_double_join_keeps_one_player(manager, recorder):
    manager.join("c1", "alice")
    manager.join("c2", "alice")

    players = manager.get_players()
    assert [p.name for p in players] == ["alice"]
    assert players[0].connection_id == "c2"
    joined = recorder.of_type(PlayerJoined)
    assert [event.resolution for event in joined] == ["created", "rebound"]


def test_retired_connection_close_is_ignored(manager, scheduler):
    manager.join("c1", "alice")
    manager.join("c2", "alice")

    manager.release_connection("c1")

    assert manager.is_disconnected("alice") is False
    assert manager.get_player("alice").connected is True
    assert scheduler.pending() == []


def test_reconnect_within_grace_keeps_score_and_answer(manager, scheduler, recorder):
    manager.join("c1", "alice")
    manager.start_game()
    for _ in range(3):
        play_question(manager, {"c1": correct_option(manager)})
    right = correct_option(manager)
    wrong = next(o for o in ["A", "B", "C", "D"] if o != right)
    manager.submit_answer("c1", wrong)

    manager.release_connection("c1")
    assert manager.is_disconnected("alice") is True
    assert manager.get_player("alice").connected is False

    result = manager.join("c9", "alice")

    assert result.reply["resolution"] == "restored"
    assert result.reply["you"] == {"name": "alice", "score": 3, "pending_answer": wrong}
    assert manager.is_disconnected("alice") is False
    assert all(timer.cancelled for timer in scheduler.timers)
    assert recorder.of_type(PlayerLeft) == []

    manager.advance_question()
    assert manager.get_player("alice").score == 3


def test_disconnected_player_still_scored(manager):
    manager.join("c1", "alice")
    manager.start_game()
    manager.submit_answer("c1", correct_option(manager))
    manager.release_connection("c1")
    manager.advance_question()
    assert manager.get_player("alice").score == 1


def test_grace_expiry_removes_player_once(manager, scheduler, recorder):
    manager.join("c1", "alice")
    manager.join("c2", "bob")
    manager.release_connection("c1")

    (timer,) = scheduler.pending()
    assert timer.delay == 30
    timer.fire()
    # A late duplicate firing must not announce the departure twice.
    timer.fire(force=True)

    assert manager.get_player("alice") is None
    assert [p.name for p in manager.get_players()] == ["bob"]
    left = recorder.of_type(PlayerLeft)
    assert [event.name for event in left] == ["alice"]


def test_stale_timer_after_reconnect_does_nothing(manager, scheduler, recorder):
    manager.join("c1", "alice")
    manager.release_connection("c1")
    (timer,) = scheduler.timers
    manager.join("c2", "alice")

    timer.fire(force=True)

    assert manager.get_player("alice") is not None
    assert recorder.of_type(PlayerLeft) == []


def test_expired_player_leaves_final_leaderboard(manager_factory, scheduler):
    manager = manager_factory(question_count=1, questions_per_game=1)
    manager.join("c1", "alice")
    manager.join("c2", "bob")
    manager.start_game()
    manager.release_connection("c2")
    scheduler.fire_all()
    manager.advance_question()

    names = [entry["name"] for entry in manager.get_leaderboard()["leaderboard"]]
    assert names == ["alice"]


def test_connection_switching_names_releases_old_player(manager, scheduler):
    manager.join("c1", "alice")
    manager.join("c1", "bob")

    assert manager.is_disconnected("alice") is True
    assert manager.get_player("bob").connection_id == "c1"
    assert len(scheduler.pending()) == 1


def test_reset_returns_to_empty_lobby(manager, scheduler):
    manager.join("c1", "alice")
    manager.join("c2", "bob")
    manager.release_connection("c2")
    manager.start_game()

    manager.reset_game()

    state = manager.snapshot()
    assert state["phase"] == "lobby"
    assert state["players"] == {}
    assert state["question"] is None
    assert all(timer.cancelled for timer in scheduler.timers)


def test_new_game_starts_with_zero_scores(manager_factory):
    manager = manager_factory(question_count=1, questions_per_game=1)
    manager.join("c1", "alice")
    manager.start_game()
    play_question(manager, {"c1": correct_option(manager)})
    manager.reset_game()
    manager.join("c1", "alice")

    manager.start_game()

    assert manager.get_player("alice").score == 0
    assert manager.get_answer_records() == []


def test_snapshot_hides_answer_from_players(manager):
    manager.join("c1", "alice")
    manager.start_game()

    player_view = manager.snapshot_for("c1")
    host_view = manager.snapshot(include_answer=True)

    assert "correct_option" not in player_view["question"]
    assert player_view["you"]["name"] == "alice"
    assert host_view["question"]["correct_option"] in host_view["question"]["options"]


def test_snapshot_for_unbound_connection_has_no_identity(manager):
    state = manager.snapshot_for("nobody", include_answer=True)
    assert state["you"] is None
    assert state["phase"] == "lobby"


def test_game_session_direct_usage():
    bank = make_bank(2)
    session = GameSession(QuestionPool(bank))
    session.join("alice", "c1")
    (started,) = session.start(2)
    assert started.total_questions == 2

    events, record = session.advance()
    assert record is None
    events, record = session.advance()
    assert isinstance(events[0], GameOver)
    assert record is not None
    assert record.scores == {"alice": 0}
    assert session.phase is GamePhase.OVER


def test_empty_bank_session():
    session = GameSession(QuestionPool(QuestionBank()))
    session.join("alice", "c1")
    with pytest.raises(CommandRejected):
        session.start(5)
    assert session.phase is GamePhase.LOBBY
