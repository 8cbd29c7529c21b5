from __future__ import annotations

from typing import Any, Callable

import pytest

from livequiz.core.events import GameEvent
from livequiz.core.models import QuizQuestion
from livequiz.core.quiz_manager import QuizManager
from livequiz.core.services.question_bank import QuestionBank
from livequiz.core.services.results_archive import ResultsArchive


class ManualTimer:
    """Timer handle that only fires when a test says so."""

    def __init__(self, delay: float, callback: Callable[..., Any], args: tuple) -> None:
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self, force: bool = False) -> Any:
        """Run the callback; ``force`` simulates a timer that lost the cancel race."""
        if self.cancelled and not force:
            return None
        self.fired = True
        return self.callback(*self.args)


class ManualScheduler:
    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimer:
        timer = ManualTimer(delay, callback, args)
        self.timers.append(timer)
        return timer

    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_all(self) -> None:
        for timer in self.pending():
            timer.fire()


def make_question(index: int, options: list[str] | None = None, correct: int = 0) -> QuizQuestion:
    return QuizQuestion(
        id=0,
        prompt=f"Question {index}?",
        options=options or ["A", "B", "C", "D"],
        correct_option_index=correct,
    )


def make_bank(count: int) -> QuestionBank:
    bank = QuestionBank()
    for index in range(count):
        bank.add_question(make_question(index + 1))
    return bank


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[GameEvent] = []

    def __call__(self, events: list[GameEvent]) -> None:
        self.events.extend(events)

    def of_type(self, event_type: type) -> list[GameEvent]:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def archive() -> ResultsArchive:
    archive = ResultsArchive()
    yield archive
    archive.shutdown()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def manager_factory(scheduler, archive, recorder):
    def factory(question_count: int = 5, questions_per_game: int = 5) -> QuizManager:
        manager = QuizManager(
            bank=make_bank(question_count),
            archive=archive,
            scheduler=scheduler,
            questions_per_game=questions_per_game,
            grace_seconds=30,
        )
        manager.add_listener(recorder)
        return manager

    return factory


@pytest.fixture
def manager(manager_factory) -> QuizManager:
    return manager_factory()
