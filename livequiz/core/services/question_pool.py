"""Shuffled question draws for a single game."""

from __future__ import annotations

import logging
import random

from livequiz.core.models import QuizQuestion
from livequiz.core.services.question_bank import QuestionBank

logger = logging.getLogger(__name__)


class QuestionPool:
    """Draws distinct questions from the bank in a freshly shuffled order."""

    def __init__(self, bank: QuestionBank) -> None:
        self._bank = bank
        self._rng = random.Random()

    def set_seed(self, seed: int | None) -> None:
        self._rng.seed(seed)

    def draw(self, count: int) -> list[QuizQuestion]:
        """Return up to ``count`` distinct questions; fewer if the bank is smaller.

        The whole bank is reshuffled on every draw. An empty bank yields an
        empty list; callers decide whether that is an error.
        """
        questions = self._bank.get_questions()
        self._rng.shuffle(questions)
        granted = questions[: max(0, count)]
        if len(granted) < count:
            logger.info("Requested %d questions, bank only holds %d", count, len(granted))
        return granted
