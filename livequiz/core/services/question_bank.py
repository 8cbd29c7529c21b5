"""Service for managing the authoring set of quiz questions."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from livequiz.core.errors import QuestionNotFoundError, QuestionValidationError
from livequiz.core.models import QuizQuestion

logger = logging.getLogger(__name__)

MIN_OPTION_COUNT = 2


class QuestionBank:
    """Holds the editable question set, optionally mirrored to a JSON file."""

    def __init__(self, storage_path: Path | None = None) -> None:
        self._questions: list[QuizQuestion] = []
        self._question_counter: int = 0
        self._storage_path = storage_path
        if storage_path is not None and storage_path.exists():
            self._load()

    def get_questions(self) -> list[QuizQuestion]:
        """Return copies of all questions in authoring order."""
        return [_copy(question) for question in self._questions]

    def get_question_count(self) -> int:
        return len(self._questions)

    def get_question(self, question_id: int) -> QuizQuestion:
        return _copy(self._questions[self._index_of(question_id)])

    def add_question(self, question: QuizQuestion) -> QuizQuestion:
        prepared = self._prepare_question(question, question_id=self._next_question_id())
        self._questions.append(prepared)
        self._save()
        return _copy(prepared)

    def update_question(self, question_id: int, question: QuizQuestion) -> QuizQuestion:
        index = self._index_of(question_id)
        # Preserve the original ID
        prepared = self._prepare_question(question, question_id=question_id)
        self._questions[index] = prepared
        self._save()
        return _copy(prepared)

    def delete_question(self, question_id: int) -> QuizQuestion:
        """Remove a question and return it, so callers can release its image."""
        index = self._index_of(question_id)
        removed = self._questions.pop(index)
        self._save()
        return removed

    def replace_all(self, questions: list[QuizQuestion]) -> None:
        """Replace the bank with a new list of questions (used by imports)."""
        if not questions:
            raise QuestionValidationError("Quiz must contain at least one question.")
        # Validate everything before touching the current bank.
        prepared = [
            self._prepare_question(question, question_id=index)
            for index, question in enumerate(questions, start=1)
        ]
        self._questions = prepared
        self._question_counter = len(prepared)
        self._save()

    def _index_of(self, question_id: int) -> int:
        for index, question in enumerate(self._questions):
            if question.id == question_id:
                return index
        raise QuestionNotFoundError(question_id)

    def _prepare_question(self, question: QuizQuestion, question_id: int) -> QuizQuestion:
        """Validate and normalize a question before storage."""
        options = self._validate_options(question.options)
        if not 0 <= question.correct_option_index < len(options):
            raise QuestionValidationError(
                f"Correct option index must be between 0 and {len(options) - 1}."
            )

        cleaned_prompt = question.prompt.strip()
        if not cleaned_prompt:
            raise QuestionValidationError("Question text must not be empty.")

        image = question.image.strip() if question.image else None

        return QuizQuestion(
            id=question_id,
            prompt=cleaned_prompt,
            options=options,
            correct_option_index=question.correct_option_index,
            image=image or None,
        )

    def _next_question_id(self) -> int:
        self._question_counter += 1
        return self._question_counter

    @staticmethod
    def _validate_options(options: list[str]) -> list[str]:
        if len(options) < MIN_OPTION_COUNT:
            raise QuestionValidationError(
                f"Each question must have at least {MIN_OPTION_COUNT} options."
            )
        cleaned = [option.strip() for option in options]
        if any(not option for option in cleaned):
            raise QuestionValidationError("Option text cannot be empty.")
        if len(set(cleaned)) != len(cleaned):
            raise QuestionValidationError("Options must be distinct.")
        return cleaned

    def _load(self) -> None:
        assert self._storage_path is not None
        data = json.loads(self._storage_path.read_text(encoding="utf-8"))
        loaded = [QuizQuestion.from_dict(item) for item in data.get("questions", [])]
        self._questions = [
            self._prepare_question(question, question_id=question.id) for question in loaded
        ]
        self._question_counter = max((q.id for q in self._questions), default=0)
        logger.info("Loaded %d questions from %s", len(self._questions), self._storage_path)

    def _save(self) -> None:
        if self._storage_path is None:
            return
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        document = {"questions": [question.to_dict() for question in self._questions]}
        self._storage_path.write_text(json.dumps(document, indent=2), encoding="utf-8")


def _copy(question: QuizQuestion) -> QuizQuestion:
    return QuizQuestion(
        id=question.id,
        prompt=question.prompt,
        options=list(question.options),
        correct_option_index=question.correct_option_index,
        image=question.image,
    )
