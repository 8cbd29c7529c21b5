"""Utilities for exporting a question bank to the plain-text import format."""

from __future__ import annotations

from pathlib import Path

from livequiz.core.models import QuizQuestion
from livequiz.core.quiz_importer import OPTION_LETTERS


def save_quiz_to_file(file_path: Path, questions: list[QuizQuestion]) -> None:
    """Persist the provided questions to disk in the text import format."""

    if not questions:
        raise ValueError("Cannot export an empty quiz.")

    file_path = file_path.resolve()
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(serialize_questions(questions), encoding="utf-8")


def serialize_questions(questions: list[QuizQuestion]) -> str:
    blocks = [_serialize_question(question) for question in questions]
    return "\n\n---\n\n".join(blocks) + "\n"


def _serialize_question(question: QuizQuestion) -> str:
    if len(question.options) > len(OPTION_LETTERS):
        raise ValueError(f"Question {question.id} has more options than the text format allows.")

    lines: list[str] = []
    question_lines = question.prompt.splitlines() or [question.prompt]
    lines.append(f"Q: {question_lines[0]}")
    lines.extend(question_lines[1:])

    for letter, option_text in zip(OPTION_LETTERS, question.options):
        option_lines = option_text.splitlines() or [option_text]
        lines.append(f"{letter}: {option_lines[0]}")
        lines.extend(option_lines[1:])

    lines.append(f"CORRECT: {OPTION_LETTERS[question.correct_option_index]}")
    if question.image:
        lines.append(f"IMAGE: {question.image}")

    return "\n".join(lines)
