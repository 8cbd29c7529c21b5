"""Exceptions raised by the quiz core."""

from __future__ import annotations


class QuizError(Exception):
    """Base class for every error raised by the quiz core."""


class CommandRejected(QuizError):
    """A user-correctable command that leaves the game state unchanged."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"type": "error", "code": self.code, "message": self.message}


class QuestionValidationError(QuizError, ValueError):
    """Raised when a question definition is malformed."""


class QuestionNotFoundError(QuizError, LookupError):
    """Raised when a question id is not part of the bank."""

    def __init__(self, question_id: int) -> None:
        super().__init__(f"Question {question_id} not found")
        self.question_id = question_id


class QuizImportError(QuizError):
    """Raised when a quiz definition cannot be parsed."""
