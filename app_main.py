"""Application entry point for the LiveQuiz server."""

from __future__ import annotations

import sys

from pydantic import ValidationError

from livequiz.config import Settings
from livequiz.core.name_assigner import NameAssigner
from livequiz.core.quiz_manager import QuizManager
from livequiz.core.services.question_bank import QuestionBank
from livequiz.core.services.results_archive import ResultsArchive
from livequiz.server.api_server import run_api_server
from livequiz.utils.logging_config import configure_logging


def main() -> None:
    """Load settings, initialize logging, build the quiz core and serve it."""
    try:
        settings = Settings()
    except ValidationError as exc:
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        sys.exit(2)

    logger = configure_logging(settings.log_level, settings.log_file)
    logger.info("Starting LiveQuiz (data directory %s)", settings.data_dir.resolve())

    quiz_manager = QuizManager(
        bank=QuestionBank(settings.questions_path),
        archive=ResultsArchive(settings.results_path),
        questions_per_game=settings.questions_per_game,
        grace_seconds=settings.grace_seconds,
        name_assigner=NameAssigner.from_file(settings.aliases_path),
    )
    try:
        run_api_server(
            quiz_manager,
            host=settings.host,
            port=settings.port,
            images_dir=settings.images_path,
        )
    finally:
        quiz_manager.shutdown()


if __name__ == "__main__":
    main()
