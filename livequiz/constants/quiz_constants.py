"""Game-related constants shared by the core and the gateway."""

DEFAULT_QUESTIONS_PER_GAME: int = 5
DISCONNECT_GRACE_SECONDS: float = 30.0
MAX_NAME_LENGTH: int = 40

QUESTIONS_FILE_NAME: str = "questions.json"
RESULTS_FILE_NAME: str = "results.jsonl"
ALIASES_FILE_NAME: str = "aliases.txt"
IMAGES_DIR_NAME: str = "images"
QUESTION_IMAGES_SUBDIR: str = "questions"
