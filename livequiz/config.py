"""Runtime settings resolved from ``LIVEQUIZ_*`` environment variables."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from livequiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from livequiz.constants.quiz_constants import (
    ALIASES_FILE_NAME,
    DEFAULT_QUESTIONS_PER_GAME,
    DISCONNECT_GRACE_SECONDS,
    IMAGES_DIR_NAME,
    QUESTIONS_FILE_NAME,
    RESULTS_FILE_NAME,
)

ENV_PREFIX = "LIVEQUIZ_"


class Settings(BaseSettings):
    """Server settings; invalid values raise ``pydantic.ValidationError``."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, gt=0, lt=65536)
    data_dir: Path = Path("data")
    questions_per_game: int = Field(default=DEFAULT_QUESTIONS_PER_GAME, ge=1)
    grace_seconds: float = Field(default=DISCONNECT_GRACE_SECONDS, ge=0)
    log_level: int = logging.INFO
    log_file: Path | None = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _resolve_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        name = value.strip().upper()
        if name.isdigit():
            return int(name)
        resolved = logging.getLevelName(name)
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {value}")
        return resolved

    @property
    def questions_path(self) -> Path:
        return self.data_dir / QUESTIONS_FILE_NAME

    @property
    def results_path(self) -> Path:
        return self.data_dir / RESULTS_FILE_NAME

    @property
    def aliases_path(self) -> Path:
        return self.data_dir / ALIASES_FILE_NAME

    @property
    def images_path(self) -> Path:
        return self.data_dir / IMAGES_DIR_NAME
