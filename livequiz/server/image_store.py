"""Disk storage for images uploaded with admin questions."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
import shutil
from uuid import uuid4

from fastapi import UploadFile

from livequiz.constants.quiz_constants import QUESTION_IMAGES_SUBDIR

logger = logging.getLogger(__name__)

URL_PREFIX = f"/images/{QUESTION_IMAGES_SUBDIR}/"


class QuestionImageStore:
    """Saves uploads under ``<root>/questions`` and serves them as ``/images/questions/...``.

    Only files this store wrote (URLs under ``URL_PREFIX``) are ever deleted;
    external image URLs on imported questions are left alone.
    """

    def __init__(self, root: Path) -> None:
        self._root = root
        self._directory = root / QUESTION_IMAGES_SUBDIR
        self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def save(self, upload: UploadFile) -> str:
        suffix = Path(upload.filename or "").suffix.lower()
        if not suffix and upload.content_type:
            suffix = mimetypes.guess_extension(upload.content_type) or ""
        filename = f"{uuid4().hex}{suffix}"
        with (self._directory / filename).open("wb") as handle:
            shutil.copyfileobj(upload.file, handle)
        logger.info("Stored question image %s", filename)
        return URL_PREFIX + filename

    def path_for(self, url: str | None) -> Path | None:
        if not url or not url.startswith(URL_PREFIX):
            return None
        # Path(...).name drops any directory parts smuggled into the URL
        return self._directory / Path(url[len(URL_PREFIX):]).name

    def delete(self, url: str | None) -> None:
        path = self.path_for(url)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not delete question image %s", path, exc_info=True)
            return
        logger.info("Deleted question image %s", path.name)
