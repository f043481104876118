"""
Exam Store Service
Owns the exam collection and the user settings, persisted as whole JSON
documents in a local key/value store.
"""
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from pydantic import TypeAdapter, ValidationError

from examcraft.config import (
    EXAMS_STORAGE_KEY,
    SETTINGS_SAVED_SECONDS,
    SETTINGS_STORAGE_KEY,
)
from examcraft.schemas import Exam, UserSettings

logger = logging.getLogger(__name__)

ExamList = TypeAdapter(List[Exam])

Confirm = Union[bool, Callable[[], bool]]


def is_confirmed(confirm: Confirm) -> bool:
    """Resolve a confirmation that is either a decision or a prompt to ask."""
    return bool(confirm()) if callable(confirm) else bool(confirm)


class LocalStorage:
    """Key/value store keeping one JSON document per key in a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        # Write to a sibling temp file first so a crash never leaves half a document
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class ExamStore:
    """
    Authoritative owner of the exam collection and the settings object.

    Every mutation serializes the whole collection; collections are small
    (one teacher, one device).
    """

    def __init__(self, storage: LocalStorage, clock: Callable[[], float] = time.monotonic):
        self.storage = storage
        self.clock = clock
        self._exams: List[Exam] = []
        self._settings = UserSettings()
        self._saved_at: Optional[float] = None

    # --- Loading ---

    def load(self) -> None:
        """Read persisted state; absent or malformed data falls back to defaults."""
        self._exams = self._read(EXAMS_STORAGE_KEY, ExamList.validate_json, [])
        self._settings = self._read(
            SETTINGS_STORAGE_KEY, UserSettings.model_validate_json, UserSettings()
        )
        logger.info("Loaded %d exams from %s", len(self._exams), self.storage.directory)

    def _read(self, key: str, parse, default):
        try:
            raw = self.storage.get_item(key)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read '%s': %s", key, e)
            return default
        if raw is None:
            return default
        try:
            return parse(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed '%s': %s", key, e.errors()[0]["msg"])
            return default

    # --- Exams ---

    @property
    def exams(self) -> Tuple[Exam, ...]:
        return tuple(self._exams)

    def get(self, exam_id: str) -> Optional[Exam]:
        return next((exam for exam in self._exams if exam.id == exam_id), None)

    def replace_all(self, exams: Iterable[Exam]) -> None:
        """Overwrite the full exam collection and persist it."""
        self._exams = list(exams)
        self._persist_exams()

    def add(self, exam: Exam) -> None:
        """Insert a new exam at the front (newest first)."""
        self.replace_all([exam, *self._exams])

    def upsert(self, exam: Exam) -> None:
        """Replace the exam with the same id, or add it when unknown."""
        if self.get(exam.id) is None:
            self.add(exam)
            return
        self.replace_all(exam if existing.id == exam.id else existing for existing in self._exams)

    def delete_exam(self, exam_id: str, confirm: Confirm) -> bool:
        """
        Remove an exam after the user confirms.

        Args:
            exam_id: Identifier of the exam to delete.
            confirm: The user's decision, or a prompt returning it.

        Returns:
            True if an exam was removed.
        """
        if self.get(exam_id) is None:
            return False
        if not is_confirmed(confirm):
            logger.info("Deletion of exam %s declined", exam_id)
            return False
        self.replace_all(exam for exam in self._exams if exam.id != exam_id)
        logger.info("Deleted exam %s", exam_id)
        return True

    def _persist_exams(self) -> None:
        payload = ExamList.dump_json(self._exams, by_alias=True).decode("utf-8")
        self.storage.set_item(EXAMS_STORAGE_KEY, payload)
        logger.info("Persisted %d exams", len(self._exams))

    # --- Settings ---

    @property
    def settings(self) -> UserSettings:
        return self._settings

    def save_settings(self, settings: UserSettings) -> None:
        """Overwrite the settings, persist them and raise the 'saved' flag."""
        self._settings = settings
        self.storage.set_item(
            SETTINGS_STORAGE_KEY, json.dumps(settings.to_json_dict(), ensure_ascii=False)
        )
        self._saved_at = self.clock()

    @property
    def settings_saved(self) -> bool:
        """True for a few seconds after a save; UI feedback only."""
        if self._saved_at is None:
            return False
        return self.clock() - self._saved_at < SETTINGS_SAVED_SECONDS
