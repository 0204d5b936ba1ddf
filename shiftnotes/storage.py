"""
Local persistence: the whole shift tree is one JSON document on disk.

    {"shifts": [...], "currentShiftId": "..." | null}
"""

import json
import logging
import os
from pathlib import Path

import pydantic

from shiftnotes.errors import PersistenceFailure
from shiftnotes.migration import migrate_document
from shiftnotes.models import AppData

logger = logging.getLogger(__name__)


class LocalDocumentStore:
    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._document: AppData | None = None

    @property
    def document(self) -> AppData:
        if self._document is None:
            return self.load()
        return self._document

    def load(self) -> AppData:
        stored = self._read()
        if stored is None:
            document = AppData()
        else:
            document, changed = migrate_document(stored)
            if changed:
                logger.info("migrated local document at %s", self._path)
                self._write(document)
        self._document = document
        return document

    def save(self, document: AppData) -> None:
        # memory only follows once the file is written
        self._write(document)
        self._document = document

    def load_current_shift_id(self) -> str | None:
        return self.document.current_shift_id

    def save_current_shift_id(self, shift_id: str | None) -> None:
        if self.document.current_shift_id == shift_id:
            return
        self.save(self.document.model_copy(update={"current_shift_id": shift_id}))

    def _read(self) -> AppData | None:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error("could not read %s: %s", self._path, exc)
            raise PersistenceFailure(f"Could not read {self._path}") from exc

        try:
            return AppData.model_validate_json(text)
        except pydantic.ValidationError:
            logger.exception("stored document at %s is unreadable, starting empty", self._path)
            return None

    def _write(self, document: AppData) -> None:
        payload = json.dumps(document.to_json(), indent=2)
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            logger.error("could not write %s: %s", self._path, exc)
            raise PersistenceFailure(f"Could not write {self._path}") from exc
