from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Generic, Iterable, Type, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class JsonFileStore(Generic[ModelT]):
    """Mirrors one collection of records to a JSON array on disk.

    Writes go to a temp file next to the target and are swapped in with
    ``os.replace``. Callers mutating the collection hold ``lock`` across the
    in-memory change and the ``save`` so flushes never interleave.
    """

    def __init__(self, path: Path, model: Type[ModelT]):
        self.path = Path(path)
        self.model = model
        self.lock = threading.RLock()
        # raw entries that failed validation; written back untouched on save
        self._unreadable: list = []

    def load(self) -> list[ModelT]:
        self._unreadable = []
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Could not load %s, starting empty", self.path)
            return []
        if not isinstance(raw, list):
            logger.error("Expected a JSON array in %s, starting empty", self.path)
            return []

        records: list[ModelT] = []
        for position, item in enumerate(raw):
            try:
                records.append(self.model.model_validate(item))
            except ValidationError as exc:
                logger.warning(
                    "Keeping unreadable record #%d in %s as is: %s", position, self.path, exc
                )
                self._unreadable.append(item)
        logger.debug("Loaded %d records from %s", len(records), self.path)
        return records

    def save(self, records: Iterable[ModelT]) -> None:
        payload = [record.model_dump(mode="json") for record in records]
        with self.lock:
            payload.extend(self._unreadable)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except OSError:
                logger.exception("Could not write %s", self.path)
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
