from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from llmemo.errors import PersistenceError

logger = logging.getLogger(__name__)


class JsonDocumentStore:
    """A single JSON object on disk addressed by top-level string keys.

    The file is read lazily on first access. ``set``/``delete`` only change
    the in-memory document; ``save`` writes the whole document atomically.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: dict[str, Any] | None = None

    def _document(self) -> dict[str, Any]:
        if self._data is None:
            self._data = self._read()
        return self._data

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Cannot read {self.path}: {exc}") from exc
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"{self.path} does not contain a JSON object")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self._document().get(key, default))

    def set(self, key: str, value: Any) -> None:
        self._document()[key] = copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        return self._document().pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._document())

    def save(self) -> None:
        payload = json.dumps(self._document(), ensure_ascii=False, indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Cannot write {self.path}: {exc}") from exc
        logger.debug("Saved %s (%d bytes)", self.path, len(payload))
