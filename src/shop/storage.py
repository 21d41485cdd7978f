# session-local key/value stores used to persist carts between runs

from __future__ import annotations

import json
import os
import re
import tempfile
from typing import Any, Dict, Optional

from shop.errors import PersistenceFailure
from utils.logger import get_logger

_logger = get_logger(__name__)

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class MemoryStore:
    """Keeps JSON documents in a dict; nothing survives the process."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def load(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def save(self, key: str, value: Any) -> None:
        # serialise eagerly so the stored document cannot alias caller state
        self._data[key] = json.dumps(value)


class JsonFileStore:
    """
    One JSON file per key under ``directory``.

    Writes go through a temp file and ``os.replace`` so a crash never leaves a
    half-written cart behind. A failed write removes its temp file.
    """

    def __init__(self, directory: str) -> None:
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, _SAFE_KEY.sub("_", key) + ".json")

    def load(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Could not read {path}: {e}") from e

    def save(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise PersistenceFailure(f"Could not write {path}: {e}") from e
        _logger.debug(f"Saved {key} to {path}")
