"""
Token storage adapters implementing the `TokenStorage` port.

- MemoryTokenStorage: per-process, default for library use and tests.
- FileTokenStorage: JSON file, survives restarts (used by the CLI).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class MemoryTokenStorage:
    """In-memory storage; each key expires independently."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._values: Dict[str, Tuple[str, float]] = {}

    def get(self, key: str) -> Optional[str]:
        item = self._values.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._values[key]
            return None
        return value

    def set_many(self, values: Mapping[str, Tuple[str, float]]) -> None:
        now = self._clock()
        # build first, then swap in one assignment
        updated = dict(self._values)
        for key, (value, max_age) in values.items():
            updated[key] = (value, now + max_age)
        self._values = updated

    def delete(self, *keys: str) -> None:
        for key in keys:
            self._values.pop(key, None)


class FileTokenStorage:
    """
    JSON-file storage: `{key: {"value": str, "expires_at": float}}`.

    Writes go to a temp file in the same directory and are moved into place
    with `os.replace`, so a reader sees either the old or the new pair.
    The file is always readable by its owner only; with `secure=True` a
    missing parent directory is created owner-only as well.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        secure: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.path = Path(path).expanduser()
        self.secure = secure
        self._clock = clock

    # ------------------------------------------------------------------ #
    # port implementation
    # ------------------------------------------------------------------ #

    def get(self, key: str) -> Optional[str]:
        item = self._read().get(key)
        if not isinstance(item, dict):
            return None
        value = item.get("value")
        expires_at = item.get("expires_at")
        if not isinstance(value, str) or not isinstance(expires_at, (int, float)):
            return None
        if self._clock() >= expires_at:
            return None
        return value

    def set_many(self, values: Mapping[str, Tuple[str, float]]) -> None:
        now = self._clock()
        data = self._prune(self._read(), now)
        for key, (value, max_age) in values.items():
            data[key] = {"value": value, "expires_at": now + max_age}
        self._write(data)

    def delete(self, *keys: str) -> None:
        data = self._read()
        if not any(k in data for k in keys):
            return
        for key in keys:
            data.pop(key, None)
        self._write(data)

    # ------------------------------------------------------------------ #
    # internal helpers
    # ------------------------------------------------------------------ #

    def _read(self) -> Dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable token file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _prune(data: Dict[str, Any], now: float) -> Dict[str, Any]:
        return {
            k: v
            for k, v in data.items()
            if isinstance(v, dict)
            and isinstance(v.get("expires_at"), (int, float))
            and v["expires_at"] > now
        }

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(mode=0o700 if self.secure else 0o777, parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            os.chmod(tmp_name, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
