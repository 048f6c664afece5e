import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class FileSessionStorage:
    """
    JSON-file key/value store.

    Implements the async ``get_item`` / ``set_item`` / ``remove_item``
    interface the Supabase auth client uses to persist sessions, so a
    restarted process picks up where it left off. An unreadable file is
    treated as empty, which degrades to "signed out".
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp, self.path)

    async def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    async def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    async def remove_item(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    async def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class MemorySessionStorage(FileSessionStorage):
    """Same interface without touching disk."""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def _load(self) -> Dict[str, Any]:
        return dict(self._data)

    def _save(self, data: Dict[str, Any]) -> None:
        self._data = dict(data)

    async def clear(self) -> None:
        self._data = {}
