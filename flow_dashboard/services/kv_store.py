"""Local key-value substrates underneath the encrypted store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """String-to-string persistence, shaped like browser localStorage."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """In-process store; nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class FileKeyValueStore:
    """
    Single JSON file holding every key.

    Writes go to a temp file first and are renamed into place, so a crash
    mid-write never leaves a truncated store. The file is owner-only (0600).
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with self.path.open("r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Failed to load storage file: %s", e, extra={"path": str(self.path)})
            return {}

        if not isinstance(data, dict):
            logger.error("Storage file is not a JSON object", extra={"path": str(self.path)})
            return {}

        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(self.path.suffix + ".tmp")

        try:
            # Owner-only before any content is written
            temp_file.touch(mode=0o600)
            temp_file.chmod(0o600)
            with temp_file.open("w") as f:
                json.dump(items, f, indent=2)
                f.flush()

            temp_file.replace(self.path)
            logger.debug("Storage file saved: %s", self.path)
        except OSError as e:
            logger.error("Failed to save storage file: %s", e, extra={"path": str(self.path)})
            if temp_file.exists():
                temp_file.unlink()
            raise

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._save(items)
