"""
JSON file key/value storage.

Plays the role of browser session storage for a widget running in a host
process: small string values under fixed keys, shared by every widget
instance that points at the same file.
"""

import json
import threading
from pathlib import Path
from typing import Dict, Any, Optional

from ...interfaces.storage import KeyValueStorageInterface
from ...utils.error_handling import StorageUnavailableError
from ...utils.logging_config import get_logger


logger = get_logger("storage")

DEFAULT_STORAGE_PATH = Path.home() / ".voice_widget" / "storage.json"


class JsonFileStorage(KeyValueStorageInterface):
    """Key/value storage persisted as a flat JSON object."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.path = Path(config.get('path') or DEFAULT_STORAGE_PATH).expanduser()
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageUnavailableError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageUnavailableError(f"{self.path} does not hold a JSON object")
        return data

    def _save(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)
        logger.debug(f"💾 Stored {key} in {self.path}")

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)
