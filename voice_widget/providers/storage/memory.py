"""
In-memory key/value storage (tests, ephemeral sessions).
"""

from typing import Dict, Any, Optional

from ...interfaces.storage import KeyValueStorageInterface


class MemoryStorage(KeyValueStorageInterface):
    """Storage that lives only as long as the object."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = dict((config or {}).get('initial', {}))

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)
