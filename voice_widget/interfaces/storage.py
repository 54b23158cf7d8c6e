"""
Abstract interface for durable client-side key/value storage.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStorageInterface(ABC):
    """String key/value store scoped to one client."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Raises:
            StorageUnavailableError: storage cannot be read
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Raises:
            StorageUnavailableError: storage cannot be written
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass
