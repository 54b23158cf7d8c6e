"""
Client-side key/value storage backends.
"""

from .json_file import JsonFileStorage, DEFAULT_STORAGE_PATH
from .memory import MemoryStorage

__all__ = ['JsonFileStorage', 'MemoryStorage', 'DEFAULT_STORAGE_PATH']
