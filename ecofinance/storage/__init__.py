"""
Persistence layer: key-value stores for cooldowns, notifications,
preferences and the offline delivery queue.
"""

from .base import KeyValueStore, MemoryStore, StorageError
from .json_store import JsonFileStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "StorageError",
]
