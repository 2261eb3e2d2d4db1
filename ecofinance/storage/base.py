"""
Key-value persistence interface consumed by the notification pipeline.

Any durable key-value store satisfies the contract; values must be
JSON-compatible (dicts, lists, strings, numbers, booleans, None).
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class StorageError(Exception):
    """Raised when the backing store cannot be read or written"""


class KeyValueStore(ABC):
    """Abstract key-value store"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for *key*, or *default* when missing"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any):
        """Store *value* under *key*"""
        pass

    @abstractmethod
    def delete(self, key: str):
        """Remove *key* (no-op when missing)"""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass


class MemoryStore(KeyValueStore):
    """In-memory store. Values are deep-copied on the way in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any):
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str):
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())
