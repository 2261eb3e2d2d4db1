"""
File-backed key-value store.

The whole store is one JSON document, rewritten atomically (temp file +
rename) on every write.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Union

from .base import KeyValueStore, StorageError

logger = logging.getLogger(__name__)


class JsonFileStore(KeyValueStore):
    """
    Persistent store backed by a single JSON file.

    Reads are served from an in-memory copy loaded at construction time.
    Failures to read or write the file are raised as StorageError.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Corrupt store file {self.path}: expected object")

        logger.debug(f"Loaded {len(data)} keys from {self.path}")
        return data

    def _flush(self, data: Dict[str, Any]):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        # Round-trip so callers never mutate the cached document
        return json.loads(json.dumps(self._data[key]))

    def set(self, key: str, value: Any):
        data = dict(self._data)
        data[key] = value
        self._flush(data)
        self._data = data

    def delete(self, key: str):
        if key not in self._data:
            return
        data = dict(self._data)
        del data[key]
        self._flush(data)
        self._data = data

    def keys(self) -> List[str]:
        return list(self._data.keys())
