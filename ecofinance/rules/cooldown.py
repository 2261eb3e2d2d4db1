"""
Per-rule cooldown table.

One structured record per rule id, persisted under a single storage key:

    {"budget-100-percent": {"last_fired": "2026-10-19T10:00:00", "count": 3}}
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from config import STORAGE_KEY_COOLDOWNS
from ecofinance.storage import KeyValueStore, StorageError

logger = logging.getLogger(__name__)


class CooldownTable:
    """
    Last-fired timestamps and occurrence counters keyed by rule id.

    Reads and writes go straight to the store on the calling thread, so a
    lookup followed by a record never interleaves with other store writes.
    """

    def __init__(self, storage: KeyValueStore, key: str = STORAGE_KEY_COOLDOWNS):
        self.storage = storage
        self.key = key

    def _read(self) -> Dict[str, Dict[str, Any]]:
        try:
            table = self.storage.get(self.key, {})
        except StorageError as e:
            logger.warning(f"Cooldown table unavailable: {e}")
            return {}
        return table if isinstance(table, dict) else {}

    def _write(self, table: Dict[str, Dict[str, Any]]):
        try:
            self.storage.set(self.key, table)
        except StorageError as e:
            logger.warning(f"Failed to persist cooldown table: {e}")

    def last_fired(self, rule_id: str) -> Optional[datetime]:
        """When *rule_id* last fired, or None if never"""
        entry = self._read().get(rule_id)
        if not entry or not entry.get("last_fired"):
            return None
        try:
            return datetime.fromisoformat(entry["last_fired"])
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed cooldown entry for rule {rule_id}")
            return None

    def occurrence_count(self, rule_id: str) -> int:
        return int((self._read().get(rule_id) or {}).get("count", 0))

    def record_firing(self, rule_id: str, now: datetime) -> int:
        """Stamp *now* as the last firing and return the new occurrence count"""
        table = self._read()
        entry = table.get(rule_id) or {}
        count = int(entry.get("count", 0)) + 1
        table[rule_id] = {"last_fired": now.isoformat(), "count": count}
        self._write(table)
        return count

    def reset(self, rule_id: Optional[str] = None):
        """Forget one rule's history, or all of it"""
        if rule_id is None:
            self._write({})
            return
        table = self._read()
        table.pop(rule_id, None)
        self._write(table)
