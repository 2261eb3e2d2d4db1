"""Toast deduplication"""
import logging
import re
from collections import defaultdict
from difflib import SequenceMatcher
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

ToastKey = Tuple[str, str, str]  # (title, message, type)

_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip().lower()


def signature(title: str, message: str, toast_type: str) -> str:
    return f"{normalize(title)}|{normalize(message)}|{normalize(toast_type)}"


def similarity(a: ToastKey, b: ToastKey) -> float:
    """Similarity ratio (0..1) between two (title, message, type) keys"""
    if a[2] != b[2]:
        # Different types never merge
        return 0.0
    sig_a = signature(*a)
    sig_b = signature(*b)
    if sig_a == sig_b:
        return 1.0
    return SequenceMatcher(None, sig_a, sig_b).ratio()


def is_near_duplicate(a: ToastKey, b: ToastKey, threshold: float) -> bool:
    return similarity(a, b) >= threshold


class DedupService:
    """
    Exact-match duplicate filter scoped by source tag.

    Remembers the normalized signature of every toast request per source;
    a request whose signature was seen for the same source within
    ``window`` seconds is a duplicate.
    """

    def __init__(self, window: float):
        self.window = window
        self._seen: Dict[str, Dict[str, float]] = defaultdict(dict)

    def is_duplicate(self, key: ToastKey, source: str, now: float) -> bool:
        last = self._seen[source].get(signature(*key))
        return last is not None and now - last <= self.window

    def record(self, key: ToastKey, source: str, now: float):
        self._seen[source][signature(*key)] = now
        self._prune(source, now)

    def forget(self, source: Optional[str] = None):
        if source is None:
            self._seen.clear()
        else:
            self._seen.pop(source, None)

    def _prune(self, source: str, now: float):
        seen = self._seen[source]
        stale = [sig for sig, ts in seen.items() if now - ts > self.window]
        for sig in stale:
            del seen[sig]
