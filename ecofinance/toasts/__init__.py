"""
Toast delivery layer: short-lived, queued and deduplicated on-screen
notifications, independent of the persistent notification center.
"""

from .models import ToastItem, ToastRequest, ToastType, ToastState, ToastRole, ToastEvent
from .dedup import DedupService, is_near_duplicate, similarity
from .service import ToastManager, max_visible_for

__all__ = [
    "ToastItem",
    "ToastRequest",
    "ToastType",
    "ToastState",
    "ToastRole",
    "ToastEvent",
    "DedupService",
    "is_near_duplicate",
    "similarity",
    "ToastManager",
    "max_visible_for",
]
