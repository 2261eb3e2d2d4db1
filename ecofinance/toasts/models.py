"""
Toast data structures.

Toasts are ephemeral: never persisted, never recreated from storage.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional
import uuid

from ecofinance.notifications.models import NotificationAction


class ToastType(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"
    DELETE = "delete"


class ToastState(str, Enum):
    """queued -> visible -> exiting -> removed"""
    QUEUED = "queued"
    VISIBLE = "visible"
    EXITING = "exiting"
    REMOVED = "removed"


class ToastRole(str, Enum):
    """Special-cased toasts"""
    NORMAL = "normal"
    LOADING = "loading"  # Singleton while data is loading
    LOADED = "loaded"    # Releases the loading singleton


@dataclass
class ToastRequest:
    """A "show toast" event from application code or the notification store"""
    title: str
    message: str
    type: ToastType = ToastType.INFO
    duration: Optional[int] = None  # ms; None = manager default, 0 = sticky
    action: Optional[NotificationAction] = None
    retry_action: Optional[Callable[[], Any]] = None
    transaction_type: Optional[str] = None  # "expense" / "income" styling
    source: str = "app"
    role: ToastRole = ToastRole.NORMAL

    def __post_init__(self):
        self.type = ToastType(self.type)
        self.role = ToastRole(self.role)
        if self.duration is not None and self.duration < 0:
            raise ValueError("Toast duration must be >= 0")


@dataclass
class ToastItem:
    """A toast tracked by the manager"""
    title: str
    message: str
    type: ToastType
    duration: int  # ms, 0 = no auto-dismiss
    created_at: float
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    action: Optional[NotificationAction] = None
    retry_action: Optional[Callable[[], Any]] = None
    transaction_type: Optional[str] = None
    source: str = "app"
    role: ToastRole = ToastRole.NORMAL

    state: ToastState = ToastState.QUEUED
    # Last time an equivalent request arrived (refreshed by deduplication)
    updated_at: float = 0.0
    shown_at: Optional[float] = None
    exiting_at: Optional[float] = None

    def __post_init__(self):
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def is_active(self) -> bool:
        """Queued or on screen and not on its way out"""
        return self.state in (ToastState.QUEUED, ToastState.VISIBLE)

    def elapsed(self, now: float) -> float:
        """Seconds on screen"""
        if self.shown_at is None:
            return 0.0
        return max(0.0, now - self.shown_at)

    def progress(self, now: float) -> float:
        """Countdown percentage (100 -> 0); sticky toasts stay at 100"""
        if self.duration <= 0 or self.shown_at is None:
            return 100.0
        remaining = 1.0 - self.elapsed(now) / (self.duration / 1000.0)
        return max(0.0, min(100.0, remaining * 100.0))

    def to_dict(self, now: Optional[float] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value,
            "duration": self.duration,
            "state": self.state.value,
            "source": self.source,
            "role": self.role.value,
            "transaction_type": self.transaction_type,
            "action": self.action.model_dump(mode="json") if self.action else None,
            "retryable": self.retry_action is not None,
            "progress": round(self.progress(now), 1) if now is not None else None,
        }


@dataclass
class ToastEvent:
    """Display boundary event"""
    kind: str  # shown, queued, updated, exiting, removed
    toast: ToastItem

    def to_dict(self, now: Optional[float] = None) -> Dict[str, Any]:
        return {"kind": self.kind, "toast": self.toast.to_dict(now)}
