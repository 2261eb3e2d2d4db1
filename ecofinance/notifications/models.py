"""
Notification data models.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum
import uuid


class NotificationCategory(str, Enum):
    """Notification categories"""
    BUDGET = "budget"
    GOAL = "goal"
    TRANSACTION = "transaction"
    REMINDER = "reminder"
    REPORT = "report"
    SYSTEM = "system"
    INSIGHT = "insight"
    ACHIEVEMENT = "achievement"


class NotificationPriority(str, Enum):
    """Notification priority levels"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationChannel(str, Enum):
    """Notification delivery channels"""
    IN_APP = "in_app"  # Toast + notification center
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class NotificationStatus(str, Enum):
    """Lifecycle: pending -> sent -> delivered -> read, or -> dismissed"""
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    DISMISSED = "dismissed"


class NotificationFrequency(str, Enum):
    REALTIME = "realtime"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class NotificationAction(BaseModel):
    """User-invokable button attached to a notification"""
    id: str
    label: str
    icon: Optional[str] = None
    url: Optional[str] = None
    handler: Optional[str] = None  # Name of the handler to dispatch
    dismiss_after_action: bool = False
    primary: bool = False


class NotificationCreate(BaseModel):
    """Notification draft (id, timestamp and status are assigned on insert)"""
    profile_id: str = "default"
    title: str
    message: str
    category: NotificationCategory = NotificationCategory.SYSTEM
    priority: NotificationPriority = NotificationPriority.NORMAL
    channels: List[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.IN_APP]
    )
    actions: Optional[List[NotificationAction]] = None
    url: Optional[str] = None
    tags: Optional[List[str]] = None
    expires_at: Optional[datetime] = None
    data: Optional[Dict[str, Any]] = None


class NotificationPayload(NotificationCreate):
    """Notification record held by the notification store"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=datetime.now)
    status: NotificationStatus = NotificationStatus.PENDING

    # Delivery tracking
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None

    @property
    def is_unread(self) -> bool:
        # read and dismissed are both terminal
        return self.status not in (NotificationStatus.READ, NotificationStatus.DISMISSED)

    def to_draft(self) -> NotificationCreate:
        """Strip store-assigned fields"""
        return NotificationCreate(**self.model_dump(include=set(NotificationCreate.model_fields)))


class QueuedNotification(NotificationCreate):
    """Draft waiting in the offline / quiet-hours queue"""
    queued_at: datetime = Field(default_factory=datetime.now)


class CategoryChannelConfig(BaseModel):
    """Per-category delivery settings"""
    enabled: bool = True
    channels: List[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.IN_APP]
    )
    frequency: NotificationFrequency = NotificationFrequency.REALTIME
    quiet_hours_respected: bool = True


class QuietHours(BaseModel):
    """Time window during which notifications are queued instead of shown"""
    enabled: bool = False
    start_time: str = "22:00"
    end_time: str = "08:00"
    timezone: str = "America/Sao_Paulo"
    exclude_weekends: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def valid_time_of_day(cls, v: str) -> str:
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Time must be HH:MM, got {v!r}")
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Time out of range: {v!r}")
        return f"{hour:02d}:{minute:02d}"


class NotificationPreferences(BaseModel):
    """User notification preferences (one per profile)"""
    user_id: str = ""
    profile_id: str = ""

    # Global settings
    global_enabled: bool = True
    sound_enabled: bool = True
    vibration_enabled: bool = True
    auto_dismissing: bool = True
    auto_dismiss_delay: int = Field(default=5, ge=0)  # seconds

    quiet_hours: QuietHours = Field(default_factory=QuietHours)

    categories: Dict[NotificationCategory, CategoryChannelConfig]

    # Metadata
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    version: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def all_categories_configured(self) -> "NotificationPreferences":
        missing = [c.value for c in NotificationCategory if c not in self.categories]
        if missing:
            raise ValueError(f"Missing category configuration: {', '.join(missing)}")
        return self


def default_preferences(profile_id: str = "", user_id: str = "") -> NotificationPreferences:
    """Default preferences for a new profile"""
    in_app = NotificationChannel.IN_APP
    push = NotificationChannel.PUSH
    email = NotificationChannel.EMAIL
    realtime = NotificationFrequency.REALTIME

    categories = {
        NotificationCategory.BUDGET: CategoryChannelConfig(
            channels=[in_app, push], frequency=realtime, quiet_hours_respected=True),
        NotificationCategory.GOAL: CategoryChannelConfig(
            channels=[in_app, push], frequency=realtime, quiet_hours_respected=True),
        NotificationCategory.TRANSACTION: CategoryChannelConfig(
            channels=[in_app], frequency=realtime, quiet_hours_respected=True),
        NotificationCategory.REMINDER: CategoryChannelConfig(
            channels=[in_app, push], frequency=realtime, quiet_hours_respected=True),
        NotificationCategory.REPORT: CategoryChannelConfig(
            channels=[in_app, email], frequency=NotificationFrequency.WEEKLY,
            quiet_hours_respected=False),
        NotificationCategory.SYSTEM: CategoryChannelConfig(
            channels=[in_app], frequency=realtime, quiet_hours_respected=False),
        NotificationCategory.INSIGHT: CategoryChannelConfig(
            channels=[in_app], frequency=NotificationFrequency.DAILY,
            quiet_hours_respected=True),
        NotificationCategory.ACHIEVEMENT: CategoryChannelConfig(
            channels=[in_app, push], frequency=realtime, quiet_hours_respected=False),
    }

    return NotificationPreferences(
        user_id=user_id,
        profile_id=profile_id,
        categories=categories,
    )
