"""
Notification center for EcoFinance.

- models: payloads, actions and per-profile preferences
- quiet_hours: quiet window policy
- service: NotificationStore (the in-app inbox)
- pipeline: rule engine -> store -> toast wiring
- routes: notification center API
"""

from .models import (
    NotificationPayload, NotificationCreate, NotificationAction,
    NotificationCategory, NotificationChannel, NotificationPriority,
    NotificationStatus, NotificationPreferences, default_preferences,
)
from .quiet_hours import is_in_quiet_hours

__all__ = [
    "NotificationPayload",
    "NotificationCreate",
    "NotificationAction",
    "NotificationCategory",
    "NotificationChannel",
    "NotificationPriority",
    "NotificationStatus",
    "NotificationPreferences",
    "default_preferences",
    "is_in_quiet_hours",
]
