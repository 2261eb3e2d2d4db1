"""
Notification store: the in-app inbox.

Holds notification payloads (newest first), the unread counter, the user's
preferences and the quiet-hours delivery queue. All mutations are
synchronous and run to completion; only the server sync is a coroutine.
"""

import os
import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional, Dict, List, Callable, Any, Union

import aiohttp
from pydantic import ValidationError

from config import (
    MAX_NOTIFICATIONS, MAX_PERSISTED_NOTIFICATIONS, MAX_QUEUED_NOTIFICATIONS,
    NOTIFICATION_RETENTION_DAYS, DAILY_CATEGORY_LIMITS, DEFAULT_DAILY_LIMIT,
    STORAGE_KEY_NOTIFICATIONS, STORAGE_KEY_QUEUE, PRIORITY_TOAST_STYLE,
    SYNC_TIMEOUT_SECONDS,
)
from ecofinance.storage import KeyValueStore, StorageError
from ecofinance.toasts.models import ToastRequest, ToastType

from .models import (
    NotificationPayload, NotificationCreate, NotificationPreferences,
    NotificationCategory, NotificationChannel, NotificationPriority,
    NotificationStatus, QueuedNotification, default_preferences,
)
from .quiet_hours import is_in_quiet_hours

logger = logging.getLogger(__name__)


class NotificationStore:
    """
    Central state machine for the notification center.

    Suppression policy applied by add_notification(), in order:
    - notifications globally disabled: dropped
    - category disabled: dropped
    - inside quiet hours (for categories that respect them): queued
    - category daily cap reached: dropped
    """

    def __init__(
        self,
        storage: KeyValueStore,
        toast_sink: Optional[Callable[[ToastRequest], Any]] = None,
        clock: Callable[[], datetime] = datetime.now,
        daily_limits: Optional[Dict[str, int]] = None,
        profile_id: str = "",
        sync_url: Optional[str] = None,
        metrics=None,
    ):
        self.storage = storage
        self.toast_sink = toast_sink
        self._clock = clock
        self.daily_limits: Dict[str, int] = dict(
            DAILY_CATEGORY_LIMITS if daily_limits is None else daily_limits
        )
        self.metrics = metrics

        # Sync configuration from environment
        self.sync_url = sync_url if sync_url is not None else os.getenv("NOTIFICATION_SYNC_URL", "")

        # Inbox state
        self.notifications: List[NotificationPayload] = []
        self.unread_count = 0
        self.preferences: NotificationPreferences = default_preferences(profile_id)
        self._queue: List[QueuedNotification] = []

        # Connection state
        self.is_online = True
        self.is_syncing = False
        self.last_sync_time: Optional[datetime] = None
        self._sync_task: Optional[asyncio.Task] = None

        # UI state (never persisted)
        self.is_center_open = False

        self._listeners: List[Callable[[NotificationPayload], None]] = []
        self._preference_listeners: List[Callable[[NotificationPreferences], None]] = []

        self._load()

    # Persistence

    def _load(self):
        """Restore notifications, preferences and the queue from storage"""
        try:
            state = self.storage.get(STORAGE_KEY_NOTIFICATIONS) or {}
            queued = self.storage.get(STORAGE_KEY_QUEUE) or []
        except StorageError as e:
            logger.warning(f"Could not load notification state, starting empty: {e}")
            return

        if state.get("preferences"):
            try:
                self.preferences = NotificationPreferences.model_validate(state["preferences"])
            except ValidationError as e:
                logger.warning(f"Discarding invalid stored preferences: {e}")

        cutoff = self._clock() - timedelta(days=NOTIFICATION_RETENTION_DAYS)
        for raw in state.get("notifications", []):
            try:
                notification = NotificationPayload.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping invalid stored notification: {e}")
                continue
            if notification.timestamp >= cutoff:
                self.notifications.append(notification)

        for raw in queued:
            try:
                self._queue.append(QueuedNotification.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping invalid queued notification: {e}")

        self.unread_count = sum(1 for n in self.notifications if n.is_unread)
        logger.info(f"Loaded {len(self.notifications)} notifications "
                    f"({self.unread_count} unread, {len(self._queue)} queued)")

    def _persist(self):
        """Write notifications and preferences; memory stays authoritative on failure"""
        state = {
            "notifications": [
                n.model_dump(mode="json")
                for n in self.notifications[:MAX_PERSISTED_NOTIFICATIONS]
            ],
            "preferences": self.preferences.model_dump(mode="json"),
        }
        try:
            self.storage.set(STORAGE_KEY_NOTIFICATIONS, state)
        except StorageError as e:
            logger.warning(f"Failed to persist notifications: {e}")

    def _persist_queue(self):
        try:
            self.storage.set(STORAGE_KEY_QUEUE, [q.model_dump(mode="json") for q in self._queue])
        except StorageError as e:
            logger.warning(f"Failed to persist notification queue: {e}")

    # Listeners

    def on_notification(self, callback: Callable[[NotificationPayload], None]):
        """Register callback for every notification added to the inbox"""
        self._listeners.append(callback)

    def on_preferences_change(self, callback: Callable[[NotificationPreferences], None]):
        self._preference_listeners.append(callback)

    def _emit(self, listeners: list, value):
        for callback in listeners:
            try:
                callback(value)
            except Exception as e:
                logger.error(f"Notification listener error: {e}")

    # Notification operations

    def daily_limit(self, category: NotificationCategory) -> int:
        return self.daily_limits.get(category.value, DEFAULT_DAILY_LIMIT)

    def count_today(self, category: NotificationCategory, now: Optional[datetime] = None) -> int:
        today = (now or self._clock()).date()
        return sum(
            1 for n in self.notifications
            if n.category == category and n.timestamp.date() == today
        )

    def add_notification(
        self,
        data: Union[NotificationCreate, NotificationPayload],
    ) -> Optional[NotificationPayload]:
        """
        Insert a notification into the inbox, subject to preferences.

        Args:
            data: Draft (or a rule engine payload, whose id/timestamp/status
                are replaced)

        Returns:
            The stored notification, or None when it was dropped or queued
        """
        draft = data.to_draft() if isinstance(data, NotificationPayload) else data
        prefs = self.preferences

        if not prefs.global_enabled:
            logger.debug(f"Notifications disabled, dropping '{draft.title}'")
            self._record_suppressed("disabled")
            return None

        category_config = prefs.categories[draft.category]
        if not category_config.enabled:
            logger.debug(f"Category {draft.category.value} disabled, dropping '{draft.title}'")
            self._record_suppressed("category_disabled")
            return None

        now = self._clock()

        if category_config.quiet_hours_respected and is_in_quiet_hours(prefs.quiet_hours, now):
            self._enqueue(draft, now)
            self._record_suppressed("quiet_hours")
            return None

        limit = self.daily_limit(draft.category)
        if limit > 0 and self.count_today(draft.category, now) >= limit:
            logger.debug(f"Daily limit ({limit}) reached for {draft.category.value}")
            self._record_suppressed("daily_cap")
            return None

        notification = NotificationPayload(
            **draft.model_dump(include=set(NotificationCreate.model_fields)),
            id=str(uuid.uuid4()),
            timestamp=now,
            status=NotificationStatus.SENT,
            sent_at=now,
        )

        self.notifications = [notification, *self.notifications][:MAX_NOTIFICATIONS]
        # Evicted unread items leave the counter too
        self.unread_count = sum(1 for n in self.notifications if n.is_unread)
        self._persist()

        logger.info(f"Notification added: [{notification.category.value}] {notification.title}")
        if self.metrics:
            self.metrics.record_notification_added(notification.category.value, self.unread_count)

        self._emit(self._listeners, notification)

        if NotificationChannel.IN_APP in category_config.channels:
            self._trigger_toast(notification)

        return notification

    def _enqueue(self, draft: NotificationCreate, now: datetime):
        queued = QueuedNotification(**draft.model_dump(include=set(NotificationCreate.model_fields)), queued_at=now)
        self._queue = [*self._queue, queued][-MAX_QUEUED_NOTIFICATIONS:]
        self._persist_queue()
        logger.debug(f"Quiet hours: queued '{draft.title}' ({len(self._queue)} waiting)")

    def _record_suppressed(self, reason: str):
        if self.metrics:
            self.metrics.record_suppressed(reason)

    def _trigger_toast(self, notification: NotificationPayload):
        if self.toast_sink is None:
            return

        toast_type, duration = PRIORITY_TOAST_STYLE.get(
            notification.priority.value, PRIORITY_TOAST_STYLE[NotificationPriority.NORMAL.value]
        )
        request = ToastRequest(
            title=notification.title,
            message=notification.message,
            type=ToastType(toast_type),
            duration=duration,
            action=notification.actions[0] if notification.actions else None,
            source=f"notification:{notification.category.value}",
        )
        try:
            self.toast_sink(request)
        except Exception as e:
            logger.error(f"Toast delivery failed for notification {notification.id}: {e}")

    @property
    def queued(self) -> List[QueuedNotification]:
        return list(self._queue)

    def process_queued_notifications(self) -> int:
        """
        Deliver queued notifications once quiet hours are over.

        Returns:
            Number of queued items handed back to add_notification()
        """
        if not self._queue:
            return 0
        if not self.is_online:
            return 0
        if is_in_quiet_hours(self.preferences.quiet_hours, self._clock()):
            return 0

        pending, self._queue = self._queue, []
        self._persist_queue()

        for item in pending:
            self.add_notification(item)

        logger.info(f"Flushed {len(pending)} queued notifications")
        return len(pending)

    def get_notification(self, notification_id: str) -> Optional[NotificationPayload]:
        for n in self.notifications:
            if n.id == notification_id:
                return n
        return None

    def mark_as_read(self, notification_id: str) -> bool:
        """Mark one notification read (idempotent; dismissed records are left as they are)"""
        notification = self.get_notification(notification_id)
        if notification is None:
            return False

        if notification.is_unread:
            notification.status = NotificationStatus.READ
            notification.read_at = self._clock()
            self.unread_count = max(0, self.unread_count - 1)
            self._after_change()
        return True

    def mark_all_as_read(self) -> int:
        """Mark every unread notification read; returns how many changed"""
        now = self._clock()
        changed = 0
        for n in self.notifications:
            if n.is_unread:
                n.status = NotificationStatus.READ
                n.read_at = n.read_at or now
                changed += 1
        self.unread_count = 0
        self._after_change()
        return changed

    def dismiss_notification(self, notification_id: str) -> bool:
        """Dismiss a notification; it stays listed but leaves active/urgent views"""
        notification = self.get_notification(notification_id)
        if notification is None:
            return False

        if notification.status != NotificationStatus.DISMISSED:
            if notification.is_unread:
                self.unread_count = max(0, self.unread_count - 1)
            notification.status = NotificationStatus.DISMISSED
            notification.dismissed_at = self._clock()
            self._after_change()
        return True

    def delete_notification(self, notification_id: str) -> bool:
        notification = self.get_notification(notification_id)
        if notification is None:
            return False

        self.notifications = [n for n in self.notifications if n.id != notification_id]
        if notification.is_unread:
            self.unread_count = max(0, self.unread_count - 1)
        self._after_change()
        return True

    def clear_all(self):
        self.notifications = []
        self.unread_count = 0
        self._after_change()
        logger.info("Cleared all notifications")

    def _after_change(self):
        self._persist()
        if self.metrics:
            self.metrics.record_unread(self.unread_count)

    # Queries

    def get_notifications(
        self,
        category: Optional[NotificationCategory] = None,
        unread_only: bool = False,
        search: Optional[str] = None,
    ) -> List[NotificationPayload]:
        """Notifications (newest first) filtered the way the notification center does"""
        query = search.lower() if search else None
        result = []
        for n in self.notifications:
            if category is not None and n.category != category:
                continue
            if unread_only and not n.is_unread:
                continue
            if query and query not in n.title.lower() and query not in n.message.lower():
                continue
            result.append(n)
        return result

    def get_active(self) -> List[NotificationPayload]:
        """Notifications that have not been dismissed"""
        return [n for n in self.notifications if n.status != NotificationStatus.DISMISSED]

    def get_urgent(self) -> List[NotificationPayload]:
        """Unread, undismissed urgent notifications"""
        return [
            n for n in self.notifications
            if n.priority == NotificationPriority.URGENT
            and n.status not in (NotificationStatus.READ, NotificationStatus.DISMISSED)
        ]

    def count_by_category(self) -> Dict[str, int]:
        counts = {c.value: 0 for c in NotificationCategory}
        for n in self.notifications:
            counts[n.category.value] += 1
        return counts

    # Preferences

    def update_preferences(self, changes: Dict[str, Any]) -> NotificationPreferences:
        """
        Shallow-merge *changes* into the preferences.

        Raises:
            ValidationError: if the merged preferences are invalid (the
                current preferences are left untouched)
        """
        data = self.preferences.model_dump()
        data.update(changes)
        return self._replace_preferences(data)

    def toggle_category(
        self,
        category: NotificationCategory,
        channel: NotificationChannel,
    ) -> NotificationPreferences:
        """Add or remove *channel* for *category*; no channels left disables it"""
        data = self.preferences.model_dump()
        config = data["categories"][category]
        channels = list(config["channels"])
        if channel in channels:
            channels.remove(channel)
        else:
            channels.append(channel)
        config["channels"] = channels
        config["enabled"] = len(channels) > 0
        return self._replace_preferences(data)

    def set_quiet_hours(
        self,
        enabled: bool,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> NotificationPreferences:
        data = self.preferences.model_dump()
        quiet = data["quiet_hours"]
        quiet["enabled"] = enabled
        if start is not None:
            quiet["start_time"] = start
        if end is not None:
            quiet["end_time"] = end
        return self._replace_preferences(data)

    def _replace_preferences(self, data: Dict[str, Any]) -> NotificationPreferences:
        data["updated_at"] = self._clock()
        data["version"] = self.preferences.version + 1
        self.preferences = NotificationPreferences.model_validate(data)
        self._persist()
        logger.info(f"Notification preferences updated (version {self.preferences.version})")
        self._emit(self._preference_listeners, self.preferences)
        return self.preferences

    # Connectivity and sync

    def set_online_status(self, online: bool):
        """Record connectivity; coming back online flushes the queue and syncs"""
        self.is_online = online
        if not online:
            return

        self.process_queued_notifications()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._sync_task = loop.create_task(self.sync_with_server())

    async def sync_with_server(self) -> bool:
        """
        Best-effort reconciliation with the remote notification store.

        Failures are logged and leave local state unchanged.

        Returns:
            True when the server answered and its notifications were merged
        """
        if not self.is_online or not self.sync_url:
            return False

        self.is_syncing = True
        try:
            timeout = aiohttp.ClientTimeout(total=SYNC_TIMEOUT_SECONDS)
            payload = {
                "profileId": self.preferences.profile_id,
                "lastSync": self.last_sync_time.isoformat() if self.last_sync_time else None,
                "localNotifications": [n.model_dump(mode="json") for n in self.notifications],
            }

            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.sync_url, json=payload) as resp:
                    if resp.status != 200:
                        logger.warning(f"Sync rejected ({resp.status}): {await resp.text()}")
                        return False
                    data = await resp.json()

            server_notifications = [
                NotificationPayload.model_validate(n)
                for n in data.get("serverNotifications", [])
            ]
            added = self.merge_server_notifications(server_notifications)
            self.last_sync_time = self._clock()
            logger.info(f"Sync complete, {added} new notifications from server")
            return True

        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Sync failed: {e}")
            return False
        except Exception as e:
            # Malformed server reply; also runs as a background task from set_online_status()
            logger.error(f"Sync error: {e}")
            return False
        finally:
            self.is_syncing = False

    def merge_server_notifications(self, server_notifications: List[NotificationPayload]) -> int:
        """Prepend server notifications whose ids are unknown locally"""
        local_ids = {n.id for n in self.notifications}
        new_from_server = [n for n in server_notifications if n.id not in local_ids]
        if not new_from_server:
            return 0

        self.notifications = [*new_from_server, *self.notifications][:MAX_NOTIFICATIONS]
        self.unread_count = sum(1 for n in self.notifications if n.is_unread)
        self._after_change()
        return len(new_from_server)

    # UI state

    def open_center(self):
        self.is_center_open = True

    def close_center(self):
        self.is_center_open = False

    def get_statistics(self) -> Dict[str, Any]:
        """Inbox statistics"""
        return {
            "total": len(self.notifications),
            "unread": self.unread_count,
            "queued": len(self._queue),
            "urgent": len(self.get_urgent()),
            "by_category": self.count_by_category(),
            "is_online": self.is_online,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
        }
