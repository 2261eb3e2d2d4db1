"""
Toast delivery layer.

Bounded concurrent display with a FIFO wait queue, deduplication and a
loading-toast singleton. Per-toast timers are deadlines stored on the
toast itself and advanced by tick(); a toast that is removed takes its
timers with it, and close() stops the ticker and drops every toast.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from config import (
    MAX_VISIBLE_TOASTS, MAX_VISIBLE_TOASTS_MOBILE, MOBILE_BREAKPOINT,
    TOAST_DEFAULT_DURATION_MS, TOAST_DEBOUNCE_SECONDS, TOAST_SIMILARITY_THRESHOLD,
    TOAST_DEDUP_WINDOW_SECONDS, TOAST_PROMOTION_INTERVAL_SECONDS,
    TOAST_EXIT_ANIMATION_SECONDS, TOAST_TICK_SECONDS,
)
from ecofinance.notifications.models import NotificationAction

from .dedup import DedupService, ToastKey, is_near_duplicate
from .models import ToastEvent, ToastItem, ToastRequest, ToastRole, ToastState

logger = logging.getLogger(__name__)


def max_visible_for(viewport_width: Optional[int]) -> int:
    """Concurrency cap for a viewport (narrow screens show fewer toasts)"""
    if viewport_width is not None and viewport_width < MOBILE_BREAKPOINT:
        return MAX_VISIBLE_TOASTS_MOBILE
    return MAX_VISIBLE_TOASTS


class ToastManager:
    """
    Queues, deduplicates and times toasts.

    Every incoming request goes through, in order:
    1. debounce: a near-identical active toast (title+message+type
       similarity >= threshold) requested within the debounce window is
       refreshed instead of duplicated
    2. duplicate filter: an exact (normalized) repeat from the same source
       within the dedup window is dropped
    3. loading singleton: while a loading toast is outstanding, further
       loading requests only refresh it

    Refreshing updates ``updated_at`` only; the visible countdown keeps
    running from when the toast was first shown.
    """

    def __init__(
        self,
        max_visible: Optional[int] = None,
        viewport_width: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        default_duration: int = TOAST_DEFAULT_DURATION_MS,
        debounce_window: float = TOAST_DEBOUNCE_SECONDS,
        similarity_threshold: float = TOAST_SIMILARITY_THRESHOLD,
        dedup_window: float = TOAST_DEDUP_WINDOW_SECONDS,
        promotion_interval: float = TOAST_PROMOTION_INTERVAL_SECONDS,
        exit_animation: float = TOAST_EXIT_ANIMATION_SECONDS,
        tick_interval: float = TOAST_TICK_SECONDS,
        metrics=None,
    ):
        self.max_visible = max_visible or max_visible_for(viewport_width)
        self._clock = clock
        self.default_duration = default_duration
        self.debounce_window = debounce_window
        self.similarity_threshold = similarity_threshold
        self.promotion_interval = promotion_interval
        self.exit_animation = exit_animation
        self.tick_interval = tick_interval
        self.metrics = metrics

        self.dedup = DedupService(dedup_window)

        self._toasts: Dict[str, ToastItem] = {}
        self._queue: Deque[str] = deque()
        self._loading_lock: Optional[str] = None
        self._last_shown_at: Optional[float] = None

        self._listeners: List[Callable[[ToastEvent], None]] = []
        self._task: Optional[asyncio.Task] = None

    # Listeners

    def subscribe(self, callback: Callable[[ToastEvent], None]):
        """Register a display callback for toast events"""
        self._listeners.append(callback)

    def _emit(self, kind: str, toast: ToastItem):
        event = ToastEvent(kind=kind, toast=toast)
        for callback in self._listeners:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Toast listener error: {e}")

    # Configuration

    def set_viewport(self, viewport_width: Optional[int]):
        """Resize the concurrency cap; toasts already on screen stay"""
        self.max_visible = max_visible_for(viewport_width)

    def apply_preferences(self, preferences):
        """Default duration follows the auto-dismiss preference"""
        if preferences.auto_dismissing:
            self.default_duration = preferences.auto_dismiss_delay * 1000
        else:
            self.default_duration = 0

    # Queries

    @property
    def visible(self) -> List[ToastItem]:
        """Toasts on screen (including those animating out)"""
        return [
            t for t in self._toasts.values()
            if t.state in (ToastState.VISIBLE, ToastState.EXITING)
        ]

    @property
    def queued(self) -> List[ToastItem]:
        """Waiting toasts in FIFO order"""
        return [self._toasts[tid] for tid in self._queue]

    @property
    def loading_toast_id(self) -> Optional[str]:
        return self._loading_lock

    def get(self, toast_id: str) -> Optional[ToastItem]:
        return self._toasts.get(toast_id)

    def progress(self, toast_id: str) -> Optional[float]:
        toast = self._toasts.get(toast_id)
        if toast is None:
            return None
        return toast.progress(self._clock())

    def _slots_used(self) -> int:
        return len(self.visible)

    # Requests

    def show(self, request: ToastRequest) -> Optional[ToastItem]:
        """
        Handle a toast request.

        Returns:
            The new toast, the existing toast that absorbed the request, or
            None when the request was dropped as a duplicate
        """
        now = self._clock()
        key: ToastKey = (request.title, request.message, request.type.value)

        if request.role == ToastRole.LOADED:
            self._release_loading_lock()

        # 1. Debounce near duplicates
        match = self._find_near_duplicate(key, now)
        if match is not None:
            return self._refresh(match, now, "debounce")

        # 2. Strict duplicate filter per source
        if self.dedup.is_duplicate(key, request.source, now):
            existing = self._find_exact(key, request.source)
            if existing is not None:
                return self._refresh(existing, now, "duplicate")
            logger.debug(f"Dropping duplicate toast '{request.title}' from {request.source}")
            self._record_dedup("duplicate")
            return None

        # 3. Loading singleton
        if request.role == ToastRole.LOADING and self._loading_lock is not None:
            holder = self._toasts.get(self._loading_lock)
            if holder is not None and holder.is_active:
                return self._refresh(holder, now, "loading")
            self._loading_lock = None

        toast = ToastItem(
            title=request.title,
            message=request.message,
            type=request.type,
            duration=self.default_duration if request.duration is None else request.duration,
            created_at=now,
            action=request.action,
            retry_action=request.retry_action,
            transaction_type=request.transaction_type,
            source=request.source,
            role=request.role,
        )
        self._toasts[toast.id] = toast
        self.dedup.record(key, request.source, now)

        if request.role == ToastRole.LOADING:
            self._loading_lock = toast.id

        if not self._queue and self._slots_used() < self.max_visible:
            self._make_visible(toast, now)
        else:
            self._queue.append(toast.id)
            self._emit("queued", toast)

        if self.metrics:
            self.metrics.record_toast_shown(toast.type.value)
        return toast

    def notify(self, title: str, message: str, type: str = "info", **kwargs) -> Optional[ToastItem]:
        """Shorthand for show(ToastRequest(...))"""
        return self.show(ToastRequest(title=title, message=message, type=type, **kwargs))

    def _find_near_duplicate(self, key: ToastKey, now: float) -> Optional[ToastItem]:
        for toast in self._toasts.values():
            if not toast.is_active:
                continue
            if now - toast.updated_at > self.debounce_window:
                continue
            other: ToastKey = (toast.title, toast.message, toast.type.value)
            if is_near_duplicate(key, other, self.similarity_threshold):
                return toast
        return None

    def _find_exact(self, key: ToastKey, source: str) -> Optional[ToastItem]:
        for toast in self._toasts.values():
            if toast.is_active and toast.source == source and \
                    is_near_duplicate(key, (toast.title, toast.message, toast.type.value), 1.0):
                return toast
        return None

    def _refresh(self, toast: ToastItem, now: float, rule: str) -> ToastItem:
        toast.updated_at = now
        logger.debug(f"Toast '{toast.title}' refreshed ({rule})")
        self._record_dedup(rule)
        self._emit("updated", toast)
        return toast

    def _record_dedup(self, rule: str):
        if self.metrics:
            self.metrics.record_toast_deduplicated(rule)

    def _release_loading_lock(self):
        if self._loading_lock is not None:
            logger.debug("Loading toast lock released")
        self._loading_lock = None

    # State transitions

    def _make_visible(self, toast: ToastItem, now: float):
        toast.state = ToastState.VISIBLE
        toast.shown_at = now
        self._last_shown_at = now
        self._emit("shown", toast)

    def _begin_exit(self, toast: ToastItem, now: float):
        toast.state = ToastState.EXITING
        toast.exiting_at = now
        self._emit("exiting", toast)

    def _remove(self, toast: ToastItem):
        toast.state = ToastState.REMOVED
        self._toasts.pop(toast.id, None)
        try:
            self._queue.remove(toast.id)
        except ValueError:
            pass
        if self._loading_lock == toast.id:
            self._release_loading_lock()
        self._emit("removed", toast)

    def tick(self, now: Optional[float] = None):
        """
        Advance timers: expire visible toasts, finish exit animations and
        promote at most one queued toast.
        """
        now = self._clock() if now is None else now

        for toast in list(self._toasts.values()):
            if toast.state == ToastState.VISIBLE and toast.duration > 0:
                if toast.elapsed(now) >= toast.duration / 1000.0:
                    self._begin_exit(toast, now)
            elif toast.state == ToastState.EXITING:
                if now - toast.exiting_at >= self.exit_animation:
                    self._remove(toast)

        self._promote(now)

    def _promote(self, now: float):
        if not self._queue or self._slots_used() >= self.max_visible:
            return
        if self._last_shown_at is not None and now - self._last_shown_at < self.promotion_interval:
            return
        toast = self._toasts[self._queue.popleft()]
        self._make_visible(toast, now)

    # User actions

    def dismiss(self, toast_id: str) -> bool:
        """Close a toast manually (skips its auto-dismiss timer)"""
        toast = self._toasts.get(toast_id)
        if toast is None:
            return False

        if toast.state == ToastState.QUEUED:
            self._remove(toast)
        elif toast.state == ToastState.VISIBLE:
            self._begin_exit(toast, self._clock())
        return True

    def retry(self, toast_id: str) -> bool:
        """Run the toast's retry callback (user-initiated) and close it"""
        toast = self._toasts.get(toast_id)
        if toast is None or toast.retry_action is None:
            return False

        try:
            toast.retry_action()
        except Exception as e:
            logger.error(f"Retry action for toast '{toast.title}' failed: {e}")
        self.dismiss(toast_id)
        return True

    def invoke_action(self, toast_id: str) -> Optional[NotificationAction]:
        """Trigger the toast's action button and close it"""
        toast = self._toasts.get(toast_id)
        if toast is None or toast.action is None:
            return None

        self._emit("action", toast)
        self.dismiss(toast_id)
        return toast.action

    def clear(self):
        """Drop every toast immediately"""
        for toast in list(self._toasts.values()):
            self._remove(toast)
        self._queue.clear()
        self._loading_lock = None

    # Lifecycle

    def start(self):
        """Start the ticker on the running event loop"""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self):
        while True:
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Toast tick error: {e}")
            await asyncio.sleep(self.tick_interval)

    async def close(self):
        """Stop the ticker and drop all toasts"""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.clear()

    async def __aenter__(self) -> "ToastManager":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def get_state(self) -> dict:
        now = self._clock()
        return {
            "max_visible": self.max_visible,
            "visible": [t.to_dict(now) for t in self.visible],
            "queued": [t.to_dict(now) for t in self.queued],
            "loading_toast_id": self._loading_lock,
        }
