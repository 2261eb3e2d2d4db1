"""
Notification pipeline wiring.

application event -> RuleEngine.process_rules(context) -> payloads
-> NotificationStore.add_notification() -> ToastManager.show()

create_pipeline() builds one explicit instance of every component; the
application constructs it once at start-up and passes it to consumers.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from config import MIN_COOLDOWN_MINUTES, SYNC_INTERVAL_SECONDS
from ecofinance.core.context import (
    BudgetStatus, GoalStatus, RuleContext, UserProfile, build_context,
)
from ecofinance.metrics import NotificationMetrics
from ecofinance.rules import CooldownTable, RuleEngine, RuleStore
from ecofinance.storage import KeyValueStore
from ecofinance.toasts import ToastManager

from .models import NotificationPayload
from .service import NotificationStore

logger = logging.getLogger(__name__)


class NotificationPipeline:
    """Feeds rule engine output into the notification store"""

    def __init__(
        self,
        engine: RuleEngine,
        store: NotificationStore,
        toasts: Optional[ToastManager] = None,
        metrics: Optional[NotificationMetrics] = None,
        clock: Callable[[], datetime] = datetime.now,
        maintenance_interval: float = SYNC_INTERVAL_SECONDS,
    ):
        self.engine = engine
        self.store = store
        self.toasts = toasts
        self.metrics = metrics
        self._clock = clock
        self.maintenance_interval = maintenance_interval
        self._maintenance_task: Optional[asyncio.Task] = None

    @property
    def rules(self) -> RuleStore:
        return self.engine.rule_store

    async def run(self, context: RuleContext) -> List[NotificationPayload]:
        """
        Evaluate all rules against *context* and store the results.

        Returns:
            Notifications that made it into the inbox (queued or capped
            payloads are not included)
        """
        payloads = await self.engine.process_rules(context)

        stored = []
        for payload in payloads:
            notification = self.store.add_notification(payload)
            if notification is not None:
                stored.append(notification)

        if payloads:
            logger.info(f"Pipeline: {len(payloads)} generated, {len(stored)} delivered")
        return stored

    async def check_budget_alerts(
        self,
        budgets: Iterable[Dict[str, Any]],
        profile: Optional[Dict[str, Any]] = None,
    ) -> List[NotificationPayload]:
        """Run the rules against budget status records ({category, spent, limit})"""
        context = RuleContext(
            budgets=[BudgetStatus(**b) for b in budgets],
            user_profile=UserProfile(**profile) if profile else None,
            date=self._clock(),
        )
        return await self.run(context)

    async def check_goal_alerts(
        self,
        goals: Iterable[Dict[str, Any]],
        profile: Optional[Dict[str, Any]] = None,
    ) -> List[NotificationPayload]:
        """Run the rules against goal records ({id, name, current, target})"""
        context = RuleContext(
            goals=[GoalStatus(**{**g, "id": str(g.get("id", ""))}) for g in goals],
            user_profile=UserProfile(**profile) if profile else None,
            date=self._clock(),
        )
        return await self.run(context)

    async def on_transactions_changed(
        self,
        budgets: Iterable[Dict[str, Any]],
        transactions: Iterable[Dict[str, Any]],
        goals: Optional[Iterable[Dict[str, Any]]] = None,
        profile: Optional[Dict[str, Any]] = None,
    ) -> List[NotificationPayload]:
        """Rebuild budget spending from transactions and run the rules"""
        context = build_context(
            budgets, transactions, goals=goals, profile=profile, now=self._clock(),
        )
        return await self.run(context)

    # Lifecycle

    async def start(self):
        """Start the toast ticker and the queue flush / sync loop"""
        if self.toasts is not None:
            self.toasts.start()
        if self._maintenance_task is None or self._maintenance_task.done():
            self._maintenance_task = asyncio.get_running_loop().create_task(self._maintenance())
        logger.info("Notification pipeline started")

    async def _maintenance(self):
        while True:
            try:
                self.store.process_queued_notifications()
                await self.store.sync_with_server()
            except Exception as e:
                logger.error(f"Notification maintenance error: {e}")
            await asyncio.sleep(self.maintenance_interval)

    async def close(self):
        """Cancel background work and tear down toasts"""
        task, self._maintenance_task = self._maintenance_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self.toasts is not None:
            await self.toasts.close()
        logger.info("Notification pipeline stopped")

    async def __aenter__(self) -> "NotificationPipeline":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


def create_pipeline(
    storage: KeyValueStore,
    clock: Callable[[], datetime] = datetime.now,
    toast_clock: Callable[[], float] = time.monotonic,
    viewport_width: Optional[int] = None,
    metrics: Optional[NotificationMetrics] = None,
    profile_id: str = "",
    load_default_rules: bool = True,
    apply_cooldown_floors: bool = True,
) -> NotificationPipeline:
    """
    Build a fully wired pipeline.

    Args:
        storage: Persistence for cooldowns, notifications, preferences and queue
        clock: Wall clock for rules, quiet hours and daily caps
        toast_clock: Monotonic clock for toast timers
        viewport_width: Display width used to pick the toast concurrency cap
        metrics: Prometheus metrics (a private registry is created if omitted)
        profile_id: Active profile
        load_default_rules: Register the built-in rules
        apply_cooldown_floors: Enforce the per-category minimum cooldowns
    """
    metrics = metrics or NotificationMetrics()

    toasts = ToastManager(viewport_width=viewport_width, clock=toast_clock, metrics=metrics)
    store = NotificationStore(
        storage,
        toast_sink=toasts.show,
        clock=clock,
        profile_id=profile_id,
        metrics=metrics,
    )
    toasts.apply_preferences(store.preferences)
    store.on_preferences_change(toasts.apply_preferences)

    rule_store = RuleStore(clock=clock)
    if load_default_rules:
        rule_store.load_defaults()

    engine = RuleEngine(
        rule_store,
        CooldownTable(storage),
        clock=clock,
        min_cooldowns=MIN_COOLDOWN_MINUTES if apply_cooldown_floors else None,
    )
    engine.on_fire(metrics.record_rule_fired)
    engine.on_error(metrics.record_rule_error)

    return NotificationPipeline(engine, store, toasts, metrics, clock=clock)
