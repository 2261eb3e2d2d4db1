"""Notification rule engine"""
import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from ecofinance.core.context import RuleContext
from ecofinance.notifications.models import (
    NotificationPayload, NotificationPriority, NotificationStatus,
)

from .cooldown import CooldownTable
from .evaluator import ConditionEvaluator
from .models import NotificationRule, RuleAction
from .store import RuleStore
from .templates import interpolate

logger = logging.getLogger(__name__)


class RuleEngine:
    """
    Evaluates registered rules against a context snapshot and builds
    notification payloads.

    For each enabled rule, in registration order:
    - all conditions must hold (evaluation stops at the first False)
    - a rule that fired within its cooldown is skipped silently
    - each ``create_notification`` action yields one payload
    - the firing is recorded in the cooldown table and the rule's
      ``occurrence_count`` is updated

    An exception raised by one rule is logged and the remaining rules are
    still processed. Concurrent process_rules() calls run one at a time, so
    a cooldown check and the matching record are never split by another
    evaluation.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        cooldowns: CooldownTable,
        evaluator: Optional[ConditionEvaluator] = None,
        clock: Callable[[], datetime] = datetime.now,
        min_cooldowns: Optional[Mapping[str, int]] = None,
    ):
        self.rule_store = rule_store
        self.cooldowns = cooldowns
        self.evaluator = evaluator or ConditionEvaluator(cooldowns, clock=clock)
        self._clock = clock
        # Category -> minimum cooldown (minutes), applied on top of the rule's own
        self.min_cooldowns: Dict[str, int] = dict(min_cooldowns or {})
        self.context: Optional[RuleContext] = None
        self._lock: Optional[asyncio.Lock] = None

        # Statistics
        self.rules_fired = 0
        self.rule_errors = 0
        self._on_fire_callbacks: list = []
        self._on_error_callbacks: list = []

        self.restore_occurrence_counts()

    def restore_occurrence_counts(self):
        """Load persisted firing counts into the registered rules"""
        for rule in self.rule_store.get_rules():
            rule.occurrence_count = max(rule.occurrence_count, self.cooldowns.occurrence_count(rule.id))

    def on_fire(self, callback):
        """Register callback(rule, payloads) for every rule that fires"""
        self._on_fire_callbacks.append(callback)

    def on_error(self, callback):
        """Register callback(rule, exception) for rules that raise"""
        self._on_error_callbacks.append(callback)

    def set_context(self, context: RuleContext):
        """Set the snapshot used by the next process_rules() call"""
        self.context = context

    async def process_rules(self, context: Optional[RuleContext] = None) -> List[NotificationPayload]:
        """
        Run every enabled rule and return the generated payloads.

        Args:
            context: Snapshot to evaluate; falls back to set_context()

        Returns:
            Payloads in rule registration order
        """
        context = context or self.context
        if context is None:
            logger.warning("RuleEngine: context not set, nothing to process")
            return []

        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            return await self._process_all(context)

    async def _process_all(self, context: RuleContext) -> List[NotificationPayload]:
        notifications: List[NotificationPayload] = []

        for rule in self.rule_store.get_rules():
            if not rule.enabled:
                continue

            try:
                payloads = await self._process_rule(rule, context)
            except Exception as e:
                self.rule_errors += 1
                logger.error(f"Error processing rule {rule.id}: {e}", exc_info=True)
                self._notify(self._on_error_callbacks, rule, e)
                continue

            if payloads:
                notifications.extend(payloads)
                self._notify(self._on_fire_callbacks, rule, payloads)

        return notifications

    async def _process_rule(self, rule: NotificationRule, context: RuleContext) -> List[NotificationPayload]:
        # Rules registered after start-up pick up their persisted count here
        rule.occurrence_count = max(rule.occurrence_count, self.cooldowns.occurrence_count(rule.id))
        if rule.max_occurrences is not None and rule.occurrence_count >= rule.max_occurrences:
            logger.debug(f"Rule {rule.id} reached max occurrences ({rule.max_occurrences})")
            return []

        if not await self.evaluate_rule(rule, context):
            return []

        if self.is_in_cooldown(rule):
            logger.debug(f"Rule {rule.id} matched but is in cooldown")
            return []

        scope = self._build_scope(rule, context)
        payloads = [
            self.build_notification(action, context, scope, rule)
            for action in rule.actions
            if action.type == "create_notification"
        ]

        if payloads:
            now = self._clock()
            rule.occurrence_count = self.cooldowns.record_firing(rule.id, now)
            self.rules_fired += 1
            logger.info(f"Rule fired: {rule.id} ({len(payloads)} notification(s), "
                        f"occurrence #{rule.occurrence_count})")

        return payloads

    async def evaluate_rule(self, rule: NotificationRule, context: RuleContext) -> bool:
        """True when every condition of *rule* holds (logical AND)"""
        for condition in rule.conditions:
            if not await self.evaluator.evaluate(condition, context, rule_id=rule.id):
                return False
        return True

    def effective_cooldown(self, rule: NotificationRule) -> int:
        """Cooldown in minutes, including the category floor"""
        floor = self.min_cooldowns.get(rule.category.value, 0)
        return max(rule.cooldown_minutes, floor)

    def is_in_cooldown(self, rule: NotificationRule) -> bool:
        cooldown = self.effective_cooldown(rule)
        if cooldown <= 0:
            return False

        last_fired = self.cooldowns.last_fired(rule.id)
        if last_fired is None:
            return False

        return self._clock() - last_fired < timedelta(minutes=cooldown)

    def _build_scope(self, rule: NotificationRule, context: RuleContext) -> Dict[str, Any]:
        scope = context.as_scope()
        for condition in rule.conditions:
            entry = self.evaluator.matched_entry(condition, context)
            if entry:
                scope.update(entry)
        return scope

    def build_notification(
        self,
        action: RuleAction,
        context: RuleContext,
        scope: Optional[Dict[str, Any]] = None,
        rule: Optional[NotificationRule] = None,
    ) -> NotificationPayload:
        """Construct a payload from an action template"""
        template = action.notification
        scope = scope if scope is not None else context.as_scope()

        data: Dict[str, Any] = dict(template.data or {})
        if rule is not None:
            data["rule_id"] = rule.id

        profile_id = context.user_profile.id if context.user_profile else "default"

        return NotificationPayload(
            id=str(uuid.uuid4()),
            profile_id=profile_id,
            title=interpolate(template.title, scope),
            message=interpolate(template.message, scope),
            category=template.category,
            priority=template.priority or action.priority or NotificationPriority.NORMAL,
            timestamp=self._clock(),
            channels=list(template.channels),
            status=NotificationStatus.PENDING,
            actions=[a.model_copy() for a in template.actions] if template.actions else None,
            url=template.url,
            data=data,
        )

    @staticmethod
    def _notify(callbacks: list, *args):
        for callback in callbacks:
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Rule engine callback error: {e}")

    def get_state(self) -> dict:
        """Engine state for API/dashboard"""
        return {
            "rules": [
                {
                    "id": r.id,
                    "name": r.name,
                    "category": r.category.value,
                    "enabled": r.enabled,
                    "cooldown_minutes": self.effective_cooldown(r),
                    "occurrence_count": r.occurrence_count,
                }
                for r in self.rule_store.get_rules()
            ],
            "rules_fired": self.rules_fired,
            "rule_errors": self.rule_errors,
        }
