"""
Condition evaluator.

Every condition type is pure with respect to the context except
``recurring``, which reads the persisted cooldown table.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, Optional, Tuple

from config import RECURRING_DEFAULT_INTERVAL_MINUTES
from ecofinance.core.context import RuleContext

from .cooldown import CooldownTable
from .models import (
    ConditionOperator, DateCondition, PatternCondition, PercentageCondition,
    RecurringCondition, RuleCondition, ThresholdCondition,
)
from .templates import get_nested_value

logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# Percentage fields: list name -> (numerator key, denominator key)
PERCENTAGE_FIELDS = {
    "budgets": ("spent", "limit"),
    "goals": ("current", "target"),
}


def compare_values(a: float, operator: ConditionOperator, b: float) -> bool:
    """Apply a comparison operator; unknown operators never match"""
    if operator == ConditionOperator.GT:
        return a > b
    if operator == ConditionOperator.LT:
        return a < b
    if operator == ConditionOperator.GTE:
        return a >= b
    if operator == ConditionOperator.LTE:
        return a <= b
    if operator == ConditionOperator.EQ:
        return a == b
    return False


def to_number(value: Any) -> float:
    """Coerce a context value to float; anything non-numeric is 0"""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


class ConditionEvaluator:
    """Decides whether a single rule condition holds for a context"""

    def __init__(
        self,
        cooldowns: Optional[CooldownTable] = None,
        clock=datetime.now,
    ):
        self.cooldowns = cooldowns
        self._clock = clock

    async def evaluate(
        self,
        condition: RuleCondition,
        context: RuleContext,
        rule_id: Optional[str] = None,
    ) -> bool:
        """
        Evaluate *condition* against *context*.

        Args:
            condition: One of the rule condition types
            context: Financial snapshot
            rule_id: Owning rule, used by ``recurring`` when the condition
                does not name one

        Returns:
            True when the condition holds. Unknown types are False.
        """
        scope = context.as_scope()

        if isinstance(condition, ThresholdCondition):
            value = get_nested_value(scope, condition.field)
            return compare_values(to_number(value), condition.operator, condition.value)

        if isinstance(condition, PercentageCondition):
            return self._first_percentage_match(condition, scope) is not None

        if isinstance(condition, DateCondition):
            return self._matches_weekday(condition, context.date)

        if isinstance(condition, RecurringCondition):
            return await self._recurring_due(condition, rule_id)

        if isinstance(condition, PatternCondition):
            return self._matches_pattern(condition, scope)

        logger.debug(f"Unsupported condition type: {type(condition).__name__}")
        return False

    def matched_entry(self, condition: RuleCondition, context: RuleContext) -> Optional[Dict[str, Any]]:
        """
        The entry that satisfied a percentage condition, with its ``percent``.

        Used to enrich template interpolation ({{category}}, {{percent}} ...).
        """
        if not isinstance(condition, PercentageCondition):
            return None
        match = self._first_percentage_match(condition, context.as_scope())
        if match is None:
            return None
        entry, percent = match
        return {**entry, "percent": round(percent, 1)}

    def _percentages(
        self, condition: PercentageCondition, scope: Dict[str, Any]
    ) -> Iterator[Tuple[Dict[str, Any], float]]:
        keys = PERCENTAGE_FIELDS.get(condition.field)
        entries = scope.get(condition.field)
        if keys is None or not isinstance(entries, list):
            return
        num_key, den_key = keys
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            denominator = to_number(entry.get(den_key))
            if denominator <= 0:
                continue
            yield entry, to_number(entry.get(num_key)) / denominator * 100

    def _first_percentage_match(
        self, condition: PercentageCondition, scope: Dict[str, Any]
    ) -> Optional[Tuple[Dict[str, Any], float]]:
        # Existential: one matching entry is enough
        for entry, percent in self._percentages(condition, scope):
            if compare_values(percent, condition.operator, condition.value):
                return entry, percent
        return None

    @staticmethod
    def _matches_weekday(condition: DateCondition, when: datetime) -> bool:
        target = condition.value.strip().lower()
        if target not in WEEKDAYS:
            return False
        return WEEKDAYS[when.weekday()] == target

    async def _recurring_due(self, condition: RecurringCondition, rule_id: Optional[str]) -> bool:
        if self.cooldowns is None:
            return True

        key = condition.rule_id or rule_id or "default"
        last_run = self.cooldowns.last_fired(key)
        if last_run is None:
            return True

        interval = condition.interval_minutes
        if interval is None:
            interval = RECURRING_DEFAULT_INTERVAL_MINUTES
        return self._clock() - last_run >= timedelta(minutes=interval)

    @staticmethod
    def _matches_pattern(condition: PatternCondition, scope: Dict[str, Any]) -> bool:
        if not condition.regex:
            return False
        value = get_nested_value(scope, condition.field)
        if value is None:
            return False
        try:
            return re.search(condition.regex, str(value)) is not None
        except re.error as e:
            logger.warning(f"Invalid pattern {condition.regex!r}: {e}")
            return False
