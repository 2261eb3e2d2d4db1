"""
Rule-driven notification generation.

- RuleStore: registered rule definitions
- ConditionEvaluator: decides whether a condition holds for a context
- CooldownTable: persisted last-fired timestamps and occurrence counts
- RuleEngine: evaluates rules and builds notification payloads
"""

from .models import (
    NotificationRule, RuleAction, RuleCondition, NotificationTemplate,
    ConditionOperator, ThresholdCondition, PercentageCondition,
    DateCondition, RecurringCondition, PatternCondition,
)
from .store import RuleStore, default_rules
from .cooldown import CooldownTable
from .evaluator import ConditionEvaluator, compare_values
from .templates import interpolate, get_nested_value
from .engine import RuleEngine

__all__ = [
    "NotificationRule",
    "RuleAction",
    "RuleCondition",
    "NotificationTemplate",
    "ConditionOperator",
    "ThresholdCondition",
    "PercentageCondition",
    "DateCondition",
    "RecurringCondition",
    "PatternCondition",
    "RuleStore",
    "default_rules",
    "CooldownTable",
    "ConditionEvaluator",
    "compare_values",
    "interpolate",
    "get_nested_value",
    "RuleEngine",
]
