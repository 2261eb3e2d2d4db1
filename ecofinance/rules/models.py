"""
Notification rule data models.

Conditions form a closed union discriminated by ``type``; the evaluator
matches on it exhaustively.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Literal, Union, Annotated
from pydantic import BaseModel, Field
from enum import Enum

from ecofinance.notifications.models import (
    NotificationAction, NotificationCategory, NotificationChannel,
    NotificationPriority,
)


class ConditionOperator(str, Enum):
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"


class ThresholdCondition(BaseModel):
    """Numeric context field compared against a fixed value"""
    type: Literal["threshold"] = "threshold"
    field: str
    operator: ConditionOperator
    value: float


class PercentageCondition(BaseModel):
    """Any budget (spent/limit) or goal (current/target) percentage matches"""
    type: Literal["percentage"] = "percentage"
    field: str = "budgets"
    operator: ConditionOperator
    value: float


class DateCondition(BaseModel):
    """Evaluation instant falls on the named weekday"""
    type: Literal["date"] = "date"
    field: str = "date"
    operator: ConditionOperator = ConditionOperator.EQ
    value: str  # "monday" .. "sunday"


class RecurringCondition(BaseModel):
    """At least ``interval_minutes`` since the rule last fired"""
    type: Literal["recurring"] = "recurring"
    rule_id: Optional[str] = None  # Defaults to the owning rule
    interval_minutes: Optional[int] = Field(default=None, ge=0)


class PatternCondition(BaseModel):
    """Regular expression searched in the string form of a context field"""
    type: Literal["pattern"] = "pattern"
    field: str
    regex: Optional[str] = None


RuleCondition = Annotated[
    Union[
        ThresholdCondition,
        PercentageCondition,
        DateCondition,
        RecurringCondition,
        PatternCondition,
    ],
    Field(discriminator="type"),
]


class NotificationTemplate(BaseModel):
    """Notification fields produced by a rule; title/message accept {{path}} tokens"""
    title: str = ""
    message: str = ""
    category: NotificationCategory = NotificationCategory.SYSTEM
    priority: Optional[NotificationPriority] = None
    channels: List[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.IN_APP]
    )
    actions: Optional[List[NotificationAction]] = None
    url: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class RuleAction(BaseModel):
    """Directive executed when a rule matches"""
    type: Literal["create_notification"] = "create_notification"
    notification: NotificationTemplate
    priority: Optional[NotificationPriority] = None


class NotificationRule(BaseModel):
    """Declarative condition + action + cooldown"""
    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    category: NotificationCategory
    enabled: bool = True

    # All conditions must hold
    conditions: List[RuleCondition] = Field(default_factory=list)
    actions: List[RuleAction] = Field(default_factory=list)

    cooldown_minutes: int = Field(default=0, ge=0)

    max_occurrences: Optional[int] = Field(default=None, ge=1)
    occurrence_count: int = 0

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
