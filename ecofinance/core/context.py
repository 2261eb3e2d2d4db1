"""
Context snapshot passed into rule evaluation.

The snapshot is supplied by application code (budgets, goals and
transactions read from the finance records store); the rule engine never
fetches it on its own.
"""

from collections import defaultdict
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable

from pydantic import BaseModel, Field


class BudgetStatus(BaseModel):
    """Spending against a category budget"""
    category: str
    spent: float = 0.0
    limit: float = 0.0


class GoalStatus(BaseModel):
    """Progress of a savings goal"""
    id: str
    name: str
    current: float = 0.0
    target: float = 0.0


class TransactionStatus(BaseModel):
    """A single income or expense record"""
    id: str
    amount: float
    category: str
    date: str
    type: str = "expense"  # "expense" or "income"


class UserProfile(BaseModel):
    id: str
    name: str = ""


class RuleContext(BaseModel):
    """Snapshot of financial state for one rule evaluation pass"""
    budgets: List[BudgetStatus] = Field(default_factory=list)
    goals: List[GoalStatus] = Field(default_factory=list)
    transactions: List[TransactionStatus] = Field(default_factory=list)
    user_profile: Optional[UserProfile] = None
    date: datetime = Field(default_factory=datetime.now)

    # Free-form values addressable from conditions and templates
    extra: Dict[str, Any] = Field(default_factory=dict)

    def as_scope(self) -> Dict[str, Any]:
        """Plain dict view used for dotted-path lookups."""
        scope = self.model_dump(exclude={"extra"})
        scope["date"] = self.date
        # Aliases so templates written against the camelCase payloads resolve
        scope["userProfile"] = scope.get("user_profile")
        scope.update(self.extra)
        return scope


def build_context(
    budgets: Iterable[Dict[str, Any]],
    transactions: Iterable[Dict[str, Any]],
    goals: Optional[Iterable[Dict[str, Any]]] = None,
    profile: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
    **extra: Any,
) -> RuleContext:
    """
    Build a RuleContext from raw finance records.

    Budget ``spent`` is recomputed from the expense transactions of each
    category, so adding a transaction and rebuilding the context is enough
    to move a budget across a threshold.

    Args:
        budgets: Records with ``category`` and ``limit``
        transactions: Records with ``amount``, ``category`` and ``type``
        goals: Records with ``id``, ``name``, ``current`` and ``target``
        profile: Active profile with ``id`` and ``name``
        now: Evaluation instant (defaults to now)
    """
    txns = [TransactionStatus(**{**t, "id": str(t.get("id", ""))}) for t in transactions]

    spent_by_category: Dict[str, float] = defaultdict(float)
    for txn in txns:
        if txn.type == "expense":
            spent_by_category[txn.category] += abs(txn.amount)

    budget_status = [
        BudgetStatus(
            category=b["category"],
            spent=spent_by_category.get(b["category"], 0.0),
            limit=float(b.get("limit", 0) or 0),
        )
        for b in budgets
    ]

    goal_status = [
        GoalStatus(**{**g, "id": str(g.get("id", ""))})
        for g in (goals or [])
    ]

    total_spent = sum(spent_by_category.values())

    return RuleContext(
        budgets=budget_status,
        goals=goal_status,
        transactions=txns,
        user_profile=UserProfile(**profile) if profile else None,
        date=now or datetime.now(),
        extra={"totalSpent": total_spent, **extra},
    )
