"""
Core data structures shared by the rule engine and the application.
"""

from .context import (
    BudgetStatus, GoalStatus, TransactionStatus, UserProfile,
    RuleContext, build_context,
)

__all__ = [
    "BudgetStatus",
    "GoalStatus",
    "TransactionStatus",
    "UserProfile",
    "RuleContext",
    "build_context",
]
