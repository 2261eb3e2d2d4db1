"""
Tests for rule condition evaluation.
"""

import pytest
from datetime import datetime, timedelta

from ecofinance.core.context import BudgetStatus, GoalStatus, RuleContext
from ecofinance.rules import (
    ConditionEvaluator, ConditionOperator, CooldownTable,
    DateCondition, PatternCondition, PercentageCondition,
    RecurringCondition, ThresholdCondition, compare_values,
)
from ecofinance.storage import MemoryStore


def budget_context(spent: float, limit: float = 100, **kwargs) -> RuleContext:
    return RuleContext(
        budgets=[BudgetStatus(category="Food", spent=spent, limit=limit)],
        **kwargs,
    )


class TestCompareValues:
    """Tests for the comparison operators"""

    @pytest.mark.parametrize("operator,a,b,expected", [
        (ConditionOperator.GT, 5, 3, True),
        (ConditionOperator.GT, 3, 3, False),
        (ConditionOperator.LT, 2, 3, True),
        (ConditionOperator.GTE, 3, 3, True),
        (ConditionOperator.LTE, 4, 3, False),
        (ConditionOperator.EQ, 3, 3, True),
    ])
    def test_operators(self, operator, a, b, expected):
        assert compare_values(a, operator, b) is expected


class TestPercentageCondition:
    """Tests for budget and goal percentage conditions"""

    @pytest.mark.asyncio
    async def test_budget_over_threshold(self):
        """85 of 100 spent is over 80%"""
        evaluator = ConditionEvaluator()
        condition = PercentageCondition(field="budgets", operator=ConditionOperator.GT, value=80)

        assert await evaluator.evaluate(condition, budget_context(85)) is True

    @pytest.mark.asyncio
    async def test_budget_under_threshold(self):
        evaluator = ConditionEvaluator()
        condition = PercentageCondition(field="budgets", operator=ConditionOperator.GT, value=80)

        assert await evaluator.evaluate(condition, budget_context(75)) is False

    @pytest.mark.asyncio
    async def test_any_entry_matches(self):
        """One over-budget category is enough"""
        evaluator = ConditionEvaluator()
        condition = PercentageCondition(operator=ConditionOperator.GT, value=100)
        context = RuleContext(budgets=[
            BudgetStatus(category="Food", spent=10, limit=100),
            BudgetStatus(category="Transporte", spent=210, limit=200),
        ])

        assert await evaluator.evaluate(condition, context) is True

        entry = evaluator.matched_entry(condition, context)
        assert entry["category"] == "Transporte"
        assert entry["percent"] == 105.0

    @pytest.mark.asyncio
    async def test_zero_limit_is_skipped(self):
        evaluator = ConditionEvaluator()
        condition = PercentageCondition(operator=ConditionOperator.GT, value=80)

        assert await evaluator.evaluate(condition, budget_context(50, limit=0)) is False

    @pytest.mark.asyncio
    async def test_goal_completed(self):
        evaluator = ConditionEvaluator()
        condition = PercentageCondition(field="goals", operator=ConditionOperator.GTE, value=100)
        context = RuleContext(goals=[
            GoalStatus(id="g1", name="Viagem", current=5000, target=5000),
        ])

        assert await evaluator.evaluate(condition, context) is True

    @pytest.mark.asyncio
    async def test_unknown_field(self):
        evaluator = ConditionEvaluator()
        condition = PercentageCondition(field="accounts", operator=ConditionOperator.GT, value=0)

        assert await evaluator.evaluate(condition, budget_context(50)) is False


class TestThresholdCondition:
    """Tests for numeric threshold conditions"""

    @pytest.mark.asyncio
    async def test_extra_field(self):
        evaluator = ConditionEvaluator()
        condition = ThresholdCondition(field="totalSpent", operator=ConditionOperator.GTE, value=1000)
        context = RuleContext(extra={"totalSpent": 1500})

        assert await evaluator.evaluate(condition, context) is True

    @pytest.mark.asyncio
    async def test_nested_path(self):
        evaluator = ConditionEvaluator()
        condition = ThresholdCondition(field="budgets.0.spent", operator=ConditionOperator.EQ, value=42)

        assert await evaluator.evaluate(condition, budget_context(42)) is True

    @pytest.mark.asyncio
    async def test_missing_field_treated_as_zero(self):
        evaluator = ConditionEvaluator()
        missing_lt = ThresholdCondition(field="nope", operator=ConditionOperator.LT, value=1)
        missing_gt = ThresholdCondition(field="nope", operator=ConditionOperator.GT, value=0)

        assert await evaluator.evaluate(missing_lt, RuleContext()) is True
        assert await evaluator.evaluate(missing_gt, RuleContext()) is False


class TestDateCondition:
    """Tests for weekday conditions"""

    @pytest.mark.asyncio
    async def test_monday(self):
        evaluator = ConditionEvaluator()
        condition = DateCondition(value="monday")

        monday = RuleContext(date=datetime(2026, 10, 19, 9, 0))
        wednesday = RuleContext(date=datetime(2026, 10, 21, 9, 0))

        assert await evaluator.evaluate(condition, monday) is True
        assert await evaluator.evaluate(condition, wednesday) is False

    @pytest.mark.asyncio
    async def test_invalid_weekday(self):
        evaluator = ConditionEvaluator()
        condition = DateCondition(value="someday")

        assert await evaluator.evaluate(condition, RuleContext()) is False


class TestRecurringCondition:
    """Tests for interval-based conditions"""

    @pytest.mark.asyncio
    async def test_never_fired_is_due(self, storage, clock):
        evaluator = ConditionEvaluator(CooldownTable(storage), clock=clock)
        condition = RecurringCondition(interval_minutes=60)

        assert await evaluator.evaluate(condition, RuleContext(), rule_id="r1") is True

    @pytest.mark.asyncio
    async def test_interval(self, storage, clock):
        cooldowns = CooldownTable(storage)
        evaluator = ConditionEvaluator(cooldowns, clock=clock)
        condition = RecurringCondition(interval_minutes=60)

        cooldowns.record_firing("r1", clock())
        clock.advance(minutes=30)
        assert await evaluator.evaluate(condition, RuleContext(), rule_id="r1") is False

        clock.advance(minutes=30)
        assert await evaluator.evaluate(condition, RuleContext(), rule_id="r1") is True

    @pytest.mark.asyncio
    async def test_explicit_rule_id(self, storage, clock):
        cooldowns = CooldownTable(storage)
        evaluator = ConditionEvaluator(cooldowns, clock=clock)
        condition = RecurringCondition(rule_id="other", interval_minutes=60)

        cooldowns.record_firing("other", clock() - timedelta(minutes=5))

        assert await evaluator.evaluate(condition, RuleContext(), rule_id="r1") is False

    @pytest.mark.asyncio
    async def test_without_cooldown_table(self):
        evaluator = ConditionEvaluator()

        assert await evaluator.evaluate(RecurringCondition(), RuleContext()) is True


class TestPatternCondition:
    """Tests for regular expression conditions"""

    @pytest.mark.asyncio
    async def test_match(self):
        evaluator = ConditionEvaluator()
        condition = PatternCondition(field="budgets.0.category", regex="^Fo")

        assert await evaluator.evaluate(condition, budget_context(10)) is True

    @pytest.mark.asyncio
    async def test_invalid_regex(self):
        evaluator = ConditionEvaluator()
        condition = PatternCondition(field="budgets.0.category", regex="([")

        assert await evaluator.evaluate(condition, budget_context(10)) is False

    @pytest.mark.asyncio
    async def test_unknown_condition_type(self):
        """Anything outside the known condition types never matches"""
        evaluator = ConditionEvaluator()

        assert await evaluator.evaluate(object(), RuleContext()) is False
