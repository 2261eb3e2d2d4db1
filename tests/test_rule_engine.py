"""
Tests for the rule store and rule engine.
"""

import asyncio
import pytest
from datetime import datetime

from ecofinance.core.context import BudgetStatus, GoalStatus, RuleContext, UserProfile
from ecofinance.notifications.models import (
    NotificationCategory, NotificationPriority, NotificationStatus,
)
from ecofinance.rules import (
    ConditionOperator, CooldownTable, NotificationRule, NotificationTemplate,
    PercentageCondition, RuleAction, RuleEngine, RuleStore, ThresholdCondition,
    get_nested_value, interpolate,
)
from ecofinance.storage import JsonFileStore


def simple_rule(rule_id: str, value: float = 0, cooldown: int = 0, **kwargs) -> NotificationRule:
    return NotificationRule(
        id=rule_id,
        name=rule_id,
        category=NotificationCategory.SYSTEM,
        conditions=[ThresholdCondition(field="count", operator=ConditionOperator.GT, value=value)],
        actions=[RuleAction(notification=NotificationTemplate(
            title=f"{rule_id} fired",
            message="count is {{count}}",
            category=NotificationCategory.SYSTEM,
        ))],
        cooldown_minutes=cooldown,
        **kwargs,
    )


# Not a Monday, so the weekly summary rule stays quiet
WEDNESDAY = datetime(2026, 10, 21, 10, 0)


def over_budget(spent: float = 210, limit: float = 200) -> RuleContext:
    return RuleContext(
        budgets=[BudgetStatus(category="Transporte", spent=spent, limit=limit)],
        user_profile=UserProfile(id="profile-1", name="Ana"),
        date=WEDNESDAY,
    )


class TestRuleStore:
    """Tests for RuleStore"""

    def test_load_defaults(self, clock):
        store = RuleStore(clock=clock)
        store.load_defaults()

        ids = [r.id for r in store.get_rules()]
        assert ids == ["budget-80-percent", "budget-100-percent", "goal-completed", "weekly-summary"]

    def test_duplicate_id_rejected(self):
        store = RuleStore([simple_rule("a")])

        with pytest.raises(ValueError):
            store.add_rule(simple_rule("a"))

    def test_toggle_rule(self, clock):
        store = RuleStore([simple_rule("a")], clock=clock)
        clock.advance(hours=1)

        rule = store.toggle_rule("a", False)

        assert rule.enabled is False
        assert rule.updated_at == clock()
        assert store.toggle_rule("missing", True) is None

    def test_remove_rule(self):
        store = RuleStore([simple_rule("a"), simple_rule("b")])

        assert store.remove_rule("a") is True
        assert store.remove_rule("a") is False
        assert len(store) == 1


class TestTemplates:
    """Tests for {{path}} interpolation"""

    def test_nested_lookup(self):
        scope = {"userProfile": {"name": "Ana"}, "budgets": [{"category": "Food"}]}

        assert get_nested_value(scope, "userProfile.name") == "Ana"
        assert get_nested_value(scope, "budgets.0.category") == "Food"
        assert get_nested_value(scope, "budgets.3.category") is None

    def test_interpolate(self):
        text = interpolate("Olá {{ userProfile.name }}, gasto {{spent}}", {
            "userProfile": {"name": "Ana"},
            "spent": 210.0,
        })

        assert text == "Olá Ana, gasto 210"

    def test_unresolved_token_left_as_is(self):
        assert interpolate("Valor: {{missing.path}}", {}) == "Valor: {{missing.path}}"


class TestRuleEngine:
    """Tests for RuleEngine"""

    @pytest.mark.asyncio
    async def test_no_context(self, fresh_engine: RuleEngine):
        assert await fresh_engine.process_rules() == []

    @pytest.mark.asyncio
    async def test_over_budget_fires_both_budget_rules(self, fresh_engine: RuleEngine):
        payloads = await fresh_engine.process_rules(over_budget())

        titles = [p.title for p in payloads]
        assert titles == ["Alerta de Orçamento", "Orçamento Estourado!"]

        urgent = payloads[1]
        assert urgent.priority == NotificationPriority.URGENT
        assert urgent.status == NotificationStatus.PENDING
        assert urgent.profile_id == "profile-1"
        assert urgent.message == "Você ultrapassou o limite de Transporte. Gasto: 210, Limite: 200"
        assert urgent.actions[0].id == "view_budget"
        assert urgent.actions[0].url == "/budgets"
        assert urgent.data["rule_id"] == "budget-100-percent"

    @pytest.mark.asyncio
    async def test_percent_interpolation(self, fresh_engine: RuleEngine):
        payloads = await fresh_engine.process_rules(over_budget(spent=170))

        assert len(payloads) == 1
        assert payloads[0].message == "Você atingiu 85% do seu orçamento de Transporte"

    @pytest.mark.asyncio
    async def test_cooldown_suppresses_refire(self, fresh_engine: RuleEngine, clock):
        first = await fresh_engine.process_rules(over_budget())
        second = await fresh_engine.process_rules(over_budget())

        assert len(first) == 2
        assert second == []

        # budget-80-percent cools down after 6h, budget-100-percent after 12h
        clock.advance(hours=7)
        third = await fresh_engine.process_rules(over_budget())
        assert [p.data["rule_id"] for p in third] == ["budget-80-percent"]

    @pytest.mark.asyncio
    async def test_concurrent_passes_fire_once(self, fresh_engine: RuleEngine):
        """Two overlapping evaluations of the same overspend alert once"""
        results = await asyncio.gather(
            fresh_engine.process_rules(over_budget()),
            fresh_engine.process_rules(over_budget()),
        )

        ids = [p.data["rule_id"] for payloads in results for p in payloads]
        assert ids.count("budget-100-percent") == 1
        assert ids.count("budget-80-percent") == 1
        assert fresh_engine.rules_fired == 2

    @pytest.mark.asyncio
    async def test_concurrent_passes_keep_other_writes(self, clock, tmp_path):
        """Cooldown records and unrelated keys share one file without losing either"""
        storage = JsonFileStore(tmp_path / "store.json")
        engine = RuleEngine(RuleStore([simple_rule("a"), simple_rule("b")]), CooldownTable(storage), clock=clock)
        context = RuleContext(extra={"count": 1}, date=WEDNESDAY)

        async def write_other():
            await asyncio.sleep(0)
            storage.set("ecofinance-notifications", {"notifications": ["kept"]})

        await asyncio.gather(engine.process_rules(context), write_other(), engine.process_rules(context))

        reopened = JsonFileStore(tmp_path / "store.json")
        assert reopened.get("ecofinance-notifications") == {"notifications": ["kept"]}
        assert set(reopened.get("rule_cooldowns")) == {"a", "b"}
        assert reopened.get("rule_cooldowns")["a"]["count"] == 2

    @pytest.mark.asyncio
    async def test_disabled_rule_never_fires(self, fresh_engine: RuleEngine):
        fresh_engine.rule_store.toggle_rule("budget-80-percent", False)
        fresh_engine.rule_store.toggle_rule("budget-100-percent", False)

        assert await fresh_engine.process_rules(over_budget()) == []

    @pytest.mark.asyncio
    async def test_goal_completed(self, fresh_engine: RuleEngine):
        context = RuleContext(
            goals=[GoalStatus(id="g1", name="Viagem", current=5000, target=5000)],
            date=WEDNESDAY,
        )

        payloads = await fresh_engine.process_rules(context)

        assert len(payloads) == 1
        assert payloads[0].message == 'Parabéns! Você completou a meta "Viagem"'
        assert payloads[0].profile_id == "default"

    @pytest.mark.asyncio
    async def test_rules_fire_in_registration_order(self, storage, clock):
        engine = RuleEngine(
            RuleStore([simple_rule("b"), simple_rule("a"), simple_rule("c")]),
            CooldownTable(storage),
            clock=clock,
        )

        payloads = await engine.process_rules(RuleContext(extra={"count": 3}))

        assert [p.data["rule_id"] for p in payloads] == ["b", "a", "c"]
        assert payloads[0].message == "count is 3"

    @pytest.mark.asyncio
    async def test_failing_rule_does_not_stop_others(self, storage, clock):
        engine = RuleEngine(
            RuleStore([simple_rule("boom"), simple_rule("ok")]),
            CooldownTable(storage),
            clock=clock,
        )
        errors = []
        engine.on_error(lambda rule, exc: errors.append(rule.id))

        original = engine.evaluate_rule

        async def flaky(rule, context):
            if rule.id == "boom":
                raise RuntimeError("bad rule")
            return await original(rule, context)

        engine.evaluate_rule = flaky

        payloads = await engine.process_rules(RuleContext(extra={"count": 1}))

        assert [p.data["rule_id"] for p in payloads] == ["ok"]
        assert errors == ["boom"]
        assert engine.rule_errors == 1

    @pytest.mark.asyncio
    async def test_max_occurrences(self, storage, clock):
        rule = simple_rule("limited", max_occurrences=2)
        engine = RuleEngine(RuleStore([rule]), CooldownTable(storage), clock=clock)
        context = RuleContext(extra={"count": 1})

        fired = [len(await engine.process_rules(context)) for _ in range(4)]

        assert fired == [1, 1, 0, 0]
        assert rule.occurrence_count == 2

    @pytest.mark.asyncio
    async def test_max_occurrences_survive_restart(self, storage, clock):
        """A rebuilt engine over the same storage keeps the occurrence count"""
        context = RuleContext(extra={"count": 1})
        first = RuleEngine(RuleStore([simple_rule("once", max_occurrences=1)]), CooldownTable(storage), clock=clock)
        assert len(await first.process_rules(context)) == 1

        rule = simple_rule("once", max_occurrences=1)
        restarted = RuleEngine(RuleStore([rule]), CooldownTable(storage), clock=clock)

        assert rule.occurrence_count == 1
        assert restarted.get_state()["rules"][0]["occurrence_count"] == 1
        assert await restarted.process_rules(context) == []
        assert CooldownTable(storage).occurrence_count("once") == 1

    @pytest.mark.asyncio
    async def test_rule_registered_after_restart_keeps_count(self, storage, clock):
        context = RuleContext(extra={"count": 1})
        first = RuleEngine(RuleStore([simple_rule("late", max_occurrences=1)]), CooldownTable(storage), clock=clock)
        await first.process_rules(context)

        rule_store = RuleStore()
        restarted = RuleEngine(rule_store, CooldownTable(storage), clock=clock)
        rule_store.add_rule(simple_rule("late", max_occurrences=1))

        assert await restarted.process_rules(context) == []

    @pytest.mark.asyncio
    async def test_category_cooldown_floor(self, storage, clock):
        engine = RuleEngine(
            RuleStore([simple_rule("sys")]),
            CooldownTable(storage),
            clock=clock,
            min_cooldowns={"system": 10},
        )
        context = RuleContext(extra={"count": 1})

        assert len(await engine.process_rules(context)) == 1
        clock.advance(minutes=5)
        assert await engine.process_rules(context) == []
        clock.advance(minutes=5)
        assert len(await engine.process_rules(context)) == 1

    @pytest.mark.asyncio
    async def test_cooldown_persisted(self, storage, clock):
        """A new engine over the same storage still honours the cooldown"""
        first = RuleEngine(RuleStore([simple_rule("p", cooldown=60)]), CooldownTable(storage), clock=clock)
        second = RuleEngine(RuleStore([simple_rule("p", cooldown=60)]), CooldownTable(storage), clock=clock)
        context = RuleContext(extra={"count": 1})

        assert len(await first.process_rules(context)) == 1
        assert await second.process_rules(context) == []

    @pytest.mark.asyncio
    async def test_fire_callback(self, fresh_engine: RuleEngine):
        fired = []
        fresh_engine.on_fire(lambda rule, payloads: fired.append((rule.id, len(payloads))))

        await fresh_engine.process_rules(over_budget())

        assert fired == [("budget-80-percent", 1), ("budget-100-percent", 1)]
        assert fresh_engine.get_state()["rules_fired"] == 2
