"""
Rule store: registered notification rules in registration order.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from ecofinance.notifications.models import (
    NotificationAction, NotificationCategory, NotificationChannel,
    NotificationPriority,
)

from .models import (
    NotificationRule, RuleAction, NotificationTemplate,
    PercentageCondition, DateCondition, ConditionOperator,
)

logger = logging.getLogger(__name__)


def default_rules() -> List[NotificationRule]:
    """Built-in rules shipped with every profile"""
    in_app = NotificationChannel.IN_APP
    push = NotificationChannel.PUSH

    return [
        NotificationRule(
            id="budget-80-percent",
            name="Orçamento em 80%",
            description="Notificar quando orçamento atingir 80% do limite",
            category=NotificationCategory.BUDGET,
            conditions=[
                PercentageCondition(field="budgets", operator=ConditionOperator.GT, value=80),
            ],
            actions=[
                RuleAction(
                    notification=NotificationTemplate(
                        title="Alerta de Orçamento",
                        message="Você atingiu {{percent}}% do seu orçamento de {{category}}",
                        category=NotificationCategory.BUDGET,
                        priority=NotificationPriority.HIGH,
                        channels=[in_app, push],
                    ),
                    priority=NotificationPriority.HIGH,
                ),
            ],
            cooldown_minutes=360,
        ),
        NotificationRule(
            id="budget-100-percent",
            name="Orçamento Estourado",
            description="Notificar quando orçamento atingir 100% do limite",
            category=NotificationCategory.BUDGET,
            conditions=[
                PercentageCondition(field="budgets", operator=ConditionOperator.GT, value=100),
            ],
            actions=[
                RuleAction(
                    notification=NotificationTemplate(
                        title="Orçamento Estourado!",
                        message=(
                            "Você ultrapassou o limite de {{category}}. "
                            "Gasto: {{spent}}, Limite: {{limit}}"
                        ),
                        category=NotificationCategory.BUDGET,
                        priority=NotificationPriority.URGENT,
                        channels=[in_app, push],
                        actions=[
                            NotificationAction(
                                id="view_budget",
                                label="Ver Detalhes",
                                url="/budgets",
                                primary=True,
                            ),
                        ],
                    ),
                    priority=NotificationPriority.URGENT,
                ),
            ],
            cooldown_minutes=720,
        ),
        NotificationRule(
            id="goal-completed",
            name="Meta Atingida",
            description="Notificar quando uma meta for alcançada",
            category=NotificationCategory.GOAL,
            conditions=[
                PercentageCondition(field="goals", operator=ConditionOperator.GTE, value=100),
            ],
            actions=[
                RuleAction(
                    notification=NotificationTemplate(
                        title="Meta Atingida! 🎉",
                        message='Parabéns! Você completou a meta "{{name}}"',
                        category=NotificationCategory.GOAL,
                        priority=NotificationPriority.HIGH,
                        channels=[in_app, push],
                    ),
                    priority=NotificationPriority.HIGH,
                ),
            ],
            cooldown_minutes=0,
        ),
        NotificationRule(
            id="weekly-summary",
            name="Resumo Semanal",
            description="Enviar resumo financeiro semanal",
            category=NotificationCategory.REPORT,
            conditions=[
                DateCondition(field="date", operator=ConditionOperator.EQ, value="monday"),
            ],
            actions=[
                RuleAction(
                    notification=NotificationTemplate(
                        title="Seu Resumo Semanal",
                        message="Você gastou {{totalSpent}} esta semana. Clique para ver os detalhes.",
                        category=NotificationCategory.REPORT,
                        priority=NotificationPriority.NORMAL,
                        channels=[in_app],
                    ),
                    priority=NotificationPriority.NORMAL,
                ),
            ],
            cooldown_minutes=10080,
        ),
    ]


class RuleStore:
    """
    Holds rule definitions. Pure data: evaluation lives in the engine.
    """

    def __init__(
        self,
        rules: Optional[List[NotificationRule]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._clock = clock
        self._rules: List[NotificationRule] = list(rules) if rules is not None else []

    def load_defaults(self):
        """Replace all rules with the built-in set"""
        self._rules = default_rules()
        logger.info(f"Loaded {len(self._rules)} default notification rules")

    def add_rule(self, rule: NotificationRule):
        if self.get_rule(rule.id) is not None:
            raise ValueError(f"Rule '{rule.id}' already exists")
        self._rules.append(rule)

    def remove_rule(self, rule_id: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.id != rule_id]
        return len(self._rules) < before

    def toggle_rule(self, rule_id: str, enabled: bool) -> Optional[NotificationRule]:
        """Enable or disable a rule (only ``enabled`` and ``updated_at`` change)"""
        rule = self.get_rule(rule_id)
        if rule:
            rule.enabled = enabled
            rule.updated_at = self._clock()
        return rule

    def get_rule(self, rule_id: str) -> Optional[NotificationRule]:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def get_rules(self) -> List[NotificationRule]:
        """Registered rules, in registration order"""
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._rules)
