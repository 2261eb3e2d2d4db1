"""
Prometheus metrics for the notification pipeline.

Each NotificationMetrics owns its CollectorRegistry so several pipelines
(or test fixtures) can coexist in one process.
"""

import logging

from prometheus_client import (
    CollectorRegistry, Counter, Gauge,
    generate_latest, CONTENT_TYPE_LATEST,
)

logger = logging.getLogger(__name__)


class NotificationMetrics:
    """Counters for rules, notifications and toasts"""

    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or CollectorRegistry()

        # ===== RULE ENGINE =====
        self.rules_fired_total = Counter(
            'ecofinance_rules_fired_total',
            'Rules that matched and produced notifications',
            ['rule_id'],
            registry=self.registry,
        )
        self.rule_errors_total = Counter(
            'ecofinance_rule_errors_total',
            'Rules that raised during evaluation',
            ['rule_id'],
            registry=self.registry,
        )

        # ===== NOTIFICATION STORE =====
        self.notifications_added_total = Counter(
            'ecofinance_notifications_added_total',
            'Notifications inserted into the inbox',
            ['category'],
            registry=self.registry,
        )
        self.notifications_suppressed_total = Counter(
            'ecofinance_notifications_suppressed_total',
            'Notifications dropped or deferred by policy',
            ['reason'],  # disabled, category_disabled, quiet_hours, daily_cap
            registry=self.registry,
        )
        self.unread_notifications = Gauge(
            'ecofinance_unread_notifications',
            'Current unread notification count',
            registry=self.registry,
        )

        # ===== TOASTS =====
        self.toasts_shown_total = Counter(
            'ecofinance_toasts_shown_total',
            'Toasts created (visible or queued)',
            ['type'],
            registry=self.registry,
        )
        self.toasts_deduplicated_total = Counter(
            'ecofinance_toasts_deduplicated_total',
            'Toast requests absorbed by deduplication',
            ['rule'],  # debounce, duplicate, loading
            registry=self.registry,
        )

    def record_rule_fired(self, rule, payloads):
        self.rules_fired_total.labels(rule_id=rule.id).inc()

    def record_rule_error(self, rule, error):
        self.rule_errors_total.labels(rule_id=rule.id).inc()

    def record_notification_added(self, category: str, unread_count: int):
        self.notifications_added_total.labels(category=category).inc()
        self.unread_notifications.set(unread_count)

    def record_suppressed(self, reason: str):
        self.notifications_suppressed_total.labels(reason=reason).inc()

    def record_unread(self, unread_count: int):
        self.unread_notifications.set(unread_count)

    def record_toast_shown(self, toast_type: str):
        self.toasts_shown_total.labels(type=toast_type).inc()

    def record_toast_deduplicated(self, rule: str):
        self.toasts_deduplicated_total.labels(rule=rule).inc()

    def get_prometheus_metrics(self) -> bytes:
        """Metrics in Prometheus exposition format"""
        return generate_latest(self.registry)

    @staticmethod
    def get_prometheus_content_type() -> str:
        return CONTENT_TYPE_LATEST
