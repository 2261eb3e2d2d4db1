"""
Pytest configuration and fixtures for EcoFinance notification tests.
"""

import pytest
from datetime import datetime, timedelta
from typing import Generator

from fastapi.testclient import TestClient

from dashboard import create_app
from ecofinance.metrics import NotificationMetrics
from ecofinance.notifications.pipeline import NotificationPipeline, create_pipeline
from ecofinance.notifications.service import NotificationStore
from ecofinance.rules import CooldownTable, RuleEngine, RuleStore
from ecofinance.storage import MemoryStore
from ecofinance.toasts import ToastManager


# Wednesday, mid-morning: outside the default quiet window, not a weekend
WEDNESDAY_MORNING = datetime(2026, 10, 21, 10, 0, 0)


class FakeClock:
    """Controllable wall clock (callable returning datetime)"""

    def __init__(self, start: datetime = WEDNESDAY_MORNING):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

    def set(self, value: datetime):
        self.now = value


class FakeMonotonic:
    """Controllable monotonic clock (callable returning seconds)"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def toast_clock() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def storage() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def fresh_toasts(toast_clock: FakeMonotonic) -> ToastManager:
    """Toast manager with a 5-slot desktop cap and a fake clock"""
    return ToastManager(max_visible=5, clock=toast_clock)


@pytest.fixture
def fresh_store(storage: MemoryStore, clock: FakeClock) -> NotificationStore:
    """Notification store without a toast sink"""
    return NotificationStore(storage, clock=clock, profile_id="profile-1", sync_url="")


@pytest.fixture
def fresh_engine(storage: MemoryStore, clock: FakeClock) -> RuleEngine:
    """Rule engine with the built-in rules and no category floors"""
    rule_store = RuleStore(clock=clock)
    rule_store.load_defaults()
    return RuleEngine(rule_store, CooldownTable(storage), clock=clock)


@pytest.fixture
def fresh_pipeline(storage: MemoryStore, clock: FakeClock, toast_clock: FakeMonotonic) -> NotificationPipeline:
    """Fully wired pipeline on in-memory storage"""
    pipeline = create_pipeline(
        storage,
        clock=clock,
        toast_clock=toast_clock,
        metrics=NotificationMetrics(),
        profile_id="profile-1",
    )
    pipeline.store.sync_url = ""
    return pipeline


@pytest.fixture
def client(fresh_pipeline: NotificationPipeline) -> Generator[TestClient, None, None]:
    """Create synchronous test client"""
    app = create_app(fresh_pipeline, run_background=False)
    with TestClient(app) as c:
        yield c


# Sample data fixtures

@pytest.fixture
def transporte_budget():
    """Transport budget with a 200 limit"""
    return [{"category": "Transporte", "limit": 200}]


@pytest.fixture
def transporte_transactions():
    """Transport spending totalling 150"""
    return [
        {"id": "t1", "amount": 100, "category": "Transporte", "date": "2026-10-20", "type": "expense"},
        {"id": "t2", "amount": 50, "category": "Transporte", "date": "2026-10-21", "type": "expense"},
        {"id": "t3", "amount": 3000, "category": "Salário", "date": "2026-10-05", "type": "income"},
    ]


@pytest.fixture
def profile():
    return {"id": "profile-1", "name": "Ana"}
