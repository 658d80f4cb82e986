from datetime import datetime, timedelta, timezone

import pytest

from app.clock import FixedClock
from app.config import EngineConfig
from app.repositories import clock_store, conflict_store, decision_store, notification_store
from app.schemas import Assumption, Constraint, Decision


NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clean_stores():
    decision_store.reset()
    conflict_store.reset()
    clock_store.reset()
    notification_store.reset()
    yield
    decision_store.reset()
    conflict_store.reset()
    clock_store.reset()
    notification_store.reset()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


def make_decision(decision_id: str, **overrides) -> Decision:
    fields = {
        "id": decision_id,
        "title": f"Decision {decision_id}",
        "created_at": NOW - timedelta(days=10),
        "last_reviewed_at": NOW - timedelta(days=1),
    }
    fields.update(overrides)
    return Decision(**fields)


def make_assumption(assumption_id: str, description: str = "", **overrides) -> Assumption:
    return Assumption(id=assumption_id, description=description or f"Assumption {assumption_id}", **overrides)


def make_constraint(constraint_id: str, rule_expression, **overrides) -> Constraint:
    return Constraint(id=constraint_id, name=f"Constraint {constraint_id}", rule_expression=rule_expression, **overrides)
