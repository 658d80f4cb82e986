"""
Decision Store - In-memory store for decisions and everything linked to them.

Holds decisions, assumptions, constraints, the decision↔assumption and
decision↔constraint links, dependency edges, and the last evaluation result
per decision.

No DB. Dict-based, guarded by one lock so concurrent requests and batch
re-evaluation see consistent records. Records are pydantic models; updates
replace the stored copy instead of mutating it in place.
"""

import threading
import uuid
from datetime import datetime
from typing import Iterable, Optional

from app.schemas import (
    ACTIVE_LIFECYCLES,
    Assumption,
    Constraint,
    Decision,
    DecisionLifecycle,
    Dependency,
    EvaluationResult,
)


# ── In-memory store ──────────────────────────────────────────────────────────

_lock = threading.RLock()

_decisions: dict[str, Decision] = {}
_assumptions: dict[str, Assumption] = {}
_constraints: dict[str, Constraint] = {}
_dependencies: dict[str, Dependency] = {}
_decision_assumptions: dict[str, list[str]] = {}
_decision_constraints: dict[str, list[str]] = {}
_evaluations: dict[str, tuple[str, EvaluationResult]] = {}


def new_id() -> str:
    return str(uuid.uuid4())


def reset() -> None:
    """Drop everything (tests and local demos)."""
    with _lock:
        _decisions.clear()
        _assumptions.clear()
        _constraints.clear()
        _dependencies.clear()
        _decision_assumptions.clear()
        _decision_constraints.clear()
        _evaluations.clear()


# ── Decisions ────────────────────────────────────────────────────────────────

def save_decision(decision: Decision) -> Decision:
    with _lock:
        _decisions[decision.id] = decision
    return decision


def get_decision(decision_id: str) -> Optional[Decision]:
    """Return decision or None."""
    return _decisions.get(decision_id)


def list_decisions(
    organization_id: Optional[str] = None,
    lifecycles: Optional[Iterable[DecisionLifecycle]] = None,
) -> list[Decision]:
    """Decisions of one organization (all if None), optionally filtered by lifecycle, sorted by id."""
    wanted = set(lifecycles) if lifecycles is not None else None
    with _lock:
        items = list(_decisions.values())
    return sorted(
        (
            d for d in items
            if (organization_id is None or d.organization_id == organization_id)
            and (wanted is None or d.lifecycle in wanted)
        ),
        key=lambda d: d.id,
    )


def list_active_decisions(organization_id: Optional[str] = None) -> list[Decision]:
    return list_decisions(organization_id, ACTIVE_LIFECYCLES)


def update_decision(decision_id: str, **fields) -> Optional[Decision]:
    """Replace the stored decision with a copy carrying the given field values."""
    with _lock:
        current = _decisions.get(decision_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        _decisions[decision_id] = updated
        return updated


# ── Assumptions ──────────────────────────────────────────────────────────────

def save_assumption(assumption: Assumption) -> Assumption:
    with _lock:
        _assumptions[assumption.id] = assumption
    return assumption


def get_assumption(assumption_id: str) -> Optional[Assumption]:
    return _assumptions.get(assumption_id)


def list_assumptions(organization_id: Optional[str] = None) -> list[Assumption]:
    with _lock:
        items = list(_assumptions.values())
    return sorted(
        (a for a in items if organization_id is None or a.organization_id == organization_id),
        key=lambda a: a.id,
    )


def update_assumption(assumption_id: str, **fields) -> Optional[Assumption]:
    with _lock:
        current = _assumptions.get(assumption_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        _assumptions[assumption_id] = updated
        return updated


# ── Constraints ──────────────────────────────────────────────────────────────

def save_constraint(constraint: Constraint) -> Constraint:
    with _lock:
        _constraints[constraint.id] = constraint
    return constraint


def get_constraint(constraint_id: str) -> Optional[Constraint]:
    return _constraints.get(constraint_id)


def list_constraints(organization_id: Optional[str] = None) -> list[Constraint]:
    with _lock:
        items = list(_constraints.values())
    return sorted(
        (c for c in items if organization_id is None or c.organization_id == organization_id),
        key=lambda c: c.id,
    )


# ── Links ────────────────────────────────────────────────────────────────────

def link_assumption(decision_id: str, assumption_id: str) -> None:
    """Idempotent: linking twice keeps one link."""
    with _lock:
        linked = _decision_assumptions.setdefault(decision_id, [])
        if assumption_id not in linked:
            linked.append(assumption_id)


def link_constraint(decision_id: str, constraint_id: str) -> None:
    with _lock:
        linked = _decision_constraints.setdefault(decision_id, [])
        if constraint_id not in linked:
            linked.append(constraint_id)


def assumptions_for(decision_id: str) -> list[Assumption]:
    with _lock:
        ids = list(_decision_assumptions.get(decision_id, []))
        return [_assumptions[i] for i in ids if i in _assumptions]


def constraints_for(decision_id: str) -> list[Constraint]:
    with _lock:
        ids = list(_decision_constraints.get(decision_id, []))
        return [_constraints[i] for i in ids if i in _constraints]


def decisions_linked_to_assumptions(assumption_ids: Iterable[str]) -> list[str]:
    """Ids of decisions linked to any of the given assumptions, sorted."""
    wanted = set(assumption_ids)
    with _lock:
        return sorted(
            decision_id for decision_id, linked in _decision_assumptions.items()
            if wanted.intersection(linked)
        )


# ── Dependencies ─────────────────────────────────────────────────────────────

def add_dependency(source_decision_id: str, target_decision_id: str) -> Dependency:
    """source depends on target. Re-adding an existing edge returns the stored one."""
    with _lock:
        for dep in _dependencies.values():
            if dep.source_decision_id == source_decision_id and dep.target_decision_id == target_decision_id:
                return dep
        dependency = Dependency(
            id=new_id(),
            source_decision_id=source_decision_id,
            target_decision_id=target_decision_id,
        )
        _dependencies[dependency.id] = dependency
        return dependency


def upstream_of(decision_id: str) -> list[Decision]:
    """Decisions that decision_id depends on."""
    with _lock:
        target_ids = sorted(
            d.target_decision_id for d in _dependencies.values()
            if d.source_decision_id == decision_id
        )
        return [_decisions[t] for t in target_ids if t in _decisions]


def dependencies_of(decision_id: str) -> list[Dependency]:
    with _lock:
        return sorted(
            (d for d in _dependencies.values() if d.source_decision_id == decision_id),
            key=lambda d: d.target_decision_id,
        )


def dependents_of(decision_id: str) -> list[str]:
    """Ids of decisions that depend on decision_id."""
    with _lock:
        return sorted(
            d.source_decision_id for d in _dependencies.values()
            if d.target_decision_id == decision_id
        )


# ── Evaluation results ───────────────────────────────────────────────────────

def store_evaluation(decision_id: str, result: EvaluationResult, evaluated_at: datetime) -> None:
    with _lock:
        _evaluations[decision_id] = (evaluated_at.isoformat(), result)


def last_evaluation(decision_id: str) -> Optional[tuple[str, EvaluationResult]]:
    """(evaluated_at ISO string, result) or None."""
    return _evaluations.get(decision_id)
