"""
Evaluation Service - Orchestrates the deterministic engine over stored decisions.

For each decision:
  1. Load linked assumptions, constraints and upstream decisions
  2. Call app.evaluation_engine.evaluate with the caller's clock reading
  3. Persist the proposed state when it changed
  4. Record a notification when the lifecycle moved

Batch re-evaluation isolates every decision: one failure is reported as a
BatchItemFailure and the remaining decisions still run.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from app import notifications
from app.clock import Clock
from app.config import EngineConfig
from app.errors import BatchItemFailure, EntityNotFoundError
from app.evaluation_engine import evaluate
from app.repositories import decision_store, notification_store
from app.schemas import DependencySnapshot, EvaluationInput, EvaluationResult

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """Outcome of a multi-decision re-evaluation."""
    evaluated: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    failures: list[BatchItemFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.evaluated) + len(self.failures)

    def summary(self) -> str:
        text = f"{len(self.updated)} of {self.total} decisions updated"
        if self.failures:
            text += f"; {len(self.failures)} failed, see log"
        return text

    def merge(self, other: "BatchReport") -> "BatchReport":
        self.evaluated.extend(other.evaluated)
        self.updated.extend(other.updated)
        self.failures.extend(other.failures)
        return self

    def to_dict(self) -> dict:
        return {
            "summary": self.summary(),
            "evaluated": self.evaluated,
            "updated": self.updated,
            "failures": [f.to_dict() for f in self.failures],
        }


def build_evaluation_input(decision_id: str, now: datetime) -> EvaluationInput:
    """
    Materialize everything the engine needs for one decision.

    Raises:
        EntityNotFoundError: decision does not exist
    """
    decision = decision_store.get_decision(decision_id)
    if decision is None:
        raise EntityNotFoundError("Decision", decision_id)

    return EvaluationInput(
        decision=decision,
        assumptions=decision_store.assumptions_for(decision_id),
        constraints=decision_store.constraints_for(decision_id),
        dependencies=[DependencySnapshot.from_decision(d) for d in decision_store.upstream_of(decision_id)],
        current_timestamp=now,
    )


def evaluate_decision(decision_id: str, clock: Clock, config: EngineConfig) -> EvaluationResult:
    """
    Evaluate one decision and persist the result when it changed.

    Raises:
        EntityNotFoundError: decision does not exist
    """
    now = clock.now()
    evaluation_input = build_evaluation_input(decision_id, now)
    decision = evaluation_input.decision

    result = evaluate(evaluation_input, config)
    decision_store.store_evaluation(decision_id, result, now)

    if result.changes_detected:
        decision_store.update_decision(
            decision_id,
            health_signal=result.new_health_signal,
            lifecycle=result.new_lifecycle,
            invalidated_reason=result.invalidated_reason,
        )
        notification_store.add(notifications.lifecycle_changed(decision, result, now))
        logger.info(
            f"[{decision_id}] health {decision.health_signal} → {result.new_health_signal}, "
            f"lifecycle {decision.lifecycle.value} → {result.new_lifecycle.value}"
        )
    else:
        logger.debug(f"[{decision_id}] no change")

    return result


def _dependency_order(decision_ids: Iterable[str]) -> list[str]:
    """Upstream decisions first so dependents see fresh health. Cycles fall back to id order."""
    wanted = sorted(set(decision_ids))
    wanted_set = set(wanted)
    ordered: list[str] = []
    seen: set[str] = set()

    def upstream(decision_id: str):
        return iter([
            dep.target_decision_id for dep in decision_store.dependencies_of(decision_id)
            if dep.target_decision_id in wanted_set
        ])

    # Iterative post-order walk; long dependency chains must not hit the recursion limit.
    for root in wanted:
        if root in seen:
            continue
        seen.add(root)
        stack = [(root, upstream(root))]
        while stack:
            decision_id, pending = stack[-1]
            next_id = next(pending, None)
            if next_id is None:
                stack.pop()
                ordered.append(decision_id)
            elif next_id not in seen:
                seen.add(next_id)
                stack.append((next_id, upstream(next_id)))
    return ordered


def reevaluate_decisions(decision_ids: Iterable[str], clock: Clock, config: EngineConfig) -> BatchReport:
    """
    Re-evaluate many decisions. Never raises for a single decision's failure.

    Args:
        decision_ids: Decisions to re-evaluate (duplicates ignored)
        clock: Source of "now" (real or simulated)
        config: Engine configuration

    Returns:
        BatchReport with per-decision outcome
    """
    report = BatchReport()
    for decision_id in _dependency_order(decision_ids):
        try:
            result = evaluate_decision(decision_id, clock, config)
        except EntityNotFoundError as e:
            logger.warning(f"[{decision_id}] skipped during batch re-evaluation: {e}")
            report.failures.append(BatchItemFailure(decision_id, "load", str(e)))
            continue
        except Exception as e:
            logger.error(f"[{decision_id}] re-evaluation failed: {e}", exc_info=True)
            report.failures.append(BatchItemFailure(decision_id, "evaluate", str(e)))
            continue

        report.evaluated.append(decision_id)
        if result.changes_detected:
            report.updated.append(decision_id)

    if report.failures:
        logger.warning(f"Batch re-evaluation: {report.summary()}")
    else:
        logger.info(f"Batch re-evaluation: {report.summary()}")
    return report


def reevaluate_linked_to_assumptions(assumption_ids: Iterable[str], clock: Clock,
                                     config: EngineConfig) -> BatchReport:
    """Re-evaluate every decision linked to any of the given assumptions."""
    return reevaluate_decisions(decision_store.decisions_linked_to_assumptions(assumption_ids), clock, config)
