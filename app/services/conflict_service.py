"""
Conflict Service - detection runs, persistence, notification and resolution.

Detection:
  1. Fetch the organization's candidates (decisions: active lifecycles only)
  2. Run the pure detector
  3. Insert each result unless the same logical conflict exists or was dismissed
  4. Notify for newly created conflicts only

Resolution applies the chosen action to the underlying assumptions or
decisions and re-evaluates the affected decisions through the engine.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from app import notifications
from app.assumption_conflicts import detect_conflicts_in_list as detect_assumption_pairs
from app.clock import Clock
from app.config import EngineConfig
from app.decision_conflicts import detect_conflicts_in_list as detect_decision_pairs
from app.errors import EntityNotFoundError, InputValidationError
from app.repositories import conflict_store, decision_store, notification_store
from app.repositories.conflict_store import ConflictRecord
from app.schemas import (
    TERMINAL_LIFECYCLES,
    AssumptionStatus,
    DecisionConflictPair,
    DecisionLifecycle,
    EvaluationResult,
    TraceEntry,
)
from app.services import assumption_service
from app.services.evaluation_service import BatchReport, reevaluate_decisions

logger = logging.getLogger(__name__)


ASSUMPTION_ACTIONS = ("VALIDATE_A", "VALIDATE_B", "DEPRECATE_BOTH", "MERGE", "KEEP_BOTH")
DECISION_ACTIONS = ("PRIORITIZE_A", "PRIORITIZE_B", "MODIFY_BOTH", "DEPRECATE_BOTH", "KEEP_BOTH")

# (status for A, status for B) per assumption resolution action
_ASSUMPTION_OUTCOMES = {
    "VALIDATE_A": (AssumptionStatus.VALID, AssumptionStatus.BROKEN),
    "VALIDATE_B": (AssumptionStatus.BROKEN, AssumptionStatus.VALID),
    "DEPRECATE_BOTH": (AssumptionStatus.BROKEN, AssumptionStatus.BROKEN),
    "MERGE": (AssumptionStatus.VALID, AssumptionStatus.VALID),
}


@dataclass
class DetectionReport:
    scanned: int = 0
    detected: int = 0
    created: list[ConflictRecord] = field(default_factory=list)
    already_known: int = 0
    dismissed: int = 0

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "detected": self.detected,
            "created": len(self.created),
            "already_known": self.already_known,
            "dismissed": self.dismissed,
        }


def get_conflict(conflict_id: str, kind: str, organization_id: Optional[str]) -> ConflictRecord:
    """
    Raises:
        EntityNotFoundError: no such conflict of this kind for this organization
    """
    record = conflict_store.get(conflict_id)
    if record is None or record.kind != kind or (
        organization_id is not None and record.organization_id != organization_id
    ):
        raise EntityNotFoundError(f"{kind.capitalize()} conflict", conflict_id)
    return record


# ── Detection ────────────────────────────────────────────────────────────────

def detect_assumption_conflicts(organization_id: Optional[str], clock: Clock) -> DetectionReport:
    """Scan all of the organization's assumptions."""
    assumptions = decision_store.list_assumptions(organization_id)
    pairs = detect_assumption_pairs(assumptions)
    now = clock.now()

    report = DetectionReport(scanned=len(assumptions), detected=len(pairs))
    for pair in pairs:
        conflict = pair.conflict
        record, created = conflict_store.insert_if_absent(
            kind=conflict_store.ASSUMPTION,
            organization_id=organization_id,
            id_a=pair.assumption_a.id,
            id_b=pair.assumption_b.id,
            conflict_type=conflict.conflict_type.value,
            confidence_score=conflict.confidence_score,
            explanation=conflict.reason,
            strategy=conflict.strategy,
            detected_at=now,
        )
        if record is None:
            report.dismissed += 1
        elif not created:
            report.already_known += 1
        else:
            report.created.append(record)
            notification_store.add(
                notifications.assumption_conflict_detected(pair, record.id, organization_id, now)
            )

    logger.info(
        f"[{organization_id}] assumption conflict detection: {report.scanned} scanned, "
        f"{report.detected} detected, {len(report.created)} new"
    )
    return report


def _explain(pair: DecisionConflictPair, llm_client) -> tuple[str, bool]:
    """Deterministic explanation, optionally rewritten by the LLM. Never raises."""
    conflict = pair.conflict
    if llm_client is None:
        return conflict.explanation, False
    try:
        text = llm_client.explain_decision_conflict(
            title_a=pair.decision_a.title,
            description_a=pair.decision_a.description,
            title_b=pair.decision_b.title,
            description_b=pair.decision_b.description,
            conflict_type=conflict.conflict_type.value,
            explanation=conflict.explanation,
        )
        return text, True
    except Exception as e:
        logger.warning(
            f"AI explanation failed for {pair.decision_a.id}/{pair.decision_b.id}, "
            f"keeping deterministic text: {e}"
        )
        return conflict.explanation, False


def detect_decision_conflicts(organization_id: Optional[str], clock: Clock, llm_client=None) -> DetectionReport:
    """
    Scan the organization's active decisions (STABLE, UNDER_REVIEW, AT_RISK).

    Args:
        organization_id: Organization to scan
        clock: Source of detected_at
        llm_client: Optional LLMClient; only newly created conflicts are sent to it
    """
    decisions = decision_store.list_active_decisions(organization_id)
    assumptions_by_decision = {d.id: decision_store.assumptions_for(d.id) for d in decisions}
    pairs = detect_decision_pairs(decisions, assumptions_by_decision)
    now = clock.now()

    report = DetectionReport(scanned=len(decisions), detected=len(pairs))
    for pair in pairs:
        conflict = pair.conflict
        record, created = conflict_store.insert_if_absent(
            kind=conflict_store.DECISION,
            organization_id=organization_id,
            id_a=pair.decision_a.id,
            id_b=pair.decision_b.id,
            conflict_type=conflict.conflict_type.value,
            confidence_score=conflict.confidence_score,
            explanation=conflict.explanation,
            strategy=conflict.strategy,
            detected_at=now,
            invalidated_decision_id=conflict.invalidated_decision_id,
            invalidating_decision_id=conflict.invalidating_decision_id,
        )
        if record is None:
            report.dismissed += 1
            continue
        if not created:
            report.already_known += 1
            continue

        explanation, ai_generated = _explain(pair, llm_client)
        if ai_generated:
            conflict_store.update_explanation(record.id, explanation, ai_generated=True)
        report.created.append(record)
        notification_store.add(
            notifications.decision_conflict_detected(pair, record.id, explanation, organization_id, now)
        )

    logger.info(
        f"[{organization_id}] decision conflict detection: {report.scanned} scanned, "
        f"{report.detected} detected, {len(report.created)} new"
    )
    return report


# ── Resolution ───────────────────────────────────────────────────────────────

def _claim(conflict_id: str, kind: str, action: str, notes: Optional[str], allowed: tuple[str, ...],
           organization_id: Optional[str], clock: Clock) -> ConflictRecord:
    """
    Validate the action and mark the conflict resolved before any side effect runs.

    Raises:
        EntityNotFoundError, InputValidationError, ConflictStateError
    """
    get_conflict(conflict_id, kind, organization_id)
    if action not in allowed:
        raise InputValidationError(
            f"Invalid resolution action '{action}'. Valid: {', '.join(allowed)}"
        )
    record = conflict_store.resolve(conflict_id, action, notes, clock.now())
    if record is None:
        raise EntityNotFoundError(f"{kind.capitalize()} conflict", conflict_id)
    return record


def resolve_assumption_conflict(
    conflict_id: str,
    action: str,
    notes: Optional[str],
    organization_id: Optional[str],
    clock: Clock,
    config: EngineConfig,
) -> tuple[ConflictRecord, BatchReport]:
    """
    Apply a resolution action to an assumption conflict.

    VALIDATE_A/VALIDATE_B keep one side VALID and mark the other BROKEN,
    DEPRECATE_BOTH breaks both, MERGE validates both, KEEP_BOTH changes nothing.
    Decisions linked to a changed assumption are re-evaluated.

    Raises:
        EntityNotFoundError, InputValidationError, ConflictStateError
    """
    record = _claim(conflict_id, conflict_store.ASSUMPTION, action, notes, ASSUMPTION_ACTIONS, organization_id, clock)

    report = BatchReport()
    outcome = _ASSUMPTION_OUTCOMES.get(action)
    if outcome:
        status_a, status_b = outcome
        report = assumption_service.apply_statuses(
            {record.item_a_id: status_a, record.item_b_id: status_b}, clock, config
        )

    logger.info(f"[{conflict_id}] assumption conflict resolved with {action}: {report.summary()}")
    return record, report


def _deprecate_decision(decision_id: str, conflict_id: str, notes: Optional[str], clock: Clock) -> bool:
    """User-driven invalidation. Terminal decisions are left alone."""
    decision = decision_store.get_decision(decision_id)
    if decision is None or decision.lifecycle in TERMINAL_LIFECYCLES:
        return False

    reason = f"Deprecated while resolving decision conflict {conflict_id}"
    if notes:
        reason += f": {notes}"
    result = EvaluationResult(
        decision_id=decision_id,
        new_health_signal=0,
        new_lifecycle=DecisionLifecycle.INVALIDATED,
        invalidated_reason=reason,
        trace=[TraceEntry(factor="user_deprecation", delta=-decision.health_signal, detail=reason)],
        changes_detected=True,
    )
    decision_store.update_decision(
        decision_id,
        health_signal=0,
        lifecycle=DecisionLifecycle.INVALIDATED,
        invalidated_reason=reason,
    )
    notification_store.add(notifications.lifecycle_changed(decision, result, clock.now()))
    logger.info(f"[{decision_id}] invalidated by conflict resolution {conflict_id}")
    return True


def resolve_decision_conflict(
    conflict_id: str,
    action: str,
    notes: Optional[str],
    organization_id: Optional[str],
    clock: Clock,
    config: EngineConfig,
) -> tuple[ConflictRecord, BatchReport]:
    """
    Apply a resolution action to a decision conflict.

    DEPRECATE_BOTH invalidates both decisions (an explicit user action, not
    an engine outcome) and re-evaluates their dependents so the cascade
    reaches them. PRIORITIZE_A, PRIORITIZE_B and MODIFY_BOTH re-evaluate
    both decisions. KEEP_BOTH only records the resolution.

    Raises:
        EntityNotFoundError, InputValidationError, ConflictStateError
    """
    record = _claim(conflict_id, conflict_store.DECISION, action, notes, DECISION_ACTIONS, organization_id, clock)

    pair = [record.item_a_id, record.item_b_id]
    report = BatchReport()
    if action == "DEPRECATE_BOTH":
        deprecated = [d for d in pair if _deprecate_decision(d, conflict_id, notes, clock)]
        dependents = sorted({dep for d in deprecated for dep in decision_store.dependents_of(d)} - set(pair))
        report = reevaluate_decisions(dependents, clock, config)
        report.evaluated[:0] = deprecated
        report.updated[:0] = deprecated
    elif action != "KEEP_BOTH":
        report = reevaluate_decisions(pair, clock, config)

    logger.info(f"[{conflict_id}] decision conflict resolved with {action}: {report.summary()}")
    return record, report


def delete_conflict(conflict_id: str, kind: str, organization_id: Optional[str]) -> ConflictRecord:
    """Remove a conflict as a false positive; the pair stays dismissed."""
    get_conflict(conflict_id, kind, organization_id)
    record = conflict_store.delete(conflict_id)
    logger.info(f"[{conflict_id}] {kind} conflict deleted (false positive)")
    return record
