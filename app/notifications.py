"""
Notifications - explicit construction of user-facing notifications.

Detectors and the engine return values; the orchestration layer turns the
interesting ones into Notification records here and hands them to
app/repositories/notification_store.py. Delivery (email, push) is not part
of this service.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from app.schemas import (
    AssumptionConflictPair,
    Decision,
    DecisionConflictPair,
    DecisionLifecycle,
    EvaluationResult,
)


LIFECYCLE_CHANGED = "LIFECYCLE_CHANGED"
ASSUMPTION_CONFLICT = "ASSUMPTION_CONFLICT"
DECISION_CONFLICT = "DECISION_CONFLICT"

_LIFECYCLE_SEVERITY = {
    DecisionLifecycle.STABLE: "INFO",
    DecisionLifecycle.UNDER_REVIEW: "WARNING",
    DecisionLifecycle.AT_RISK: "WARNING",
    DecisionLifecycle.INVALIDATED: "CRITICAL",
    DecisionLifecycle.RETIRED: "INFO",
}


@dataclass
class Notification:
    id: str
    type: str
    severity: str                 # INFO | WARNING | CRITICAL
    title: str
    message: str
    organization_id: Optional[str]
    created_at: str
    decision_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def _severity_for_confidence(confidence: float) -> str:
    return "CRITICAL" if confidence >= 0.9 else "WARNING"


def lifecycle_changed(decision: Decision, result: EvaluationResult, at: datetime) -> Optional[Notification]:
    """Only lifecycle moves notify; health-only changes stay silent."""
    if result.new_lifecycle == decision.lifecycle:
        return None
    message = (
        f'"{decision.title}" moved from {decision.lifecycle.value} to {result.new_lifecycle.value} '
        f"(health {decision.health_signal} → {result.new_health_signal})."
    )
    if result.invalidated_reason:
        message += f" Reason: {result.invalidated_reason}"
    return Notification(
        id=str(uuid.uuid4()),
        type=LIFECYCLE_CHANGED,
        severity=_LIFECYCLE_SEVERITY[result.new_lifecycle],
        title=f"Decision {result.new_lifecycle.value.replace('_', ' ').lower()}",
        message=message,
        organization_id=decision.organization_id,
        created_at=at.isoformat(),
        decision_id=decision.id,
        metadata={
            "old_lifecycle": decision.lifecycle.value,
            "new_lifecycle": result.new_lifecycle.value,
            "old_health": decision.health_signal,
            "new_health": result.new_health_signal,
        },
    )


def assumption_conflict_detected(pair: AssumptionConflictPair, conflict_id: str,
                                 organization_id: Optional[str], at: datetime) -> Notification:
    conflict = pair.conflict
    return Notification(
        id=str(uuid.uuid4()),
        type=ASSUMPTION_CONFLICT,
        severity=_severity_for_confidence(conflict.confidence_score),
        title="Conflicting assumptions detected",
        message=(
            f'"{pair.assumption_a.description}" conflicts with "{pair.assumption_b.description}": '
            f"{conflict.reason}"
        ),
        organization_id=organization_id,
        created_at=at.isoformat(),
        metadata={
            "conflict_id": conflict_id,
            "conflict_type": conflict.conflict_type.value,
            "confidence_score": conflict.confidence_score,
            "assumption_ids": [pair.assumption_a.id, pair.assumption_b.id],
        },
    )


def decision_conflict_detected(pair: DecisionConflictPair, conflict_id: str, explanation: str,
                               organization_id: Optional[str], at: datetime) -> Notification:
    conflict = pair.conflict
    return Notification(
        id=str(uuid.uuid4()),
        type=DECISION_CONFLICT,
        severity=_severity_for_confidence(conflict.confidence_score),
        title=f"Decision conflict: {conflict.conflict_type.value.replace('_', ' ').lower()}",
        message=explanation,
        organization_id=organization_id,
        created_at=at.isoformat(),
        decision_id=conflict.invalidated_decision_id,
        metadata={
            "conflict_id": conflict_id,
            "conflict_type": conflict.conflict_type.value,
            "confidence_score": conflict.confidence_score,
            "decision_ids": [pair.decision_a.id, pair.decision_b.id],
        },
    )
