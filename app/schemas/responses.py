"""
app/schemas/responses.py — Outbound response models for the v1 API.

Service-layer dataclasses (BatchReport, ConflictRecord, SimulatedTime,
Notification) are converted into these models in the routers so the HTTP
shape stays stable when internals change.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.schemas.domain import Assumption, Constraint, Decision, EvaluationResult


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class BatchItemFailureResponse(BaseModel):
    decision_id: str
    stage: str
    message: str


class BatchReportResponse(BaseModel):
    """Re-evaluation outcome, e.g. "19 of 20 decisions updated; 1 failed, see log"."""
    summary: str
    evaluated: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    failures: list[BatchItemFailureResponse] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report) -> "BatchReportResponse":
        return cls.model_validate(report.to_dict())


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class EvaluationResponse(BaseModel):
    evaluated_at: str
    result: EvaluationResult


class DecisionDetailResponse(BaseModel):
    decision: Decision
    assumption_ids: list[str] = Field(default_factory=list)
    constraint_ids: list[str] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list)
    last_evaluation: Optional[EvaluationResponse] = None


class DecisionListResponse(BaseModel):
    decisions: list[Decision]
    count: int


# ---------------------------------------------------------------------------
# Assumptions
# ---------------------------------------------------------------------------


class AssumptionListResponse(BaseModel):
    assumptions: list[Assumption]
    count: int


class ConstraintListResponse(BaseModel):
    constraints: list[Constraint]
    count: int


class AssumptionStatusResponse(BaseModel):
    assumption: Assumption
    reevaluation: BatchReportResponse


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictResponse(BaseModel):
    id: str
    kind: str
    organization_id: Optional[str] = None
    item_a_id: str
    item_b_id: str
    conflict_type: str
    confidence_score: float
    explanation: str
    strategy: str
    detected_at: str
    resolved_at: Optional[str] = None
    resolution_action: Optional[str] = None
    resolution_notes: Optional[str] = None
    invalidated_decision_id: Optional[str] = None
    invalidating_decision_id: Optional[str] = None
    ai_generated: bool = False

    @classmethod
    def from_record(cls, record) -> "ConflictResponse":
        return cls.model_validate(record.to_dict())


class ConflictListResponse(BaseModel):
    conflicts: list[ConflictResponse]
    count: int


class DetectionResponse(BaseModel):
    scanned: int
    detected: int
    created: int
    already_known: int
    dismissed: int
    new_conflicts: list[ConflictResponse] = Field(default_factory=list)


class ResolutionResponse(BaseModel):
    conflict: ConflictResponse
    reevaluation: BatchReportResponse


class DeleteConflictResponse(BaseModel):
    id: str
    message: str = "Conflict deleted as false positive"


# ---------------------------------------------------------------------------
# Time simulation
# ---------------------------------------------------------------------------


class SimulatedTimeResponse(BaseModel):
    organization_id: Optional[str] = None
    offset_days: float
    simulated_now: datetime
    real_now: datetime
    reevaluation: Optional[BatchReportResponse] = None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    id: str
    type: str
    severity: str
    title: str
    message: str
    organization_id: Optional[str] = None
    created_at: str
    decision_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    count: int
