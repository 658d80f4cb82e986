"""
Decision Health Monitor - Pydantic v2 Schemas

Core domain models shared by the evaluation engine, the conflict detectors
and the orchestration layer.

The engine only ever reads these models and returns a proposed next state.
Storage owns the records; nothing in the core mutates them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


# Structured parameter values come from dropdowns: a single choice,
# a multi-select, or a number.
ParameterValue = Union[str, list[str], int, float]


class DecisionLifecycle(str, Enum):
    """State machine position of a decision."""
    STABLE = "STABLE"
    UNDER_REVIEW = "UNDER_REVIEW"
    AT_RISK = "AT_RISK"
    INVALIDATED = "INVALIDATED"
    RETIRED = "RETIRED"


TERMINAL_LIFECYCLES = frozenset({DecisionLifecycle.INVALIDATED, DecisionLifecycle.RETIRED})
ACTIVE_LIFECYCLES = frozenset({
    DecisionLifecycle.STABLE,
    DecisionLifecycle.UNDER_REVIEW,
    DecisionLifecycle.AT_RISK,
})


class AssumptionStatus(str, Enum):
    """
    Drift of an assumption from its original state.

    HOLDING and UNKNOWN only exist on legacy installations and are treated
    exactly like VALID.
    """
    VALID = "VALID"
    SHAKY = "SHAKY"
    BROKEN = "BROKEN"
    HOLDING = "HOLDING"
    UNKNOWN = "UNKNOWN"


VALID_EQUIVALENT_STATUSES = frozenset({
    AssumptionStatus.VALID,
    AssumptionStatus.HOLDING,
    AssumptionStatus.UNKNOWN,
})


class AssumptionScope(str, Enum):
    UNIVERSAL = "UNIVERSAL"
    DECISION_SPECIFIC = "DECISION_SPECIFIC"


class Decision(BaseModel):
    """
    Strategic choice under monitoring.

    health_signal is an internal trust signal (0-100). baseline_health is the
    level every evaluation recomputes from; it defaults to the health the
    decision was registered with. last_reviewed_at is only ever moved by an
    explicit human review.
    """
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="", max_length=10_000)
    lifecycle: DecisionLifecycle = DecisionLifecycle.STABLE
    health_signal: int = Field(default=100, ge=0, le=100)
    created_at: datetime
    last_reviewed_at: datetime
    expiry_date: Optional[datetime] = None
    category: Optional[str] = Field(None, description="Structured category for conflict matching")
    parameters: Optional[dict[str, ParameterValue]] = Field(
        None,
        description="Dropdown-sourced structured fields for the category",
    )
    metadata: dict[str, Any] = Field(default_factory=dict)
    invalidated_reason: Optional[str] = None
    organization_id: Optional[str] = None
    baseline_health: Optional[int] = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def default_baseline(self):
        if self.baseline_health is None:
            self.baseline_health = self.health_signal
        return self


class Assumption(BaseModel):
    """
    Belief a decision rests on. Global and reusable across decisions.

    status is kept as a plain string when it is not one of the known values
    so that the engine can degrade to "no signal" instead of rejecting input.
    """
    id: str = Field(..., min_length=1)
    description: str = Field(default="", max_length=2_000)
    status: Union[AssumptionStatus, str] = AssumptionStatus.VALID
    scope: AssumptionScope = AssumptionScope.DECISION_SPECIFIC
    category: Optional[str] = None
    parameters: Optional[dict[str, ParameterValue]] = None
    created_at: Optional[datetime] = None
    validated_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    organization_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        """Accept lowercase statuses; keep unrecognized ones verbatim."""
        if isinstance(v, str):
            upper = v.strip().upper()
            try:
                return AssumptionStatus(upper)
            except ValueError:
                return v
        return v


class Constraint(BaseModel):
    """
    Organizational limit a decision must respect.

    rule_expression is opaque here; app/constraint_rules.py interprets it.
    """
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    constraint_type: str = Field(default="POLICY")
    rule_expression: Any = None
    is_immutable: bool = False
    invalidating: bool = Field(
        default=False,
        description="Organization flags a violation of this immutable constraint as invalidating",
    )
    organization_id: Optional[str] = None


class Dependency(BaseModel):
    """Directed edge: source decision depends on (is blocked by) target decision."""
    id: str = Field(..., min_length=1)
    source_decision_id: str = Field(..., min_length=1)
    target_decision_id: str = Field(..., min_length=1)


class DependencySnapshot(BaseModel):
    """Upstream decision as seen by the engine when evaluating a dependent."""
    id: str = Field(..., min_length=1)
    title: str = ""
    health_signal: int = Field(default=100, ge=0, le=100)
    lifecycle: DecisionLifecycle = DecisionLifecycle.STABLE
    created_at: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_decision(cls, decision: Decision) -> "DependencySnapshot":
        return cls(
            id=decision.id,
            title=decision.title,
            health_signal=decision.health_signal,
            lifecycle=decision.lifecycle,
            created_at=decision.created_at,
            last_reviewed_at=decision.last_reviewed_at,
            expiry_date=decision.expiry_date,
            metadata=decision.metadata,
        )


# ---------------------------------------------------------------------------
# Engine contract
# ---------------------------------------------------------------------------


class EvaluationInput(BaseModel):
    """Fully materialized input for one engine run."""
    decision: Decision
    assumptions: list[Assumption] = Field(default_factory=list)
    constraints: list[Constraint] = Field(default_factory=list)
    dependencies: list[DependencySnapshot] = Field(default_factory=list)
    current_timestamp: datetime


class TraceEntry(BaseModel):
    """One contributing factor of an evaluation, in the order it was applied."""
    factor: str
    delta: float = 0.0
    detail: str


class EvaluationResult(BaseModel):
    """Proposed next state for a decision plus the explanation trace."""
    decision_id: str
    new_health_signal: int = Field(ge=0, le=100)
    new_lifecycle: DecisionLifecycle
    invalidated_reason: Optional[str] = None
    trace: list[TraceEntry] = Field(default_factory=list)
    changes_detected: bool = False


# ---------------------------------------------------------------------------
# Conflict detector contract
# ---------------------------------------------------------------------------


class ConflictType(str, Enum):
    CONTRADICTORY = "CONTRADICTORY"
    MUTUALLY_EXCLUSIVE = "MUTUALLY_EXCLUSIVE"
    INCOMPATIBLE = "INCOMPATIBLE"
    RESOURCE_COMPETITION = "RESOURCE_COMPETITION"
    TIMELINE = "TIMELINE"
    OBJECTIVE_UNDERMINING = "OBJECTIVE_UNDERMINING"
    PREMISE_INVALIDATION = "PREMISE_INVALIDATION"


class AssumptionConflict(BaseModel):
    conflict_type: ConflictType
    confidence_score: float = Field(ge=0.0, le=1.0)
    reason: str
    strategy: str = Field(description="Detection strategy that produced the match")


class AssumptionConflictPair(BaseModel):
    """Detected pair, always in canonical (min id, max id) order."""
    assumption_a: Assumption
    assumption_b: Assumption
    conflict: AssumptionConflict


class DecisionConflict(BaseModel):
    conflict_type: ConflictType
    confidence_score: float = Field(ge=0.0, le=1.0)
    explanation: str
    strategy: str
    invalidated_decision_id: Optional[str] = Field(
        None, description="Older decision whose premise may be invalidated (premise strategy only)"
    )
    invalidating_decision_id: Optional[str] = Field(
        None, description="Newer decision doing the invalidating (premise strategy only)"
    )
    ai_generated: bool = False


class DecisionConflictPair(BaseModel):
    """Detected pair, always in canonical (min id, max id) order."""
    decision_a: Decision
    decision_b: Decision
    conflict: DecisionConflict
