"""
app/schemas/requests.py — Inbound request models for the v1 API.

These are the only models routers should accept from HTTP clients.
Business logic uses domain models from app/schemas/domain.py.

The organization is never part of a body; routers read it from the
X-Organization-Id header.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.schemas.domain import AssumptionScope, AssumptionStatus, ParameterValue


class CreateDecisionRequest(BaseModel):
    """POST /v1/decisions: register a decision for health monitoring."""

    id: Optional[str] = Field(
        default=None,
        min_length=1,
        description="Client-supplied id. Generated when omitted.",
    )
    title: str = Field(..., min_length=1, max_length=500, examples=["Increase Q3 marketing budget"])
    description: str = Field(default="", max_length=10_000)
    category: Optional[str] = Field(
        default=None,
        description="Structured category, e.g. 'Budget & Financial' or 'Technical Architecture'",
    )
    parameters: Optional[dict[str, ParameterValue]] = Field(
        default=None,
        examples=[{"direction": "Increase", "resourceType": "Marketing", "timeframe": "Q3 2026"}],
    )
    health_signal: int = Field(default=100, ge=0, le=100)
    created_at: Optional[datetime] = Field(default=None, description="Defaults to the organization's current time")
    last_reviewed_at: Optional[datetime] = Field(default=None, description="Defaults to created_at")
    expiry_date: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class CreateAssumptionRequest(BaseModel):
    """POST /v1/assumptions"""

    id: Optional[str] = Field(default=None, min_length=1)
    description: str = Field(..., min_length=3, max_length=2_000)
    status: AssumptionStatus = AssumptionStatus.VALID
    scope: AssumptionScope = AssumptionScope.DECISION_SPECIFIC
    category: Optional[str] = None
    parameters: Optional[dict[str, ParameterValue]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateAssumptionStatusRequest(BaseModel):
    """PUT /v1/assumptions/{id}/status: linked decisions are re-evaluated."""

    status: AssumptionStatus


class CreateConstraintRequest(BaseModel):
    """POST /v1/constraints"""

    id: Optional[str] = Field(default=None, min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    constraint_type: str = Field(default="POLICY", examples=["BUDGET", "POLICY", "TECHNICAL", "COMPLIANCE"])
    rule_expression: Any = Field(
        default=None,
        description="Tagged rule document (dict or JSON string), see app/constraint_rules.py",
        examples=[{"type": "threshold", "field": "metadata.budget", "operator": "<=", "value": 500000}],
    )
    is_immutable: bool = False
    invalidating: bool = False


class LinkAssumptionsRequest(BaseModel):
    assumption_ids: list[str] = Field(..., min_length=1)


class LinkConstraintsRequest(BaseModel):
    constraint_ids: list[str] = Field(..., min_length=1)


class AddDependenciesRequest(BaseModel):
    """The decision in the path depends on each listed decision."""

    depends_on: list[str] = Field(..., min_length=1)


class ResolveConflictRequest(BaseModel):
    """PUT /v1/{assumption,decision}-conflicts/{id}/resolve"""

    resolution_action: str = Field(..., examples=["VALIDATE_A", "PRIORITIZE_B", "KEEP_BOTH"])
    resolution_notes: Optional[str] = Field(default=None, max_length=2_000)


class SimulateTimeRequest(BaseModel):
    """POST /v1/simulate-time: advance the organization's virtual clock."""

    days: float = Field(..., gt=0, le=3650)
