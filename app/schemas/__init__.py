"""
app/schemas — Decision Health Monitor schema package.

Re-exports all domain models from domain.py so callers can write
`from app.schemas import Decision, Assumption, ...`.

API-layer models live in:
  app/schemas/requests.py  — inbound request bodies
  app/schemas/responses.py — outbound response payloads
"""

from app.schemas.domain import (
    ACTIVE_LIFECYCLES,
    TERMINAL_LIFECYCLES,
    VALID_EQUIVALENT_STATUSES,
    ParameterValue,
    DecisionLifecycle,
    AssumptionStatus,
    AssumptionScope,
    Decision,
    Assumption,
    Constraint,
    Dependency,
    DependencySnapshot,
    EvaluationInput,
    TraceEntry,
    EvaluationResult,
    ConflictType,
    AssumptionConflict,
    AssumptionConflictPair,
    DecisionConflict,
    DecisionConflictPair,
)

__all__ = [
    "ACTIVE_LIFECYCLES",
    "TERMINAL_LIFECYCLES",
    "VALID_EQUIVALENT_STATUSES",
    "ParameterValue",
    "DecisionLifecycle",
    "AssumptionStatus",
    "AssumptionScope",
    "Decision",
    "Assumption",
    "Constraint",
    "Dependency",
    "DependencySnapshot",
    "EvaluationInput",
    "TraceEntry",
    "EvaluationResult",
    "ConflictType",
    "AssumptionConflict",
    "AssumptionConflictPair",
    "DecisionConflict",
    "DecisionConflictPair",
]
