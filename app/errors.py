"""
Error taxonomy for the Decision Health Monitor.

- InputValidationError: structurally invalid input, rejected before any
  computation starts.
- RULE_EVALUATION_WARNING: a constraint rule could not be interpreted. Not an
  exception; it is recorded in the evaluation trace under this factor name and
  contributes zero penalty.
- BatchItemFailure: one decision failed during a multi-decision batch. Caught
  and reported per item, never aborts sibling items.

Evaluating an INVALIDATED/RETIRED decision is not an error at all: the engine
returns "no change".
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError


RULE_EVALUATION_WARNING = "constraint_rule_warning"


class DecisionMonitorError(Exception):
    """Base class for errors raised by the Decision Health Monitor."""


class InputValidationError(DecisionMonitorError):
    """Malformed evaluation or detection input (e.g. missing required ids)."""

    def __init__(self, message: str, errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, exc: ValidationError, what: str = "input") -> "InputValidationError":
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        locations = ", ".join(".".join(str(p) for p in e.get("loc", ())) for e in errors[:5])
        return cls(f"Invalid {what}: {len(errors)} error(s) at {locations}", errors=errors)


class EntityNotFoundError(DecisionMonitorError):
    """Requested record does not exist in the store."""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} '{entity_id}' not found")
        self.kind = kind
        self.entity_id = entity_id


class ConflictStateError(DecisionMonitorError):
    """Operation not allowed in the conflict's current state (e.g. resolving twice)."""


@dataclass
class BatchItemFailure:
    """One decision whose evaluate-or-persist step failed inside a batch."""
    decision_id: str
    stage: str          # evaluate | persist | load
    message: str

    def to_dict(self) -> dict:
        return {
            "decision_id": self.decision_id,
            "stage": self.stage,
            "message": self.message,
        }
