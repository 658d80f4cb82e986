"""
Conflict Store - In-memory conflict records for assumption and decision pairs.

One logical conflict = (kind, organization, min id, max id): at most one
record per pair, whatever its conflict type. insert_if_absent performs the
existence check and the insert under the same lock, so two concurrent
detection runs cannot create two rows for one pair. resolve checks and sets
the resolution under that lock too, so a conflict is resolved exactly once.

Deleting a conflict marks the pair as a false positive: the key is kept in a
dismissed set and later detection runs skip it.
"""

import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from app.errors import ConflictStateError


ASSUMPTION = "assumption"
DECISION = "decision"


@dataclass
class ConflictRecord:
    id: str
    kind: str                     # assumption | decision
    organization_id: Optional[str]
    item_a_id: str                # canonical: item_a_id < item_b_id
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

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> dict:
        return asdict(self)


# ── In-memory store ──────────────────────────────────────────────────────────

_lock = threading.Lock()
_store: dict[str, ConflictRecord] = {}
_dismissed: set[tuple] = set()


def canonical_pair(id_a: str, id_b: str) -> tuple[str, str]:
    return (id_a, id_b) if id_a <= id_b else (id_b, id_a)


def _key(kind: str, organization_id: Optional[str], id_a: str, id_b: str) -> tuple:
    return (kind, organization_id, *canonical_pair(id_a, id_b))


def _key_of(record: ConflictRecord) -> tuple:
    return _key(record.kind, record.organization_id, record.item_a_id, record.item_b_id)


def reset() -> None:
    with _lock:
        _store.clear()
        _dismissed.clear()


def insert_if_absent(
    kind: str,
    organization_id: Optional[str],
    id_a: str,
    id_b: str,
    conflict_type: str,
    confidence_score: float,
    explanation: str,
    strategy: str,
    detected_at: datetime,
    invalidated_decision_id: Optional[str] = None,
    invalidating_decision_id: Optional[str] = None,
    ai_generated: bool = False,
) -> tuple[Optional[ConflictRecord], bool]:
    """
    Insert a conflict unless the pair already has one or was dismissed.

    Returns:
        (record, created). record is the existing row when created is False,
        or None when the pair was dismissed as a false positive.
    """
    a, b = canonical_pair(id_a, id_b)
    key = _key(kind, organization_id, a, b)
    with _lock:
        if key in _dismissed:
            return None, False
        for record in _store.values():
            if _key_of(record) == key:
                return record, False
        record = ConflictRecord(
            id=str(uuid.uuid4()),
            kind=kind,
            organization_id=organization_id,
            item_a_id=a,
            item_b_id=b,
            conflict_type=conflict_type,
            confidence_score=confidence_score,
            explanation=explanation,
            strategy=strategy,
            detected_at=detected_at.isoformat(),
            invalidated_decision_id=invalidated_decision_id,
            invalidating_decision_id=invalidating_decision_id,
            ai_generated=ai_generated,
        )
        _store[record.id] = record
        return record, True


def get(conflict_id: str) -> Optional[ConflictRecord]:
    """Return record or None."""
    return _store.get(conflict_id)


def list_conflicts(kind: str, organization_id: Optional[str] = None, unresolved_only: bool = False) -> list[ConflictRecord]:
    """Highest confidence first, then by pair."""
    with _lock:
        items = [
            r for r in _store.values()
            if r.kind == kind
            and (organization_id is None or r.organization_id == organization_id)
            and not (unresolved_only and r.is_resolved)
        ]
    return sorted(items, key=lambda r: (-r.confidence_score, r.item_a_id, r.item_b_id, r.conflict_type))


def update_explanation(conflict_id: str, explanation: str, ai_generated: bool) -> None:
    with _lock:
        record = _store.get(conflict_id)
        if not record:
            return
        record.explanation = explanation
        record.ai_generated = ai_generated


def resolve(conflict_id: str, action: str, notes: Optional[str], resolved_at: datetime) -> Optional[ConflictRecord]:
    """
    Mark a conflict resolved. Returns None when it does not exist.

    Raises:
        ConflictStateError: the conflict was already resolved
    """
    with _lock:
        record = _store.get(conflict_id)
        if not record:
            return None
        if record.is_resolved:
            raise ConflictStateError(
                f"Conflict {conflict_id} already resolved with {record.resolution_action}"
            )
        record.resolved_at = resolved_at.isoformat()
        record.resolution_action = action
        record.resolution_notes = notes
        return record


def delete(conflict_id: str) -> Optional[ConflictRecord]:
    """Remove a conflict and remember its pair as dismissed. Returns the removed record."""
    with _lock:
        record = _store.pop(conflict_id, None)
        if record:
            _dismissed.add(_key_of(record))
        return record
