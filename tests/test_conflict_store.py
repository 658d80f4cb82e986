import threading

import pytest

from app.errors import ConflictStateError
from app.repositories import conflict_store, decision_store
from app.services import assumption_service, conflict_service

from conftest import NOW, make_assumption


ORG = "org-1"


def _insert(id_a, id_b, conflict_type, confidence=0.9):
    return conflict_store.insert_if_absent(
        kind=conflict_store.ASSUMPTION,
        organization_id=ORG,
        id_a=id_a,
        id_b=id_b,
        conflict_type=conflict_type,
        confidence_score=confidence,
        explanation="test",
        strategy="structured",
        detected_at=NOW,
    )


def test_one_record_per_pair_whatever_the_type():
    first, created = _insert("a", "b", "CONTRADICTORY")
    again, created_again = _insert("b", "a", "INCOMPATIBLE", confidence=0.8)

    assert created is True
    assert created_again is False
    assert again is first
    records = conflict_store.list_conflicts(conflict_store.ASSUMPTION)
    assert len(records) == 1
    assert (records[0].item_a_id, records[0].item_b_id) == ("a", "b")
    assert records[0].conflict_type == "CONTRADICTORY"


def test_dismissal_covers_every_type_of_the_pair():
    record, _ = _insert("b", "a", "CONTRADICTORY")
    conflict_store.delete(record.id)

    assert _insert("a", "b", "INCOMPATIBLE") == (None, False)
    assert conflict_store.list_conflicts(conflict_store.ASSUMPTION) == []


def test_resolve_is_check_and_set():
    record, _ = _insert("a", "b", "CONTRADICTORY")

    conflict_store.resolve(record.id, "MERGE", None, NOW)

    with pytest.raises(ConflictStateError):
        conflict_store.resolve(record.id, "KEEP_BOTH", None, NOW)
    assert conflict_store.get(record.id).resolution_action == "MERGE"
    assert conflict_store.resolve("missing", "MERGE", None, NOW) is None


def test_concurrent_resolutions_apply_one_action(clock, config, monkeypatch):
    for assumption_id in ("a", "b"):
        decision_store.save_assumption(make_assumption(assumption_id, organization_id=ORG))
    record, _ = _insert("a", "b", "CONTRADICTORY")

    applied = []
    real_apply = assumption_service.apply_statuses

    def recording_apply(changes, clk, cfg):
        applied.append(dict(changes))
        return real_apply(changes, clk, cfg)

    monkeypatch.setattr(assumption_service, "apply_statuses", recording_apply)

    barrier = threading.Barrier(2)
    outcomes = []

    def resolve(action):
        barrier.wait()
        try:
            conflict_service.resolve_assumption_conflict(record.id, action, None, ORG, clock, config)
            outcomes.append(action)
        except ConflictStateError:
            outcomes.append("refused")

    threads = [threading.Thread(target=resolve, args=(a,)) for a in ("VALIDATE_A", "VALIDATE_B")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("refused") == 1
    assert len(applied) == 1
    winner = conflict_store.get(record.id).resolution_action
    assert outcomes.count(winner) == 1
