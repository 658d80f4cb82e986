from app.assumption_conflicts import detect_conflict, detect_conflicts_in_list
from app.conflict_tables import MIN_CONFIDENCE
from app.schemas import ConflictType

from conftest import make_assumption


def _budget_pair():
    a = make_assumption(
        "a-1", "Marketing budget goes up in Q3", category="Budget",
        parameters={"direction": "Increase", "resourceType": "Marketing", "timeframe": "Q3 2026"},
    )
    b = make_assumption(
        "a-2", "Marketing budget goes down in Q3", category="Budget",
        parameters={"direction": "Decrease", "resourceType": "Marketing", "timeframe": "Q3 2026"},
    )
    return a, b


def test_structured_budget_contradiction():
    a, b = _budget_pair()
    pairs = detect_conflicts_in_list([a, b])

    assert len(pairs) == 1
    conflict = pairs[0].conflict
    assert conflict.conflict_type == ConflictType.CONTRADICTORY
    assert conflict.confidence_score >= 0.90
    assert conflict.strategy == "structured:budget_direction"


def test_detection_is_order_independent_and_canonical():
    a, b = _budget_pair()
    forward = detect_conflicts_in_list([a, b])
    backward = detect_conflicts_in_list([b, a])

    assert forward == backward
    assert (forward[0].assumption_a.id, forward[0].assumption_b.id) == ("a-1", "a-2")
    assert detect_conflict(a, b) == detect_conflict(b, a)


def test_detection_is_idempotent():
    a, b = _budget_pair()
    c = make_assumption("a-3", "Office space will remain available next year")
    d = make_assumption("a-4", "Office space will be unavailable next year")
    items = [a, b, c, d]

    assert detect_conflicts_in_list(items) == detect_conflicts_in_list(items)


def test_duplicate_ids_are_checked_once():
    a, b = _budget_pair()
    pairs = detect_conflicts_in_list([a, b, a, b])
    assert len(pairs) == 1


def test_self_pair_is_ignored():
    a, _ = _budget_pair()
    assert detect_conflict(a, a) is None


def test_text_antonyms_with_shared_context():
    a = make_assumption("t1", "Customer demand for the premium plan will increase next quarter")
    b = make_assumption("t2", "Customer demand for the premium plan will decrease next quarter")

    conflict = detect_conflict(a, b)

    assert conflict is not None
    assert conflict.strategy == "text"
    assert conflict.conflict_type == ConflictType.CONTRADICTORY
    assert MIN_CONFIDENCE <= conflict.confidence_score <= 0.85


def test_text_state_pair_is_incompatible():
    a = make_assumption("s1", "Office space will remain available next year")
    b = make_assumption("s2", "Office space will be unavailable next year")

    conflict = detect_conflict(a, b)

    assert conflict.conflict_type == ConflictType.INCOMPATIBLE


def test_antonyms_without_shared_context_are_ignored():
    a = make_assumption("u1", "Prices increase")
    b = make_assumption("u2", "Churn will decrease")
    assert detect_conflict(a, b) is None


def test_unrelated_assumptions_do_not_conflict():
    a = make_assumption("r1", "Competitors will not enter the Nordic market")
    b = make_assumption("r2", "Our cloud provider keeps current pricing")
    assert detect_conflicts_in_list([a, b]) == []


def test_every_reported_conflict_meets_the_floor():
    items = [
        make_assumption("x1", "Hiring engineers will increase delivery speed"),
        make_assumption("x2", "Hiring engineers will decrease delivery speed"),
        make_assumption("x3", "Budget approval is required", category="Budget",
                        parameters={"outcome": "Approval Required"}),
        make_assumption("x4", "Budget approval was denied", category="Budget",
                        parameters={"outcome": "Approval Denied"}),
        make_assumption("x5", "Nothing in common here"),
    ]
    pairs = detect_conflicts_in_list(items)

    assert pairs
    assert all(p.conflict.confidence_score >= MIN_CONFIDENCE for p in pairs)


def test_empty_and_single_inputs():
    a, _ = _budget_pair()
    assert detect_conflicts_in_list([]) == []
    assert detect_conflicts_in_list([a]) == []
