from datetime import timedelta

from app.conflict_tables import MIN_CONFIDENCE
from app.decision_conflicts import (
    detect_conflict,
    detect_conflicts_in_list,
    detect_objective_undermining,
    detect_premise_invalidation,
    detect_resource_competition,
)
from app.schemas import ConflictType

from conftest import NOW, make_assumption, make_decision


def test_technical_architecture_technology_clash():
    a = make_decision("d1", title="Use PostgreSQL for orders", category="Technical Architecture",
                      parameters={"component": "Database", "technology": "PostgreSQL"})
    b = make_decision("d2", title="Use MongoDB for orders", category="Technical Architecture",
                      parameters={"component": "Database", "technology": "MongoDB"})

    conflict = detect_conflict(a, b)

    assert conflict is not None
    assert conflict.strategy.startswith("structured:")
    assert 0.89 <= conflict.confidence_score <= 0.93


def test_resource_competition_with_amounts():
    a = make_decision("d1", title="Allocate $200k budget to the Q3 campaign")
    b = make_decision("d2", title="Spend $150k of the budget on new tooling")

    conflict = detect_resource_competition(a, b, {})

    assert conflict.conflict_type == ConflictType.RESOURCE_COMPETITION
    assert conflict.confidence_score == 0.85


def test_resource_competition_without_amounts():
    a = make_decision("d1", title="Allocate budget to the campaign")
    b = make_decision("d2", title="Spend budget on tooling")

    assert detect_resource_competition(a, b, {}).confidence_score == 0.70


def test_resource_mention_without_allocation_is_not_competition():
    a = make_decision("d1", title="Review the budget process")
    b = make_decision("d2", title="Publish the budget report")
    assert detect_resource_competition(a, b, {}) is None


def test_contradictory_actions():
    a = make_decision("d1", title="Expand the customer support team in Europe")
    b = make_decision("d2", title="Reduce the customer support team in Europe")

    conflict = detect_conflict(a, b)

    assert conflict.strategy == "contradictory_actions"
    assert conflict.conflict_type == ConflictType.CONTRADICTORY
    assert conflict.confidence_score == 0.80


def test_contradictory_actions_need_shared_context():
    a = make_decision("d1", title="Expand warehouse shifts")
    b = make_decision("d2", title="Reduce marketing newsletters")
    assert detect_conflict(a, b) is None


def test_objective_undermining_phrase():
    a = make_decision("d1", title="Reduce spending across all departments")
    b = make_decision("d2", title="Hire more sales staff this year")

    conflict = detect_objective_undermining(a, b, {})

    assert conflict.conflict_type == ConflictType.OBJECTIVE_UNDERMINING
    assert conflict.confidence_score == 0.82


def test_premise_invalidation_from_linked_assumptions():
    older = make_decision("d-b", title="Adopt Kubernetes for container orchestration",
                          created_at=NOW - timedelta(days=200))
    newer = make_decision("d-a", title="Replace Kubernetes orchestration with a managed serverless platform",
                          created_at=NOW - timedelta(days=5))
    assumptions = {"d-b": [make_assumption("a1", "Kubernetes orchestration expertise exists in-house")]}

    conflict = detect_premise_invalidation(newer, older, assumptions)

    assert conflict.conflict_type == ConflictType.PREMISE_INVALIDATION
    assert conflict.confidence_score == 0.80
    assert conflict.invalidated_decision_id == "d-b"
    assert conflict.invalidating_decision_id == "d-a"


def test_premise_invalidation_from_text_only():
    older = make_decision("d1", title="Adopt Kubernetes for container orchestration",
                          created_at=NOW - timedelta(days=200))
    newer = make_decision("d2", title="Replace Kubernetes orchestration with a managed serverless platform",
                          created_at=NOW - timedelta(days=5))

    conflict = detect_premise_invalidation(older, newer, {})

    assert conflict.confidence_score == 0.75
    assert conflict.invalidated_decision_id == "d1"


def test_premise_invalidation_needs_distinct_creation_times():
    older = make_decision("d1", title="Adopt Kubernetes for container orchestration", created_at=NOW)
    newer = make_decision("d2", title="Replace Kubernetes orchestration entirely", created_at=NOW)
    assert detect_premise_invalidation(older, newer, {}) is None


def test_structured_strategy_wins_over_text():
    a = make_decision("d1", title="Increase marketing budget", category="Budget",
                      parameters={"direction": "Increase", "resourceType": "Marketing", "timeframe": "Q3 2026"})
    b = make_decision("d2", title="Decrease marketing budget", category="Budget",
                      parameters={"direction": "Decrease", "resourceType": "Marketing", "timeframe": "Q3 2026"})

    conflict = detect_conflict(a, b)

    assert conflict.strategy == "structured:budget_direction"
    assert conflict.confidence_score == 0.94


def test_list_detection_is_order_independent_and_idempotent():
    decisions = [
        make_decision("d3", title="Expand the customer support team in Europe"),
        make_decision("d1", title="Reduce the customer support team in Europe"),
        make_decision("d2", title="Reduce spending across all departments"),
        make_decision("d4", title="Hire more sales staff this year"),
    ]

    forward = detect_conflicts_in_list(decisions)
    backward = detect_conflicts_in_list(list(reversed(decisions)))

    assert forward == backward
    assert forward == detect_conflicts_in_list(decisions)
    assert all(p.decision_a.id < p.decision_b.id for p in forward)
    assert all(p.conflict.confidence_score >= MIN_CONFIDENCE for p in forward)
    assert ("d1", "d3") in {(p.decision_a.id, p.decision_b.id) for p in forward}


def test_duplicate_ids_first_occurrence_wins():
    first = make_decision("d1", title="Expand the customer support team in Europe")
    shadow = make_decision("d1", title="Something unrelated")
    other = make_decision("d2", title="Reduce the customer support team in Europe")

    pairs = detect_conflicts_in_list([first, shadow, other])

    assert len(pairs) == 1
    assert pairs[0].decision_a.title == first.title
