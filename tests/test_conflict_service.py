import pytest

from app.errors import ConflictStateError, EntityNotFoundError, InputValidationError
from app.notifications import ASSUMPTION_CONFLICT, DECISION_CONFLICT
from app.repositories import conflict_store, decision_store, notification_store
from app.schemas import AssumptionStatus, DecisionLifecycle
from app.services import conflict_service

from conftest import make_assumption, make_decision


ORG = "org-1"


def _budget_assumptions(org=ORG):
    decision_store.save_assumption(make_assumption(
        "a-1", "Marketing budget goes up", category="Budget", organization_id=org,
        parameters={"direction": "Increase", "resourceType": "Marketing", "timeframe": "Q3 2026"},
    ))
    decision_store.save_assumption(make_assumption(
        "a-2", "Marketing budget goes down", category="Budget", organization_id=org,
        parameters={"direction": "Decrease", "resourceType": "Marketing", "timeframe": "Q3 2026"},
    ))


def _conflicting_decisions(org=ORG):
    decision_store.save_decision(make_decision(
        "d1", title="Expand the customer support team in Europe", organization_id=org, health_signal=95,
    ))
    decision_store.save_decision(make_decision(
        "d2", title="Reduce the customer support team in Europe", organization_id=org, health_signal=95,
    ))


class _FakeLLM:
    def __init__(self, fail=False):
        self.calls = 0
        self.fail = fail

    def explain_decision_conflict(self, **kwargs):
        self.calls += 1
        if self.fail:
            raise RuntimeError("rate limited")
        return f"AI: {kwargs['title_a']} vs {kwargs['title_b']}"


# ── Assumption conflicts ─────────────────────────────────────────────────────

def test_detection_persists_once_and_notifies(clock):
    _budget_assumptions()

    first = conflict_service.detect_assumption_conflicts(ORG, clock)
    second = conflict_service.detect_assumption_conflicts(ORG, clock)

    assert (first.scanned, first.detected, len(first.created)) == (2, 1, 1)
    assert (len(second.created), second.already_known) == (0, 1)
    assert len(conflict_store.list_conflicts(conflict_store.ASSUMPTION, ORG)) == 1
    assert [n.type for n in notification_store.list_notifications(ORG)] == [ASSUMPTION_CONFLICT]


def test_detection_is_scoped_to_the_organization(clock):
    decision_store.save_assumption(make_assumption(
        "a-1", category="Budget", organization_id="org-1",
        parameters={"direction": "Increase", "resourceType": "Marketing"},
    ))
    decision_store.save_assumption(make_assumption(
        "a-2", category="Budget", organization_id="org-2",
        parameters={"direction": "Decrease", "resourceType": "Marketing"},
    ))

    assert conflict_service.detect_assumption_conflicts("org-1", clock).detected == 0


def test_validate_a_breaks_b_and_reevaluates(clock, config):
    _budget_assumptions()
    decision_store.save_decision(make_decision("d1", health_signal=95, organization_id=ORG))
    decision_store.link_assumption("d1", "a-2")
    record = conflict_service.detect_assumption_conflicts(ORG, clock).created[0]

    resolved, report = conflict_service.resolve_assumption_conflict(
        record.id, "VALIDATE_A", "Finance confirmed the increase", ORG, clock, config,
    )

    assert resolved.resolution_action == "VALIDATE_A"
    assert resolved.is_resolved
    assert decision_store.get_assumption("a-1").status == AssumptionStatus.VALID
    assert decision_store.get_assumption("a-2").status == AssumptionStatus.BROKEN
    assert report.updated == ["d1"]
    assert decision_store.get_decision("d1").health_signal == 65


def test_keep_both_changes_nothing(clock, config):
    _budget_assumptions()
    record = conflict_service.detect_assumption_conflicts(ORG, clock).created[0]

    _, report = conflict_service.resolve_assumption_conflict(record.id, "KEEP_BOTH", None, ORG, clock, config)

    assert report.total == 0
    assert decision_store.get_assumption("a-2").status == AssumptionStatus.VALID


def test_resolution_errors(clock, config):
    _budget_assumptions()
    record = conflict_service.detect_assumption_conflicts(ORG, clock).created[0]

    with pytest.raises(InputValidationError):
        conflict_service.resolve_assumption_conflict(record.id, "PRIORITIZE_A", None, ORG, clock, config)
    with pytest.raises(EntityNotFoundError):
        conflict_service.resolve_assumption_conflict("missing", "MERGE", None, ORG, clock, config)
    with pytest.raises(EntityNotFoundError):
        conflict_service.resolve_assumption_conflict(record.id, "MERGE", None, "org-2", clock, config)

    conflict_service.resolve_assumption_conflict(record.id, "MERGE", None, ORG, clock, config)
    with pytest.raises(ConflictStateError):
        conflict_service.resolve_assumption_conflict(record.id, "MERGE", None, ORG, clock, config)


def test_resolved_conflict_is_not_recreated(clock, config):
    _budget_assumptions()
    record = conflict_service.detect_assumption_conflicts(ORG, clock).created[0]
    conflict_service.resolve_assumption_conflict(record.id, "KEEP_BOTH", None, ORG, clock, config)

    again = conflict_service.detect_assumption_conflicts(ORG, clock)

    assert again.already_known == 1
    assert again.created == []


def test_deleted_conflict_stays_dismissed(clock):
    _budget_assumptions()
    record = conflict_service.detect_assumption_conflicts(ORG, clock).created[0]

    conflict_service.delete_conflict(record.id, conflict_store.ASSUMPTION, ORG)
    again = conflict_service.detect_assumption_conflicts(ORG, clock)

    assert again.dismissed == 1
    assert again.created == []
    assert conflict_store.list_conflicts(conflict_store.ASSUMPTION, ORG) == []


def test_conflict_kind_must_match(clock):
    _budget_assumptions()
    record = conflict_service.detect_assumption_conflicts(ORG, clock).created[0]

    with pytest.raises(EntityNotFoundError):
        conflict_service.get_conflict(record.id, conflict_store.DECISION, ORG)


# ── Decision conflicts ───────────────────────────────────────────────────────

def test_decision_detection_skips_terminal_decisions(clock):
    _conflicting_decisions()
    decision_store.update_decision("d2", lifecycle=DecisionLifecycle.RETIRED)

    report = conflict_service.detect_decision_conflicts(ORG, clock)

    assert report.scanned == 1
    assert report.detected == 0


def test_ai_explanation_only_for_new_conflicts(clock):
    _conflicting_decisions()
    llm = _FakeLLM()

    report = conflict_service.detect_decision_conflicts(ORG, clock, llm_client=llm)
    conflict_service.detect_decision_conflicts(ORG, clock, llm_client=llm)

    assert llm.calls == 1
    record = conflict_store.get(report.created[0].id)
    assert record.ai_generated is True
    assert record.explanation.startswith("AI:")
    assert [n.type for n in notification_store.list_notifications(ORG)] == [DECISION_CONFLICT]


def test_llm_failure_keeps_deterministic_explanation(clock):
    _conflicting_decisions()

    report = conflict_service.detect_decision_conflicts(ORG, clock, llm_client=_FakeLLM(fail=True))

    record = report.created[0]
    assert record.ai_generated is False
    assert record.explanation.startswith("Direct contradiction")


def test_deprecate_both_invalidates_and_cascades(clock, config):
    _conflicting_decisions()
    decision_store.save_decision(make_decision("d3", health_signal=90, organization_id=ORG))
    decision_store.add_dependency("d3", "d1")
    record = conflict_service.detect_decision_conflicts(ORG, clock).created[0]

    resolved, report = conflict_service.resolve_decision_conflict(
        record.id, "DEPRECATE_BOTH", "Merged into a single plan", ORG, clock, config,
    )

    for decision_id in ("d1", "d2"):
        decision = decision_store.get_decision(decision_id)
        assert decision.lifecycle == DecisionLifecycle.INVALIDATED
        assert decision.health_signal == 0
        assert "Merged into a single plan" in decision.invalidated_reason
    assert decision_store.get_decision("d3").lifecycle == DecisionLifecycle.INVALIDATED
    assert report.updated == ["d1", "d2", "d3"]
    assert resolved.resolution_action == "DEPRECATE_BOTH"


def test_prioritize_reevaluates_the_pair(clock, config):
    _conflicting_decisions()
    record = conflict_service.detect_decision_conflicts(ORG, clock).created[0]

    _, report = conflict_service.resolve_decision_conflict(record.id, "PRIORITIZE_A", None, ORG, clock, config)

    assert report.evaluated == ["d1", "d2"]
    assert decision_store.get_decision("d1").lifecycle == DecisionLifecycle.STABLE


def test_decision_action_set_is_enforced(clock, config):
    _conflicting_decisions()
    record = conflict_service.detect_decision_conflicts(ORG, clock).created[0]

    with pytest.raises(InputValidationError):
        conflict_service.resolve_decision_conflict(record.id, "VALIDATE_A", None, ORG, clock, config)
