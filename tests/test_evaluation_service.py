import pytest

from app.errors import EntityNotFoundError
from app.repositories import decision_store, notification_store
from app.schemas import DecisionLifecycle
from app.services import assumption_service, evaluation_service

from conftest import make_assumption, make_decision


def _store_decision_with_assumption(decision_id, status="VALID", health=95, **overrides):
    decision_store.save_decision(make_decision(decision_id, health_signal=health, **overrides))
    assumption = decision_store.save_assumption(make_assumption(f"{decision_id}-a", status=status))
    decision_store.link_assumption(decision_id, assumption.id)
    return assumption


def test_evaluate_persists_changes_and_notifies(clock, config):
    _store_decision_with_assumption("d1", status="BROKEN")

    result = evaluation_service.evaluate_decision("d1", clock, config)

    stored = decision_store.get_decision("d1")
    assert stored.health_signal == result.new_health_signal == 65
    assert stored.lifecycle == DecisionLifecycle.UNDER_REVIEW
    evaluated_at, last = decision_store.last_evaluation("d1")
    assert last == result
    assert evaluated_at == clock.now().isoformat()

    notes = notification_store.list_notifications()
    assert len(notes) == 1
    assert notes[0].decision_id == "d1"


def test_health_only_change_is_silent(clock, config):
    _store_decision_with_assumption("d1", status="SHAKY")

    evaluation_service.evaluate_decision("d1", clock, config)

    assert decision_store.get_decision("d1").health_signal == 85
    assert notification_store.list_notifications() == []


def test_evaluate_missing_decision_raises(clock, config):
    with pytest.raises(EntityNotFoundError):
        evaluation_service.evaluate_decision("nope", clock, config)


def test_batch_isolates_failures(clock, config, monkeypatch):
    for decision_id in ("d1", "d2", "d3"):
        _store_decision_with_assumption(decision_id, status="BROKEN")

    real_evaluate = evaluation_service.evaluate

    def flaky(evaluation_input, cfg):
        if evaluation_input.decision.id == "d2":
            raise RuntimeError("engine exploded")
        return real_evaluate(evaluation_input, cfg)

    monkeypatch.setattr(evaluation_service, "evaluate", flaky)

    report = evaluation_service.reevaluate_decisions(["d1", "d2", "missing", "d3"], clock, config)

    assert report.evaluated == ["d1", "d3"]
    assert report.updated == ["d1", "d3"]
    assert {(f.decision_id, f.stage) for f in report.failures} == {("d2", "evaluate"), ("missing", "load")}
    assert report.summary() == "2 of 4 decisions updated; 2 failed, see log"
    assert decision_store.get_decision("d2").health_signal == 95


def test_batch_evaluates_upstream_first(clock, config):
    _store_decision_with_assumption("z-up", status="BROKEN", health=60)
    decision_store.save_decision(make_decision("a-down", health_signal=90))
    decision_store.add_dependency("a-down", "z-up")

    report = evaluation_service.reevaluate_decisions(["a-down", "z-up"], clock, config)

    assert report.evaluated == ["z-up", "a-down"]
    assert decision_store.get_decision("z-up").health_signal == 30
    assert decision_store.get_decision("a-down").health_signal == 60


def test_dependency_cycle_does_not_hang(clock, config):
    decision_store.save_decision(make_decision("d1"))
    decision_store.save_decision(make_decision("d2"))
    decision_store.add_dependency("d1", "d2")
    decision_store.add_dependency("d2", "d1")

    report = evaluation_service.reevaluate_decisions(["d1", "d2"], clock, config)

    assert sorted(report.evaluated) == ["d1", "d2"]


def test_long_dependency_chain_is_ordered_without_recursion(clock, config):
    ids = [f"d{i:04d}" for i in range(1500)]
    for decision_id in ids:
        decision_store.save_decision(make_decision(decision_id))
    for downstream, upstream in zip(ids, ids[1:]):
        decision_store.add_dependency(downstream, upstream)

    report = evaluation_service.reevaluate_decisions(ids, clock, config)

    assert report.failures == []
    assert report.evaluated == list(reversed(ids))


def test_repeated_evaluation_is_stable_and_recovers(clock, config):
    _store_decision_with_assumption("d1", status="BROKEN", health=100)

    results = [evaluation_service.evaluate_decision("d1", clock, config) for _ in range(4)]

    assert [(r.new_health_signal, r.new_lifecycle) for r in results] == [(70, DecisionLifecycle.STABLE)] * 4
    assert [r.changes_detected for r in results] == [True, False, False, False]

    assumption_service.update_status("d1-a", "VALID", clock, config)

    stored = decision_store.get_decision("d1")
    assert stored.health_signal == 100
    assert stored.lifecycle == DecisionLifecycle.STABLE


def test_lifecycle_moves_back_when_the_assumption_holds_again(clock, config):
    _store_decision_with_assumption("d1", status="BROKEN", health=95)

    evaluation_service.evaluate_decision("d1", clock, config)
    assert decision_store.get_decision("d1").lifecycle == DecisionLifecycle.UNDER_REVIEW

    assumption_service.update_status("d1-a", "VALID", clock, config)

    assert decision_store.get_decision("d1").health_signal == 95
    assert decision_store.get_decision("d1").lifecycle == DecisionLifecycle.STABLE


def test_terminal_decision_is_left_alone(clock, config):
    _store_decision_with_assumption("d1", status="BROKEN", health=10, lifecycle=DecisionLifecycle.RETIRED)

    report = evaluation_service.reevaluate_decisions(["d1"], clock, config)

    assert report.evaluated == ["d1"]
    assert report.updated == []
    assert decision_store.get_decision("d1").health_signal == 10


def test_assumption_status_change_reevaluates_linked_decisions(clock, config):
    assumption = decision_store.save_assumption(make_assumption("shared"))
    for decision_id in ("d1", "d2"):
        decision_store.save_decision(make_decision(decision_id, health_signal=95))
        decision_store.link_assumption(decision_id, assumption.id)
    decision_store.save_decision(make_decision("d3", health_signal=95))

    updated, report = assumption_service.update_status("shared", "BROKEN", clock, config)

    assert updated.status == "BROKEN"
    assert updated.validated_at == clock.now()
    assert report.updated == ["d1", "d2"]
    assert decision_store.get_decision("d3").health_signal == 95


def test_unchanged_status_is_a_noop(clock, config):
    _store_decision_with_assumption("d1", status="BROKEN")

    _, report = assumption_service.update_status("d1-a", "BROKEN", clock, config)

    assert report.total == 0
    assert decision_store.get_decision("d1").health_signal == 95


def test_unknown_assumption_raises(clock, config):
    with pytest.raises(EntityNotFoundError):
        assumption_service.update_status("nope", "VALID", clock, config)
