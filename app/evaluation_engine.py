"""
Deterministic Evaluation Engine - pure health/lifecycle computation, NO I/O.

Philosophy: Same input → same output. The engine highlights when human
judgment is needed; it never reads the clock, the store, or the network.

Pipeline (health clamped to [0, 100] after every step):
1. Start from the decision's baseline health (recomputed, never compounded)
2. Assumption penalties (BROKEN > SHAKY; VALID may recover)
3. Constraint penalties (immutable > mutable; unreadable rules are warnings)
4. Dependency propagation (damped pull toward the weakest upstream)
5. Time decay (review staleness bands, expiry)
6. Lifecycle transition (thresholds, or INVALIDATED on a hard condition)

INVALIDATED and RETIRED are terminal: evaluating them always returns
"no change".
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from app.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from app.constraint_rules import RuleOutcome, evaluate_constraint
from app.errors import RULE_EVALUATION_WARNING, InputValidationError
from app.schemas import (
    TERMINAL_LIFECYCLES,
    VALID_EQUIVALENT_STATUSES,
    AssumptionScope,
    AssumptionStatus,
    DecisionLifecycle,
    EvaluationInput,
    EvaluationResult,
    TraceEntry,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class _Evaluation:
    """Mutable scratchpad for a single evaluate() call."""

    def __init__(self, health: float):
        self.health = float(health)
        self.trace: list[TraceEntry] = []
        self.invalidation_reasons: list[str] = []

    def adjust(self, factor: str, delta: float, detail: str) -> None:
        """Apply delta, clamp, and record the delta actually applied."""
        before = self.health
        self.health = _clamp(self.health + delta)
        self.trace.append(TraceEntry(factor=factor, delta=round(self.health - before, 2), detail=detail))

    def note(self, factor: str, detail: str) -> None:
        self.trace.append(TraceEntry(factor=factor, delta=0.0, detail=detail))

    def invalidate(self, factor: str, reason: str) -> None:
        self.invalidation_reasons.append(reason)
        self.note(factor, reason)


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _to_signal(value: float) -> int:
    """Round half up into an int health signal."""
    return int(math.floor(_clamp(value) + 0.5))


def _as_utc(ts: datetime) -> datetime:
    """Naive timestamps are taken to be UTC so mixed inputs stay comparable."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _days_between(earlier: datetime, later: datetime) -> float:
    return (_as_utc(later) - _as_utc(earlier)).total_seconds() / SECONDS_PER_DAY


# ==================== STEP 2: ASSUMPTIONS ====================

def apply_assumptions(ev: _Evaluation, evaluation_input: EvaluationInput, config: EngineConfig) -> None:
    for assumption in evaluation_input.assumptions:
        status = assumption.status
        label = assumption.description[:80] or assumption.id

        if status == AssumptionStatus.BROKEN:
            ev.adjust(
                "assumption_broken",
                -config.broken_assumption_penalty,
                f'Assumption "{label}" is BROKEN',
            )
            if (config.invalidate_on_broken_universal_assumption
                    and assumption.scope == AssumptionScope.UNIVERSAL):
                ev.invalidate(
                    "universal_assumption_broken",
                    f'Universal assumption "{label}" is broken',
                )
        elif status == AssumptionStatus.SHAKY:
            ev.adjust(
                "assumption_shaky",
                -config.shaky_assumption_penalty,
                f'Assumption "{label}" is SHAKY',
            )
        elif status in VALID_EQUIVALENT_STATUSES:
            if config.valid_assumption_recovery > 0 and ev.health < 100:
                ev.adjust(
                    "assumption_recovery",
                    config.valid_assumption_recovery,
                    f'Assumption "{label}" holds',
                )
        else:
            logger.debug(f"Assumption {assumption.id} has unrecognized status {status!r}; no signal")


# ==================== STEP 3: CONSTRAINTS ====================

def apply_constraints(ev: _Evaluation, evaluation_input: EvaluationInput, config: EngineConfig) -> None:
    decision = evaluation_input.decision
    for constraint in evaluation_input.constraints:
        result = evaluate_constraint(constraint, decision)

        if result.outcome == RuleOutcome.UNKNOWN:
            ev.note(
                RULE_EVALUATION_WARNING,
                f'Constraint "{constraint.name}" could not be evaluated: {result.reason}',
            )
            continue

        if result.outcome != RuleOutcome.VIOLATED:
            continue

        if constraint.is_immutable:
            ev.adjust(
                "immutable_constraint_violation",
                -config.immutable_constraint_penalty,
                f'Immutable constraint "{constraint.name}" violated: {result.reason}',
            )
            if constraint.invalidating or config.invalidate_on_immutable_violation:
                ev.invalidate(
                    "constraint_invalidation",
                    f'Immutable constraint "{constraint.name}" violated: {result.reason}',
                )
        else:
            ev.adjust(
                "constraint_violation",
                -config.constraint_penalty,
                f'Constraint "{constraint.name}" violated: {result.reason}',
            )


# ==================== STEP 4: DEPENDENCIES ====================

def apply_dependencies(ev: _Evaluation, evaluation_input: EvaluationInput, config: EngineConfig) -> None:
    upstream = [d for d in evaluation_input.dependencies if d.lifecycle != DecisionLifecycle.RETIRED]
    if not upstream:
        return

    if config.cascade_invalidation:
        for dep in upstream:
            if dep.lifecycle == DecisionLifecycle.INVALIDATED:
                ev.invalidate(
                    "dependency_invalidated",
                    f'Depends on invalidated decision "{dep.title or dep.id}"',
                )

    healths = [d.health_signal for d in upstream]
    if config.dependency_aggregation == "average":
        target = sum(healths) / len(healths)
        basis = f"average upstream health {target:.1f}"
    else:
        target = min(healths)
        weakest = min(upstream, key=lambda d: (d.health_signal, d.id))
        basis = f'weakest upstream "{weakest.title or weakest.id}" at {target}'

    if target >= ev.health:
        return

    pull = (ev.health - target) * config.propagation_damping
    ev.adjust(
        "dependency_propagation",
        -pull,
        f"Pulled toward {basis} (damping {config.propagation_damping:g})",
    )


# ==================== STEP 5: TIME DECAY ====================

def apply_time_decay(ev: _Evaluation, evaluation_input: EvaluationInput, config: EngineConfig) -> None:
    decision = evaluation_input.decision
    now = evaluation_input.current_timestamp

    days_since_review = _days_between(decision.last_reviewed_at, now)
    band_penalty = 0.0
    band_days = 0
    for days, penalty in config.staleness_bands:
        if days_since_review > days:
            band_penalty, band_days = penalty, days
    if band_penalty > 0:
        ev.adjust(
            "review_staleness",
            -band_penalty,
            f"{int(days_since_review)} days since last review (over {band_days}-day band)",
        )

    if decision.expiry_date is None:
        return

    days_past_expiry = _days_between(decision.expiry_date, now)
    if days_past_expiry <= 0:
        return

    ev.adjust(
        "expiry",
        -config.expiry_penalty,
        f"Decision expired {int(days_past_expiry)} day(s) ago",
    )
    if days_past_expiry > config.expiry_grace_days:
        ev.invalidate(
            "expiry_grace_exceeded",
            f"Expired {int(days_past_expiry)} days ago, beyond the {config.expiry_grace_days}-day grace period",
        )


# ==================== STEP 6: LIFECYCLE ====================

def determine_lifecycle(health: int, config: EngineConfig) -> DecisionLifecycle:
    """Reversible threshold-driven states. Health alone never invalidates."""
    if health >= config.stable_threshold:
        return DecisionLifecycle.STABLE
    if health >= config.at_risk_threshold:
        return DecisionLifecycle.UNDER_REVIEW
    return DecisionLifecycle.AT_RISK


# ==================== MAIN EVALUATION FUNCTION ====================

def evaluate(evaluation_input: EvaluationInput, config: Optional[EngineConfig] = None) -> EvaluationResult:
    """
    DETERMINISTIC DECISION EVALUATION.

    Args:
        evaluation_input: Decision plus linked assumptions, constraints,
            upstream dependencies and the timestamp to evaluate at
        config: Penalty/threshold configuration (defaults if None)

    Returns:
        EvaluationResult with the proposed health, lifecycle and trace
    """
    config = config or DEFAULT_ENGINE_CONFIG
    decision = evaluation_input.decision

    if decision.lifecycle in TERMINAL_LIFECYCLES:
        return EvaluationResult(
            decision_id=decision.id,
            new_health_signal=decision.health_signal,
            new_lifecycle=decision.lifecycle,
            invalidated_reason=decision.invalidated_reason,
            trace=[TraceEntry(
                factor="terminal_state",
                delta=0.0,
                detail=f"Lifecycle {decision.lifecycle.value} is terminal; no re-evaluation",
            )],
            changes_detected=False,
        )

    ev = _Evaluation(decision.baseline_health)

    apply_assumptions(ev, evaluation_input, config)
    apply_constraints(ev, evaluation_input, config)
    apply_dependencies(ev, evaluation_input, config)
    apply_time_decay(ev, evaluation_input, config)

    invalidated_reason = None
    if ev.invalidation_reasons:
        invalidated_reason = "; ".join(ev.invalidation_reasons)
        if ev.health > 0:
            ev.adjust("invalidation", -ev.health, "Hard invalidation zeroes the health signal")
        new_health = 0
        new_lifecycle = DecisionLifecycle.INVALIDATED
    else:
        new_health = _to_signal(ev.health)
        new_lifecycle = determine_lifecycle(new_health, config)

    ev.note(
        "lifecycle",
        f"Health {decision.health_signal} → {new_health}; "
        f"lifecycle {decision.lifecycle.value} → {new_lifecycle.value}",
    )

    changes_detected = (
        new_lifecycle != decision.lifecycle
        or new_health != decision.health_signal
    )

    logger.debug(
        f"[{decision.id}] evaluated: health={new_health} lifecycle={new_lifecycle.value} "
        f"changed={changes_detected}"
    )

    return EvaluationResult(
        decision_id=decision.id,
        new_health_signal=new_health,
        new_lifecycle=new_lifecycle,
        invalidated_reason=invalidated_reason,
        trace=ev.trace,
        changes_detected=changes_detected,
    )


def evaluate_payload(payload: dict, config: Optional[EngineConfig] = None) -> EvaluationResult:
    """
    Validate a raw payload and evaluate it.

    Raises:
        InputValidationError: payload is structurally invalid (nothing is computed)
    """
    try:
        evaluation_input = EvaluationInput.model_validate(payload)
    except ValidationError as e:
        raise InputValidationError.from_pydantic(e, "evaluation input") from e
    return evaluate(evaluation_input, config)
