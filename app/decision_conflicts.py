"""
Decision Conflict Detector - finds decisions working against each other.

Strategies, in priority order; the first match at or above MIN_CONFIDENCE
wins and nothing stacks:
1. Structured parameters (shared category table)    0.78-0.96
2. Resource competition                             0.70-0.85
3. Contradictory actions                            0.80
4. Objective undermining                            0.75-0.82
5. Premise invalidation (newer vs older decision)   0.70-0.80

Lifecycle filtering is the caller's job. The detector never calls out to
an LLM; explanation rewriting happens in app/services/conflict_service.py.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from app.conflict_tables import (
    MIN_CONFIDENCE,
    compare_structured,
    contains_word,
    find_opposing_terms,
    has_negation,
    key_entities,
    tokenize,
)
from app.schemas import Assumption, ConflictType, Decision, DecisionConflict, DecisionConflictPair

logger = logging.getLogger(__name__)

AssumptionsByDecision = dict[str, list[Assumption]]


RESOURCE_KEYWORDS = [
    "budget", "money", "cost", "spending", "expense", "investment", "fund",
    "hire", "headcount", "staff", "team", "employee", "personnel", "time",
    "resource", "capacity", "bandwidth", "space", "office", "facility", "equipment",
]

ALLOCATION_KEYWORDS = ["allocate", "use", "spend", "invest", "assign", "dedicate", "commit"]

ACTION_CONFLICTS = [
    ("increase", "decrease"),
    ("reduce", "expand"),
    ("hire", "layoff"),
    ("add", "remove"),
    ("start", "stop"),
    ("create", "delete"),
    ("build", "dismantle"),
    ("grow", "shrink"),
    ("accelerate", "slow"),
    ("prioritize", "deprioritize"),
    ("invest", "divest"),
    ("acquire", "sell"),
    ("centralize", "decentralize"),
]

GOAL_KEYWORDS = ["goal", "objective", "target", "aim", "purpose", "outcome", "result", "achieve"]

# Objective phrases that pull in opposite directions.
UNDERMINING_PHRASES = [
    ("reduce spending", "hire more"),
    ("reduce spending", "increase headcount"),
    ("cut costs", "expand the team"),
    ("cut costs", "hire more"),
    ("freeze hiring", "hire more"),
    ("improve quality", "ship faster"),
    ("increase stability", "move fast"),
    ("consolidate vendors", "add vendors"),
]

UNDERMINING_WORDS = [
    ("improve", "reduce"),
    ("enhance", "cut"),
    ("optimize", "sacrifice"),
    ("quality", "speed"),
    ("growth", "stability"),
    ("innovation", "standardize"),
]

INVALIDATION_KEYWORDS = [
    "replace", "supersede", "cancel", "reverse", "obsolete", "deprecate",
    "override", "nullify", "void", "abandon",
]

RESOURCE_BASE = 0.70
RESOURCE_QUANTIFIED = 0.85
RESOURCE_MULTI_BONUS = 0.05
RESOURCE_MAX = 0.85
ACTION_CONFIDENCE = 0.80
ACTION_MIN_SHARED = 2
UNDERMINING_PHRASE_CONFIDENCE = 0.82
UNDERMINING_WORD_CONFIDENCE = 0.75
UNDERMINING_BOTH_GOALS_CONFIDENCE = 0.78
PREMISE_ASSUMPTION_CONFIDENCE = 0.80
PREMISE_TEXT_CONFIDENCE = 0.75
PREMISE_NEGATION_CONFIDENCE = 0.70
PREMISE_MIN_SHARED = 2
PREMISE_NEGATION_MIN_SHARED = 3
PREMISE_WORD_LENGTH = 5

_DIGITS = re.compile(r"\d")


def _text(decision: Decision) -> str:
    return f"{decision.title} {decision.description or ''}".lower()


def _matched(tokens: list[str], keywords: Iterable[str]) -> list[str]:
    return [k for k in keywords if contains_word(tokens, k)]


def _has_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


# ==================== STRATEGY 1: STRUCTURED ====================

def detect_structured(a: Decision, b: Decision, _assumptions: AssumptionsByDecision) -> Optional[DecisionConflict]:
    match = compare_structured(a.category, a.parameters, b.category, b.parameters)
    if match is None:
        return None
    return DecisionConflict(
        conflict_type=match.conflict_type,
        confidence_score=match.confidence,
        explanation=(
            f'{match.detail}. "{a.title}" and "{b.title}" cannot both be carried out as specified '
            f"({match.category})."
        ),
        strategy=f"structured:{match.rule}",
    )


# ==================== STRATEGY 2: RESOURCE COMPETITION ====================

def detect_resource_competition(a: Decision, b: Decision,
                                _assumptions: AssumptionsByDecision) -> Optional[DecisionConflict]:
    text_a, text_b = _text(a), _text(b)
    tokens_a, tokens_b = tokenize(text_a), tokenize(text_b)

    shared = [r for r in _matched(tokens_a, RESOURCE_KEYWORDS) if contains_word(tokens_b, r)]
    if not shared:
        return None
    if not (_matched(tokens_a, ALLOCATION_KEYWORDS) and _matched(tokens_b, ALLOCATION_KEYWORDS)):
        return None

    confidence = RESOURCE_BASE
    if _DIGITS.search(text_a) and _DIGITS.search(text_b):
        confidence = RESOURCE_QUANTIFIED
    if len(shared) >= 2:
        confidence += RESOURCE_MULTI_BONUS
    confidence = round(min(RESOURCE_MAX, confidence), 2)

    return DecisionConflict(
        conflict_type=ConflictType.RESOURCE_COMPETITION,
        confidence_score=confidence,
        explanation=(
            f'Both decisions compete for limited {", ".join(shared)} resources. '
            f'"{a.title}" and "{b.title}" may need to be prioritized or the allocation adjusted.'
        ),
        strategy="resource_competition",
    )


# ==================== STRATEGY 3: CONTRADICTORY ACTIONS ====================

def detect_contradictory_actions(a: Decision, b: Decision,
                                 _assumptions: AssumptionsByDecision) -> Optional[DecisionConflict]:
    opposing = find_opposing_terms(_text(a), _text(b), ACTION_CONFLICTS)
    if opposing is None:
        return None

    shared = key_entities(_text(a)) & key_entities(_text(b))
    if len(shared) < ACTION_MIN_SHARED:
        return None

    action_a, action_b = opposing
    return DecisionConflict(
        conflict_type=ConflictType.CONTRADICTORY,
        confidence_score=ACTION_CONFIDENCE,
        explanation=(
            f'Direct contradiction: "{a.title}" aims to {action_a} while "{b.title}" aims to '
            f'{action_b} in the same context ({", ".join(sorted(shared))}).'
        ),
        strategy="contradictory_actions",
    )


# ==================== STRATEGY 4: OBJECTIVE UNDERMINING ====================

def detect_objective_undermining(a: Decision, b: Decision,
                                 _assumptions: AssumptionsByDecision) -> Optional[DecisionConflict]:
    text_a, text_b = _text(a), _text(b)

    for goal, underminer in UNDERMINING_PHRASES:
        if ((_has_phrase(text_a, goal) and _has_phrase(text_b, underminer))
                or (_has_phrase(text_b, goal) and _has_phrase(text_a, underminer))):
            return DecisionConflict(
                conflict_type=ConflictType.OBJECTIVE_UNDERMINING,
                confidence_score=UNDERMINING_PHRASE_CONFIDENCE,
                explanation=(
                    f'"{goal}" and "{underminer}" pull in opposite directions: '
                    f'"{a.title}" and "{b.title}" undermine each other\'s objectives.'
                ),
                strategy="objective_undermining",
            )

    tokens_a, tokens_b = tokenize(text_a), tokenize(text_b)
    goal_a = bool(_matched(tokens_a, GOAL_KEYWORDS))
    goal_b = bool(_matched(tokens_b, GOAL_KEYWORDS))
    if not (goal_a or goal_b):
        return None

    opposing = find_opposing_terms(text_a, text_b, UNDERMINING_WORDS)
    if opposing is None:
        return None

    return DecisionConflict(
        conflict_type=ConflictType.OBJECTIVE_UNDERMINING,
        confidence_score=UNDERMINING_BOTH_GOALS_CONFIDENCE if goal_a and goal_b else UNDERMINING_WORD_CONFIDENCE,
        explanation=(
            f'"{a.title}" and "{b.title}" may have competing priorities ({opposing[0]} vs '
            f"{opposing[1]}). One decision's approach could undermine the other's objectives."
        ),
        strategy="objective_undermining",
    )


# ==================== STRATEGY 5: PREMISE INVALIDATION ====================

def _long_words(text: str) -> set[str]:
    return {w for w in key_entities(text) if len(w) > PREMISE_WORD_LENGTH}


def detect_premise_invalidation(a: Decision, b: Decision,
                                assumptions: AssumptionsByDecision) -> Optional[DecisionConflict]:
    created_a, created_b = _as_utc(a.created_at), _as_utc(b.created_at)
    if created_a == created_b:
        return None
    older, newer = (a, b) if created_a < created_b else (b, a)

    newer_text = _text(newer)
    newer_words = key_entities(newer_text)

    def premise(confidence: float, basis: str) -> DecisionConflict:
        return DecisionConflict(
            conflict_type=ConflictType.PREMISE_INVALIDATION,
            confidence_score=confidence,
            explanation=(
                f'The newer decision "{newer.title}" may invalidate the premise of the earlier '
                f'decision "{older.title}" ({basis}). Consider whether the older decision is still valid.'
            ),
            strategy="premise_invalidation",
            invalidated_decision_id=older.id,
            invalidating_decision_id=newer.id,
        )

    if _matched(tokenize(newer_text), INVALIDATION_KEYWORDS):
        premise_text = " ".join(x.description for x in assumptions.get(older.id, []))
        from_assumptions = key_entities(premise_text) & newer_words
        if len(from_assumptions) >= PREMISE_MIN_SHARED:
            return premise(
                PREMISE_ASSUMPTION_CONFIDENCE,
                f'its assumptions on {", ".join(sorted(from_assumptions))}',
            )

        from_text = _long_words(_text(older)) & newer_words
        if len(from_text) >= PREMISE_MIN_SHARED:
            return premise(PREMISE_TEXT_CONFIDENCE, f'shared concepts: {", ".join(sorted(from_text))}')

    if has_negation(newer_text):
        negated = _long_words(_text(older)) & _long_words(newer_text)
        if len(negated) >= PREMISE_NEGATION_MIN_SHARED:
            return premise(PREMISE_NEGATION_CONFIDENCE, f'negates: {", ".join(sorted(negated))}')

    return None


# ==================== DETECTION ====================

STRATEGIES: list[Callable[[Decision, Decision, AssumptionsByDecision], Optional[DecisionConflict]]] = [
    detect_structured,
    detect_resource_competition,
    detect_contradictory_actions,
    detect_objective_undermining,
    detect_premise_invalidation,
]


def detect_conflict(a: Decision, b: Decision,
                    assumptions_by_decision: Optional[AssumptionsByDecision] = None) -> Optional[DecisionConflict]:
    """
    Compare two decisions; first confident strategy wins.

    Args:
        a, b: Decisions to compare (order does not matter)
        assumptions_by_decision: Linked assumptions per decision id, used by
            premise invalidation

    Returns:
        DecisionConflict or None
    """
    if a.id == b.id:
        return None
    if b.id < a.id:
        a, b = b, a

    assumptions = assumptions_by_decision or {}
    for strategy in STRATEGIES:
        conflict = strategy(a, b, assumptions)
        if conflict is not None and conflict.confidence_score >= MIN_CONFIDENCE:
            return conflict
    return None


def detect_conflicts_in_list(decisions: Iterable[Decision],
                             assumptions_by_decision: Optional[AssumptionsByDecision] = None
                             ) -> list[DecisionConflictPair]:
    """
    Check every unordered pair once.

    Returns:
        Conflicting pairs in canonical (min id, max id) order, sorted by pair
    """
    unique: dict[str, Decision] = {}
    for decision in decisions:
        if decision.id in unique:
            logger.debug(f"Duplicate decision id {decision.id} skipped")
            continue
        unique[decision.id] = decision

    ordered = [unique[k] for k in sorted(unique)]
    results = []
    for i, first in enumerate(ordered):
        for second in ordered[i + 1:]:
            conflict = detect_conflict(first, second, assumptions_by_decision)
            if conflict:
                results.append(DecisionConflictPair(decision_a=first, decision_b=second, conflict=conflict))

    logger.debug(f"Decision conflict scan: {len(ordered)} decisions, {len(results)} conflicts")
    return results
