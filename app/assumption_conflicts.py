"""
Assumption Conflict Detector - finds assumptions that cannot both hold.

Strategy ladder per pair (highest-confidence match wins):
1. Structured parameters via the shared category table (0.78-0.96)
2. Text heuristics, only when (1) found nothing (0.65-0.85); needs an
   opposing-term hit AND a shared-context hit
3. Anything under MIN_CONFIDENCE is dropped

Pure and stateless: the caller persists results and owns de-duplication.
"""

import logging
from typing import Iterable, Optional

from app.conflict_tables import (
    MIN_CONFIDENCE,
    RESOURCE_NOUNS,
    STATE_PAIRS,
    compare_structured,
    content_words,
    find_opposing_terms,
    has_negation,
    jaccard,
    key_entities,
)
from app.schemas import Assumption, AssumptionConflict, AssumptionConflictPair, ConflictType

logger = logging.getLogger(__name__)

TEXT_BASE_CONFIDENCE = 0.65
TEXT_MAX_CONFIDENCE = 0.85
SHARED_ENTITY_WEIGHT = 0.04
SHARED_RESOURCE_BONUS = 0.06
NEGATION_SIMILARITY = 0.6


def _detect_structured(a: Assumption, b: Assumption) -> Optional[AssumptionConflict]:
    match = compare_structured(a.category, a.parameters, b.category, b.parameters)
    if match is None:
        return None
    return AssumptionConflict(
        conflict_type=match.conflict_type,
        confidence_score=match.confidence,
        reason=f"{match.detail} ({match.category})",
        strategy=f"structured:{match.rule}",
    )


def _detect_text(a: Assumption, b: Assumption) -> Optional[AssumptionConflict]:
    shared = key_entities(a.description) & key_entities(b.description)
    shared_resources = content_words(a.description) & content_words(b.description) & RESOURCE_NOUNS
    if not shared and not shared_resources:
        return None

    conflict_type = ConflictType.CONTRADICTORY
    opposing = find_opposing_terms(a.description, b.description)
    if opposing:
        cue = f'"{opposing[0]}" vs "{opposing[1]}"'
    else:
        state = find_opposing_terms(a.description, b.description, STATE_PAIRS)
        if state:
            conflict_type = ConflictType.INCOMPATIBLE
            cue = f'"{state[0]}" vs "{state[1]}"'
        elif (has_negation(a.description) != has_negation(b.description)
              and jaccard(content_words(a.description), content_words(b.description)) >= NEGATION_SIMILARITY):
            cue = "one statement negates the other"
        else:
            return None

    confidence = TEXT_BASE_CONFIDENCE + SHARED_ENTITY_WEIGHT * len(shared)
    if shared_resources:
        confidence += SHARED_RESOURCE_BONUS
    confidence = round(min(TEXT_MAX_CONFIDENCE, confidence), 2)

    context = ", ".join(sorted(shared | shared_resources))
    return AssumptionConflict(
        conflict_type=conflict_type,
        confidence_score=confidence,
        reason=f"Opposing claims ({cue}) about {context}",
        strategy="text",
    )


def detect_conflict(a: Assumption, b: Assumption) -> Optional[AssumptionConflict]:
    """
    Compare two assumptions.

    The pair is put in id order first so (a, b) and (b, a) give the same answer.

    Returns:
        AssumptionConflict at or above MIN_CONFIDENCE, or None
    """
    if a.id == b.id:
        return None
    if b.id < a.id:
        a, b = b, a

    conflict = _detect_structured(a, b)
    if conflict is None:
        conflict = _detect_text(a, b)

    if conflict is None or conflict.confidence_score < MIN_CONFIDENCE:
        return None
    return conflict


def detect_conflicts_in_list(assumptions: Iterable[Assumption]) -> list[AssumptionConflictPair]:
    """
    Check every unordered pair once.

    Args:
        assumptions: Candidate set (the caller pre-filters by organization)

    Returns:
        Conflicting pairs in canonical (min id, max id) order, sorted by pair
    """
    unique: dict[str, Assumption] = {}
    for assumption in assumptions:
        if assumption.id in unique:
            logger.debug(f"Duplicate assumption id {assumption.id} skipped")
            continue
        unique[assumption.id] = assumption

    ordered = [unique[k] for k in sorted(unique)]
    results = []
    for i, first in enumerate(ordered):
        for second in ordered[i + 1:]:
            conflict = detect_conflict(first, second)
            if conflict:
                results.append(AssumptionConflictPair(assumption_a=first, assumption_b=second, conflict=conflict))

    logger.debug(f"Assumption conflict scan: {len(ordered)} assumptions, {len(results)} conflicts")
    return results
