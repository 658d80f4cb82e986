"""
Category Comparison Table - structured conflict scoring shared by the
assumption and decision conflict detectors.

Both detectors look up the same table so the two subsystems cannot drift
apart in scoring semantics.

Scoring shape (identical for every rule):
    confidence = min(rule.cap, rule.base + rule.field_weight * <scope fields equal in both>)

- required fields must be present and equal in both items, or the rule does not apply
- a scope field present in both with different values disables the rule
- a scope field missing on either side is neutral
- the highest-confidence rule wins; ties keep table order

Also hosts the text helpers (tokens, stop words, key entities, opposing terms)
used by the text-heuristic strategies.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from app.constraint_rules import as_number
from app.schemas import ConflictType


MIN_CONFIDENCE = 0.65


# ==================== CATEGORIES ====================

BUDGET = "Budget"
RESOURCE_ALLOCATION = "Resource Allocation"
TIMELINE = "Timeline"
STRATEGIC = "Strategic"
TECHNICAL = "Technical"

_CATEGORY_ALIASES = {
    "budget": BUDGET,
    "budget & financial": BUDGET,
    "financial": BUDGET,
    "resource allocation": RESOURCE_ALLOCATION,
    "resource & staffing": RESOURCE_ALLOCATION,
    "resource": RESOURCE_ALLOCATION,
    "resources": RESOURCE_ALLOCATION,
    "timeline": TIMELINE,
    "timeline & milestones": TIMELINE,
    "timeline & schedule": TIMELINE,
    "strategic": STRATEGIC,
    "strategic initiative": STRATEGIC,
    "technical": TECHNICAL,
    "technical architecture": TECHNICAL,
}


def normalize_category(category: Optional[str]) -> Optional[str]:
    """Map a raw category name onto its canonical form. Unknown names pass through trimmed."""
    if not category or not str(category).strip():
        return None
    raw = str(category).strip()
    return _CATEGORY_ALIASES.get(raw.lower(), raw)


# ==================== VALUE HELPERS ====================

def _norm(value: Any) -> Any:
    """Comparable form of a parameter value (case/whitespace-insensitive)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, (list, tuple, set)):
        items = [_norm(v) for v in value]
        return frozenset(i for i in items if i not in (None, ""))
    text = re.sub(r"\s+", " ", str(value)).strip().lower()
    return text or None


def _present(params: dict, key: str) -> bool:
    return _norm(params.get(key)) not in (None, frozenset())


def _same(pa: dict, pb: dict, key: str) -> bool:
    return _present(pa, key) and _present(pb, key) and _norm(pa[key]) == _norm(pb[key])


def _text(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return " ".join(sorted(str(v) for v in value)).lower()
    return str(value).lower() if value is not None else ""


def _has_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


def opposed_values(a: Any, b: Any, pairs: Iterable[tuple[str, str]]) -> Optional[tuple[str, str]]:
    """Return the (a-side, b-side) pair if a and b sit on opposite ends of any pair."""
    ta, tb = _text(a), _text(b)
    if not ta or not tb or ta == tb:
        return None
    for left, right in pairs:
        if _has_phrase(ta, left) and _has_phrase(tb, right) and not _has_phrase(ta, right):
            return left, right
        if _has_phrase(ta, right) and _has_phrase(tb, left) and not _has_phrase(ta, left):
            return right, left
    return None


def _bound_conflict(pa: dict, pb: dict, value_key: str,
                    bounds: Iterable[tuple[str, str, str]]) -> Optional[str]:
    """
    Check typed bounds ("minimum"/"maximum"/"deadline"/...) for an impossible range.

    bounds holds (lower_type, upper_type, label); lower above upper is a conflict.
    Either item may carry either side.
    """
    va, vb = as_number(pa.get(value_key)), as_number(pb.get(value_key))
    ta, tb = _norm(pa.get("type")), _norm(pb.get("type"))
    if va is None or vb is None or not ta or not tb:
        return None
    for lower, upper, label in bounds:
        if ta == lower and tb == upper and va > vb:
            return f"{label}: {lower} {va:g} exceeds {upper} {vb:g}"
        if tb == lower and ta == upper and vb > va:
            return f"{label}: {lower} {vb:g} exceeds {upper} {va:g}"
    return None


# ==================== OPPOSITE VALUE TABLES ====================

DIRECTION_OPPOSITES = [
    ("increase", "decrease"),
    ("expand", "reduce"),
    ("expand", "contract"),
    ("grow", "shrink"),
    ("improve", "worsen"),
    ("improve", "reduce"),
    ("approve", "reject"),
    ("positive", "negative"),
    ("up", "down"),
]

BUDGET_OUTCOME_OPPOSITES = [
    ("approval required", "approval denied"),
    ("funding secured", "funding rejected"),
    ("budget approved", "budget rejected"),
]

RESOURCE_ACTION_OPPOSITES = [
    ("allocate", "deallocate"),
    ("add", "remove"),
    ("hire", "layoff"),
    ("increase", "decrease"),
]

AVAILABILITY_OPPOSITES = [
    ("available", "unavailable"),
]

TIMELINE_OPPOSITES = [
    ("accelerate", "delay"),
    ("on track", "at risk"),
    ("meet deadline", "miss deadline"),
    ("deadline met", "deadline missed"),
    ("milestone achieved", "milestone failed"),
]

ARCHITECTURE_OPPOSITES = [
    ("monolith", "microservices"),
    ("centralized", "distributed"),
    ("sql", "nosql"),
    ("synchronous", "asynchronous"),
]


def _opposite_field(key: str, pairs: list[tuple[str, str]], label: str) -> Callable[[dict, dict], Optional[str]]:
    def trigger(pa: dict, pb: dict) -> Optional[str]:
        if not (_present(pa, key) and _present(pb, key)):
            return None
        hit = opposed_values(pa[key], pb[key], pairs)
        if hit:
            return f"{label}: {pa[key]} vs {pb[key]}"
        return None
    return trigger


def _different_field(key: str, label: str, numeric: bool = False) -> Callable[[dict, dict], Optional[str]]:
    def trigger(pa: dict, pb: dict) -> Optional[str]:
        if not (_present(pa, key) and _present(pb, key)):
            return None
        if numeric:
            na, nb = as_number(pa[key]), as_number(pb[key])
            if na is None or nb is None or na == nb:
                return None
        elif _norm(pa[key]) == _norm(pb[key]):
            return None
        return f"{label}: {pa[key]} vs {pb[key]}"
    return trigger


def _both_present(*keys: str, label: str) -> Callable[[dict, dict], Optional[str]]:
    def trigger(pa: dict, pb: dict) -> Optional[str]:
        if all(_present(pa, k) and _present(pb, k) for k in keys):
            return label
        return None
    return trigger


def _bounds(value_key: str, bounds: list[tuple[str, str, str]]) -> Callable[[dict, dict], Optional[str]]:
    def trigger(pa: dict, pb: dict) -> Optional[str]:
        return _bound_conflict(pa, pb, value_key, bounds)
    return trigger


def _fixed_values_differ(value_key: str, label: str) -> Callable[[dict, dict], Optional[str]]:
    def trigger(pa: dict, pb: dict) -> Optional[str]:
        if _norm(pa.get("type")) != "fixed" or _norm(pb.get("type")) != "fixed":
            return None
        va, vb = as_number(pa.get(value_key)), as_number(pb.get(value_key))
        if va is None or vb is None or va == vb:
            return None
        return f"{label}: {va:g} vs {vb:g}"
    return trigger


# ==================== COMPARISON RULES ====================

@dataclass(frozen=True)
class ComparisonRule:
    """One row of the category comparison table."""
    name: str
    conflict_type: ConflictType
    base: float
    cap: float
    trigger: Callable[[dict, dict], Optional[str]]
    required: tuple[str, ...] = ()
    scope: tuple[str, ...] = ()
    field_weight: float = 0.04


@dataclass(frozen=True)
class StructuredMatch:
    """Best structured rule that fired for a pair."""
    rule: str
    category: str
    conflict_type: ConflictType
    confidence: float
    detail: str
    matched_fields: tuple[str, ...] = field(default_factory=tuple)


CATEGORY_TABLE: dict[str, list[ComparisonRule]] = {
    BUDGET: [
        ComparisonRule(
            name="budget_direction",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.86, cap=0.96,
            trigger=_opposite_field("direction", DIRECTION_OPPOSITES, "Opposite budget directions"),
            scope=("resourceType", "timeframe", "impactArea"),
        ),
        ComparisonRule(
            name="budget_outcome",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.90, cap=0.94,
            trigger=_opposite_field("outcome", BUDGET_OUTCOME_OPPOSITES, "Contradictory budget outcomes"),
            scope=("timeframe", "resourceType"),
            field_weight=0.02,
        ),
        ComparisonRule(
            name="budget_range",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.90, cap=0.96,
            trigger=_bounds("budget", [("minimum", "maximum", "Impossible budget range")]),
            scope=("currency", "timeframe", "resourceType"),
            field_weight=0.02,
        ),
        ComparisonRule(
            name="budget_fixed",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.86, cap=0.92,
            trigger=_fixed_values_differ("budget", "Conflicting fixed budgets"),
            scope=("currency", "timeframe", "resourceType"),
            field_weight=0.02,
        ),
        ComparisonRule(
            name="budget_amount",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.84, cap=0.90,
            trigger=_different_field("amount", "Different budget amounts", numeric=True),
            required=("timeframe",),
            scope=("resourceType",),
        ),
        ComparisonRule(
            name="budget_allocation",
            conflict_type=ConflictType.RESOURCE_COMPETITION,
            base=0.80, cap=0.88,
            trigger=_different_field("allocation", "Different allocations of the same resource"),
            required=("resourceType",),
            scope=("timeframe",),
        ),
    ],
    RESOURCE_ALLOCATION: [
        ComparisonRule(
            name="resource_availability",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.88, cap=0.94,
            trigger=_opposite_field("outcome", AVAILABILITY_OPPOSITES, "Contradictory resource availability"),
            required=("resourceType",),
            scope=("timeframe",),
            field_weight=0.03,
        ),
        ComparisonRule(
            name="resource_capacity",
            conflict_type=ConflictType.INCOMPATIBLE,
            base=0.88, cap=0.94,
            trigger=_bounds("quantity", [("required", "available", "Requirement exceeds availability")]),
            required=("resourceType",),
            scope=("timeframe",),
            field_weight=0.03,
        ),
        ComparisonRule(
            name="resource_range",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.87, cap=0.93,
            trigger=_bounds("quantity", [("minimum", "maximum", "Impossible quantity range")]),
            required=("resourceType",),
            scope=("timeframe",),
            field_weight=0.03,
        ),
        ComparisonRule(
            name="resource_action",
            conflict_type=ConflictType.RESOURCE_COMPETITION,
            base=0.86, cap=0.94,
            trigger=_opposite_field("action", RESOURCE_ACTION_OPPOSITES, "Contradictory resource actions"),
            required=("resourceType",),
            scope=("timeframe",),
        ),
        ComparisonRule(
            name="resource_contention",
            conflict_type=ConflictType.RESOURCE_COMPETITION,
            base=0.82, cap=0.86,
            trigger=_both_present("quantity", label="Both claim quantities of the same resource"),
            required=("resourceType", "timeframe"),
            scope=("department",),
        ),
    ],
    TIMELINE: [
        ComparisonRule(
            name="timeline_duration",
            conflict_type=ConflictType.TIMELINE,
            base=0.88, cap=0.94,
            trigger=_bounds("duration", [
                ("minimum", "deadline", "Minimum duration exceeds deadline"),
                ("minimum", "maximum", "Minimum duration exceeds maximum"),
            ]),
            required=("unit",),
            scope=("milestone",),
            field_weight=0.03,
        ),
        ComparisonRule(
            name="timeline_expectation",
            conflict_type=ConflictType.TIMELINE,
            base=0.86, cap=0.94,
            trigger=_opposite_field("expectation", TIMELINE_OPPOSITES, "Incompatible timeline expectations"),
            scope=("milestone", "timeframe"),
        ),
        ComparisonRule(
            name="timeline_outcome",
            conflict_type=ConflictType.TIMELINE,
            base=0.86, cap=0.94,
            trigger=_opposite_field("outcome", TIMELINE_OPPOSITES, "Incompatible milestone outcomes"),
            required=("timeframe",),
            scope=("milestone",),
        ),
        ComparisonRule(
            name="timeline_target_date",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.86, cap=0.90,
            trigger=_different_field("targetDate", "Different target dates for the same milestone"),
            required=("milestone",),
            scope=("timeframe",),
        ),
    ],
    STRATEGIC: [
        ComparisonRule(
            name="strategic_direction",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.90, cap=0.96,
            trigger=_opposite_field("direction", DIRECTION_OPPOSITES, "Opposing strategic directions"),
            required=("impactArea",),
            scope=("timeframe",),
            field_weight=0.03,
        ),
        ComparisonRule(
            name="strategic_priority",
            conflict_type=ConflictType.OBJECTIVE_UNDERMINING,
            base=0.78, cap=0.84,
            trigger=_different_field("priority", "Different priority levels on the same impact area"),
            required=("impactArea",),
            scope=("timeframe",),
            field_weight=0.03,
        ),
    ],
    TECHNICAL: [
        ComparisonRule(
            name="technical_technology",
            conflict_type=ConflictType.MUTUALLY_EXCLUSIVE,
            base=0.91, cap=0.93,
            trigger=_different_field("technology", "Different technologies for the same component"),
            required=("component",),
            scope=("environment", "timeframe"),
            field_weight=0.01,
        ),
        ComparisonRule(
            name="technical_approach",
            conflict_type=ConflictType.CONTRADICTORY,
            base=0.89, cap=0.93,
            trigger=_opposite_field("approach", ARCHITECTURE_OPPOSITES, "Incompatible architectural approaches"),
            scope=("component",),
            field_weight=0.02,
        ),
    ],
}

# Applies to every category, including ones the table does not know.
GENERIC_RULES: list[ComparisonRule] = [
    ComparisonRule(
        name="impact_direction",
        conflict_type=ConflictType.CONTRADICTORY,
        base=0.88, cap=0.94,
        trigger=_opposite_field("direction", DIRECTION_OPPOSITES, "Opposite impact directions"),
        required=("impactArea",),
        scope=("timeframe", "resourceType"),
        field_weight=0.03,
    ),
]


def _score(rule: ComparisonRule, pa: dict, pb: dict) -> Optional[tuple[float, str, tuple[str, ...]]]:
    for key in rule.required:
        if not _same(pa, pb, key):
            return None

    matched = []
    for key in rule.scope:
        if _present(pa, key) and _present(pb, key):
            if _norm(pa[key]) != _norm(pb[key]):
                return None
            matched.append(key)

    detail = rule.trigger(pa, pb)
    if detail is None:
        return None

    confidence = round(min(rule.cap, rule.base + rule.field_weight * len(matched)), 2)
    return confidence, detail, tuple(rule.required) + tuple(matched)


def compare_structured(category_a: Optional[str], params_a: Optional[dict],
                       category_b: Optional[str], params_b: Optional[dict]) -> Optional[StructuredMatch]:
    """
    Score a pair against the category comparison table.

    Args:
        category_a, params_a: first item's category and structured parameters
        category_b, params_b: second item's category and structured parameters

    Returns:
        Best StructuredMatch, or None when categories differ, parameter keys
        do not overlap, or no rule fires
    """
    cat_a, cat_b = normalize_category(category_a), normalize_category(category_b)
    if not cat_a or cat_a != cat_b or not params_a or not params_b:
        return None
    if not set(params_a) & set(params_b):
        return None

    best: Optional[StructuredMatch] = None
    for rule in CATEGORY_TABLE.get(cat_a, []) + GENERIC_RULES:
        scored = _score(rule, params_a, params_b)
        if scored is None:
            continue
        confidence, detail, fields = scored
        if best is None or confidence > best.confidence:
            best = StructuredMatch(
                rule=rule.name,
                category=cat_a,
                conflict_type=rule.conflict_type,
                confidence=confidence,
                detail=detail,
                matched_fields=fields,
            )
    return best


# ==================== TEXT HELPERS ====================

STOP_WORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "if", "then", "than", "so", "to", "of",
    "in", "on", "at", "by", "for", "with", "from", "into", "over", "under", "as",
    "is", "are", "was", "were", "be", "been", "being", "will", "would", "should",
    "could", "may", "might", "can", "must", "shall", "this", "that", "these",
    "those", "it", "its", "we", "our", "us", "they", "their", "there", "which",
    "who", "what", "when", "where", "while", "have", "has", "had", "do", "does",
    "did", "also", "about", "all", "any", "each", "more", "less", "very", "per",
    "decision", "assumption",
})

NEGATION_WORDS = frozenset({
    "no", "not", "never", "none", "neither", "nor", "cannot", "won't", "don't",
    "shouldn't", "isn't", "aren't", "can't", "without",
})

ANTONYM_PAIRS = [
    ("increase", "decrease"),
    ("increase", "reduce"),
    ("higher", "lower"),
    ("grow", "shrink"),
    ("rise", "fall"),
    ("expand", "contract"),
    ("expand", "reduce"),
    ("improve", "worsen"),
    ("improve", "decline"),
    ("gain", "lose"),
    ("add", "remove"),
    ("include", "exclude"),
    ("enable", "disable"),
    ("allow", "prevent"),
    ("accept", "reject"),
    ("success", "failure"),
    ("hire", "layoff"),
    ("hire", "fire"),
    ("centralize", "decentralize"),
    ("accelerate", "delay"),
    ("invest", "divest"),
    ("start", "stop"),
]

STATE_PAIRS = [
    ("active", "inactive"),
    ("enabled", "disabled"),
    ("online", "offline"),
    ("open", "closed"),
    ("public", "private"),
    ("available", "unavailable"),
    ("mandatory", "optional"),
    ("required", "optional"),
]

RESOURCE_NOUNS = frozenset({
    "budget", "money", "cost", "costs", "spending", "expense", "expenses",
    "investment", "fund", "funding", "headcount", "staff", "staffing", "team",
    "employee", "employees", "personnel", "engineers", "time", "resource",
    "resources", "capacity", "bandwidth", "space", "office", "facility",
    "equipment", "marketing", "sales", "revenue",
})

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9'\-]*")


def tokenize(text: Optional[str]) -> list[str]:
    """Lowercase word tokens, punctuation stripped."""
    return _TOKEN_RE.findall((text or "").lower())


def content_words(text: Optional[str]) -> set[str]:
    return {t for t in tokenize(text) if t not in STOP_WORDS and t not in NEGATION_WORDS}


def key_entities(text: Optional[str]) -> set[str]:
    """Substantive words (longer than three characters, not stop words)."""
    return {w for w in content_words(text) if len(w) > 3 and not w.isdigit()}


def has_negation(text: Optional[str]) -> bool:
    return any(t in NEGATION_WORDS or t.endswith("n't") for t in tokenize(text))


_SUFFIXES = ("s", "es", "d", "ed", "ing", "er", "ers", "ful", "ment", "ments", "ion", "ions")


def _stem_match(token: str, word: str) -> bool:
    """'hire' matches hire/hires/hired/hiring; 'reduce' matches reducing."""
    if token == word:
        return True
    if token.startswith(word) and token[len(word):] in _SUFFIXES:
        return True
    if word.endswith("e") and len(word) > 3:
        root = word[:-1]
        return token.startswith(root) and token[len(root):] in ("ing", "ion", "ions")
    return False


def contains_word(tokens: list[str], word: str) -> bool:
    if " " in word:
        return _has_phrase(" ".join(tokens), word)
    return any(_stem_match(t, word) for t in tokens)


def find_opposing_terms(text_a: Optional[str], text_b: Optional[str],
                        pairs: Iterable[tuple[str, str]] = ANTONYM_PAIRS) -> Optional[tuple[str, str]]:
    """
    Find an opposing pair with one side in each text.

    A side that appears in both texts is ignored so that "increase or
    decrease" phrasing on one side does not count as opposition.
    """
    tokens_a, tokens_b = tokenize(text_a), tokenize(text_b)
    for left, right in pairs:
        a_left, a_right = contains_word(tokens_a, left), contains_word(tokens_a, right)
        b_left, b_right = contains_word(tokens_b, left), contains_word(tokens_b, right)
        if a_left and b_right and not a_right and not b_left:
            return left, right
        if a_right and b_left and not a_left and not b_right:
            return right, left
    return None


def jaccard(words_a: set[str], words_b: set[str]) -> float:
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)
