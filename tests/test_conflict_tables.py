import pytest

from app.conflict_tables import (
    CATEGORY_TABLE,
    GENERIC_RULES,
    MIN_CONFIDENCE,
    compare_structured,
    contains_word,
    find_opposing_terms,
    key_entities,
    normalize_category,
    tokenize,
)
from app.schemas import ConflictType


def test_every_rule_scores_at_or_above_the_floor():
    rules = [r for rows in CATEGORY_TABLE.values() for r in rows] + GENERIC_RULES
    for rule in rules:
        assert MIN_CONFIDENCE <= rule.base <= rule.cap <= 1.0, rule.name
        assert rule.field_weight >= 0, rule.name


@pytest.mark.parametrize("raw,expected", [
    ("Budget & Financial", "Budget"),
    ("  budget ", "Budget"),
    ("Technical Architecture", "Technical"),
    ("Resource & Staffing", "Resource Allocation"),
    ("Legal", "Legal"),
    ("", None),
    (None, None),
])
def test_normalize_category(raw, expected):
    assert normalize_category(raw) == expected


def test_opposite_budget_directions():
    match = compare_structured(
        "Budget", {"direction": "Increase", "resourceType": "Marketing", "timeframe": "Q3 2026"},
        "Budget", {"direction": "Decrease", "resourceType": "Marketing", "timeframe": "Q3 2026"},
    )
    assert match is not None
    assert match.rule == "budget_direction"
    assert match.conflict_type == ConflictType.CONTRADICTORY
    assert match.confidence == 0.94
    assert set(match.matched_fields) == {"resourceType", "timeframe"}


def test_differing_scope_field_disables_rule():
    match = compare_structured(
        "Budget", {"direction": "Increase", "resourceType": "Marketing"},
        "Budget", {"direction": "Decrease", "resourceType": "Engineering"},
    )
    assert match is None


def test_categories_must_match_exactly_after_normalization():
    assert compare_structured(
        "Budget", {"direction": "Increase"},
        "Budget & Financial", {"direction": "Decrease"},
    ) is not None
    assert compare_structured(
        "Budget", {"direction": "Increase"},
        "Budgeting", {"direction": "Decrease"},
    ) is None


def test_no_overlapping_parameters_means_no_match():
    assert compare_structured("Budget", {"direction": "Increase"}, "Budget", {"amount": 10}) is None


def test_adding_matching_fields_never_lowers_confidence():
    a = {"direction": "Increase"}
    b = {"direction": "Decrease"}
    previous = 0.0
    for key, value in [("resourceType", "Marketing"), ("timeframe", "Q3"), ("impactArea", "Growth"),
                       ("currency", "USD")]:
        a[key] = value
        b[key] = value
        match = compare_structured("Budget", a, "Budget", b)
        assert match is not None
        assert match.confidence >= previous
        previous = match.confidence
    assert previous == 0.96


def test_technical_technology_conflict():
    match = compare_structured(
        "Technical Architecture", {"component": "Database", "technology": "PostgreSQL"},
        "Technical Architecture", {"component": "Database", "technology": "MongoDB"},
    )
    assert match is not None
    assert match.rule == "technical_technology"
    assert 0.89 <= match.confidence <= 0.93


def test_technical_requires_same_component():
    assert compare_structured(
        "Technical", {"component": "Database", "technology": "PostgreSQL"},
        "Technical", {"component": "Cache", "technology": "Redis"},
    ) is None


def test_impossible_budget_range():
    match = compare_structured(
        "Budget", {"type": "minimum", "budget": 500000, "currency": "USD"},
        "Budget", {"type": "maximum", "budget": 300000, "currency": "USD"},
    )
    assert match.rule == "budget_range"
    assert match.confidence == 0.92


def test_budget_range_reads_exponent_and_currency_strings():
    match = compare_structured(
        "Budget", {"type": "minimum", "budget": "2e6", "currency": "USD"},
        "Budget", {"type": "maximum", "budget": "$500,000", "currency": "USD"},
    )
    assert match.rule == "budget_range"


def test_resource_capacity_exceeded():
    match = compare_structured(
        "Resource Allocation", {"resourceType": "Engineers", "type": "required", "quantity": 12},
        "Resource Allocation", {"resourceType": "Engineers", "type": "available", "quantity": 8},
    )
    assert match.conflict_type == ConflictType.INCOMPATIBLE


def test_timeline_minimum_exceeds_deadline():
    match = compare_structured(
        "Timeline", {"unit": "weeks", "type": "minimum", "duration": 10},
        "Timeline", {"unit": "weeks", "type": "deadline", "duration": 6},
    )
    assert match.conflict_type == ConflictType.TIMELINE


def test_unknown_category_still_checks_generic_rules():
    match = compare_structured(
        "Operations", {"impactArea": "Support", "direction": "Increase"},
        "Operations", {"impactArea": "Support", "direction": "Reduce"},
    )
    assert match is None
    match = compare_structured(
        "Operations", {"impactArea": "Support", "direction": "Expand"},
        "Operations", {"impactArea": "Support", "direction": "Reduce"},
    )
    assert match.rule == "impact_direction"


def test_multi_select_values_compare_as_sets():
    match = compare_structured(
        "Budget", {"direction": "Increase", "resourceType": ["Marketing", "Sales"]},
        "Budget", {"direction": "Decrease", "resourceType": ["sales", "marketing"]},
    )
    assert match.confidence == 0.90


def test_stem_matching_is_suffix_restricted():
    tokens = tokenize("We are hiring engineers and reducing travel")
    assert contains_word(tokens, "hire")
    assert contains_word(tokens, "reduce")
    assert not contains_word(tokenize("The addition of staff"), "add")
    assert not contains_word(tokenize("stopwatch"), "stop")


def test_find_opposing_terms():
    assert find_opposing_terms("Increase the budget", "Decrease the budget") == ("increase", "decrease")
    assert find_opposing_terms("Decrease the budget", "Increase the budget") == ("decrease", "increase")
    assert find_opposing_terms("Increase or decrease the budget", "Decrease the budget") is None


def test_key_entities_skip_short_and_stop_words():
    assert key_entities("The budget for Q3 will be cut by 10") == {"budget"}
