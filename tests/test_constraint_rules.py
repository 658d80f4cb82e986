import pytest

from app.constraint_rules import RuleOutcome, evaluate_constraint, parse_rule

from conftest import make_constraint, make_decision


def _outcome(rule_expression, **decision_fields) -> RuleOutcome:
    decision = make_decision("d1", **decision_fields)
    return evaluate_constraint(make_constraint("c1", rule_expression), decision).outcome


def test_threshold_satisfied_and_violated():
    rule = {"type": "threshold", "field": "metadata.budget", "operator": "<=", "value": 500000}
    assert _outcome(rule, metadata={"budget": 400000}) == RuleOutcome.SATISFIED
    assert _outcome(rule, metadata={"budget": 650000}) == RuleOutcome.VIOLATED


def test_threshold_accepts_formatted_numbers():
    rule = {"type": "threshold", "field": "metadata.budget", "operator": "<", "value": 1000}
    assert _outcome(rule, metadata={"budget": "$1,500"}) == RuleOutcome.VIOLATED
    assert _outcome(rule, metadata={"budget": "2e6"}) == RuleOutcome.VIOLATED
    assert _outcome(rule, metadata={"budget": "1.5e2"}) == RuleOutcome.SATISFIED
    assert _outcome(rule, metadata={"budget": "nan"}) == RuleOutcome.UNKNOWN
    assert _outcome(rule, metadata={"budget": "about 2e6"}) == RuleOutcome.UNKNOWN


def test_threshold_missing_field_is_unknown():
    rule = {"type": "threshold", "field": "metadata.budget", "operator": "<=", "value": 1}
    assert _outcome(rule) == RuleOutcome.UNKNOWN


def test_membership_over_multi_select():
    rule = {"type": "membership", "field": "parameters.technology", "allowed": ["Postgres", "MySQL"]}
    assert _outcome(rule, parameters={"technology": ["Postgres"]}) == RuleOutcome.SATISFIED
    assert _outcome(rule, parameters={"technology": ["Postgres", "MongoDB"]}) == RuleOutcome.VIOLATED


def test_required_fields():
    rule = {"type": "required_fields", "fields": ["metadata.owner", "metadata.security_review"]}
    assert _outcome(rule, metadata={"owner": "cfo", "security_review": "done"}) == RuleOutcome.SATISFIED
    assert _outcome(rule, metadata={"owner": "cfo", "security_review": ""}) == RuleOutcome.VIOLATED


def test_pattern_and_invalid_regex():
    rule = {"type": "pattern", "field": "description", "pattern": "approved by .*manager"}
    assert _outcome(rule, description="Approved by the finance manager") == RuleOutcome.SATISFIED
    assert _outcome(rule, description="Pending") == RuleOutcome.VIOLATED
    assert _outcome({"type": "pattern", "pattern": "(unclosed"}, description="x") == RuleOutcome.UNKNOWN


def test_composites():
    under = {"type": "threshold", "field": "metadata.budget", "operator": "<=", "value": 100}
    owner = {"type": "required_fields", "fields": ["metadata.owner"]}

    assert _outcome({"type": "all", "rules": [under, owner]}, metadata={"budget": 50}) == RuleOutcome.VIOLATED
    assert _outcome({"type": "any", "rules": [under, owner]}, metadata={"budget": 50}) == RuleOutcome.SATISFIED
    assert _outcome({"type": "not", "rule": under}, metadata={"budget": 50}) == RuleOutcome.VIOLATED


def test_legacy_tags_are_understood():
    rule = {"type": "budget_threshold", "field": "metadata.cost", "operator": "<=", "value": 10}
    assert _outcome(rule, metadata={"cost": 20}) == RuleOutcome.VIOLATED

    legacy_membership = {"type": "technical_compatibility", "field": "parameters.technology", "allowedValues": ["Go"]}
    assert _outcome(legacy_membership, parameters={"technology": "Go"}) == RuleOutcome.SATISFIED


def test_rule_from_json_string():
    rule = '{"type": "threshold", "field": "metadata.budget", "operator": ">", "value": 0}'
    assert _outcome(rule, metadata={"budget": 5}) == RuleOutcome.SATISFIED


DEEP_ARRAY = "[" * 100_000 + "]" * 100_000
DEEP_NOT_CHAIN = '{"type": "not", "rule": ' * 100_000 + "{}" + "}" * 100_000


@pytest.mark.parametrize("expression", [
    None, "", {}, "not json", [1, 2], {"type": "nope"}, {"value": 3},
    pytest.param(DEEP_ARRAY, id="deep-array"),
    pytest.param(DEEP_NOT_CHAIN, id="deep-not-chain"),
])
def test_uninterpretable_expressions_never_raise(expression):
    rule, problem = parse_rule(expression)
    assert rule is None
    assert problem
    assert _outcome(expression) == RuleOutcome.UNKNOWN
