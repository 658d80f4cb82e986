"""
Constraint Rule Evaluator - closed set of tagged rule variants.

A constraint's rule_expression is a small JSON document whose "type" tag
selects one of:

    threshold        {"type": "threshold", "field": "metadata.budget", "operator": "<=", "value": 500000}
    membership       {"type": "membership", "field": "parameters.technology", "allowed": ["Postgres", "MySQL"]}
    required_fields  {"type": "required_fields", "fields": ["metadata.security_review"]}
    pattern          {"type": "pattern", "field": "description", "pattern": "approved by .*manager", "flags": "i"}
    all / any        {"type": "all", "rules": [...]}
    not              {"type": "not", "rule": {...}}

Legacy tags (budget_threshold, technical_compatibility,
compliance_required_fields, policy_regex) map onto the variants above.

Evaluation never raises. Anything that cannot be interpreted (bad JSON,
unknown tag, missing field for a comparison, invalid regex) yields
RuleOutcome.UNKNOWN with a reason, which the engine records as a warning.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from app.schemas import Constraint, Decision

logger = logging.getLogger(__name__)


class RuleOutcome(str, Enum):
    SATISFIED = "SATISFIED"
    VIOLATED = "VIOLATED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class RuleResult:
    outcome: RuleOutcome
    reason: str

    @property
    def violated(self) -> bool:
        return self.outcome == RuleOutcome.VIOLATED


# ==================== RULE VARIANTS ====================


class ThresholdRule(BaseModel):
    type: Literal["threshold"]
    field: str = "metadata.cost"
    operator: Literal["<", "<=", ">", ">=", "==", "!="] = "<="
    value: float


class MembershipRule(BaseModel):
    type: Literal["membership"]
    field: str
    allowed: list[Any] = Field(default_factory=list)


class RequiredFieldsRule(BaseModel):
    type: Literal["required_fields"]
    fields: list[str] = Field(..., min_length=1)


class PatternRule(BaseModel):
    type: Literal["pattern"]
    field: str = "description"
    pattern: str = Field(..., min_length=1)
    flags: str = "i"


class AllRule(BaseModel):
    type: Literal["all"]
    rules: list["Rule"] = Field(..., min_length=1)


class AnyRule(BaseModel):
    type: Literal["any"]
    rules: list["Rule"] = Field(..., min_length=1)


class NotRule(BaseModel):
    type: Literal["not"]
    rule: "Rule"


Rule = Annotated[
    Union[ThresholdRule, MembershipRule, RequiredFieldsRule, PatternRule, AllRule, AnyRule, NotRule],
    Field(discriminator="type"),
]

AllRule.model_rebuild()
AnyRule.model_rebuild()
NotRule.model_rebuild()

_RULE_ADAPTER = TypeAdapter(Rule)

# Tags used by rule expressions written for the earlier validator.
_LEGACY_TAGS = {
    "budget_threshold": "threshold",
    "technical_compatibility": "membership",
    "compliance_required_fields": "required_fields",
    "policy_regex": "pattern",
}

_LEGACY_KEYS = {
    "allowedValues": "allowed",
}


def _normalize_expression(expr: Any) -> Any:
    """Rewrite legacy tags/keys recursively so the discriminated union can parse them."""
    if isinstance(expr, list):
        return [_normalize_expression(e) for e in expr]
    if not isinstance(expr, dict):
        return expr
    out = {}
    for key, value in expr.items():
        key = _LEGACY_KEYS.get(key, key)
        if key in ("rules", "rule"):
            value = _normalize_expression(value)
        out[key] = value
    tag = out.get("type")
    if isinstance(tag, str):
        tag = tag.strip().lower()
        out["type"] = _LEGACY_TAGS.get(tag, tag)
    return out


def parse_rule(rule_expression: Any) -> tuple[Optional[Any], Optional[str]]:
    """
    Parse a raw rule_expression into a rule variant.

    Returns:
        (rule, None) on success, (None, reason) when the expression is not usable
    """
    if rule_expression is None or rule_expression == "" or rule_expression == {}:
        return None, "no rule expression configured"

    expr = rule_expression
    if isinstance(expr, str):
        try:
            expr = json.loads(expr)
        except json.JSONDecodeError as e:
            return None, f"rule expression is not valid JSON ({e.msg})"
        except RecursionError:
            return None, "rule expression is nested too deeply"

    if not isinstance(expr, dict):
        return None, f"rule expression must be an object, got {type(expr).__name__}"

    try:
        return _RULE_ADAPTER.validate_python(_normalize_expression(expr)), None
    except ValidationError as e:
        first = e.errors(include_url=False)[0]
        return None, f"unsupported rule: {first.get('msg')}"
    except RecursionError:
        return None, "rule expression is nested too deeply"


# ==================== EVALUATION ====================


_MISSING = object()


def decision_context(decision: Decision) -> dict:
    """Fields a rule may reference via dotted paths."""
    return {
        "id": decision.id,
        "title": decision.title,
        "description": decision.description or "",
        "category": decision.category,
        "parameters": decision.parameters or {},
        "metadata": decision.metadata or {},
    }


def get_path(context: dict, path: str) -> Any:
    """Resolve 'metadata.budget' style paths; returns _MISSING when absent."""
    current: Any = context
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return _MISSING
    return current


_NUMBER_NOISE = re.compile(r"[\s,_$€£¥]")


def as_number(value: Any) -> Optional[float]:
    """
    Read a finite number from a field value.

    Plain numeric strings ("2e6", "-3.5") parse as-is; otherwise currency
    symbols, thousands separators and whitespace are dropped ("$1,500").
    Anything else is None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            try:
                number = float(_NUMBER_NOISE.sub("", value))
            except ValueError:
                return None
    else:
        return None
    return number if math.isfinite(number) else None


def _compare(actual: float, operator: str, threshold: float) -> bool:
    if operator == "<":
        return actual < threshold
    elif operator == "<=":
        return actual <= threshold
    elif operator == ">":
        return actual > threshold
    elif operator == ">=":
        return actual >= threshold
    elif operator == "==":
        return actual == threshold
    return actual != threshold


def _regex_flags(flags: str) -> int:
    value = 0
    for ch in flags:
        if ch == "i":
            value |= re.IGNORECASE
        elif ch == "m":
            value |= re.MULTILINE
        elif ch == "s":
            value |= re.DOTALL
    return value


def evaluate_rule(rule: Any, context: dict) -> RuleResult:
    """Dispatch over the variant tag."""
    if isinstance(rule, ThresholdRule):
        raw = get_path(context, rule.field)
        if raw is _MISSING:
            return RuleResult(RuleOutcome.UNKNOWN, f'field "{rule.field}" not present')
        actual = as_number(raw)
        if actual is None:
            return RuleResult(RuleOutcome.UNKNOWN, f'field "{rule.field}" is not numeric ({raw!r})')
        if _compare(actual, rule.operator, rule.value):
            return RuleResult(RuleOutcome.SATISFIED, f"{rule.field}={actual:g} {rule.operator} {rule.value:g}")
        return RuleResult(
            RuleOutcome.VIOLATED,
            f"expected {rule.field} {rule.operator} {rule.value:g}, got {actual:g}",
        )

    if isinstance(rule, MembershipRule):
        raw = get_path(context, rule.field)
        if raw is _MISSING:
            return RuleResult(RuleOutcome.UNKNOWN, f'field "{rule.field}" not present')
        values = raw if isinstance(raw, list) else [raw]
        disallowed = [v for v in values if v not in rule.allowed]
        if disallowed:
            return RuleResult(
                RuleOutcome.VIOLATED,
                f"{rule.field} value(s) {disallowed} not in allowed list {rule.allowed}",
            )
        return RuleResult(RuleOutcome.SATISFIED, f"{rule.field} within allowed values")

    if isinstance(rule, RequiredFieldsRule):
        missing = []
        for path in rule.fields:
            value = get_path(context, path)
            if value is _MISSING or value is None or value == "":
                missing.append(path)
        if missing:
            return RuleResult(RuleOutcome.VIOLATED, f"missing required fields: {', '.join(missing)}")
        return RuleResult(RuleOutcome.SATISFIED, "all required fields present")

    if isinstance(rule, PatternRule):
        text = get_path(context, rule.field)
        if not isinstance(text, str):
            return RuleResult(RuleOutcome.UNKNOWN, f'field "{rule.field}" is not text')
        try:
            matched = re.search(rule.pattern, text, _regex_flags(rule.flags)) is not None
        except re.error as e:
            return RuleResult(RuleOutcome.UNKNOWN, f"invalid pattern /{rule.pattern}/: {e}")
        if matched:
            return RuleResult(RuleOutcome.SATISFIED, f"{rule.field} matches /{rule.pattern}/")
        return RuleResult(RuleOutcome.VIOLATED, f"{rule.field} does not match required pattern /{rule.pattern}/")

    if isinstance(rule, AllRule):
        results = [evaluate_rule(r, context) for r in rule.rules]
        violated = [r for r in results if r.outcome == RuleOutcome.VIOLATED]
        if violated:
            return RuleResult(RuleOutcome.VIOLATED, "; ".join(r.reason for r in violated))
        unknown = [r for r in results if r.outcome == RuleOutcome.UNKNOWN]
        if unknown:
            return RuleResult(RuleOutcome.UNKNOWN, "; ".join(r.reason for r in unknown))
        return RuleResult(RuleOutcome.SATISFIED, "all sub-rules satisfied")

    if isinstance(rule, AnyRule):
        results = [evaluate_rule(r, context) for r in rule.rules]
        if any(r.outcome == RuleOutcome.SATISFIED for r in results):
            return RuleResult(RuleOutcome.SATISFIED, "at least one sub-rule satisfied")
        unknown = [r for r in results if r.outcome == RuleOutcome.UNKNOWN]
        if unknown:
            return RuleResult(RuleOutcome.UNKNOWN, "; ".join(r.reason for r in unknown))
        return RuleResult(RuleOutcome.VIOLATED, "; ".join(r.reason for r in results))

    if isinstance(rule, NotRule):
        inner = evaluate_rule(rule.rule, context)
        if inner.outcome == RuleOutcome.SATISFIED:
            return RuleResult(RuleOutcome.VIOLATED, f"negated rule holds ({inner.reason})")
        if inner.outcome == RuleOutcome.VIOLATED:
            return RuleResult(RuleOutcome.SATISFIED, f"negated rule fails ({inner.reason})")
        return inner

    return RuleResult(RuleOutcome.UNKNOWN, f"unsupported rule variant {type(rule).__name__}")


def evaluate_constraint(constraint: Constraint, decision: Decision) -> RuleResult:
    """
    Evaluate one constraint against a decision.

    Never raises: every failure mode degrades to UNKNOWN.
    """
    try:
        rule, problem = parse_rule(constraint.rule_expression)
        if rule is None:
            logger.debug(f"Constraint {constraint.id} not interpretable: {problem}")
            return RuleResult(RuleOutcome.UNKNOWN, problem)
        return evaluate_rule(rule, decision_context(decision))
    except Exception as e:
        logger.debug(f"Constraint {constraint.id} evaluation error: {e}")
        return RuleResult(RuleOutcome.UNKNOWN, f"rule evaluation error: {e}")
