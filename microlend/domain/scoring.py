"""Rule-based credit scoring engine - core business logic for loan sizing"""

import operator
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional, Protocol

from microlend.domain.exceptions import InvalidScoringRule, NoTierMatch
from microlend.domain.models import LoanAmountTier, ScoreResult, ScoringParameter, ScoringRule
from microlend.domain.money import ZERO, money

_NUMERIC_OPERATORS = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}

# Closed vocabulary: anything else is rejected when the rule is built
SUPPORTED_CONDITIONS = frozenset(_NUMERIC_OPERATORS) | {"between", "in"}

_RANGE_PATTERN = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*-\s*(-?\d+(?:\.\d+)?)\s*$")


def _as_number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _parse_range(rule_value: str) -> Optional[tuple[Decimal, Decimal]]:
    match = _RANGE_PATTERN.match(rule_value or "")
    if not match:
        return None
    return Decimal(match.group(1)), Decimal(match.group(2))


def build_rule(field: str, condition: str, value: Any, score: Any) -> ScoringRule:
    """Validate a stored rule into a ScoringRule"""
    condition = (condition or "").strip()
    if condition not in SUPPORTED_CONDITIONS:
        raise InvalidScoringRule(
            f"Unsupported condition {condition!r} on {field!r}; expected one of {sorted(SUPPORTED_CONDITIONS)}"
        )
    value = "" if value is None else str(value)
    if condition == "between" and _parse_range(value) is None:
        raise InvalidScoringRule(f"'between' on {field!r} needs 'min-max', got {value!r}")
    points = _as_number(score)
    if points is None:
        raise InvalidScoringRule(f"Rule score for {field!r} is not a number: {score!r}")
    return ScoringRule(field=field, condition=condition, value=value, score=points)


def evaluate_condition(input_value: Any, condition: str, rule_value: str) -> bool:
    """
    Evaluate one rule condition against a borrower attribute.

    Numeric comparison when both sides are numeric; otherwise == / != / in
    compare case-insensitive strings. Missing attributes never match.
    """
    if input_value is None or input_value == "":
        return False

    if condition == "in":
        members = [m.strip() for m in rule_value.split(",") if m.strip()]
        number = _as_number(input_value)
        if number is not None:
            return any(_as_number(m) == number for m in members)
        text = str(input_value).strip().lower()
        return any(m.lower() == text for m in members)

    number = _as_number(input_value)
    if number is not None:
        if condition == "between":
            bounds = _parse_range(rule_value)
            if bounds is None:
                return False
            low, high = bounds
            return low <= number <= high

        rule_number = _as_number(rule_value)
        compare = _NUMERIC_OPERATORS.get(condition)
        if rule_number is None or compare is None:
            return False
        return compare(number, rule_number)

    text = str(input_value).strip().lower()
    if condition == "==":
        return text == rule_value.strip().lower()
    if condition == "!=":
        return text != rule_value.strip().lower()
    return False


def score_parameter(attributes: Mapping[str, Any], parameter: ScoringParameter) -> Decimal:
    """
    Best matching rule's points, clamped to [0, weight].

    Max rather than sum or first match: rule order never changes the result
    and several matching rules cannot push a parameter past its weight.
    """
    best = ZERO
    for rule in parameter.rules:
        field = rule.field or parameter.name
        if evaluate_condition(attributes.get(field), rule.condition, rule.value) and rule.score > best:
            best = rule.score
    return min(max(best, ZERO), parameter.weight)


def calculate_score(attributes: Mapping[str, Any], parameters: List[ScoringParameter]) -> int:
    """Sum of parameter scores, rounded half-up to a whole point"""
    total = sum((score_parameter(attributes, p) for p in parameters), Decimal("0"))
    return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def find_loan_tier(score: int, tiers: List[LoanAmountTier]) -> LoanAmountTier:
    """
    Tier whose inclusive [from_score, to_score] range contains the score.

    Raises:
        NoTierMatch: no tier contains the score
    """
    for tier in sorted(tiers, key=lambda t: t.from_score):
        if tier.from_score <= score <= tier.to_score:
            return tier
    raise NoTierMatch(score)


def determine_loan_limit(score: int, tiers: List[LoanAmountTier]) -> Decimal:
    """Maximum loan amount for a score"""
    return money(find_loan_tier(score, tiers).loan_amount)


class ScoringConfigRepository(Protocol):
    """Read-only source of provider scoring configuration"""

    def get_scoring_parameters(self, provider_id: int) -> List[ScoringParameter]:
        ...

    def get_loan_amount_tiers(self, product_id: int) -> List[LoanAmountTier]:
        ...


class ScoringEngine:
    """Scores borrowers against provider rules read through an injected repository"""

    def __init__(self, config_repository: ScoringConfigRepository):
        self.config_repository = config_repository

    def score(self, provider_id: int, attributes: Dict[str, Any]) -> int:
        parameters = self.config_repository.get_scoring_parameters(provider_id)
        return calculate_score(attributes, parameters)

    def evaluate(self, provider_id: int, product_id: int, attributes: Dict[str, Any]) -> ScoreResult:
        """
        Score a borrower and size the offer.

        Raises:
            NoTierMatch: the score falls outside every configured tier
        """
        score = self.score(provider_id, attributes)
        tier = find_loan_tier(score, self.config_repository.get_loan_amount_tiers(product_id))
        return ScoreResult(score=score, max_loan_amount=money(tier.loan_amount), tier=tier)
