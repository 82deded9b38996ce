"""Unit tests for loan product configuration parsing"""

import json
from decimal import Decimal

import pytest

from microlend.domain.exceptions import ProductMisconfigured
from microlend.domain.models import (
    AccrualBase,
    FixedFee,
    PenaltyFrequency,
    PenaltyKind,
    PercentageFee,
    ProductStatus,
)
from microlend.domain.product_config import (
    build_loan_product,
    parse_daily_fee_rule,
    parse_fee_rule,
    parse_penalty_tiers,
)


def _product(**overrides):
    fields = dict(
        id=1,
        provider_id=1,
        name="Quick Loan",
        min_loan="100.00",
        max_loan="5000.00",
        duration_days=30,
    )
    fields.update(overrides)
    return build_loan_product(**fields)


def test_parse_service_fee_from_stored_json():
    assert parse_fee_rule('{"type": "percentage", "value": "1.5"}') == PercentageFee(Decimal("1.5"))
    assert parse_fee_rule({"type": "fixed", "value": 25}) == FixedFee(Decimal("25"))


def test_missing_fee_is_none():
    assert parse_fee_rule(None) is None
    assert parse_fee_rule("") is None
    assert parse_daily_fee_rule("  ") is None
    assert parse_penalty_tiers(None) == []


def test_parse_daily_fee_calculation_base():
    compound = parse_daily_fee_rule('{"type": "percentage", "value": 0.5, "calculationBase": "compound"}')
    simple = parse_daily_fee_rule('{"type": "percentage", "value": "0.5"}')

    assert compound.rule == PercentageFee(Decimal("0.5"))
    assert compound.accrual_base == AccrualBase.OUTSTANDING
    assert simple.accrual_base == AccrualBase.PRINCIPAL


def test_parse_penalty_tiers_admin_spellings():
    raw = json.dumps(
        [
            {"fromDay": "1", "toDay": "7", "type": "fixed", "value": "5", "frequency": "daily"},
            {"fromDay": "8", "toDay": "", "type": "percentageOfCompound", "value": "1", "frequency": "one-time"},
        ]
    )

    first, second = parse_penalty_tiers(raw)

    assert (first.from_day, first.to_day, first.kind) == (1, 7, PenaltyKind.FIXED)
    assert first.frequency == PenaltyFrequency.DAILY
    assert second.to_day is None
    assert second.kind == PenaltyKind.PERCENT_OF_OUTSTANDING
    assert second.frequency == PenaltyFrequency.ONE_TIME


@pytest.mark.parametrize(
    "raw",
    [
        '{"type": "percentage", "value": ',
        '{"type": "weekly", "value": 1}',
        '{"type": "fixed", "value": -3}',
        '{"type": "percentage"}',
    ],
)
def test_malformed_fee_rule_raises(raw):
    with pytest.raises(ProductMisconfigured):
        parse_fee_rule(raw)


@pytest.mark.parametrize(
    "raw",
    [
        '{"fromDay": 1, "type": "fixed", "value": 5}',
        '[{"fromDay": 5, "toDay": 2, "type": "fixed", "value": 5}]',
        '[{"fromDay": 1, "type": "fixed", "value": 5, "frequency": "hourly"}]',
        "[{not json}]",
    ],
)
def test_malformed_penalty_rules_raise(raw):
    with pytest.raises(ProductMisconfigured):
        parse_penalty_tiers(raw)


def test_build_loan_product():
    product = _product(
        service_fee='{"type": "percentage", "value": "1.5"}',
        daily_fee='{"type": "fixed", "value": "2"}',
        penalty_rules="[]",
        penalty_enabled=False,
    )

    assert product.max_loan == Decimal("5000.00")
    assert product.service_fee == PercentageFee(Decimal("1.5"))
    assert product.daily_fee.rule == FixedFee(Decimal("2"))
    assert product.penalty_tiers == []
    assert product.penalty_enabled is False
    assert product.status == ProductStatus.ACTIVE


def test_build_loan_product_rejects_unknown_status():
    with pytest.raises(ProductMisconfigured):
        _product(status="Archived")


def test_build_loan_product_rejects_negative_duration():
    with pytest.raises(ProductMisconfigured):
        _product(duration_days=-1)
