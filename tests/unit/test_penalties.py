"""Unit tests for late penalty tiers"""

from datetime import date
from decimal import Decimal

from microlend.domain.models import PenaltyFrequency, PenaltyKind, PenaltyTier
from microlend.domain.penalties import days_overdue, penalty_accrued

# Loans from the factory fall due on 2024-01-31


def _tier(from_day, to_day, kind=PenaltyKind.FIXED, amount="10", frequency=PenaltyFrequency.DAILY):
    return PenaltyTier(from_day=from_day, to_day=to_day, kind=kind, amount=Decimal(amount), frequency=frequency)


def test_days_overdue(loan_factory):
    loan = loan_factory()

    assert days_overdue(loan, date(2024, 1, 15)) == 0
    assert days_overdue(loan, date(2024, 1, 31)) == 0
    assert days_overdue(loan, date(2024, 2, 5)) == 5


def test_no_penalty_before_due(product_factory, loan_factory):
    product = product_factory(penalty_tiers=[_tier(1, None)])

    assert penalty_accrued(loan_factory(), product, date(2024, 1, 31)) == Decimal("0.00")


def test_one_time_fixed_penalty(product_factory, loan_factory):
    """Charged once regardless of how long the loan stays overdue"""
    product = product_factory(
        penalty_tiers=[_tier(1, None, amount="50", frequency=PenaltyFrequency.ONE_TIME)]
    )
    loan = loan_factory()

    assert penalty_accrued(loan, product, date(2024, 2, 5)) == Decimal("50.00")
    assert penalty_accrued(loan, product, date(2024, 4, 5)) == Decimal("50.00")


def test_consecutive_daily_tiers_sum(product_factory, loan_factory):
    """Days 1-3 at 10/day, day 4 onwards at 20/day"""
    product = product_factory(penalty_tiers=[_tier(1, 3, amount="10"), _tier(4, None, amount="20")])
    loan = loan_factory()

    assert penalty_accrued(loan, product, date(2024, 2, 2)) == Decimal("20.00")
    assert penalty_accrued(loan, product, date(2024, 2, 5)) == Decimal("70.00")


def test_tier_not_yet_reached(product_factory, loan_factory):
    product = product_factory(penalty_tiers=[_tier(4, None, amount="20")])

    assert penalty_accrued(loan_factory(), product, date(2024, 2, 3)) == Decimal("0.00")


def test_percent_of_principal_daily(product_factory, loan_factory):
    """1% of 1000.00 for 3 days"""
    product = product_factory(
        penalty_tiers=[_tier(1, None, kind=PenaltyKind.PERCENT_OF_PRINCIPAL, amount="1")]
    )

    assert penalty_accrued(loan_factory(), product, date(2024, 2, 3)) == Decimal("30.00")


def test_percent_of_outstanding_includes_fees(product_factory, loan_factory):
    """10% of (1000.00 principal + 50.00 fees)"""
    product = product_factory(
        penalty_tiers=[
            _tier(1, None, kind=PenaltyKind.PERCENT_OF_OUTSTANDING, amount="10", frequency=PenaltyFrequency.ONE_TIME)
        ]
    )

    result = penalty_accrued(loan_factory(), product, date(2024, 2, 3), fees_to_date=Decimal("50.00"))

    assert result == Decimal("105.00")


def test_penalty_disabled(product_factory, loan_factory):
    product = product_factory(penalty_tiers=[_tier(1, None, amount="50")], penalty_enabled=False)

    assert penalty_accrued(loan_factory(), product, date(2024, 3, 1)) == Decimal("0.00")
