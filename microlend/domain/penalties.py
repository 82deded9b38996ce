"""Late penalty tiers"""

from datetime import date, datetime
from decimal import Decimal

from microlend.domain.models import Loan, LoanProduct, PenaltyFrequency, PenaltyKind, PenaltyTier
from microlend.domain.money import ZERO, money, percent_of
from microlend.utils.date_utils import days_between


def days_overdue(loan: Loan, as_of: date | datetime) -> int:
    """Whole days past the due date, 0 when not yet due"""
    return max(0, days_between(loan.due_date, as_of))


def _tier_days(tier: PenaltyTier, overdue: int) -> int:
    """Days of [from_day, to_day] that fall inside [1, overdue]"""
    upper = overdue if tier.to_day is None else min(overdue, tier.to_day)
    return max(0, upper - tier.from_day + 1)


def _tier_unit_value(tier: PenaltyTier, principal: Decimal, outstanding: Decimal) -> Decimal:
    if tier.kind == PenaltyKind.FIXED:
        return tier.amount
    if tier.kind == PenaltyKind.PERCENT_OF_PRINCIPAL:
        return percent_of(principal, tier.amount)
    return percent_of(outstanding, tier.amount)


def penalty_accrued(
    loan: Loan,
    product: LoanProduct,
    as_of: date | datetime,
    fees_to_date: Decimal = ZERO,
) -> Decimal:
    """
    Penalty accrued by as_of.

    Every tier intersecting [1, days_overdue] contributes; tiers are summed,
    not first-match, so consecutive tiers step the penalty up. A one_time
    tier charges its value once when reached, a daily tier charges it for
    each overdue day inside its range.

    fees_to_date is the service fee plus daily fee accrued by as_of; with the
    principal it forms the base of percent_of_outstanding tiers.
    """
    if not product.penalty_enabled or not product.penalty_tiers:
        return ZERO

    overdue = days_overdue(loan, as_of)
    if overdue == 0:
        return ZERO

    outstanding = loan.principal + fees_to_date
    total = Decimal("0")
    for tier in product.penalty_tiers:
        days = _tier_days(tier, overdue)
        if days == 0:
            continue
        unit = _tier_unit_value(tier, loan.principal, outstanding)
        if tier.frequency == PenaltyFrequency.ONE_TIME:
            total += unit
        else:
            total += unit * days

    return money(total)
