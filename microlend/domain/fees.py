"""Service fee and daily fee schedule"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from microlend.domain.models import AccrualBase, FixedFee, Loan, LoanProduct
from microlend.domain.money import HUNDRED, ZERO, money, percent_of
from microlend.utils.date_utils import days_between, to_date


def service_fee_amount(loan: Loan, product: LoanProduct) -> Decimal:
    """
    One-time service fee charged at disbursement.

    Fixed amount, or a percentage of the principal. Never re-accrues.
    """
    rule = product.service_fee
    if not product.service_fee_enabled or rule is None:
        return ZERO

    if isinstance(rule, FixedFee):
        return money(rule.amount)
    return money(percent_of(loan.principal, rule.rate))


def accrual_days(loan: Loan, product: LoanProduct, as_of: date | datetime) -> int:
    """Whole days of daily-fee accrual up to as_of (partial days truncate)"""
    end = to_date(as_of)
    if product.daily_fee_stops_at_due_date:
        end = min(end, loan.due_date)
    return max(0, days_between(loan.disbursed_at, end))


def daily_fee_accrued(
    loan: Loan,
    product: LoanProduct,
    as_of: date | datetime,
    service_fee: Optional[Decimal] = None,
) -> Decimal:
    """
    Daily fee accrued from disbursement to as_of.

    accrual_base=principal: simple accrual, elapsed_days * daily charge.
    accrual_base=outstanding: the percentage compounds on the running balance,
    which starts at principal + service fee and includes every earlier day's
    accrual (the day's own accrual is not part of its base). A fixed amount
    has no base and simply adds up per day.
    """
    daily = product.daily_fee
    if not product.daily_fee_enabled or daily is None:
        return ZERO

    elapsed = accrual_days(loan, product, as_of)
    if elapsed == 0:
        return ZERO

    rule = daily.rule
    if isinstance(rule, FixedFee):
        return money(rule.amount * elapsed)

    if daily.accrual_base == AccrualBase.PRINCIPAL:
        return money(percent_of(loan.principal, rule.rate) * elapsed)

    if service_fee is None:
        service_fee = service_fee_amount(loan, product)
    opening = loan.principal + service_fee
    closing = opening * (1 + rule.rate / HUNDRED) ** elapsed
    return money(closing - opening)
