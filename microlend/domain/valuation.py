"""
Repayment valuation - what a loan owes as of a given date.

Valuation is a pure function of (loan, product, tax config, as_of): it reads
the snapshots it is given and never mutates them, so it can run outside any
transaction and as often as callers like. Amounts only accrue forward, so the
total repayable is non-decreasing in as_of.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from microlend.domain.exceptions import InvalidPaymentAmount, PaymentExceedsBalance
from microlend.domain.fees import daily_fee_accrued, service_fee_amount
from microlend.domain.models import (
    FeeComponent,
    Loan,
    LoanProduct,
    RepaymentBehavior,
    RepaymentBreakdown,
    TaxConfig,
)
from microlend.domain.money import money, to_decimal
from microlend.domain.penalties import penalty_accrued
from microlend.domain.tax import apply_tax
from microlend.utils.date_utils import to_date

# Absorbs rounding on amounts entered by callers
DEFAULT_TOLERANCE = Decimal("0.01")


def calculate_repayment(
    loan: Loan,
    product: LoanProduct,
    tax_config: Optional[TaxConfig],
    as_of: date | datetime,
) -> RepaymentBreakdown:
    """
    Break the amount owed as of as_of into its components.

    Each component is rounded half-up to the cent once, so the total is an
    exact sum of rounded parts.
    """
    service_fee = service_fee_amount(loan, product)
    daily_fee = daily_fee_accrued(loan, product, as_of, service_fee=service_fee)
    penalty = penalty_accrued(loan, product, as_of, fees_to_date=service_fee + daily_fee)
    tax = apply_tax(
        {
            FeeComponent.SERVICE_FEE: service_fee,
            FeeComponent.DAILY_FEE: daily_fee,
            FeeComponent.PENALTY: penalty,
        },
        tax_config,
    )

    return RepaymentBreakdown(
        principal=money(loan.principal),
        service_fee=service_fee,
        daily_fee=daily_fee,
        penalty=penalty,
        tax=tax,
    )


def total_repayable(
    loan: Loan,
    product: LoanProduct,
    tax_config: Optional[TaxConfig],
    as_of: date | datetime,
) -> Decimal:
    """principal + service fee + daily fee + penalty + tax"""
    return calculate_repayment(loan, product, tax_config, as_of).total


def outstanding_balance(
    loan: Loan,
    product: LoanProduct,
    tax_config: Optional[TaxConfig],
    as_of: date | datetime,
) -> Decimal:
    """Total repayable minus what has already been repaid"""
    return total_repayable(loan, product, tax_config, as_of) - money(loan.repaid_amount)


def validate_payment_amount(amount, outstanding: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> Decimal:
    """
    Check a requested payment against the outstanding balance.

    Returns the amount to post as a cent-rounded Decimal. An amount above the
    outstanding balance but within tolerance is capped at the balance, so the
    tolerance never turns into an overpayment.

    Raises:
        InvalidPaymentAmount: amount is not a positive number
        PaymentExceedsBalance: amount is above outstanding + tolerance, or
            nothing is outstanding
    """
    try:
        value = to_decimal(amount)
    except (ValueError, InvalidOperation) as e:
        raise InvalidPaymentAmount(f"Payment amount {amount!r} is not a number") from e

    if not value.is_finite() or value <= 0:
        raise InvalidPaymentAmount(f"Payment amount must be positive, got {amount!r}")

    value = money(value)
    if value <= 0:
        raise InvalidPaymentAmount(f"Payment amount {amount!r} rounds to zero")
    if value > outstanding + tolerance or outstanding <= 0:
        raise PaymentExceedsBalance(value, outstanding)
    return min(value, outstanding)


def is_fully_paid(repaid_amount: Decimal, total: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    return repaid_amount >= total - tolerance


def repayment_behavior(paid_on: date | datetime, due_date: date) -> RepaymentBehavior:
    """Classify the day a loan was cleared against its due date"""
    paid_day = to_date(paid_on)
    if paid_day < due_date:
        return RepaymentBehavior.EARLY
    if paid_day == due_date:
        return RepaymentBehavior.ON_TIME
    return RepaymentBehavior.LATE
