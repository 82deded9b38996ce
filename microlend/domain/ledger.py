"""
Double-entry journal building for loan repayments.

A payment is split across the components it settles, then each settled
component becomes its own journal entry:

    settlement   Dr Received(category)    Cr Receivable(category)
    recognition  Dr Receivable(category)  Cr Income(category)

Recognition is posted for fee categories only (interest, service fee,
penalty): those amounts are earned when collected. Every entry must balance
before it leaves this module.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List

from microlend.domain.exceptions import PaymentExceedsBalance, UnbalancedJournalEntry
from microlend.domain.models import (
    AccountType,
    Allocation,
    EntryDirection,
    JournalEntry,
    LedgerCategory,
    LedgerLine,
    RepaymentBreakdown,
)
from microlend.domain.money import ZERO, money

# Payments settle components in this order
ALLOCATION_ORDER = (
    LedgerCategory.PENALTY,
    LedgerCategory.SERVICE_FEE,
    LedgerCategory.INTEREST,
    LedgerCategory.TAX,
    LedgerCategory.PRINCIPAL,
)

INCOME_CATEGORIES = frozenset(
    {LedgerCategory.INTEREST, LedgerCategory.SERVICE_FEE, LedgerCategory.PENALTY}
)

DEBIT_NORMAL_ACCOUNTS = frozenset({AccountType.RECEIVABLE, AccountType.RECEIVED})


def component_amounts(breakdown: RepaymentBreakdown) -> Dict[LedgerCategory, Decimal]:
    return {
        LedgerCategory.PENALTY: breakdown.penalty,
        LedgerCategory.SERVICE_FEE: breakdown.service_fee,
        LedgerCategory.INTEREST: breakdown.daily_fee,
        LedgerCategory.TAX: breakdown.tax,
        LedgerCategory.PRINCIPAL: breakdown.principal,
    }


def allocate_payment(amount: Decimal, breakdown: RepaymentBreakdown, already_repaid: Decimal) -> List[Allocation]:
    """
    Split a payment across components, in ALLOCATION_ORDER.

    Earlier repayments are assumed to have settled components in the same
    order, so they are consumed first.

    Raises:
        PaymentExceedsBalance: amount is more than the components still owe
    """
    prior = money(already_repaid)
    remaining = money(amount)
    allocations: List[Allocation] = []

    for category, owed in component_amounts(breakdown).items():
        covered = min(prior, owed)
        prior -= covered
        to_pay = min(remaining, owed - covered)
        if to_pay > 0:
            allocations.append(Allocation(category=category, amount=to_pay))
            remaining -= to_pay

    if remaining > 0:
        raise PaymentExceedsBalance(money(amount), money(amount) - remaining)

    return allocations


def assert_balanced(entry: JournalEntry) -> None:
    """Raise UnbalancedJournalEntry unless debits == credits and non-zero"""
    if len(entry.lines) < 2:
        raise UnbalancedJournalEntry("A journal entry requires at least two lines")
    debits, credits = entry.total_debits, entry.total_credits
    if debits != credits:
        raise UnbalancedJournalEntry(
            f"Entry is not balanced: debits={debits}, credits={credits}"
        )
    if debits == ZERO:
        raise UnbalancedJournalEntry("Entry has zero total")


def _entry(provider_id: int, loan_id: int, posted_at: datetime, description: str, lines: List[LedgerLine]) -> JournalEntry:
    entry = JournalEntry(
        provider_id=provider_id,
        loan_id=loan_id,
        posted_at=posted_at,
        description=description,
        lines=lines,
    )
    assert_balanced(entry)
    return entry


def build_journal_entries(
    provider_id: int,
    loan_id: int,
    allocations: List[Allocation],
    posted_at: datetime,
) -> List[JournalEntry]:
    """One settlement entry per allocation, plus recognition for fee categories"""
    entries: List[JournalEntry] = []
    for alloc in allocations:
        category, amount = alloc.category, alloc.amount
        entries.append(
            _entry(
                provider_id,
                loan_id,
                posted_at,
                f"Repayment of {category.value} {amount} for loan {loan_id}",
                [
                    LedgerLine(AccountType.RECEIVED, category, EntryDirection.DEBIT, amount),
                    LedgerLine(AccountType.RECEIVABLE, category, EntryDirection.CREDIT, amount),
                ],
            )
        )
        if category in INCOME_CATEGORIES:
            entries.append(
                _entry(
                    provider_id,
                    loan_id,
                    posted_at,
                    f"Income recognised on {category.value} {amount} for loan {loan_id}",
                    [
                        LedgerLine(AccountType.RECEIVABLE, category, EntryDirection.DEBIT, amount),
                        LedgerLine(AccountType.INCOME, category, EntryDirection.CREDIT, amount),
                    ],
                )
            )
    return entries


def balance_delta(account_type: AccountType, direction: EntryDirection, amount: Decimal) -> Decimal:
    """Signed change to an account's running balance for one ledger line"""
    debit_normal = account_type in DEBIT_NORMAL_ACCOUNTS
    if (direction == EntryDirection.DEBIT) == debit_normal:
        return amount
    return -amount
