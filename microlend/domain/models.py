"""Domain models - pure Python dataclasses representing business entities"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union


class FeeKind(str, enum.Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class AccrualBase(str, enum.Enum):
    PRINCIPAL = "principal"
    OUTSTANDING = "outstanding"


class PenaltyKind(str, enum.Enum):
    FIXED = "fixed"
    PERCENT_OF_PRINCIPAL = "percent_of_principal"
    PERCENT_OF_OUTSTANDING = "percent_of_outstanding"


class PenaltyFrequency(str, enum.Enum):
    DAILY = "daily"
    ONE_TIME = "one_time"


class ProductStatus(str, enum.Enum):
    ACTIVE = "Active"
    DISABLED = "Disabled"


class RepaymentStatus(str, enum.Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"


class RepaymentBehavior(str, enum.Enum):
    EARLY = "EARLY"
    ON_TIME = "ON_TIME"
    LATE = "LATE"


class FeeComponent(str, enum.Enum):
    """Fee components a tax can be applied to"""

    SERVICE_FEE = "service_fee"
    DAILY_FEE = "daily_fee"
    PENALTY = "penalty"


class AccountType(str, enum.Enum):
    RECEIVABLE = "Receivable"
    RECEIVED = "Received"
    INCOME = "Income"


class LedgerCategory(str, enum.Enum):
    PRINCIPAL = "Principal"
    INTEREST = "Interest"
    SERVICE_FEE = "ServiceFee"
    PENALTY = "Penalty"
    TAX = "Tax"


class EntryDirection(str, enum.Enum):
    DEBIT = "Debit"
    CREDIT = "Credit"


@dataclass(frozen=True)
class FixedFee:
    """Flat currency amount"""

    amount: Decimal


@dataclass(frozen=True)
class PercentageFee:
    """Percentage of principal (rate is in percent, 1.5 == 1.5%)"""

    rate: Decimal


FeeRule = Union[FixedFee, PercentageFee]


@dataclass(frozen=True)
class DailyFeeRule:
    """Per-day fee with the base it accrues on"""

    rule: FeeRule
    accrual_base: AccrualBase = AccrualBase.PRINCIPAL


@dataclass(frozen=True)
class PenaltyTier:
    """Day range of overdue days, 1-based; to_day None means unbounded"""

    from_day: int
    to_day: Optional[int]
    kind: PenaltyKind
    amount: Decimal
    frequency: PenaltyFrequency = PenaltyFrequency.DAILY


@dataclass(frozen=True)
class LoanProduct:
    """Provider's loan offering with its fee and penalty configuration"""

    id: int
    provider_id: int
    name: str
    min_loan: Decimal
    max_loan: Decimal
    duration_days: int
    service_fee: Optional[FeeRule] = None
    daily_fee: Optional[DailyFeeRule] = None
    penalty_tiers: List[PenaltyTier] = field(default_factory=list)
    service_fee_enabled: bool = True
    daily_fee_enabled: bool = True
    penalty_enabled: bool = True
    daily_fee_stops_at_due_date: bool = False
    status: ProductStatus = ProductStatus.ACTIVE


@dataclass
class Loan:
    """Loan snapshot as read from storage"""

    id: int
    borrower_id: str
    provider_id: int
    product_id: int
    principal: Decimal
    disbursed_at: datetime
    due_date: date
    repaid_amount: Decimal = Decimal("0.00")
    repayment_status: RepaymentStatus = RepaymentStatus.UNPAID
    repayment_behavior: Optional[RepaymentBehavior] = None


@dataclass(frozen=True)
class Payment:
    """One accepted repayment"""

    loan_id: int
    amount: Decimal
    paid_at: datetime
    outstanding_balance_before_payment: Decimal
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class TaxConfig:
    """Global tax; rate in percent"""

    name: str
    rate: Decimal
    applied_to: frozenset = frozenset()


@dataclass(frozen=True)
class RepaymentBreakdown:
    """Amounts owed as of a date, per component"""

    principal: Decimal
    service_fee: Decimal
    daily_fee: Decimal
    penalty: Decimal
    tax: Decimal

    @property
    def total(self) -> Decimal:
        return self.principal + self.service_fee + self.daily_fee + self.penalty + self.tax


@dataclass(frozen=True)
class Allocation:
    """Part of a payment settling one ledger category"""

    category: LedgerCategory
    amount: Decimal


@dataclass(frozen=True)
class LedgerLine:
    account_type: AccountType
    category: LedgerCategory
    direction: EntryDirection
    amount: Decimal


@dataclass
class JournalEntry:
    """Balanced group of ledger lines posted together"""

    provider_id: int
    loan_id: int
    posted_at: datetime
    description: str
    lines: List[LedgerLine] = field(default_factory=list)

    @property
    def total_debits(self) -> Decimal:
        return sum((ln.amount for ln in self.lines if ln.direction == EntryDirection.DEBIT), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((ln.amount for ln in self.lines if ln.direction == EntryDirection.CREDIT), Decimal("0"))


@dataclass(frozen=True)
class ScoringRule:
    """Single condition on a borrower field and the points it awards"""

    field: str
    condition: str
    value: str
    score: Decimal


@dataclass(frozen=True)
class ScoringParameter:
    """Provider-scoped scoring parameter; weight caps its contribution"""

    name: str
    weight: Decimal
    rules: List[ScoringRule] = field(default_factory=list)


@dataclass(frozen=True)
class LoanAmountTier:
    """Inclusive score range mapped to a maximum loan amount"""

    from_score: int
    to_score: int
    loan_amount: Decimal


@dataclass(frozen=True)
class ScoreResult:
    score: int
    max_loan_amount: Decimal
    tier: Optional[LoanAmountTier]


@dataclass(frozen=True)
class EligibilityResult:
    is_eligible: bool
    reason: str
    score: int = 0
    max_loan_amount: Decimal = Decimal("0.00")
