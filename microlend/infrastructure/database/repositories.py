"""Data access layer for loans, ledger and scoring configuration"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from microlend.domain.exceptions import (
    BorrowerNotFound,
    LedgerAccountMissing,
    LoanNotFound,
    ProductMisconfigured,
)
from microlend.domain.ledger import balance_delta
from microlend.domain.models import (
    AccountType,
    FeeComponent,
    JournalEntry,
    LedgerCategory,
    Loan,
    LoanAmountTier,
    LoanProduct,
    RepaymentBehavior,
    RepaymentStatus,
    ScoringParameter,
    TaxConfig,
)
from microlend.domain.product_config import build_loan_product
from microlend.domain.scoring import build_rule
from microlend.infrastructure.database.models import (
    BorrowerRecord,
    JournalEntryRecord,
    LedgerAccountRecord,
    LedgerEntryRecord,
    LoanAmountTierRecord,
    LoanProductRecord,
    LoanProviderRecord,
    LoanRecord,
    PaymentRecord,
    PendingPaymentRecord,
    ScoringParameterRecord,
    TaxRecord,
)


class LoanRepository:
    """Repository for loans"""

    def __init__(self, db: Session):
        self.db = db

    def get_loan(self, loan_id: int, for_update: bool = False) -> LoanRecord:
        """
        Fetch a loan, optionally locking its row for the rest of the transaction.

        Raises:
            LoanNotFound: no loan with this id
        """
        query = self.db.query(LoanRecord).filter(LoanRecord.id == loan_id)
        if for_update:
            query = query.populate_existing().with_for_update()
        loan = query.first()
        if loan is None:
            raise LoanNotFound(f"Loan {loan_id} not found")
        return loan

    def get_unpaid_ids_due_before(self, cutoff: date) -> List[int]:
        """Ids of unpaid loans whose due date is strictly before cutoff"""
        rows = (
            self.db.query(LoanRecord.id)
            .filter(
                LoanRecord.repayment_status == RepaymentStatus.UNPAID.value,
                LoanRecord.due_date < cutoff,
            )
            .order_by(LoanRecord.due_date, LoanRecord.id)
            .all()
        )
        return [row.id for row in rows]

    def get_unpaid_loans_for_borrower(self, borrower_id: str) -> List[LoanRecord]:
        return (
            self.db.query(LoanRecord)
            .filter(
                LoanRecord.borrower_id == borrower_id,
                LoanRecord.repayment_status == RepaymentStatus.UNPAID.value,
            )
            .all()
        )

    @staticmethod
    def to_domain(record: LoanRecord) -> Loan:
        return Loan(
            id=record.id,
            borrower_id=record.borrower_id,
            provider_id=record.provider_id,
            product_id=record.product_id,
            principal=Decimal(record.principal),
            disbursed_at=record.disbursed_at,
            due_date=record.due_date,
            repaid_amount=Decimal(record.repaid_amount or 0),
            repayment_status=RepaymentStatus(record.repayment_status),
            repayment_behavior=(
                RepaymentBehavior(record.repayment_behavior) if record.repayment_behavior else None
            ),
        )


class ProductRepository:
    """Repository for loan products"""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> LoanProduct:
        """
        Fetch a product and validate its fee configuration.

        Raises:
            ProductMisconfigured: product missing or its rules cannot be parsed
        """
        record = self.db.get(LoanProductRecord, product_id)
        if record is None:
            raise ProductMisconfigured(f"Loan product {product_id} not found")
        return build_loan_product(
            id=record.id,
            provider_id=record.provider_id,
            name=record.name,
            min_loan=record.min_loan,
            max_loan=record.max_loan,
            duration_days=record.duration_days,
            service_fee=record.service_fee,
            daily_fee=record.daily_fee,
            penalty_rules=record.penalty_rules,
            service_fee_enabled=record.service_fee_enabled,
            daily_fee_enabled=record.daily_fee_enabled,
            penalty_enabled=record.penalty_rules_enabled,
            daily_fee_stops_at_due_date=record.daily_fee_stops_at_due_date,
            status=record.status,
        )


class ProviderRepository:
    """Repository for loan providers"""

    def __init__(self, db: Session):
        self.db = db

    def get_provider(self, provider_id: int) -> Optional[LoanProviderRecord]:
        return self.db.get(LoanProviderRecord, provider_id)


class TaxRepository:
    """Repository for the global tax configuration"""

    def __init__(self, db: Session):
        self.db = db

    def get_active_tax(self) -> Optional[TaxConfig]:
        record = (
            self.db.query(TaxRecord)
            .filter(TaxRecord.active.is_(True))
            .order_by(TaxRecord.id)
            .first()
        )
        if record is None:
            return None
        try:
            applied_to = frozenset(FeeComponent(c) for c in (record.applied_to or []))
        except ValueError as e:
            raise ProductMisconfigured(f"Tax {record.name!r} applies to an unknown component: {e}") from e
        return TaxConfig(name=record.name, rate=Decimal(record.rate), applied_to=applied_to)


class BorrowerRepository:
    """Repository for borrowers"""

    def __init__(self, db: Session):
        self.db = db

    def get_borrower(self, borrower_id: str) -> BorrowerRecord:
        borrower = self.db.get(BorrowerRecord, borrower_id)
        if borrower is None:
            raise BorrowerNotFound(f"Borrower {borrower_id} not found")
        return borrower

    def get_account_balance(self, borrower_id: str) -> Decimal:
        return Decimal(self.get_borrower(borrower_id).account_balance or 0)

    def flag_npl(self, borrower_id: str) -> bool:
        """Mark a borrower non-performing; False if already flagged"""
        borrower = self.get_borrower(borrower_id)
        if borrower.status == "NPL":
            return False
        borrower.status = "NPL"
        self.db.flush()
        return True


class PaymentRepository:
    """Repository for accepted payments"""

    def __init__(self, db: Session):
        self.db = db

    def add_payment(
        self,
        loan_id: int,
        amount: Decimal,
        paid_at: datetime,
        outstanding_before: Decimal,
        transaction_id: Optional[str] = None,
    ) -> PaymentRecord:
        payment = PaymentRecord(
            loan_id=loan_id,
            amount=amount,
            paid_at=paid_at,
            outstanding_balance_before_payment=outstanding_before,
            transaction_id=transaction_id,
        )
        self.db.add(payment)
        self.db.flush()  # Get ID without committing
        return payment

    def get_payments(self, loan_id: int) -> List[PaymentRecord]:
        return (
            self.db.query(PaymentRecord)
            .filter(PaymentRecord.loan_id == loan_id)
            .order_by(PaymentRecord.paid_at, PaymentRecord.id)
            .all()
        )


class PendingPaymentRepository:
    """Repository for gateway pending-payment markers"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_transaction_id(self, transaction_id: str, for_update: bool = False) -> Optional[PendingPaymentRecord]:
        query = self.db.query(PendingPaymentRecord).filter(PendingPaymentRecord.transaction_id == transaction_id)
        if for_update:
            query = query.populate_existing().with_for_update()
        return query.first()

    def create(self, transaction_id: str, loan_id: int, borrower_id: str, amount: Decimal) -> PendingPaymentRecord:
        pending = PendingPaymentRecord(
            transaction_id=transaction_id,
            loan_id=loan_id,
            borrower_id=borrower_id,
            amount=amount,
            status="PENDING",
        )
        self.db.add(pending)
        self.db.flush()
        return pending

    def mark(self, pending: PendingPaymentRecord, status: str) -> None:
        pending.status = status
        self.db.flush()


class LedgerRepository:
    """Repository for ledger accounts and journal entries"""

    def __init__(self, db: Session):
        self.db = db
        self._accounts: Dict[int, Dict[Tuple[str, str], LedgerAccountRecord]] = {}

    def ensure_provider_accounts(self, provider_id: int) -> List[LedgerAccountRecord]:
        """Create any missing account of the standard chart for a provider"""
        existing = self._accounts_by_key(provider_id)
        created = []
        for account_type in AccountType:
            for category in LedgerCategory:
                if (account_type.value, category.value) in existing:
                    continue
                account = LedgerAccountRecord(
                    provider_id=provider_id,
                    type=account_type.value,
                    category=category.value,
                    balance=0,
                )
                self.db.add(account)
                created.append(account)
        self.db.flush()
        self._accounts.pop(provider_id, None)
        return created

    def _accounts_by_key(self, provider_id: int) -> Dict[Tuple[str, str], LedgerAccountRecord]:
        accounts = (
            self.db.query(LedgerAccountRecord)
            .filter(LedgerAccountRecord.provider_id == provider_id)
            .all()
        )
        return {(a.type, a.category): a for a in accounts}

    def get_account(self, provider_id: int, account_type: AccountType, category: LedgerCategory) -> LedgerAccountRecord:
        """
        Ledger account for a provider, type and category; read once per repository.

        Raises:
            LedgerAccountMissing: the provider lacks this account
        """
        if provider_id not in self._accounts:
            self._accounts[provider_id] = self._accounts_by_key(provider_id)
        account = self._accounts[provider_id].get((account_type.value, category.value))
        if account is None:
            raise LedgerAccountMissing(
                f"No {account_type.value} {category.value} ledger account for provider {provider_id}"
            )
        return account

    def post_entries(self, entries: List[JournalEntry], payment_id: Optional[int] = None) -> List[JournalEntryRecord]:
        """
        Persist journal entries and move account balances.

        Raises:
            LedgerAccountMissing: a line targets an account the provider lacks
        """
        records = []
        for entry in entries:
            journal = JournalEntryRecord(
                provider_id=entry.provider_id,
                loan_id=entry.loan_id,
                payment_id=payment_id,
                entry_date=entry.posted_at,
                description=entry.description,
            )
            for line in entry.lines:
                account = self.get_account(entry.provider_id, line.account_type, line.category)
                account.balance = Decimal(account.balance or 0) + balance_delta(
                    line.account_type, line.direction, line.amount
                )
                journal.entries.append(
                    LedgerEntryRecord(account=account, type=line.direction.value, amount=line.amount)
                )
            self.db.add(journal)
            records.append(journal)

        self.db.flush()
        return records

    def get_journal_entries(self, loan_id: int) -> List[JournalEntryRecord]:
        return (
            self.db.query(JournalEntryRecord)
            .filter(JournalEntryRecord.loan_id == loan_id)
            .order_by(JournalEntryRecord.id)
            .all()
        )


class ScoringRepository:
    """Scoring configuration read from the database"""

    def __init__(self, db: Session):
        self.db = db

    def get_scoring_parameters(self, provider_id: int) -> List[ScoringParameter]:
        records = (
            self.db.query(ScoringParameterRecord)
            .filter(ScoringParameterRecord.provider_id == provider_id)
            .order_by(ScoringParameterRecord.id)
            .all()
        )
        return [
            ScoringParameter(
                name=p.name,
                weight=Decimal(p.weight),
                rules=[build_rule(r.field, r.condition, r.value, r.score) for r in p.rules],
            )
            for p in records
        ]

    def get_loan_amount_tiers(self, product_id: int) -> List[LoanAmountTier]:
        records = (
            self.db.query(LoanAmountTierRecord)
            .filter(LoanAmountTierRecord.product_id == product_id)
            .order_by(LoanAmountTierRecord.from_score)
            .all()
        )
        return [
            LoanAmountTier(from_score=t.from_score, to_score=t.to_score, loan_amount=Decimal(t.loan_amount))
            for t in records
        ]
