"""
Repayment posting - validate a payment and record it in the ledger atomically.

Flow (one transaction per attempt):
1. Lock the loan row and value it as of the payment time
2. Reject invalid or excessive amounts before writing anything
3. Append the Payment with the pre-payment outstanding snapshot
4. Update repaid amount, status and repayment behavior
5. Post one balanced journal entry per settled component

Any failure rolls the whole attempt back. A concurrent posting on the same
loan makes the version check fail at flush; the attempt is then retried
against the freshly committed state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from microlend.config import settings
from microlend.domain.exceptions import (
    DomainException,
    PaymentExceedsBalance,
    PendingPaymentNotFound,
    PaymentGatewayError,
)
from microlend.domain.ledger import allocate_payment, build_journal_entries
from microlend.domain.models import Allocation, JournalEntry, Payment, RepaymentStatus
from microlend.domain.money import ZERO, money
from microlend.domain.valuation import (
    calculate_repayment,
    is_fully_paid,
    repayment_behavior,
    validate_payment_amount,
)
from microlend.infrastructure.clients.payment_gateway import PaymentGatewayClient
from microlend.infrastructure.database.models import PendingPaymentRecord
from microlend.infrastructure.database.repositories import (
    LedgerRepository,
    LoanRepository,
    PaymentRepository,
    PendingPaymentRepository,
    ProductRepository,
    TaxRepository,
)
from microlend.infrastructure.observability.logging import log_payment_posted, log_payment_rejected
from microlend.infrastructure.observability.metrics import (
    payments_rejected_counter,
    posting_conflicts_counter,
    record_payment_posted,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PostingResult:
    """Outcome of one accepted payment"""

    payment: Payment
    allocations: List[Allocation]
    journal_entries: List[JournalEntry]
    repayment_status: RepaymentStatus
    outstanding_after: Decimal


def _run_in_transaction(db: Session, work: Callable[[], T], max_retries: int) -> T:
    """Run work and commit; roll back on any error, retry on version conflicts"""
    attempt = 0
    while True:
        attempt += 1
        try:
            result = work()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            posting_conflicts_counter.inc()
            if attempt >= max_retries:
                raise
            logger.warning("Concurrent update of loan, retrying posting", extra={"attempt": attempt})
        except Exception:
            db.rollback()
            raise


def _apply_payment(
    db: Session,
    loan_id: int,
    amount,
    as_of: datetime,
    transaction_id: Optional[str],
    tolerance: Decimal,
) -> PostingResult:
    """Steps 1-5 without committing"""
    loan_repo = LoanRepository(db)
    record = loan_repo.get_loan(loan_id, for_update=True)
    loan = loan_repo.to_domain(record)

    if loan.repayment_status == RepaymentStatus.PAID:
        raise PaymentExceedsBalance(amount, ZERO)

    product = ProductRepository(db).get_product(loan.product_id)
    tax_config = TaxRepository(db).get_active_tax()

    breakdown = calculate_repayment(loan, product, tax_config, as_of)
    outstanding = breakdown.total - money(loan.repaid_amount)
    value = validate_payment_amount(amount, outstanding, tolerance)

    allocations = allocate_payment(value, breakdown, loan.repaid_amount)
    entries = build_journal_entries(loan.provider_id, loan.id, allocations, as_of)

    payment_record = PaymentRepository(db).add_payment(
        loan_id=loan.id,
        amount=value,
        paid_at=as_of,
        outstanding_before=outstanding,
        transaction_id=transaction_id,
    )

    new_repaid = money(loan.repaid_amount) + value
    record.repaid_amount = new_repaid
    status = RepaymentStatus.UNPAID
    if is_fully_paid(new_repaid, breakdown.total, tolerance):
        status = RepaymentStatus.PAID
        record.repayment_status = status.value
        record.repayment_behavior = repayment_behavior(as_of, loan.due_date).value

    LedgerRepository(db).post_entries(entries, payment_id=payment_record.id)
    db.flush()

    return PostingResult(
        payment=Payment(
            loan_id=loan.id,
            amount=value,
            paid_at=as_of,
            outstanding_balance_before_payment=outstanding,
            transaction_id=transaction_id,
        ),
        allocations=allocations,
        journal_entries=entries,
        repayment_status=status,
        outstanding_after=outstanding - value,
    )


def _record_posted(result: PostingResult) -> None:
    record_payment_posted(result.repayment_status.value, result.allocations)
    log_payment_posted(
        result.payment.loan_id,
        result.payment.amount,
        result.payment.outstanding_balance_before_payment,
        result.repayment_status.value,
        len(result.journal_entries),
        result.payment.transaction_id,
    )


def post_payment(
    db: Session,
    loan_id: int,
    amount,
    as_of: Optional[datetime] = None,
    transaction_id: Optional[str] = None,
    tolerance: Optional[Decimal] = None,
) -> PostingResult:
    """
    Validate and post a repayment in one atomic unit of work.

    Raises:
        LoanNotFound: no loan with this id
        InvalidPaymentAmount: amount is not positive
        PaymentExceedsBalance: amount above outstanding balance + tolerance
        ProductMisconfigured: the loan's product rules cannot be interpreted
        LedgerAccountMissing: provider ledger accounts are not provisioned
    """
    as_of = as_of or datetime.now(timezone.utc)
    tolerance = settings.balance_tolerance if tolerance is None else tolerance

    try:
        result = _run_in_transaction(
            db,
            lambda: _apply_payment(db, loan_id, amount, as_of, transaction_id, tolerance),
            settings.posting_max_retries,
        )
    except DomainException as e:
        payments_rejected_counter.labels(reason=type(e).__name__).inc()
        log_payment_rejected(loan_id, amount, type(e).__name__, str(e))
        raise

    _record_posted(result)
    return result


async def initiate_repayment(
    db: Session,
    gateway: PaymentGatewayClient,
    loan_id: int,
    amount,
    transaction_id: str,
    as_of: Optional[datetime] = None,
) -> PendingPaymentRecord:
    """
    Start a gateway-collected repayment.

    The pending marker is committed before the gateway is called, so a crash
    or timeout mid-flight leaves a record the callback (or an operator) can
    settle later. Calling again with the same transaction id returns the
    existing marker without contacting the gateway.

    Raises:
        LoanNotFound, InvalidPaymentAmount, PaymentExceedsBalance,
        ProductMisconfigured: rejected before anything is written
        PaymentGatewayError: gateway call failed; the marker is left FAILED
    """
    as_of = as_of or datetime.now(timezone.utc)
    pending_repo = PendingPaymentRepository(db)

    existing = pending_repo.get_by_transaction_id(transaction_id)
    if existing is not None:
        return existing

    loan_repo = LoanRepository(db)
    record = loan_repo.get_loan(loan_id)
    loan = loan_repo.to_domain(record)
    if loan.repayment_status == RepaymentStatus.PAID:
        raise PaymentExceedsBalance(amount, ZERO)

    product = ProductRepository(db).get_product(loan.product_id)
    tax_config = TaxRepository(db).get_active_tax()
    breakdown = calculate_repayment(loan, product, tax_config, as_of)
    value = validate_payment_amount(
        amount, breakdown.total - money(loan.repaid_amount), settings.balance_tolerance
    )

    try:
        pending = pending_repo.create(transaction_id, loan.id, loan.borrower_id, value)
        db.commit()
    except Exception:
        db.rollback()
        raise

    try:
        await gateway.request_payment(
            transaction_id=transaction_id,
            loan_id=loan.id,
            borrower_id=loan.borrower_id,
            amount=value,
        )
    except PaymentGatewayError:
        pending_repo.mark(pending, "FAILED")
        db.commit()
        logger.error(
            "Payment gateway call failed",
            extra={"loan_id": loan.id, "transaction_id": transaction_id},
        )
        raise

    return pending


def _fail_pending(db: Session, transaction_id: str, error: DomainException) -> None:
    """Record a rejected settlement and close its marker in a separate commit"""
    pending_repo = PendingPaymentRepository(db)
    pending = pending_repo.get_by_transaction_id(transaction_id)
    payments_rejected_counter.labels(reason=type(error).__name__).inc()
    log_payment_rejected(pending.loan_id, pending.amount, type(error).__name__, str(error))
    try:
        pending_repo.mark(pending, "FAILED")
        db.commit()
    except Exception:
        db.rollback()
        raise


def settle_pending_payment(
    db: Session,
    transaction_id: str,
    as_of: Optional[datetime] = None,
) -> Optional[PostingResult]:
    """
    Post the payment behind a gateway confirmation.

    Idempotent per transaction id: a marker already COMPLETED returns None
    without posting again. A payment the loan no longer accepts is counted,
    logged and leaves the marker FAILED.

    Raises:
        PendingPaymentNotFound: no marker for this transaction id
        InvalidPaymentAmount, PaymentExceedsBalance, ProductMisconfigured,
        LedgerAccountMissing: posting rejected; nothing is posted
    """
    as_of = as_of or datetime.now(timezone.utc)
    tolerance = settings.balance_tolerance

    def work() -> Optional[PostingResult]:
        pending_repo = PendingPaymentRepository(db)
        pending = pending_repo.get_by_transaction_id(transaction_id, for_update=True)
        if pending is None:
            raise PendingPaymentNotFound(f"No pending payment for transaction {transaction_id}")
        if pending.status == "COMPLETED":
            return None
        result = _apply_payment(db, pending.loan_id, pending.amount, as_of, transaction_id, tolerance)
        pending_repo.mark(pending, "COMPLETED")
        return result

    try:
        result = _run_in_transaction(db, work, settings.posting_max_retries)
    except PendingPaymentNotFound:
        raise
    except DomainException as e:
        _fail_pending(db, transaction_id, e)
        raise

    if result is None:
        logger.info("Pending payment already settled", extra={"transaction_id": transaction_id})
        return None

    _record_posted(result)
    return result
