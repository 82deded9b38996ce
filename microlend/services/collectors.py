"""
Scheduled collectors run against the whole loan book.

Each loan is its own unit of work: a failure rolls back that loan only, is
counted and logged, and the sweep moves on. Callers get an aggregate
SweepResult instead of an exception.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from microlend.config import settings
from microlend.domain.models import LoanProduct
from microlend.domain.valuation import outstanding_balance
from microlend.infrastructure.database.repositories import (
    BorrowerRepository,
    LoanRepository,
    ProductRepository,
    TaxRepository,
)
from microlend.infrastructure.observability.logging import log_sweep_completed
from microlend.infrastructure.observability.metrics import record_sweep
from microlend.services.repayment import post_payment
from microlend.utils.date_utils import to_date

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Aggregate outcome of one collector run"""

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


def _finish(sweep: str, result: SweepResult, started: float) -> SweepResult:
    duration_ms = (time.time() - started) * 1000
    record_sweep(sweep, result.processed, result.skipped, result.failed)
    log_sweep_completed(sweep, result.processed, result.skipped, result.failed, duration_ms)
    return result


class _ProductCache:
    """Products are read once per sweep"""

    def __init__(self, db: Session):
        self.repo = ProductRepository(db)
        self.products: Dict[int, LoanProduct] = {}

    def get(self, product_id: int) -> LoanProduct:
        if product_id not in self.products:
            self.products[product_id] = self.repo.get_product(product_id)
        return self.products[product_id]


def mark_non_performing_loans(
    db: Session,
    as_of: Optional[datetime] = None,
    threshold_days: Optional[int] = None,
) -> SweepResult:
    """
    Flag borrowers of loans overdue by at least threshold_days as NPL.

    Loans whose outstanding balance is already within tolerance of zero are
    skipped even if still marked Unpaid.
    """
    started = time.time()
    as_of = as_of or datetime.now(timezone.utc)
    threshold_days = settings.npl_threshold_days if threshold_days is None else threshold_days
    # due_date + threshold <= as_of
    cutoff = to_date(as_of) - timedelta(days=threshold_days) + timedelta(days=1)

    loan_repo = LoanRepository(db)
    borrower_repo = BorrowerRepository(db)
    products = _ProductCache(db)
    tax_config = TaxRepository(db).get_active_tax()
    result = SweepResult()

    for loan_id in loan_repo.get_unpaid_ids_due_before(cutoff):
        try:
            loan = loan_repo.to_domain(loan_repo.get_loan(loan_id))
            balance = outstanding_balance(loan, products.get(loan.product_id), tax_config, as_of)
            if balance <= settings.balance_tolerance:
                result.skipped += 1
                continue
            if borrower_repo.flag_npl(loan.borrower_id):
                db.commit()
                result.processed += 1
                logger.info("Borrower flagged NPL", extra={"loan_id": loan_id, "borrower_id": loan.borrower_id})
            else:
                result.skipped += 1
        except Exception as e:
            db.rollback()
            result.failed += 1
            result.errors.append(f"loan {loan_id}: {e}")
            logger.exception("NPL check failed", extra={"loan_id": loan_id})

    return _finish("npl", result, started)


def process_automated_repayments(
    db: Session,
    as_of: Optional[datetime] = None,
    balance_lookup: Optional[Callable[[str], Decimal]] = None,
) -> SweepResult:
    """
    Collect overdue loans in full from borrowers whose balance covers them.

    balance_lookup returns a borrower's available funds; by default the
    provisioned account balance on the borrower profile. It is read once per
    borrower and drawn down by every collection in the sweep, so a borrower
    with several overdue loans is never charged more than that balance.
    """
    started = time.time()
    as_of = as_of or datetime.now(timezone.utc)
    loan_repo = LoanRepository(db)
    balance_lookup = balance_lookup or BorrowerRepository(db).get_account_balance
    products = _ProductCache(db)
    tax_config = TaxRepository(db).get_active_tax()
    remaining: Dict[str, Decimal] = {}
    result = SweepResult()

    for loan_id in loan_repo.get_unpaid_ids_due_before(to_date(as_of)):
        try:
            loan = loan_repo.to_domain(loan_repo.get_loan(loan_id))
            due = outstanding_balance(loan, products.get(loan.product_id), tax_config, as_of)
            if due <= 0:
                result.skipped += 1
                continue

            if loan.borrower_id not in remaining:
                remaining[loan.borrower_id] = balance_lookup(loan.borrower_id)
            available = remaining[loan.borrower_id]
            if available < due:
                result.skipped += 1
                logger.info(
                    "Insufficient funds for automated repayment",
                    extra={"loan_id": loan_id, "available": str(available), "due": str(due)},
                )
                continue

            posted = post_payment(db, loan_id, due, as_of=as_of)
            remaining[loan.borrower_id] = available - posted.payment.amount
            result.processed += 1
        except Exception as e:
            db.rollback()
            result.failed += 1
            result.errors.append(f"loan {loan_id}: {e}")
            logger.exception("Automated repayment failed", extra={"loan_id": loan_id})

    return _finish("automated_repayment", result, started)
