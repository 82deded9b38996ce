"""Pytest fixtures for testing"""

import os

os.environ.setdefault("MICROLEND_DATABASE_URL", "sqlite:///./test.db")

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from microlend.domain.models import Loan, LoanProduct
from microlend.infrastructure.database.models import (
    Base,
    BorrowerRecord,
    LoanProductRecord,
    LoanProviderRecord,
    LoanRecord,
    TaxRecord,
)
from microlend.infrastructure.database.repositories import LedgerRepository

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DISBURSED_AT = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)
DUE_DATE = date(2024, 1, 31)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for extra sessions on the test database (concurrent writers, jobs)"""
    return TestingSessionLocal


# ---------------------------------------------------------------------------
# Domain snapshots (no database)
# ---------------------------------------------------------------------------


@pytest.fixture
def product_factory() -> Callable[..., LoanProduct]:
    """Build a LoanProduct with no fees unless overridden"""

    def _make(**overrides) -> LoanProduct:
        fields = dict(
            id=1,
            provider_id=1,
            name="Quick Loan",
            min_loan=Decimal("100"),
            max_loan=Decimal("5000"),
            duration_days=30,
        )
        fields.update(overrides)
        return LoanProduct(**fields)

    return _make


@pytest.fixture
def loan_factory() -> Callable[..., Loan]:
    """Build a 1000.00 loan disbursed 2024-01-01, due 2024-01-31"""

    def _make(**overrides) -> Loan:
        fields = dict(
            id=1,
            borrower_id="borrower-1",
            provider_id=1,
            product_id=1,
            principal=Decimal("1000.00"),
            disbursed_at=DISBURSED_AT,
            due_date=DUE_DATE,
        )
        fields.update(overrides)
        return Loan(**fields)

    return _make


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


@pytest.fixture
def provider(db: Session) -> LoanProviderRecord:
    """Provider with its full chart of ledger accounts"""
    record = LoanProviderRecord(id=1, name="Capital Micro")
    db.add(record)
    db.flush()
    LedgerRepository(db).ensure_provider_accounts(record.id)
    db.commit()
    return record


@pytest.fixture
def make_product(db: Session, provider: LoanProviderRecord) -> Callable[..., LoanProductRecord]:
    """Persist a product charging a 1.5% service fee unless overridden"""

    def _make(**overrides) -> LoanProductRecord:
        fields = dict(
            provider_id=provider.id,
            name="Quick Loan",
            min_loan=Decimal("100.00"),
            max_loan=Decimal("5000.00"),
            duration_days=30,
            service_fee=json.dumps({"type": "percentage", "value": "1.5"}),
            daily_fee=None,
            penalty_rules="[]",
        )
        fields.update(overrides)
        record = LoanProductRecord(**fields)
        db.add(record)
        db.commit()
        return record

    return _make


@pytest.fixture
def make_borrower(db: Session) -> Callable[..., BorrowerRecord]:
    def _make(borrower_id: str = "borrower-1", **overrides) -> BorrowerRecord:
        fields = dict(
            id=borrower_id,
            age=35,
            status="Active",
            account_balance=Decimal("5000.00"),
            attributes={"monthlyIncome": 6000, "educationLevel": "Degree"},
        )
        fields.update(overrides)
        record = BorrowerRecord(**fields)
        db.add(record)
        db.commit()
        return record

    return _make


@pytest.fixture
def make_loan(db: Session, provider: LoanProviderRecord, make_borrower) -> Callable[..., LoanRecord]:
    """Persist a 1000.00 loan disbursed 2024-01-01, due 2024-01-31"""

    def _make(product: LoanProductRecord, borrower_id: str = "borrower-1", **overrides) -> LoanRecord:
        if db.get(BorrowerRecord, borrower_id) is None:
            make_borrower(borrower_id)
        fields = dict(
            borrower_id=borrower_id,
            provider_id=product.provider_id,
            product_id=product.id,
            principal=Decimal("1000.00"),
            disbursed_at=DISBURSED_AT,
            due_date=DUE_DATE,
            repaid_amount=Decimal("0.00"),
            repayment_status="Unpaid",
        )
        fields.update(overrides)
        record = LoanRecord(**fields)
        db.add(record)
        db.commit()
        return record

    return _make


@pytest.fixture
def vat(db: Session) -> TaxRecord:
    """15% tax on service fee and penalty"""
    record = TaxRecord(name="VAT", rate=Decimal("15"), applied_to=["service_fee", "penalty"], active=True)
    db.add(record)
    db.commit()
    return record
