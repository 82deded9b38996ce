"""Integration tests for gateway-collected repayments"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from prometheus_client import REGISTRY

from microlend.domain.exceptions import (
    PaymentExceedsBalance,
    PaymentGatewayError,
    PendingPaymentNotFound,
)
from microlend.domain.models import RepaymentStatus
from microlend.infrastructure.clients.payment_gateway import PaymentGatewayClient
from microlend.infrastructure.database.models import PaymentRecord, PendingPaymentRecord
from microlend.services.repayment import initiate_repayment, post_payment, settle_pending_payment

pytestmark = pytest.mark.integration

AS_OF = datetime(2024, 1, 25, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def gateway() -> AsyncMock:
    mock = AsyncMock(spec=PaymentGatewayClient)
    mock.request_payment.return_value = {"status": "accepted"}
    return mock


async def test_initiate_writes_pending_marker_before_calling_gateway(db, make_product, make_loan, gateway):
    loan = make_loan(make_product())

    pending = await initiate_repayment(db, gateway, loan.id, "515.00", "txn-1", as_of=AS_OF)

    assert pending.status == "PENDING"
    assert Decimal(pending.amount) == Decimal("515.00")
    assert pending.borrower_id == "borrower-1"
    gateway.request_payment.assert_awaited_once_with(
        transaction_id="txn-1",
        loan_id=loan.id,
        borrower_id="borrower-1",
        amount=Decimal("515.00"),
    )
    # No money moves until the gateway confirms
    assert db.query(PaymentRecord).count() == 0


async def test_initiate_is_idempotent_per_transaction(db, make_product, make_loan, gateway):
    loan = make_loan(make_product())

    first = await initiate_repayment(db, gateway, loan.id, "515.00", "txn-1", as_of=AS_OF)
    second = await initiate_repayment(db, gateway, loan.id, "515.00", "txn-1", as_of=AS_OF)

    assert first.id == second.id
    assert db.query(PendingPaymentRecord).count() == 1
    gateway.request_payment.assert_awaited_once()


async def test_initiate_rejects_excessive_amount(db, make_product, make_loan, gateway):
    loan = make_loan(make_product())

    with pytest.raises(PaymentExceedsBalance):
        await initiate_repayment(db, gateway, loan.id, "2000.00", "txn-1", as_of=AS_OF)

    assert db.query(PendingPaymentRecord).count() == 0
    gateway.request_payment.assert_not_awaited()


async def test_gateway_failure_marks_pending_failed(db, make_product, make_loan, gateway):
    loan = make_loan(make_product())
    gateway.request_payment.side_effect = PaymentGatewayError("gateway unavailable")

    with pytest.raises(PaymentGatewayError):
        await initiate_repayment(db, gateway, loan.id, "515.00", "txn-1", as_of=AS_OF)

    marker = db.query(PendingPaymentRecord).filter(PendingPaymentRecord.transaction_id == "txn-1").one()
    assert marker.status == "FAILED"


async def test_settle_posts_payment_once(db, make_product, make_loan, gateway):
    loan = make_loan(make_product())
    await initiate_repayment(db, gateway, loan.id, "1015.00", "txn-1", as_of=AS_OF)

    result = settle_pending_payment(db, "txn-1", as_of=AS_OF)
    replay = settle_pending_payment(db, "txn-1", as_of=AS_OF)

    assert result.repayment_status == RepaymentStatus.PAID
    assert result.payment.transaction_id == "txn-1"
    assert replay is None

    payments = db.query(PaymentRecord).all()
    assert len(payments) == 1
    assert payments[0].transaction_id == "txn-1"
    marker = db.query(PendingPaymentRecord).one()
    assert marker.status == "COMPLETED"


def test_settle_unknown_transaction(db, provider):
    with pytest.raises(PendingPaymentNotFound):
        settle_pending_payment(db, "txn-missing", as_of=AS_OF)


async def test_rejected_settlement_marks_pending_failed(db, make_product, make_loan, gateway):
    """Loan cleared another way before the gateway confirmed"""
    loan = make_loan(make_product())
    await initiate_repayment(db, gateway, loan.id, "515.00", "txn-1", as_of=AS_OF)
    post_payment(db, loan.id, Decimal("1015.00"), as_of=AS_OF)
    before = REGISTRY.get_sample_value(
        "microlend_payments_rejected_total", {"reason": "PaymentExceedsBalance"}
    ) or 0.0

    with pytest.raises(PaymentExceedsBalance):
        settle_pending_payment(db, "txn-1", as_of=AS_OF)

    marker = db.query(PendingPaymentRecord).one()
    assert marker.status == "FAILED"
    assert db.query(PaymentRecord).count() == 1
    assert REGISTRY.get_sample_value(
        "microlend_payments_rejected_total", {"reason": "PaymentExceedsBalance"}
    ) == before + 1
