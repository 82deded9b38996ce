"""SQLAlchemy ORM models for the loan book, ledger and scoring configuration"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

MONEY = Numeric(14, 2)


class LoanProviderRecord(Base):
    """Lender offering products on the platform"""

    __tablename__ = "loan_provider"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    allow_multiple_provider_loans = Column(Boolean, nullable=False, default=False)
    allow_cross_provider_loans = Column(Boolean, nullable=False, default=False)

    products = relationship("LoanProductRecord", back_populates="provider")
    ledger_accounts = relationship("LedgerAccountRecord", back_populates="provider")


class LoanProductRecord(Base):
    """Product configuration; fee and penalty rules are stored as JSON text"""

    __tablename__ = "loan_product"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("loan_provider.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    min_loan = Column(MONEY, nullable=False)
    max_loan = Column(MONEY, nullable=False)
    duration_days = Column(Integer, nullable=False)
    service_fee = Column(Text, nullable=True)
    daily_fee = Column(Text, nullable=True)
    penalty_rules = Column(Text, nullable=True)
    service_fee_enabled = Column(Boolean, nullable=False, default=True)
    daily_fee_enabled = Column(Boolean, nullable=False, default=True)
    penalty_rules_enabled = Column(Boolean, nullable=False, default=True)
    daily_fee_stops_at_due_date = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="Active")

    provider = relationship("LoanProviderRecord", back_populates="products")
    loan_amount_tiers = relationship("LoanAmountTierRecord", back_populates="product", cascade="all, delete-orphan")


class BorrowerRecord(Base):
    """Borrower profile with provisioned scoring data"""

    __tablename__ = "borrower"

    id = Column(Text, primary_key=True)
    age = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="Active")
    account_balance = Column(MONEY, nullable=False, default=0)
    attributes = Column(JSON, nullable=True)

    loans = relationship("LoanRecord", back_populates="borrower")


class LoanRecord(Base):
    """Disbursed loan; the version column guards concurrent payment postings"""

    __tablename__ = "loan"

    id = Column(Integer, primary_key=True)
    borrower_id = Column(Text, ForeignKey("borrower.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("loan_provider.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("loan_product.id"), nullable=False)
    principal = Column(MONEY, nullable=False)
    disbursed_at = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    repaid_amount = Column(MONEY, nullable=False, default=0)
    repayment_status = Column(String(10), nullable=False, default="Unpaid", index=True)
    repayment_behavior = Column(String(10), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    borrower = relationship("BorrowerRecord", back_populates="loans")
    product = relationship("LoanProductRecord")
    payments = relationship("PaymentRecord", back_populates="loan", order_by="PaymentRecord.paid_at")


class PaymentRecord(Base):
    """Accepted repayment; append-only"""

    __tablename__ = "payment"

    id = Column(Integer, primary_key=True)
    loan_id = Column(Integer, ForeignKey("loan.id"), nullable=False, index=True)
    amount = Column(MONEY, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    outstanding_balance_before_payment = Column(MONEY, nullable=False)
    transaction_id = Column(Text, nullable=True, unique=True)

    loan = relationship("LoanRecord", back_populates="payments")
    journal_entries = relationship("JournalEntryRecord", back_populates="payment")


class PendingPaymentRecord(Base):
    """Marker written before calling the payment gateway, keyed by its transaction id"""

    __tablename__ = "pending_payment"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(Text, nullable=False, unique=True)
    loan_id = Column(Integer, ForeignKey("loan.id"), nullable=False)
    borrower_id = Column(Text, nullable=False)
    amount = Column(MONEY, nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())


class TaxRecord(Base):
    """Global tax configuration; at most one active row"""

    __tablename__ = "tax"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    rate = Column(Numeric(7, 4), nullable=False)
    applied_to = Column(JSON, nullable=False, default=list)
    active = Column(Boolean, nullable=False, default=True)


class LedgerAccountRecord(Base):
    """Per-provider ledger account with running balance"""

    __tablename__ = "ledger_account"
    __table_args__ = (UniqueConstraint("provider_id", "type", "category", name="uq_ledger_account"),)

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("loan_provider.id"), nullable=False)
    type = Column(String(20), nullable=False)
    category = Column(String(20), nullable=False)
    balance = Column(MONEY, nullable=False, default=0)

    provider = relationship("LoanProviderRecord", back_populates="ledger_accounts")


class JournalEntryRecord(Base):
    """Header of a balanced group of ledger entries"""

    __tablename__ = "journal_entry"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("loan_provider.id"), nullable=False)
    loan_id = Column(Integer, ForeignKey("loan.id"), nullable=False, index=True)
    payment_id = Column(Integer, ForeignKey("payment.id"), nullable=True)
    entry_date = Column(DateTime(timezone=True), nullable=False)
    description = Column(Text, nullable=False)

    payment = relationship("PaymentRecord", back_populates="journal_entries")
    entries = relationship("LedgerEntryRecord", back_populates="journal_entry", cascade="all, delete-orphan")


class LedgerEntryRecord(Base):
    """Single debit or credit line"""

    __tablename__ = "ledger_entry"

    id = Column(Integer, primary_key=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entry.id", ondelete="CASCADE"), nullable=False)
    ledger_account_id = Column(Integer, ForeignKey("ledger_account.id"), nullable=False)
    type = Column(String(10), nullable=False)  # Debit | Credit
    amount = Column(MONEY, nullable=False)

    journal_entry = relationship("JournalEntryRecord", back_populates="entries")
    account = relationship("LedgerAccountRecord")


class ScoringParameterRecord(Base):
    """Provider scoring parameter"""

    __tablename__ = "scoring_parameter"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("loan_provider.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    weight = Column(Numeric(10, 2), nullable=False)

    rules = relationship(
        "ScoringRuleRecord",
        back_populates="parameter",
        cascade="all, delete-orphan",
        order_by="ScoringRuleRecord.id",
    )


class ScoringRuleRecord(Base):
    """Condition on a borrower field and the points it awards"""

    __tablename__ = "scoring_rule"

    id = Column(Integer, primary_key=True)
    parameter_id = Column(Integer, ForeignKey("scoring_parameter.id", ondelete="CASCADE"), nullable=False)
    field = Column(Text, nullable=False)
    condition = Column(String(20), nullable=False)
    value = Column(Text, nullable=False)
    score = Column(Numeric(10, 2), nullable=False)

    parameter = relationship("ScoringParameterRecord", back_populates="rules")


class LoanAmountTierRecord(Base):
    """Score range to maximum loan amount for a product"""

    __tablename__ = "loan_amount_tier"
    __table_args__ = (UniqueConstraint("product_id", "from_score", name="uq_tier_from_score"),)

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("loan_product.id"), nullable=False)
    from_score = Column(Integer, nullable=False)
    to_score = Column(Integer, nullable=False)
    loan_amount = Column(MONEY, nullable=False)

    product = relationship("LoanProductRecord", back_populates="loan_amount_tiers")
