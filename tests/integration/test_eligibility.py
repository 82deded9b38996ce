"""Integration tests for loan eligibility"""

from decimal import Decimal

import pytest

from microlend.domain.exceptions import BorrowerNotFound, InvalidScoringRule
from microlend.infrastructure.database.models import (
    LoanAmountTierRecord,
    LoanProviderRecord,
    ScoringParameterRecord,
    ScoringRuleRecord,
)
from microlend.services.eligibility import build_borrower_attributes, check_loan_eligibility

pytestmark = pytest.mark.integration


@pytest.fixture
def scored_product(db, provider, make_product):
    """Age worth up to 20 points, monthly income up to 30; tiers from 10 to 50"""
    db.add_all(
        [
            ScoringParameterRecord(
                provider_id=provider.id,
                name="age",
                weight=Decimal("20"),
                rules=[
                    ScoringRuleRecord(field="age", condition=">", value="25", score=Decimal("15")),
                    ScoringRuleRecord(field="age", condition="between", value="30-40", score=Decimal("20")),
                ],
            ),
            ScoringParameterRecord(
                provider_id=provider.id,
                name="monthlyIncome",
                weight=Decimal("30"),
                rules=[
                    ScoringRuleRecord(field="monthlyIncome", condition=">=", value="5000", score=Decimal("30")),
                    ScoringRuleRecord(field="monthlyIncome", condition=">=", value="2000", score=Decimal("10")),
                ],
            ),
        ]
    )
    db.commit()

    product = make_product()
    db.add_all(
        [
            LoanAmountTierRecord(product_id=product.id, from_score=10, to_score=29, loan_amount=Decimal("500")),
            LoanAmountTierRecord(product_id=product.id, from_score=30, to_score=39, loan_amount=Decimal("1000")),
            LoanAmountTierRecord(product_id=product.id, from_score=40, to_score=50, loan_amount=Decimal("3000")),
        ]
    )
    db.commit()
    return product


def test_eligible_borrower_gets_tier_amount(db, scored_product, make_borrower):
    """Age 35 (20 points) and income 6000 (30 points)"""
    make_borrower("borrower-1", age=35, attributes={"monthlyIncome": 6000})

    result = check_loan_eligibility(db, "borrower-1", 1, scored_product.id)

    assert result.is_eligible
    assert result.score == 50
    assert result.max_loan_amount == Decimal("3000.00")


def test_offer_capped_at_product_max(db, scored_product, make_borrower):
    db.query(LoanAmountTierRecord).filter(LoanAmountTierRecord.from_score == 40).update(
        {LoanAmountTierRecord.loan_amount: Decimal("8000")}
    )
    db.commit()
    make_borrower("borrower-1", age=35, attributes={"monthlyIncome": 6000})

    result = check_loan_eligibility(db, "borrower-1", 1, scored_product.id)

    assert result.max_loan_amount == Decimal("5000.00")


def test_borrower_must_be_older_than_minimum_age(db, scored_product, make_borrower):
    make_borrower("borrower-1", age=20)

    result = check_loan_eligibility(db, "borrower-1", 1, scored_product.id)

    assert not result.is_eligible
    assert "older than 20" in result.reason


def test_score_outside_tiers_is_ineligible(db, scored_product, make_borrower):
    """Age 22 and income 1000 score nothing"""
    make_borrower("borrower-1", age=22, attributes={"monthlyIncome": 1000})

    result = check_loan_eligibility(db, "borrower-1", 1, scored_product.id)

    assert not result.is_eligible
    assert result.score == 0
    assert result.max_loan_amount == Decimal("0.00")


def test_existing_loan_with_same_provider(db, scored_product, make_loan):
    make_loan(scored_product, borrower_id="borrower-1")

    result = check_loan_eligibility(db, "borrower-1", 1, scored_product.id)

    assert not result.is_eligible
    assert "multiple active loans" in result.reason


def test_provider_allowing_multiple_loans(db, scored_product, make_loan):
    db.get(LoanProviderRecord, 1).allow_multiple_provider_loans = True
    db.commit()
    make_loan(scored_product, borrower_id="borrower-1")

    result = check_loan_eligibility(db, "borrower-1", 1, scored_product.id)

    assert result.is_eligible


def test_existing_loan_with_other_provider(db, scored_product, make_product, make_loan):
    other = LoanProviderRecord(id=2, name="Other Lender")
    db.add(other)
    db.commit()
    make_loan(make_product(provider_id=2), borrower_id="borrower-1")

    result = check_loan_eligibility(db, "borrower-1", 1, scored_product.id)

    assert not result.is_eligible
    assert "other providers" in result.reason


def test_provider_without_scoring_rules(db, provider, make_product, make_borrower):
    make_borrower("borrower-1")
    product = make_product()

    result = check_loan_eligibility(db, "borrower-1", provider.id, product.id)

    assert not result.is_eligible
    assert "credit scoring rules" in result.reason


def test_disabled_product(db, scored_product, make_product, make_borrower):
    make_borrower("borrower-1")
    disabled = make_product(status="Disabled")

    result = check_loan_eligibility(db, "borrower-1", 1, disabled.id)

    assert not result.is_eligible


def test_unsupported_stored_condition(db, scored_product, make_borrower):
    make_borrower("borrower-1")
    rule = db.query(ScoringRuleRecord).first()
    rule.condition = "~="
    db.commit()

    with pytest.raises(InvalidScoringRule):
        check_loan_eligibility(db, "borrower-1", 1, scored_product.id)


def test_unknown_borrower(db, scored_product):
    with pytest.raises(BorrowerNotFound):
        check_loan_eligibility(db, "nobody", 1, scored_product.id)


def test_build_borrower_attributes(db, make_borrower):
    borrower = make_borrower("borrower-1", age=41, attributes={"educationLevel": "Degree"})

    assert build_borrower_attributes(borrower) == {"age": 41, "educationLevel": "Degree"}
