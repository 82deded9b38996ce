"""Pre-loan eligibility check and offer sizing"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from microlend.config import settings
from microlend.domain.exceptions import NoTierMatch
from microlend.domain.models import EligibilityResult, ProductStatus
from microlend.domain.money import money
from microlend.domain.scoring import ScoringEngine
from microlend.infrastructure.database.models import BorrowerRecord
from microlend.infrastructure.database.repositories import (
    BorrowerRepository,
    LoanRepository,
    ProductRepository,
    ProviderRepository,
    ScoringRepository,
)
from microlend.infrastructure.observability.metrics import record_eligibility

logger = logging.getLogger(__name__)


def build_borrower_attributes(borrower: BorrowerRecord) -> Dict[str, Any]:
    """Fields rules can reference: profile columns plus provisioned data"""
    attributes: Dict[str, Any] = {"age": borrower.age}
    attributes.update(borrower.attributes or {})
    return attributes


def _ineligible(reason: str, score: int = 0) -> EligibilityResult:
    record_eligibility(False, Decimal("0"))
    return EligibilityResult(is_eligible=False, reason=reason, score=score)


def check_loan_eligibility(
    db: Session,
    borrower_id: str,
    provider_id: int,
    product_id: int,
    min_age: Optional[int] = None,
) -> EligibilityResult:
    """
    Decide whether a borrower may take a loan from a provider's product.

    Checks, in order:
    - Borrower is older than the minimum age
    - Provider exists and its multiple/cross-provider loan policy allows it
    - Provider has configured scoring parameters
    - Score falls in a loan amount tier with a positive amount

    The offered maximum is the tier amount capped at the product's max loan.

    Raises:
        BorrowerNotFound: no borrower with this id
        ProductMisconfigured: product missing or malformed
        InvalidScoringRule: provider rules use an unsupported condition
    """
    min_age = settings.min_borrower_age if min_age is None else min_age
    borrower = BorrowerRepository(db).get_borrower(borrower_id)

    if borrower.age <= min_age:
        return _ineligible(f"Borrower must be older than {min_age} to qualify.")

    provider = ProviderRepository(db).get_provider(provider_id)
    if provider is None:
        return _ineligible("Loan provider not found.")

    product = ProductRepository(db).get_product(product_id)
    if product.status != ProductStatus.ACTIVE:
        return _ineligible("This loan product is not currently available.")

    active_loans = LoanRepository(db).get_unpaid_loans_for_borrower(borrower_id)
    with_this_provider = [l for l in active_loans if l.provider_id == provider_id]
    with_other_providers = [l for l in active_loans if l.provider_id != provider_id]

    if with_this_provider and not provider.allow_multiple_provider_loans:
        return _ineligible(
            "This provider does not allow multiple active loans. Please repay your existing loan first."
        )
    if with_other_providers and not provider.allow_cross_provider_loans:
        return _ineligible(
            "This provider does not allow loans if you have active loans with other providers."
        )

    scoring_repo = ScoringRepository(db)
    if not scoring_repo.get_scoring_parameters(provider_id):
        return _ineligible("This provider has not configured their credit scoring rules.")

    engine = ScoringEngine(scoring_repo)
    try:
        scored = engine.evaluate(provider_id, product_id, build_borrower_attributes(borrower))
    except NoTierMatch as e:
        logger.info("Score outside loan amount tiers", extra={"borrower_id": borrower_id, "score": e.score})
        return _ineligible(
            "Your credit score does not meet the minimum requirement for a loan with this provider.",
            score=e.score,
        )

    max_loan_amount = money(min(scored.max_loan_amount, product.max_loan))
    if max_loan_amount <= 0:
        return _ineligible(
            "Your credit score does not meet the minimum requirement for a loan with this provider.",
            score=scored.score,
        )

    record_eligibility(True, max_loan_amount)
    return EligibilityResult(
        is_eligible=True,
        reason="Congratulations! You are eligible for a loan.",
        score=scored.score,
        max_loan_amount=max_loan_amount,
    )
