"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class LoanNotFound(DomainException):
    """No loan exists for the requested identifier"""

    pass


class BorrowerNotFound(DomainException):
    """No borrower exists for the requested identifier"""

    pass


class InvalidPaymentAmount(DomainException):
    """Payment amount is zero, negative or not a number"""

    pass


class PaymentExceedsBalance(DomainException):
    """Payment is larger than the outstanding balance plus tolerance"""

    def __init__(self, amount, outstanding):
        super().__init__(f"Payment amount {amount} exceeds balance due {outstanding}")
        self.amount = amount
        self.outstanding = outstanding


class ProductMisconfigured(DomainException):
    """Fee or penalty configuration of a loan product cannot be interpreted"""

    pass


class NoTierMatch(DomainException):
    """No loan amount tier contains the computed score"""

    def __init__(self, score):
        super().__init__(f"No loan amount tier matches score {score}")
        self.score = score


class InvalidScoringRule(DomainException):
    """Scoring rule uses an unsupported condition or malformed value"""

    pass


class LedgerAccountMissing(DomainException):
    """Provider has no ledger account for a type/category pair"""

    pass


class UnbalancedJournalEntry(DomainException):
    """Journal entry debits do not equal credits"""

    pass


class PendingPaymentNotFound(DomainException):
    """No pending payment marker exists for a gateway transaction id"""

    pass


class PaymentGatewayError(DomainException):
    """Payment gateway returned an error or is unavailable"""

    pass
