"""Prometheus metrics for repayments, collectors, gateway calls and scoring"""

from decimal import Decimal
from typing import Iterable

from prometheus_client import Counter, Histogram

from microlend.domain.models import Allocation

# Repayment metrics
payments_posted_counter = Counter(
    "microlend_payments_posted_total",
    "Repayments posted to the ledger",
    ["repayment_status"],  # Paid | Unpaid
)

payments_rejected_counter = Counter(
    "microlend_payments_rejected_total",
    "Repayments rejected before posting",
    ["reason"],
)

amount_settled_counter = Counter(
    "microlend_amount_settled_total",
    "Currency amount settled, by ledger category",
    ["category"],
)

posting_conflicts_counter = Counter(
    "microlend_posting_conflicts_total",
    "Postings retried after a concurrent update of the same loan",
)

# Collector metrics
sweep_items_counter = Counter(
    "microlend_sweep_items_total",
    "Loans visited by scheduled collectors",
    ["sweep", "outcome"],  # processed | skipped | failed
)

# Payment gateway metrics
gateway_latency_histogram = Histogram(
    "payment_gateway_latency_seconds",
    "Payment gateway response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

gateway_failure_counter = Counter(
    "payment_gateway_failures_total",
    "Failed payment gateway calls",
)

# Scoring metrics
eligibility_counter = Counter(
    "microlend_eligibility_total",
    "Eligibility checks by outcome",
    ["outcome"],  # eligible | ineligible
)

loan_limit_bucket_counter = Counter(
    "microlend_loan_limit_bucket",
    "Maximum loan amounts offered by bucket",
    ["bucket"],
)


def record_payment_posted(repayment_status: str, allocations: Iterable[Allocation]) -> None:
    payments_posted_counter.labels(repayment_status=repayment_status).inc()
    for alloc in allocations:
        amount_settled_counter.labels(category=alloc.category.value).inc(float(alloc.amount))


def record_sweep(sweep: str, processed: int, skipped: int, failed: int) -> None:
    for outcome, count in (("processed", processed), ("skipped", skipped), ("failed", failed)):
        if count:
            sweep_items_counter.labels(sweep=sweep, outcome=outcome).inc(count)


def record_eligibility(is_eligible: bool, max_loan_amount: Decimal) -> None:
    eligibility_counter.labels(outcome="eligible" if is_eligible else "ineligible").inc()
    if not is_eligible:
        return
    # Bucket offered limits for distribution analysis
    if max_loan_amount <= 1_000:
        bucket = "0-1000"
    elif max_loan_amount <= 5_000:
        bucket = "1000-5000"
    else:
        bucket = "5000+"
    loan_limit_bucket_counter.labels(bucket=bucket).inc()
