"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from microlend.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        json_default=str,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_payment_posted(
    loan_id: int,
    amount: Decimal,
    outstanding_before: Decimal,
    repayment_status: str,
    journal_entry_count: int,
    transaction_id: str | None = None,
) -> None:
    """Log structured repayment outcome for reconciliation"""
    logging.getLogger("microlend.repayment").info(
        "Repayment posted",
        extra={
            "loan_id": loan_id,
            "step": "repayment_posted",
            "amount": str(amount),
            "outstanding_before": str(outstanding_before),
            "repayment_status": repayment_status,
            "journal_entries": journal_entry_count,
            "transaction_id": transaction_id,
        },
    )


def log_payment_rejected(loan_id: int, amount: Any, reason: str, detail: str) -> None:
    logging.getLogger("microlend.repayment").warning(
        "Repayment rejected",
        extra={
            "loan_id": loan_id,
            "step": "repayment_rejected",
            "amount": str(amount),
            "reason": reason,
            "detail": detail,
        },
    )


def log_sweep_completed(sweep: str, processed: int, skipped: int, failed: int, duration_ms: float) -> None:
    """Log aggregate outcome of a scheduled collector run"""
    logging.getLogger("microlend.collectors").info(
        "Sweep completed",
        extra={
            "sweep": sweep,
            "step": "sweep_complete",
            "processed": processed,
            "skipped": skipped,
            "failed": failed,
            "duration_ms": duration_ms,
        },
    )
