"""Entry point for the scheduled collectors (run from cron or a task scheduler)"""

import argparse
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from prometheus_client import start_http_server
from sqlalchemy.orm import Session

from microlend.config import settings
from microlend.infrastructure.observability.logging import setup_logging
from microlend.services.collectors import SweepResult, mark_non_performing_loans, process_automated_repayments

SWEEPS: Dict[str, Callable[..., SweepResult]] = {
    "npl": mark_non_performing_loans,
    "repayments": process_automated_repayments,
}


def run_scheduled_collectors(
    session_factory: Callable[[], Session],
    sweeps: tuple = ("repayments", "npl"),
    as_of: Optional[datetime] = None,
) -> Dict[str, SweepResult]:
    """Run each sweep in its own session; repayments first so cleared loans are not flagged"""
    as_of = as_of or datetime.now(timezone.utc)
    results = {}
    for name in sweeps:
        db = session_factory()
        try:
            results[name] = SWEEPS[name](db, as_of=as_of)
        finally:
            db.close()
    return results


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Run microlend scheduled collectors")
    parser.add_argument("sweeps", nargs="*", help=f"any of {sorted(SWEEPS)}; default: repayments npl")
    parser.add_argument("--metrics-port", type=int, default=None, help="expose Prometheus metrics while running")
    args = parser.parse_args(argv)
    sweeps = tuple(args.sweeps) or ("repayments", "npl")
    unknown = [s for s in sweeps if s not in SWEEPS]
    if unknown:
        parser.error(f"unknown sweep(s): {', '.join(unknown)}")

    setup_logging(settings.log_level)
    if args.metrics_port:
        start_http_server(args.metrics_port)

    from microlend.infrastructure.database.session import SessionLocal

    results = run_scheduled_collectors(SessionLocal, sweeps)
    failed = sum(r.failed for r in results.values())
    logging.info("Collectors finished", extra={"failed": failed})
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
