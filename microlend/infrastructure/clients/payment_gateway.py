"""Payment gateway client with exponential backoff retry logic"""

import asyncio
from decimal import Decimal
from typing import Any, Dict

import httpx

from microlend.config import settings
from microlend.domain.exceptions import PaymentGatewayError
from microlend.infrastructure.observability.metrics import gateway_failure_counter, gateway_latency_histogram


class PaymentGatewayClient:
    """Client for initiating borrower-to-provider transfers"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.payment_gateway_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.gateway_max_retries
        self.backoff_base = settings.gateway_backoff_base

    async def request_payment(
        self,
        transaction_id: str,
        loan_id: int,
        borrower_id: str,
        amount: Decimal,
    ) -> Dict[str, Any]:
        """
        Ask the gateway to collect a repayment.

        The gateway confirms asynchronously through its callback, keyed by
        transaction_id; this call only starts the transfer.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s (base * 2^attempt)
        - Retries on 5xx errors and network failures, not on 4xx

        Raises:
            PaymentGatewayError: gateway rejected the request or stayed unavailable
        """
        payload = {
            "transactionId": transaction_id,
            "loanId": loan_id,
            "borrowerId": borrower_id,
            "amount": str(amount),
        }
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                try:
                    with gateway_latency_histogram.time():
                        response = await client.post(f"{self.base_url}/payments/initiate", json=payload)
                        response.raise_for_status()
                        return response.json()

                except httpx.HTTPStatusError as e:
                    gateway_failure_counter.inc()
                    if e.response.status_code < 500:
                        raise PaymentGatewayError(
                            f"Payment gateway rejected {transaction_id}: {e.response.status_code}"
                        ) from e
                    error: Exception = e

                except httpx.RequestError as e:
                    gateway_failure_counter.inc()
                    error = e

                except ValueError as e:
                    raise PaymentGatewayError(f"Invalid payment gateway response: {e}") from e

                attempt += 1
                if attempt >= self.max_retries:
                    raise PaymentGatewayError(
                        f"Payment gateway unavailable after {attempt} attempts: {error}"
                    ) from error

                backoff = self.backoff_base * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)
