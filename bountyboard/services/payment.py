"""
Payment Executor Client
=======================
Request/response client for the external payment service. On-chain
execution and signature checks happen there; this side only speaks HTTP.

Contract:
    POST {base}/transfers  {recipient, amount, token, chain, reference}
        → {"tx_hash": "0x..."}                       synchronous transfer
    POST {base}/verify     {payment, recipient, amount}
        → {"valid": true, "payer": "0x..."}          posting-fee check

Availability:
    No PAYMENT_EXECUTOR_URL → unavailable. Approvals then move the bounty
    to payment_pending and a separate relay completes them later.
"""
import logging
from typing import Optional

import httpx

from bountyboard.core.constants import PAYMENT_CHAIN, PAYMENT_TOKEN

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """The payment service was unreachable or refused the request."""


class PaymentExecutor:

    def __init__(self, base_url: Optional[str], token: str = "", timeout: float = 20.0) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.token = token
        self.timeout = timeout
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def available(self) -> bool:
        return self.base_url is not None

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._http = httpx.AsyncClient(headers=headers, timeout=httpx.Timeout(self.timeout))
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def _post(self, path: str, payload: dict) -> dict:
        if not self.available:
            raise PaymentError("Payment executor not configured")
        http = await self._get_http()
        try:
            resp = await http.post(f"{self.base_url}{path}", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise PaymentError(f"Payment service returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise PaymentError(f"Payment service unreachable: {e}") from e
        if not isinstance(data, dict):
            raise PaymentError("Payment service returned a malformed response")
        return data

    async def execute(self, recipient: str, amount: int, reference: str) -> str:
        """
        Transfer ``amount`` to ``recipient`` and wait for the transaction.

        Returns
        -------
        str
            Transaction reference (hash).

        Raises
        ------
        PaymentError
            On any failure. The caller must not mark the bounty completed.
        """
        logger.info("[BOUNTY PAYMENT] Sending %d to %s (ref %s)", amount, recipient, reference)
        data = await self._post("/transfers", {
            "recipient": recipient,
            "amount": str(amount),
            "token": PAYMENT_TOKEN,
            "chain": PAYMENT_CHAIN,
            "reference": reference,
        })
        tx_hash = data.get("tx_hash")
        if not tx_hash:
            raise PaymentError(data.get("error") or "Payment service did not return a transaction hash")
        logger.info("[BOUNTY PAYMENT] Tx confirmed: %s", tx_hash)
        return str(tx_hash)

    async def verify_posting_payment(self, payment_header: str, recipient: str, amount: int) -> str:
        """
        Verify an x-payment header and return the payer address.

        Raises
        ------
        PaymentError
            If the payment is invalid or the service is unreachable.
        """
        data = await self._post("/verify", {
            "payment": payment_header,
            "recipient": recipient,
            "amount": str(amount),
        })
        if not data.get("valid") or not data.get("payer"):
            raise PaymentError(data.get("error") or "Payment verification failed")
        return str(data["payer"]).lower()
