"""Pakasir payment gateway HTTP client.

Creates QRIS / virtual-account transactions and polls transaction status.
Every failure (timeout, transport error, HTTP error, provider error payload)
surfaces as UpstreamError so callers can report "try again" to the user.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from src.models.invoice import PaymentMethod
from src.services.errors import UpstreamError

logger = logging.getLogger(__name__)

COMPLETED_STATUS = "completed"
"""Provider status for a settled transaction."""


@dataclass
class GatewayTransaction:
    """Transaction created at the gateway."""

    order_id: str
    method: PaymentMethod
    payment_number: str | None = None
    expired_at: str | None = None
    total_payment: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def qr_string(self) -> str | None:
        """For QRIS the payment number is the scannable QR payload."""
        if self.method == PaymentMethod.QRIS:
            return self.payment_number
        return None


class PakasirClient:
    """Async client for the Pakasir REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: API root, e.g. https://app.pakasir.com/api
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("gateway.timeout: path=%s", path)
            raise UpstreamError("Payment gateway timeout", reason="gateway_timeout") from e
        except httpx.RequestError as e:
            logger.error("gateway.request_error: path=%s error=%s", path, e)
            raise UpstreamError(f"Payment gateway unreachable: {e}", reason="gateway_unreachable") from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("gateway.bad_response: path=%s status=%s", path, response.status_code)
            raise UpstreamError("Payment gateway returned invalid JSON", reason="gateway_bad_response") from e

        if not isinstance(payload, dict):
            raise UpstreamError("Payment gateway returned unexpected payload", reason="gateway_bad_response")

        if payload.get("error"):
            logger.warning("gateway.rejected: path=%s error=%s", path, payload["error"])
            raise UpstreamError(str(payload["error"]), reason="gateway_rejected")

        if response.is_error:
            logger.error("gateway.http_error: path=%s status=%s", path, response.status_code)
            raise UpstreamError(
                f"Payment gateway HTTP {response.status_code}", reason="gateway_http_error"
            )

        return payload

    async def create_transaction(
        self,
        method: PaymentMethod,
        project: str,
        order_id: str,
        amount: int,
        api_key: str,
    ) -> GatewayTransaction:
        """Create a transaction for the given method.

        Raises:
            UpstreamError: On any gateway failure
        """
        payload = await self._request(
            "POST",
            f"transactioncreate/{method.value}",
            json={
                "project": project,
                "order_id": order_id,
                "amount": amount,
                "api_key": api_key,
            },
        )
        payment = payload.get("payment") or {}
        logger.info("gateway.created: order_id=%s method=%s", order_id, method.value)
        return GatewayTransaction(
            order_id=order_id,
            method=method,
            payment_number=payment.get("payment_number"),
            expired_at=payment.get("expired_at"),
            total_payment=payment.get("total_payment"),
            raw=payload,
        )

    async def transaction_status(self, project: str, order_id: str, amount: int, api_key: str) -> str:
        """Return the provider's raw status for an order ("unknown" if absent).

        Raises:
            UpstreamError: On any gateway failure
        """
        payload = await self._request(
            "GET",
            "transactiondetail",
            params={
                "project": project,
                "order_id": order_id,
                "amount": amount,
                "api_key": api_key,
            },
        )
        transaction = payload.get("transaction") or {}
        return transaction.get("status") or "unknown"


__all__ = ["PakasirClient", "GatewayTransaction", "COMPLETED_STATUS"]
