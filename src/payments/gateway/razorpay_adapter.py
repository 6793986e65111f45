"""Razorpay payment gateway adapter.

Talks to the Razorpay Orders and Payments REST API over HTTP basic auth.
Amounts cross the wire in the smallest currency unit (paise for INR) and are
converted back to major units on the way in.

Transport failures and 5xx responses are retried a few times with
exponential backoff and then surface as ``GatewayUnavailableError``.
"""

import hmac

import requests
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.errors import GatewayUnavailableError, NotFoundError

from payments.gateway.port import (
    PaymentGateway,
    RemotePayment,
    from_minor_units,
    hmac_signature,
    to_minor_units,
)

logger = structlog.get_logger(__name__)


class _RetryableGatewayError(Exception):
    pass


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type((requests.RequestException, _RetryableGatewayError)),
    )


class RazorpayGateway(PaymentGateway):
    """Production Razorpay gateway adapter."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (key_id, key_secret)

    @http_retry()
    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.debug("razorpay_request", method=method, url=url)
        resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if resp.status_code >= 500:
            raise _RetryableGatewayError(f"Razorpay returned {resp.status_code}")
        return resp

    def _call(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return self._request(method, path, **kwargs)
        except (requests.RequestException, _RetryableGatewayError) as exc:
            logger.warning("razorpay_unavailable", method=method, path=path, error=str(exc))
            raise GatewayUnavailableError("Payment gateway is unavailable", detail=str(exc)) from exc

    def create_remote_intent(
        self,
        amount: float,
        currency: str,
        receipt_key: str,
        metadata: dict,
    ) -> str:
        # Razorpay does not deduplicate by receipt, so look it up first
        resp = self._call("GET", "/orders", params={"receipt": receipt_key})
        if resp.ok:
            existing = resp.json().get("items") or []
            if existing:
                return existing[0]["id"]

        resp = self._call(
            "POST",
            "/orders",
            json={
                "amount": to_minor_units(amount),
                "currency": currency,
                "receipt": receipt_key,
                "notes": metadata,
            },
        )
        if not resp.ok:
            raise GatewayUnavailableError(
                "Payment gateway rejected the order",
                status=resp.status_code,
                detail=resp.text[:200],
            )

        remote_order_id = resp.json()["id"]
        logger.info("razorpay_order_created", receipt=receipt_key, remote_order_id=remote_order_id)
        return remote_order_id

    def fetch_payment(self, remote_payment_id: str) -> RemotePayment:
        resp = self._call("GET", f"/payments/{remote_payment_id}")
        if resp.status_code in (400, 404):
            raise NotFoundError("Payment not found at gateway", payment_id=remote_payment_id)
        if not resp.ok:
            raise GatewayUnavailableError("Payment gateway error", status=resp.status_code)

        data = resp.json()
        return RemotePayment(
            payment_id=data["id"],
            status=data.get("status", ""),
            amount=from_minor_units(data.get("amount", 0)),
            currency=data.get("currency", ""),
            method=data.get("method"),
            remote_order_id=data.get("order_id"),
        )

    def verify_signature(self, raw_payload: bytes, signature: str) -> bool:
        if not signature:
            return False
        expected = hmac_signature(self.webhook_secret, raw_payload)
        return hmac.compare_digest(expected, signature)
