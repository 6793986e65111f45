"""Configurable fake payment gateway for development and testing.

This adapter simulates a Razorpay-like gateway without any external calls.
It can be configured at runtime, making it useful for:
- Automated tests with predictable outcomes
- Simulating gateway outages (timeouts) during checkout
- Development without real gateway credentials

Webhook signatures use the same HMAC scheme as production, so tests sign
payloads with ``sign()`` instead of using a magic string.
"""

import hmac
from uuid import uuid4

from shared.errors import GatewayUnavailableError, NotFoundError

from payments.gateway.port import PaymentGateway, RemotePayment, hmac_signature


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, webhook_secret: str = "webhook-secret") -> None:
        self.webhook_secret = webhook_secret
        self.available: bool = True
        self.calls: list[dict] = []
        self.intents: dict[str, dict] = {}  # receipt_key -> intent
        self.payments: dict[str, RemotePayment] = {}

    def configure(self, available: bool = True) -> None:
        """Configure gateway behavior at runtime."""
        self.available = available

    def _check_available(self, operation: str) -> None:
        if not self.available:
            raise GatewayUnavailableError(f"Payment gateway timed out during {operation}")

    def create_remote_intent(
        self,
        amount: float,
        currency: str,
        receipt_key: str,
        metadata: dict,
    ) -> str:
        self.calls.append(
            {
                "method": "create_remote_intent",
                "amount": amount,
                "currency": currency,
                "receipt_key": receipt_key,
                "metadata": dict(metadata),
            }
        )
        self._check_available("create_remote_intent")

        existing = self.intents.get(receipt_key)
        if existing is not None:
            return existing["id"]

        intent = {
            "id": f"order_fake_{uuid4().hex[:14]}",
            "amount": amount,
            "currency": currency,
            "receipt": receipt_key,
            "notes": dict(metadata),
        }
        self.intents[receipt_key] = intent
        return intent["id"]

    def fetch_payment(self, remote_payment_id: str) -> RemotePayment:
        self.calls.append({"method": "fetch_payment", "remote_payment_id": remote_payment_id})
        self._check_available("fetch_payment")

        payment = self.payments.get(remote_payment_id)
        if payment is None:
            raise NotFoundError("Payment not found at gateway", payment_id=remote_payment_id)
        return payment

    def verify_signature(self, raw_payload: bytes, signature: str) -> bool:
        if not signature:
            return False
        expected = hmac_signature(self.webhook_secret, raw_payload)
        return hmac.compare_digest(expected, signature)

    # -------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------
    def register_payment(
        self,
        payment_id: str,
        amount: float,
        status: str = "captured",
        currency: str = "INR",
        method: str = "upi",
        remote_order_id: str | None = None,
    ) -> RemotePayment:
        """Make a payment visible to ``fetch_payment``."""
        payment = RemotePayment(
            payment_id=payment_id,
            status=status,
            amount=amount,
            currency=currency,
            method=method,
            remote_order_id=remote_order_id,
        )
        self.payments[payment_id] = payment
        return payment

    def sign(self, raw_payload: bytes) -> str:
        return hmac_signature(self.webhook_secret, raw_payload)

    def intent_for(self, receipt_key: str) -> dict | None:
        return self.intents.get(receipt_key)
