"""Payment gateway port (abstract interface).

Defines the three operations the ordering flow depends on. Adapters exist for
an in-process FakeGateway (development and tests) and for Razorpay
(production); domain and application code only ever see this contract.
"""

import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass

CAPTURED = "captured"


@dataclass(frozen=True)
class RemotePayment:
    """A payment as reported by the gateway. Amounts are in major currency units."""

    payment_id: str
    status: str
    amount: float
    currency: str
    method: str | None = None
    remote_order_id: str | None = None

    @property
    def is_captured(self) -> bool:
        return self.status == CAPTURED


def to_minor_units(amount: float) -> int:
    """Major currency units to the smallest unit (rupees to paise)."""
    return int(round(amount * 100))


def from_minor_units(amount: int) -> float:
    return round(amount / 100, 2)


def hmac_signature(secret: str, raw_payload: bytes) -> str:
    """Hex HMAC-SHA256 of the exact payload bytes."""
    return hmac.new(secret.encode("utf-8"), raw_payload, hashlib.sha256).hexdigest()


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_remote_intent(
        self,
        amount: float,
        currency: str,
        receipt_key: str,
        metadata: dict,
    ) -> str:
        """Create (or return the existing) remote payment intent for ``receipt_key``.

        Repeated calls with the same receipt key must not create a second
        intent. Returns the gateway's intent/order id.
        """
        ...

    @abstractmethod
    def fetch_payment(self, remote_payment_id: str) -> RemotePayment:
        """Fetch the authoritative state of a payment."""
        ...

    @abstractmethod
    def verify_signature(self, raw_payload: bytes, signature: str) -> bool:
        """Verify that a webhook body is authentically from the gateway."""
        ...
