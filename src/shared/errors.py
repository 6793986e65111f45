"""Error taxonomy for the ordering flow.

Bad input is reported with Protean's own ``ValidationError`` (re-exported
here) so that aggregate invariants and application checks surface the same
way. The remaining kinds are application errors with a fixed HTTP status.
"""

from protean.exceptions import ValidationError

__all__ = [
    "AgroMartError",
    "ConflictError",
    "GatewayUnavailableError",
    "InvalidTokenError",
    "NotFoundError",
    "PaymentNotCapturedError",
    "UnauthorizedError",
    "ValidationError",
]


class AgroMartError(Exception):
    """Base class for application errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.message, **{k: v for k, v in self.context.items() if v is not None}}


class NotFoundError(AgroMartError):
    """A referenced entity (product, cart line, order, payment) does not exist."""

    status_code = 404


class ConflictError(AgroMartError):
    """Stock, revision or state conflict. Retrying may succeed once the conflict clears."""

    status_code = 409


class UnauthorizedError(AgroMartError):
    """Token or webhook signature could not be verified."""

    status_code = 401


class PaymentNotCapturedError(AgroMartError):
    """The gateway does not report the payment as captured; the order stays pending."""

    status_code = 400


class GatewayUnavailableError(AgroMartError):
    """The payment gateway timed out or failed. Safe to retry."""

    status_code = 502


class InvalidTokenError(UnauthorizedError):
    """A bearer token was presented but is invalid or expired."""

    status_code = 403
