"""Order reconciliation: settles pending orders against the payment gateway.

Two channels converge on the same PENDING → PROCESSING edge:

- confirm(): the client reports a payment id; the gateway is asked for the
  authoritative payment state before anything is trusted.
- handle_webhook(): the gateway posts a signed event; the signature is
  checked over the raw bytes before the body is parsed.

The commit itself is a compare-and-set on the order status, taken under a
per-order lock. A concurrent writer in another process surfaces as
ExpectedVersionError from the event store and is treated as a lost race.
Whichever channel loses observes a no-op and reports the current status.

A ``payment.failed`` event describes one payment attempt, and customers can
retry against the same remote intent. The order only fails once the gateway
itself reports that payment as failed. A capture that still arrives for a
failed order is recorded on it and logged as an error.
"""

import json
from dataclasses import dataclass

from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.domain import logger
from ordering.order.order import Order, OrderStatus
from ordering.order.payment import RecordPaymentCapture, RecordPaymentFailure
from ordering.projections.order_payment_lookup import find_order_id
from ordering.utils.locks import order_locks
from payments.gateway import get_gateway
from payments.gateway.port import from_minor_units
from shared.errors import (
    ConflictError,
    NotFoundError,
    PaymentNotCapturedError,
    UnauthorizedError,
)

PAYMENT_CAPTURED = "payment.captured"
PAYMENT_FAILED = "payment.failed"

REMOTE_PAYMENT_FAILED = "failed"


@dataclass(frozen=True)
class ReconciliationResult:
    order_id: str | None
    status: str | None
    committed: bool


IGNORED = ReconciliationResult(order_id=None, status=None, committed=False)


def _load_order(order_id) -> Order:
    try:
        return current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        raise NotFoundError("Order not found", order_id=str(order_id)) from None


def _unchanged(order: Order) -> ReconciliationResult:
    return ReconciliationResult(order_id=str(order.id), status=order.status, committed=False)


def _commit(order_id, command) -> ReconciliationResult:
    with order_locks.hold(order_id):
        try:
            committed = bool(current_domain.process(command, asynchronous=False))
        except ExpectedVersionError:
            logger.info("reconciliation_lost_race", order_id=str(order_id))
            committed = False
        order = _load_order(order_id)

    if committed:
        logger.info("order_reconciled", order_id=str(order_id), status=order.status)
    else:
        logger.info("reconciliation_noop", order_id=str(order_id), status=order.status)
    return ReconciliationResult(order_id=str(order_id), status=order.status, committed=committed)


def _record_capture(order: Order, remote_payment_id, amount, currency, method, source) -> ReconciliationResult:
    result = _commit(
        order.id,
        RecordPaymentCapture(
            order_id=str(order.id),
            remote_payment_id=remote_payment_id,
            amount=amount,
            currency=currency,
            method=method,
            source=source,
        ),
    )
    if result.status == OrderStatus.FAILED.value:
        logger.error(
            "payment_captured_on_failed_order",
            order_id=str(order.id),
            payment_id=remote_payment_id,
            amount=amount,
            currency=currency,
            source=source,
            first_report=result.committed,
        )
    return result


def confirm(order_id, remote_payment_id, user_id=None) -> ReconciliationResult:
    """Settle an order from a client-reported payment id.

    Raises ConflictError when the gateway captured the payment but the order
    had already failed; the capture is recorded on the order first.
    """
    order = _load_order(order_id)
    if user_id is not None and str(order.user_id) != str(user_id):
        raise NotFoundError("Order not found", order_id=str(order_id))

    if not (order.is_pending or order.is_failed):
        return _unchanged(order)

    try:
        payment = get_gateway().fetch_payment(remote_payment_id)
    except NotFoundError:
        raise PaymentNotCapturedError("Payment not found at gateway", payment_id=remote_payment_id) from None

    if not payment.is_captured:
        if order.is_failed:
            return _unchanged(order)
        raise PaymentNotCapturedError("Payment not captured", payment_id=remote_payment_id, status=payment.status)

    if payment.remote_order_id and order.remote_order_id and payment.remote_order_id != order.remote_order_id:
        raise ConflictError("Payment belongs to a different order", payment_id=remote_payment_id)

    if not order.amount_matches(payment.amount, payment.currency):
        raise ConflictError(
            "Payment amount does not match order total",
            payment_id=remote_payment_id,
            paid=payment.amount,
            expected=order.total_amount,
        )

    result = _record_capture(
        order,
        payment.payment_id,
        payment.amount,
        payment.currency,
        payment.method,
        source="confirm",
    )
    if result.status == OrderStatus.FAILED.value:
        raise ConflictError(
            "Payment was captured for an order that had already failed",
            order_id=str(order.id),
            payment_id=remote_payment_id,
        )
    return result


def _parse(raw_body: bytes) -> dict | None:
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def _payment_entity(payload: dict) -> dict:
    entity = ((payload.get("payload") or {}).get("payment") or {}).get("entity")
    return entity if isinstance(entity, dict) else {}


def _record_failure(order: Order, remote_payment_id, entity: dict) -> ReconciliationResult:
    try:
        payment = get_gateway().fetch_payment(remote_payment_id)
    except NotFoundError:
        payment = None

    if payment is None or payment.status != REMOTE_PAYMENT_FAILED:
        # Order stays pending; the customer may still pay on the same intent
        logger.warning(
            "payment_failure_unconfirmed",
            order_id=str(order.id),
            payment_id=remote_payment_id,
            gateway_status=payment.status if payment else None,
        )
        return _unchanged(order)

    return _commit(
        order.id,
        RecordPaymentFailure(
            order_id=str(order.id),
            remote_payment_id=remote_payment_id,
            reason=entity.get("error_description") or "Payment failed at gateway",
        ),
    )


def handle_webhook(raw_body: bytes, signature) -> ReconciliationResult:
    """Apply a signed gateway event. Anything that is not actionable is an acknowledged no-op."""
    if not get_gateway().verify_signature(raw_body, signature or ""):
        raise UnauthorizedError("Invalid webhook signature")

    payload = _parse(raw_body)
    if payload is None:
        logger.warning("webhook_malformed", size=len(raw_body))
        return IGNORED

    event = payload.get("event")
    if event not in (PAYMENT_CAPTURED, PAYMENT_FAILED):
        logger.info("webhook_ignored", webhook_event=event)
        return IGNORED

    entity = _payment_entity(payload)
    notes = entity.get("notes") if isinstance(entity.get("notes"), dict) else {}
    remote_payment_id = entity.get("id")
    if not remote_payment_id:
        logger.warning("webhook_payment_missing", webhook_event=event)
        return IGNORED

    order_id = find_order_id(
        remote_payment_id=remote_payment_id,
        remote_order_id=entity.get("order_id"),
        receipt_key=notes.get("receipt_key"),
    ) or notes.get("order_id")
    if not order_id:
        logger.warning("webhook_order_not_found", webhook_event=event, payment_id=remote_payment_id)
        return IGNORED

    try:
        order = _load_order(order_id)
    except NotFoundError:
        logger.warning("webhook_order_not_found", webhook_event=event, order_id=str(order_id))
        return IGNORED

    if event == PAYMENT_FAILED:
        if not order.is_pending:
            logger.info("webhook_order_already_settled", order_id=str(order.id), status=order.status)
            return _unchanged(order)
        return _record_failure(order, remote_payment_id, entity)

    if not (order.is_pending or order.is_failed):
        logger.info("webhook_order_already_settled", order_id=str(order.id), status=order.status)
        return _unchanged(order)

    amount = from_minor_units(entity.get("amount") or 0)
    currency = entity.get("currency")
    if not order.amount_matches(amount, currency):
        logger.warning(
            "webhook_amount_mismatch",
            order_id=str(order.id),
            paid=amount,
            expected=order.total_amount,
            currency=currency,
        )
        return _unchanged(order)

    return _record_capture(
        order,
        remote_payment_id,
        amount,
        currency,
        entity.get("method"),
        source="webhook",
    )
