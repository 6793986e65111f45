"""Order/payment lookup — correlates gateway identifiers with orders.

Used by webhook reconciliation to find the order behind a remote payment or
remote order id, and by checkout to find a reusable pending order.
"""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.events import (
    OrderCancelled,
    OrderDelivered,
    OrderPlaced,
    OrderShipped,
    PaymentCaptured,
    PaymentFailed,
    PaymentIntentCreated,
)
from ordering.order.order import Order, OrderStatus


@ordering.projection
class OrderPaymentLookup:
    order_id = Identifier(identifier=True, required=True)
    user_id = Identifier(required=True)
    status = String(required=True)
    total_amount = Float()
    currency = String(max_length=3)
    receipt_key = String(max_length=100)
    checkout_token = String(max_length=128)
    remote_order_id = String(max_length=255)
    remote_payment_id = String(max_length=255)
    created_at = DateTime()
    updated_at = DateTime()


@ordering.projector(projector_for=OrderPaymentLookup, aggregates=[Order])
class OrderPaymentLookupProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        current_domain.repository_for(OrderPaymentLookup).add(
            OrderPaymentLookup(
                order_id=event.order_id,
                user_id=event.user_id,
                status=OrderStatus.PENDING.value,
                total_amount=event.total_amount,
                currency=event.currency,
                receipt_key=event.receipt_key,
                checkout_token=event.checkout_token,
                created_at=event.placed_at,
                updated_at=event.placed_at,
            )
        )

    @on(PaymentIntentCreated)
    def on_payment_intent_created(self, event):
        self._update(event.order_id, event.created_at, remote_order_id=event.remote_order_id)

    @on(PaymentCaptured)
    def on_payment_captured(self, event):
        self._update(
            event.order_id,
            event.captured_at,
            status=OrderStatus.PROCESSING.value,
            remote_payment_id=event.remote_payment_id,
        )

    @on(PaymentFailed)
    def on_payment_failed(self, event):
        changes = {"status": OrderStatus.FAILED.value}
        if event.remote_payment_id:
            changes["remote_payment_id"] = event.remote_payment_id
        self._update(event.order_id, event.failed_at, **changes)

    @on(OrderShipped)
    def on_order_shipped(self, event):
        self._update(event.order_id, event.shipped_at, status=OrderStatus.SHIPPED.value)

    @on(OrderDelivered)
    def on_order_delivered(self, event):
        self._update(event.order_id, event.delivered_at, status=OrderStatus.DELIVERED.value)

    @on(OrderCancelled)
    def on_order_cancelled(self, event):
        self._update(event.order_id, event.cancelled_at, status=OrderStatus.CANCELLED.value)

    def _update(self, order_id, timestamp, **changes):
        repo = current_domain.repository_for(OrderPaymentLookup)
        try:
            record = repo.get(order_id)
        except ObjectNotFoundError:
            return
        for field, value in changes.items():
            setattr(record, field, value)
        record.updated_at = timestamp
        repo.add(record)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def find_pending_order(user_id, checkout_token) -> str | None:
    """Id of the user's pending order created by the same checkout, if any."""
    records = (
        current_domain.repository_for(OrderPaymentLookup)
        ._dao.query.filter(
            user_id=str(user_id),
            checkout_token=checkout_token,
            status=OrderStatus.PENDING.value,
        )
        .all()
        .items
    )
    return str(records[0].order_id) if records else None


def find_order_id(remote_payment_id=None, remote_order_id=None, receipt_key=None) -> str | None:
    """Correlate a gateway notification to an order, trying the most specific key first."""
    dao = current_domain.repository_for(OrderPaymentLookup)._dao
    for field, value in (
        ("remote_payment_id", remote_payment_id),
        ("remote_order_id", remote_order_id),
        ("receipt_key", receipt_key),
    ):
        if not value:
            continue
        records = dao.query.filter(**{field: value}).all().items
        if records:
            return str(records[0].order_id)
    return None
