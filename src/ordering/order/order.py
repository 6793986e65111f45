"""Order aggregate (Event Sourced) — the order ledger.

All state changes are captured as domain events and the current state is
rebuilt by replaying them through the @apply handlers. Items and the total
are frozen by OrderPlaced; afterwards only the status, the payment details
and the payment-intent correlation fields change.

State Machine:
    PENDING → PROCESSING → SHIPPED → DELIVERED
    PENDING → FAILED
    PENDING, PROCESSING → CANCELLED
    Terminal: DELIVERED, CANCELLED, FAILED

The PENDING → PROCESSING | FAILED edge is a compare-and-set: capture_payment()
and fail_payment() return False and raise nothing once the order has left
PENDING, so replayed gateway notifications never append a second event.
A capture that arrives once the order has FAILED is kept as
PaymentCapturedAfterFailure so the money can be refunded; the order stays
FAILED.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import apply
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from ordering.domain import ordering
from ordering.order.events import (
    OrderCancelled,
    OrderDelivered,
    OrderPlaced,
    OrderShipped,
    PaymentCaptured,
    PaymentCapturedAfterFailure,
    PaymentFailed,
    PaymentIntentCreated,
)
from shared.errors import ConflictError


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PaymentStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.FAILED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.FAILED: set(),  # Terminal
}

TERMINAL_STATES = {status for status, targets in _VALID_TRANSITIONS.items() if not targets}


def receipt_key_for(order_id) -> str:
    return f"order_{order_id}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class PaymentDetails:
    """The gateway payment that settled (or failed to settle) the order."""

    remote_payment_id = String(max_length=255)
    status = String(choices=PaymentStatus)
    amount = Float(default=0.0)
    method = String(max_length=50)
    currency = String(max_length=3)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A frozen copy of a product line at the moment the order was placed."""

    product_id = Identifier(required=True)
    name = String(required=True, max_length=100)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    image = String(max_length=500)


# ---------------------------------------------------------------------------
# Aggregate Root (Event Sourced)
# ---------------------------------------------------------------------------
@ordering.aggregate(is_event_sourced=True)
class Order:
    user_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    items = HasMany(OrderItem)
    total_amount = Float(default=0.0)
    currency = String(max_length=3, default="INR")
    payment = ValueObject(PaymentDetails)
    remote_order_id = String(max_length=255)
    receipt_key = String(max_length=100)
    checkout_token = String(max_length=128)
    cart_revision = String(max_length=36)
    failure_reason = String(max_length=500)
    late_capture_payment_id = String(max_length=255)
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, user_id, items_data, currency="INR", checkout_token=None, cart_revision=None):
        """Create a pending order with its items and total frozen.

        Args:
            user_id: The user placing the order.
            items_data: List of dicts with product_id, name, unit_price,
                        quantity, image; prices already read from the catalogue.
            currency: ISO currency code of the total.
            checkout_token: Idempotency token of the checkout that produced it.
            cart_revision: Revision of the cart the items were taken from.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        total_amount = round(sum(item["unit_price"] * item["quantity"] for item in items_data), 2)

        # Pre-generate item IDs for deterministic replay
        items_with_ids = [{**item, "id": str(uuid4())} for item in items_data]

        order = cls._create_new()
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                user_id=str(user_id),
                items=json.dumps(items_with_ids),
                total_amount=total_amount,
                currency=currency,
                receipt_key=receipt_key_for(order.id),
                checkout_token=checkout_token,
                cart_revision=cart_revision,
                placed_at=datetime.now(UTC),
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def is_pending(self):
        return self.status == OrderStatus.PENDING.value

    @property
    def is_failed(self):
        return self.status == OrderStatus.FAILED.value

    def can_transition_to(self, target_status):
        return target_status in _VALID_TRANSITIONS.get(OrderStatus(self.status), set())

    def _assert_can_transition(self, target_status):
        """Validate that the current state allows transition to target."""
        if not self.can_transition_to(target_status):
            raise ConflictError(
                f"Cannot transition from {self.status} to {target_status.value}",
                order_id=str(self.id),
            )

    def amount_matches(self, amount, currency=None):
        """True when a gateway amount (and currency, if given) settles this order."""
        if currency and self.currency and currency.upper() != self.currency.upper():
            return False
        return abs(float(amount) - self.total_amount) < 0.005

    # -------------------------------------------------------------------
    # Payment intent
    # -------------------------------------------------------------------
    def attach_payment_intent(self, remote_order_id):
        """Record the gateway's intent id. Re-attaching the same id is a no-op."""
        if self.remote_order_id == remote_order_id:
            return
        if not self.is_pending:
            raise ConflictError("Payment intents can only be attached to pending orders", order_id=str(self.id))

        self.raise_(
            PaymentIntentCreated(
                order_id=str(self.id),
                remote_order_id=remote_order_id,
                receipt_key=self.receipt_key,
                created_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Reconciliation (compare-and-set on PENDING)
    # -------------------------------------------------------------------
    def capture_payment(self, remote_payment_id, amount, currency=None, method=None, source=None) -> bool:
        """Move PENDING → PROCESSING. Returns False, with no event, if no longer pending."""
        if not self.is_pending:
            return False

        self.raise_(
            PaymentCaptured(
                order_id=str(self.id),
                remote_payment_id=remote_payment_id,
                amount=amount,
                currency=currency or self.currency,
                method=method,
                source=source,
                captured_at=datetime.now(UTC),
            )
        )
        return True

    def fail_payment(self, remote_payment_id, reason) -> bool:
        """Move PENDING → FAILED. Returns False, with no event, if no longer pending."""
        if not self.is_pending:
            return False

        self.raise_(
            PaymentFailed(
                order_id=str(self.id),
                remote_payment_id=remote_payment_id,
                reason=reason,
                failed_at=datetime.now(UTC),
            )
        )
        return True

    def record_capture_after_failure(self, remote_payment_id, amount, currency=None, method=None, source=None) -> bool:
        """Keep a capture that reached an order which had already failed.

        The order stays FAILED. Returns False, with no event, unless the order
        failed and this payment has not been recorded yet.
        """
        if not self.is_failed or self.late_capture_payment_id == remote_payment_id:
            return False

        self.raise_(
            PaymentCapturedAfterFailure(
                order_id=str(self.id),
                remote_payment_id=remote_payment_id,
                amount=amount,
                currency=currency or self.currency,
                method=method,
                source=source,
                captured_at=datetime.now(UTC),
            )
        )
        return True

    # -------------------------------------------------------------------
    # Fulfilment
    # -------------------------------------------------------------------
    def ship(self):
        self._assert_can_transition(OrderStatus.SHIPPED)
        self.raise_(OrderShipped(order_id=str(self.id), shipped_at=datetime.now(UTC)))

    def deliver(self):
        self._assert_can_transition(OrderStatus.DELIVERED)
        self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=datetime.now(UTC)))

    def cancel(self, reason):
        self._assert_can_transition(OrderStatus.CANCELLED)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # @apply methods rebuild state during event replay
    # -------------------------------------------------------------------
    @apply
    def _on_order_placed(self, event: OrderPlaced):
        self.id = event.order_id
        self.user_id = event.user_id
        self.status = OrderStatus.PENDING.value
        self.total_amount = event.total_amount
        self.currency = event.currency
        self.receipt_key = event.receipt_key
        self.checkout_token = event.checkout_token
        self.cart_revision = event.cart_revision
        self.created_at = event.placed_at
        self.updated_at = event.placed_at

        # Reconstruct items from JSON (includes IDs for deterministic replay)
        items_data = json.loads(event.items) if isinstance(event.items, str) else []
        self.items = [OrderItem(**item_data) for item_data in items_data]

    @apply
    def _on_payment_intent_created(self, event: PaymentIntentCreated):
        self.remote_order_id = event.remote_order_id
        self.updated_at = event.created_at

    @apply
    def _on_payment_captured(self, event: PaymentCaptured):
        self.status = OrderStatus.PROCESSING.value
        self.payment = PaymentDetails(
            remote_payment_id=event.remote_payment_id,
            status=PaymentStatus.COMPLETED.value,
            amount=event.amount,
            method=event.method,
            currency=event.currency,
        )
        self.updated_at = event.captured_at

    @apply
    def _on_payment_failed(self, event: PaymentFailed):
        self.status = OrderStatus.FAILED.value
        self.failure_reason = event.reason
        self.payment = PaymentDetails(
            remote_payment_id=event.remote_payment_id,
            status=PaymentStatus.FAILED.value,
            currency=self.currency,
        )
        self.updated_at = event.failed_at

    @apply
    def _on_payment_captured_after_failure(self, event: PaymentCapturedAfterFailure):
        self.late_capture_payment_id = event.remote_payment_id
        self.updated_at = event.captured_at

    @apply
    def _on_order_shipped(self, event: OrderShipped):
        self.status = OrderStatus.SHIPPED.value
        self.updated_at = event.shipped_at

    @apply
    def _on_order_delivered(self, event: OrderDelivered):
        self.status = OrderStatus.DELIVERED.value
        self.updated_at = event.delivered_at

    @apply
    def _on_order_cancelled(self, event: OrderCancelled):
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = event.reason
        self.updated_at = event.cancelled_at
