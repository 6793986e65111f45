"""Domain events for the Order aggregate.

All events are versioned, immutable facts representing state changes.
Events are persisted to the event store and used for:
- Rebuilding aggregate state via @apply (event sourcing)
- Updating the order/payment lookup projection
"""

from protean.fields import DateTime, Float, Identifier, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A price-frozen order was created in status pending."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    total_amount = Float(required=True)
    currency = String(max_length=3, required=True)
    receipt_key = String(required=True)
    checkout_token = String()
    cart_revision = String()
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentIntentCreated:
    """The gateway accepted a remote payment intent for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    remote_order_id = String(required=True)
    receipt_key = String(required=True)
    created_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentCaptured:
    """The gateway captured the payment; the order moved to processing."""

    __version__ = 1

    order_id = Identifier(required=True)
    remote_payment_id = String(required=True)
    amount = Float(required=True)
    currency = String(max_length=3)
    method = String()
    source = String()  # "confirm" or "webhook"
    captured_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentFailed:
    """The gateway reported the payment as failed; the order moved to failed."""

    __version__ = 1

    order_id = Identifier(required=True)
    remote_payment_id = String()
    reason = String(required=True)
    failed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentCapturedAfterFailure:
    """A capture reached an order that had already failed; the money needs a refund or a manual fix."""

    __version__ = 1

    order_id = Identifier(required=True)
    remote_payment_id = String(required=True)
    amount = Float(required=True)
    currency = String(max_length=3)
    method = String()
    source = String()
    captured_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    shipped_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_at = DateTime(required=True)
