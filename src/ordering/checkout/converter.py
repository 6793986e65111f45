"""Cart-to-order conversion.

Turns the user's cart into a price-frozen pending order, obtains a remote
payment intent for it and only then takes the purchased quantities out of
the cart. Each step is safe to repeat:

- the checkout token (client Idempotency-Key, or a digest of the cart
  revision) finds the pending order a previous attempt already created;
- the gateway deduplicates intents by the order's receipt key;
- the cart is consumed against the revision the order was placed from, so
  lines added since (even between two attempts) stay in the cart.

A gateway failure leaves the pending order and the cart untouched, so the
client can simply retry. place_order() gives direct order requests the same
retry behaviour.
"""

import hashlib
import json

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.cart.management import ConsumeCart
from ordering.cart.queries import get_cart
from ordering.domain import logger
from ordering.order.order import Order
from ordering.order.payment import AttachPaymentIntent
from ordering.order.placement import PlaceOrder, price_lines
from ordering.projections.order_payment_lookup import find_pending_order
from ordering.utils.locks import cart_locks, order_locks
from payments.gateway import get_gateway
from shared.errors import GatewayUnavailableError


def checkout_token_for(user_id, revision, idempotency_key=None) -> str:
    if idempotency_key:
        return f"key:{idempotency_key}"
    digest = hashlib.sha256(f"{user_id}:{revision}".encode()).hexdigest()
    return f"rev:{digest[:40]}"


def order_token_for(user_id, lines, total_amount=None, idempotency_key=None) -> str:
    """Token for a direct order request: the client key, or a digest of the request itself."""
    if idempotency_key:
        return f"key:{idempotency_key}"
    request = json.dumps(
        {
            "items": sorted((str(line["product_id"]), line["quantity"]) for line in lines),
            "total_amount": total_amount,
        },
        sort_keys=True,
    )
    digest = hashlib.sha256(f"{user_id}:{request}".encode()).hexdigest()
    return f"req:{digest[:40]}"


def request_payment_intent(order: Order) -> str:
    """Obtain (or reuse) the remote payment intent for a pending order and record it."""
    if order.remote_order_id:
        return order.remote_order_id

    try:
        remote_reference = get_gateway().create_remote_intent(
            amount=order.total_amount,
            currency=order.currency,
            receipt_key=order.receipt_key,
            metadata={
                "order_id": str(order.id),
                "user_id": str(order.user_id),
                "receipt_key": order.receipt_key,
            },
        )
    except GatewayUnavailableError as exc:
        # The client needs the order id to retry or confirm later
        exc.context.setdefault("order_id", str(order.id))
        logger.warning("payment_intent_unavailable", order_id=str(order.id), user_id=str(order.user_id))
        raise

    current_domain.process(
        AttachPaymentIntent(order_id=str(order.id), remote_order_id=remote_reference),
        asynchronous=False,
    )
    return remote_reference


def _find_or_place(user_id, token, command: PlaceOrder) -> Order:
    order_id = find_pending_order(user_id, token)
    if order_id is None:
        order_id = current_domain.process(command, asynchronous=False)
        logger.info("order_placed", order_id=order_id, user_id=user_id)
    else:
        logger.info("order_reused", order_id=order_id, user_id=user_id)
    return current_domain.repository_for(Order).get(order_id)


def _summary(order: Order, remote_reference) -> dict:
    return {
        "order_id": str(order.id),
        "remote_payment_reference": remote_reference,
        "total_amount": order.total_amount,
        "currency": order.currency,
    }


def place_order(user_id, lines, total_amount=None, idempotency_key=None) -> dict:
    """Place an order from explicit lines and obtain its payment intent.

    Repeating the request (same Idempotency-Key, or the same lines and total
    without one) while the order is still pending returns that order.
    """
    token = order_token_for(user_id, lines, total_amount, idempotency_key)

    with order_locks.hold(f"checkout:{user_id}"):
        order = _find_or_place(
            user_id,
            token,
            PlaceOrder(
                user_id=user_id,
                items=json.dumps(lines),
                total_amount=total_amount,
                checkout_token=token,
            ),
        )
        remote_reference = request_payment_intent(order)

    return _summary(order, remote_reference)


def checkout(user_id, idempotency_key=None) -> dict:
    """Convert the user's cart into a pending order with a remote payment intent.

    Returns:
        Dict with order_id, remote_payment_reference, total_amount, currency.
    """
    cart = get_cart(user_id)
    if not cart["items"]:
        raise ValidationError({"cart": ["Cannot checkout an empty cart"]})

    lines = [{"product_id": item["product_id"], "quantity": item["quantity"]} for item in cart["items"]]

    # Catalogue state may have moved since the lines were added
    price_lines(lines)

    token = checkout_token_for(user_id, cart["revision"], idempotency_key)

    with order_locks.hold(f"checkout:{user_id}"):
        order = _find_or_place(
            user_id,
            token,
            PlaceOrder(
                user_id=user_id,
                items=json.dumps(lines),
                checkout_token=token,
                cart_revision=cart["revision"],
            ),
        )
        remote_reference = request_payment_intent(order)

    # A reused order may predate the current cart; take out only what it bought
    purchased: dict[str, int] = {}
    for item in order.items:
        purchased[str(item.product_id)] = purchased.get(str(item.product_id), 0) + item.quantity

    with cart_locks.hold(user_id):
        current_domain.process(
            ConsumeCart(
                user_id=user_id,
                revision=order.cart_revision,
                lines=json.dumps(purchased),
            ),
            asynchronous=False,
        )

    return _summary(order, remote_reference)
