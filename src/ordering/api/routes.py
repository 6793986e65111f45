"""FastAPI routes for the Ordering domain — cart, orders and gateway webhooks.

Handlers that call the payment gateway or wait on a cart or order lock are
plain functions, which FastAPI runs in its threadpool; the domain context
pushed by the application middleware travels with the request context.
"""

import json

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from ordering.api.auth import current_user_id
from ordering.api.schemas import (
    AddToCartRequest,
    CancelOrderRequest,
    CartItemResponse,
    CartResponse,
    CheckoutResponse,
    ConfirmPaymentRequest,
    CreateOrderRequest,
    MessageResponse,
    OrderCreatedResponse,
    OrderItemResponse,
    OrderResponse,
    OrderStatusResponse,
    PaymentResponse,
    RemoveFromCartRequest,
    ReplaceCartRequest,
    StatusResponse,
    UpdateCartQuantityRequest,
)
from ordering.cart.items import AddToCart, RemoveFromCart, ReplaceCartItems, UpdateCartQuantity
from ordering.cart.management import ClearCart
from ordering.cart.queries import get_cart
from ordering.checkout.converter import checkout, place_order
from ordering.domain import logger
from ordering.order.fulfillment import CancelOrder, DeliverOrder, ShipOrder
from ordering.order.order import Order
from ordering.reconciliation import engine
from ordering.utils.locks import cart_locks, order_locks
from shared.errors import NotFoundError, UnauthorizedError


def _process_for_cart(user_id, command):
    with cart_locks.hold(user_id):
        return current_domain.process(command, asynchronous=False)


def _cart_response(user_id) -> CartResponse:
    cart = get_cart(user_id)
    return CartResponse(
        items=[
            CartItemResponse(
                id=item["product_id"],
                name=item["name"],
                price=item["unit_price"],
                image=item["image"],
                quantity=item["quantity"],
                added_at=item["added_at"],
            )
            for item in cart["items"]
        ],
        total=cart["total"],
        revision=cart["revision"],
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
async def read_cart(user_id: str = Depends(current_user_id)) -> CartResponse:
    return _cart_response(user_id)


@cart_router.post("", response_model=CartResponse)
def replace_cart(body: ReplaceCartRequest, user_id: str = Depends(current_user_id)) -> CartResponse:
    command = ReplaceCartItems(
        user_id=user_id,
        items=json.dumps([{"product_id": line.id, "quantity": line.quantity} for line in body.items]),
        expected_revision=body.revision,
    )
    _process_for_cart(user_id, command)
    return _cart_response(user_id)


@cart_router.delete("", response_model=MessageResponse)
def clear_cart(user_id: str = Depends(current_user_id)) -> MessageResponse:
    _process_for_cart(user_id, ClearCart(user_id=user_id))
    return MessageResponse(message="Cart cleared")


@cart_router.post("/add", response_model=MessageResponse)
def add_to_cart(body: AddToCartRequest, user_id: str = Depends(current_user_id)) -> MessageResponse:
    command = AddToCart(
        user_id=user_id,
        product_id=body.product_id,
        quantity=body.quantity,
    )
    _process_for_cart(user_id, command)
    return MessageResponse(message="Product added to cart")


@cart_router.post("/remove", response_model=MessageResponse)
def remove_from_cart(body: RemoveFromCartRequest, user_id: str = Depends(current_user_id)) -> MessageResponse:
    _process_for_cart(user_id, RemoveFromCart(user_id=user_id, product_id=body.product_id))
    return MessageResponse(message="Product removed from cart")


@cart_router.post("/update-quantity", response_model=MessageResponse)
def update_cart_quantity(
    body: UpdateCartQuantityRequest, user_id: str = Depends(current_user_id)
) -> MessageResponse:
    command = UpdateCartQuantity(
        user_id=user_id,
        product_id=body.product_id,
        quantity=body.quantity,
    )
    _process_for_cart(user_id, command)
    return MessageResponse(message="Quantity updated")


@cart_router.post("/checkout", status_code=201, response_model=CheckoutResponse)
def checkout_cart(
    user_id: str = Depends(current_user_id),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> CheckoutResponse:
    result = checkout(user_id, idempotency_key=idempotency_key)
    return CheckoutResponse(**result)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


def _owned_order(order_id, user_id) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    if str(order.user_id) != str(user_id):
        raise NotFoundError("Order not found", order_id=order_id)
    return order


@order_router.post("", status_code=201, response_model=OrderCreatedResponse)
def create_order(
    body: CreateOrderRequest,
    user_id: str = Depends(current_user_id),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> OrderCreatedResponse:
    if body.user_id and body.user_id != user_id:
        raise UnauthorizedError("Orders can only be placed for the authenticated user")

    result = place_order(
        user_id,
        [{"product_id": line.product_id, "quantity": line.quantity} for line in body.items],
        total_amount=body.total_amount,
        idempotency_key=idempotency_key,
    )
    return OrderCreatedResponse(
        order_id=result["order_id"], remote_payment_reference=result["remote_payment_reference"]
    )


@order_router.get("/{order_id}", response_model=OrderResponse)
async def read_order(order_id: str, user_id: str = Depends(current_user_id)) -> OrderResponse:
    order = _owned_order(order_id, user_id)
    payment = None
    if order.payment:
        payment = PaymentResponse(
            payment_id=order.payment.remote_payment_id,
            status=order.payment.status,
            amount=order.payment.amount,
            method=order.payment.method,
            currency=order.payment.currency,
        )
    return OrderResponse(
        id=str(order.id),
        user_id=str(order.user_id),
        items=[
            OrderItemResponse(
                product_id=str(item.product_id),
                name=item.name,
                price=item.unit_price,
                quantity=item.quantity,
                image=item.image,
            )
            for item in order.items
        ],
        total_amount=order.total_amount,
        currency=order.currency,
        status=order.status,
        payment=payment,
        remote_order_id=order.remote_order_id,
        created_at=order.created_at,
    )


@order_router.patch("/{order_id}/confirm", response_model=OrderStatusResponse)
def confirm_payment(
    order_id: str, body: ConfirmPaymentRequest, user_id: str = Depends(current_user_id)
) -> OrderStatusResponse:
    result = engine.confirm(order_id, body.payment_id, user_id=user_id)
    return OrderStatusResponse(order_id=result.order_id, status=result.status)


def _fulfil(order_id, command) -> OrderStatusResponse:
    with order_locks.hold(order_id):
        current_domain.process(command, asynchronous=False)
        order = current_domain.repository_for(Order).get(order_id)
    return OrderStatusResponse(order_id=order_id, status=order.status)


@order_router.put("/{order_id}/ship", response_model=OrderStatusResponse, dependencies=[Depends(current_user_id)])
def ship_order(order_id: str) -> OrderStatusResponse:
    return _fulfil(order_id, ShipOrder(order_id=order_id))


@order_router.put("/{order_id}/deliver", response_model=OrderStatusResponse, dependencies=[Depends(current_user_id)])
def deliver_order(order_id: str) -> OrderStatusResponse:
    return _fulfil(order_id, DeliverOrder(order_id=order_id))


@order_router.put("/{order_id}/cancel", response_model=OrderStatusResponse)
def cancel_order(
    order_id: str, body: CancelOrderRequest | None = None, user_id: str = Depends(current_user_id)
) -> OrderStatusResponse:
    _owned_order(order_id, user_id)
    reason = body.reason if body else "Cancelled by user"
    return _fulfil(order_id, CancelOrder(order_id=order_id, reason=reason))


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/payment-gateway", response_model=StatusResponse)
async def payment_gateway_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(default=None),
    signature: str | None = Header(default=None),
):
    raw_body = await request.body()
    try:
        await run_in_threadpool(engine.handle_webhook, raw_body, x_razorpay_signature or signature)
    except UnauthorizedError as exc:
        logger.warning("webhook_signature_rejected", path=request.url.path)
        return JSONResponse(status_code=400, content={"error": exc.message})
    return StatusResponse()
