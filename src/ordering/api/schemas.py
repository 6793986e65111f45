"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands. Field names are camelCase on the wire.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Cart Request Schemas
# ---------------------------------------------------------------------------
class CartLineRequest(CamelModel):
    id: str
    quantity: int


class ReplaceCartRequest(CamelModel):
    items: list[CartLineRequest]
    revision: str | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "items": [{"id": "prod-001", "quantity": 2}],
                    "revision": None,
                }
            ]
        },
    )


class AddToCartRequest(CamelModel):
    product_id: str
    quantity: int = 1


class RemoveFromCartRequest(CamelModel):
    product_id: str


class UpdateCartQuantityRequest(CamelModel):
    product_id: str
    quantity: int


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class OrderLineRequest(CamelModel):
    product_id: str
    quantity: int = Field(ge=1)


class CreateOrderRequest(CamelModel):
    user_id: str | None = None  # Must match the token when given
    items: list[OrderLineRequest]
    total_amount: float | None = None


class ConfirmPaymentRequest(CamelModel):
    payment_id: str


class CancelOrderRequest(CamelModel):
    reason: str = "Cancelled by user"


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class MessageResponse(BaseModel):
    message: str


class CartItemResponse(CamelModel):
    id: str
    name: str | None = None
    price: float
    image: str | None = None
    quantity: int
    added_at: datetime | None = None


class CartResponse(CamelModel):
    items: list[CartItemResponse]
    total: float
    revision: str | None = None


class CheckoutResponse(CamelModel):
    order_id: str
    remote_payment_reference: str
    total_amount: float
    currency: str


class OrderCreatedResponse(CamelModel):
    order_id: str
    remote_payment_reference: str


class OrderItemResponse(CamelModel):
    product_id: str
    name: str
    price: float
    quantity: int
    image: str | None = None


class PaymentResponse(CamelModel):
    payment_id: str | None = None
    status: str | None = None
    amount: float | None = None
    method: str | None = None
    currency: str | None = None


class OrderResponse(CamelModel):
    id: str
    user_id: str
    items: list[OrderItemResponse]
    total_amount: float
    currency: str
    status: str
    payment: PaymentResponse | None = None
    remote_order_id: str | None = None
    created_at: datetime | None = None


class OrderStatusResponse(CamelModel):
    order_id: str
    status: str


class StatusResponse(BaseModel):
    status: str = "ok"
