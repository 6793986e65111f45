"""Order placement — command and handler.

Lines are priced from the product catalogue at the moment of placement and
frozen into the order. A client-supplied total is only ever compared against
the computed one, never used.
"""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order
from ordering.products import get_catalogue
from shared.config import get_settings
from shared.errors import ConflictError, NotFoundError


@ordering.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    total_amount = Float()  # Client's expectation; checked, not trusted
    currency = String(max_length=3)
    checkout_token = String(max_length=128)
    cart_revision = String(max_length=36)  # Cart revision the lines were taken from


def price_lines(lines) -> list[dict]:
    """Read authoritative price, name and image for each line.

    Raises NotFoundError for an unknown product and ConflictError naming the
    product when stock does not cover the quantity.
    """
    products = get_catalogue().get_products(line["product_id"] for line in lines)

    priced = []
    for line in lines:
        product_id = str(line["product_id"])
        product = products.get(product_id)
        if product is None:
            raise NotFoundError("Product not found", product_id=product_id)
        if not product.has_stock_for(line["quantity"]):
            raise ConflictError(
                f"Insufficient stock for {product.name}",
                product_id=product_id,
                available=product.stock,
                requested=line["quantity"],
            )
        priced.append(
            {
                "product_id": product_id,
                "name": product.name,
                "unit_price": product.price,
                "quantity": line["quantity"],
                "image": product.image,
            }
        )
    return priced


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        lines = json.loads(command.items) if isinstance(command.items, str) else command.items
        if not lines:
            raise ValidationError({"items": ["An order needs at least one item"]})
        for line in lines:
            if not isinstance(line.get("quantity"), int) or line["quantity"] <= 0:
                raise ValidationError({"items": ["Quantity must be a positive integer"]})

        order = Order.place(
            user_id=command.user_id,
            items_data=price_lines(lines),
            currency=command.currency or get_settings().currency,
            checkout_token=command.checkout_token,
            cart_revision=command.cart_revision,
        )

        if command.total_amount is not None and not order.amount_matches(command.total_amount):
            raise ValidationError(
                {"total_amount": [f"Total {command.total_amount} does not match current prices ({order.total_amount})"]}
            )

        current_domain.repository_for(Order).add(order)
        return str(order.id)
