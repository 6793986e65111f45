"""Cart item management — commands and handler.

Every line is priced from the product catalogue when it is written; prices
supplied by clients are never accepted.
"""

import json

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.cart.cart import Cart
from ordering.domain import ordering
from ordering.products import get_catalogue
from shared.errors import ConflictError, NotFoundError


@ordering.command(part_of="Cart")
class AddToCart:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(default=1)


@ordering.command(part_of="Cart")
class UpdateCartQuantity:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)  # 0 removes the line


@ordering.command(part_of="Cart")
class RemoveFromCart:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)


@ordering.command(part_of="Cart")
class ReplaceCartItems:
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    expected_revision = String(max_length=36)


def merge_lines(lines) -> dict[str, int]:
    """Collapse duplicate product ids by summing their quantities."""
    merged: dict[str, int] = {}
    for line in lines:
        product_id = str(line.get("product_id") or "")
        quantity = line.get("quantity")
        if not product_id:
            raise ValidationError({"items": ["Every item needs a product id"]})
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError({"items": [f"Quantity for product {product_id} must be a positive integer"]})
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


def _load_or_create(repo, user_id) -> Cart:
    try:
        return repo.get(user_id)
    except ObjectNotFoundError:
        return Cart.create(user_id=user_id)


@ordering.command_handler(part_of=Cart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        product = get_catalogue().get_product(command.product_id)
        if product is None:
            raise NotFoundError("Product not found", product_id=command.product_id)

        quantity = command.quantity if command.quantity is not None else 1
        repo = current_domain.repository_for(Cart)
        cart = _load_or_create(repo, command.user_id)

        existing = cart.line_for(product.product_id)
        wanted = quantity + (existing.quantity if existing else 0)
        if quantity > 0 and not product.has_stock_for(wanted):
            raise ValidationError({"quantity": [f"Only {product.stock} units of {product.name} are in stock"]})

        cart.add_item(product, quantity)
        repo.add(cart)
        return cart.revision

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        repo = current_domain.repository_for(Cart)
        try:
            cart = repo.get(command.user_id)
        except ObjectNotFoundError:
            raise NotFoundError("Cart not found", user_id=command.user_id) from None

        cart.update_quantity(product_id=command.product_id, quantity=command.quantity)
        repo.add(cart)
        return cart.revision

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(Cart)
        try:
            cart = repo.get(command.user_id)
        except ObjectNotFoundError:
            return None

        if cart.remove_item(command.product_id):
            repo.add(cart)
        return cart.revision

    @handle(ReplaceCartItems)
    def replace_cart_items(self, command):
        lines = json.loads(command.items) if isinstance(command.items, str) else command.items
        if not isinstance(lines, list):
            raise ValidationError({"items": ["Items must be a list"]})

        quantities = merge_lines(lines)
        products = get_catalogue().get_products(quantities.keys())
        if len(products) != len(quantities):
            raise ValidationError({"items": ["Some products are invalid"]})

        out_of_stock = [products[pid].name for pid, qty in quantities.items() if not products[pid].has_stock_for(qty)]
        if out_of_stock:
            raise ValidationError({"items": [f"Not enough stock for: {', '.join(out_of_stock)}"]})

        repo = current_domain.repository_for(Cart)
        cart = _load_or_create(repo, command.user_id)
        if command.expected_revision and cart.revision != command.expected_revision:
            raise ConflictError(
                "Cart was modified concurrently; reload and retry",
                expected_revision=command.expected_revision,
                current_revision=cart.revision,
            )

        cart.replace_items([(products[pid], qty) for pid, qty in quantities.items()])
        repo.add(cart)
        return cart.revision
