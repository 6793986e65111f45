"""Cart management — clearing a cart and consuming it at checkout."""

import json

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.cart.cart import Cart
from ordering.domain import logger, ordering


@ordering.command(part_of="Cart")
class ClearCart:
    user_id = Identifier(required=True)


@ordering.command(part_of="Cart")
class ConsumeCart:
    """Remove what a checkout bought from the cart."""

    user_id = Identifier(required=True)
    revision = String(max_length=36)  # Cart revision the checkout snapshot was taken at
    lines = Text(required=True)  # JSON: {product_id: quantity}


@ordering.command_handler(part_of=Cart)
class ManageCartHandler:
    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(Cart)
        try:
            cart = repo.get(command.user_id)
        except ObjectNotFoundError:
            return
        repo._dao.delete(cart)

    @handle(ConsumeCart)
    def consume_cart(self, command):
        repo = current_domain.repository_for(Cart)
        try:
            cart = repo.get(command.user_id)
        except ObjectNotFoundError:
            return

        if cart.revision == command.revision:
            repo._dao.delete(cart)
            return

        # Cart changed while checking out: keep whatever was added since
        quantities = json.loads(command.lines) if isinstance(command.lines, str) else command.lines
        cart.subtract(quantities)
        if cart.items:
            repo.add(cart)
            logger.info(
                "cart_partially_consumed",
                user_id=command.user_id,
                remaining_lines=len(cart.items),
            )
        else:
            repo._dao.delete(cart)
