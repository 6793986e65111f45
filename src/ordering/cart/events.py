"""Domain events for the Cart aggregate."""

from protean.fields import Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Cart")
class CartItemAdded:
    """A product was added to the cart, or its line quantity increased."""

    __version__ = 1

    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    line_quantity = Integer(required=True)
    unit_price = Float(required=True)


@ordering.event(part_of="Cart")
class CartQuantityUpdated:
    """The quantity of a cart line was changed."""

    __version__ = 1

    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@ordering.event(part_of="Cart")
class CartItemRemoved:
    """A product line was removed from the cart."""

    __version__ = 1

    user_id = Identifier(required=True)
    product_id = Identifier(required=True)


@ordering.event(part_of="Cart")
class CartItemsReplaced:
    """The whole item list was replaced in one step."""

    __version__ = 1

    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: {product_id: quantity}
    revision = String(required=True)
