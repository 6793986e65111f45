"""Cart read side."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.cart.cart import Cart


def get_cart(user_id) -> dict:
    """Current cart of ``user_id``, or an empty projection when there is none."""
    try:
        cart = current_domain.repository_for(Cart).get(user_id)
    except ObjectNotFoundError:
        return {"user_id": str(user_id), "items": [], "total": 0, "revision": None}

    return {
        "user_id": str(cart.user_id),
        "items": [
            {
                "product_id": str(item.product_id),
                "name": item.name,
                "unit_price": item.unit_price,
                "image": item.image,
                "quantity": item.quantity,
                "added_at": item.added_at,
            }
            for item in cart.items
        ],
        "total": cart.total,
        "revision": cart.revision,
    }
