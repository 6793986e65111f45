"""Shopping Cart aggregate (CQRS) — the per-user mutable selection of products.

The cart is a standard CQRS aggregate (not event sourced). The user id is the
aggregate identity, so a user can never have more than one cart. Every line
carries a display snapshot of the product (name, price, image) taken when the
line was written; checkout re-reads authoritative prices from the catalogue.

``revision`` is an opaque token regenerated on every mutation. Checkout and
replace-all compare it to detect concurrent changes.
"""

import json
from datetime import UTC, datetime
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String

from ordering.cart.events import (
    CartItemAdded,
    CartItemRemoved,
    CartItemsReplaced,
    CartQuantityUpdated,
)
from ordering.domain import ordering
from shared.errors import NotFoundError


@ordering.entity(part_of="Cart")
class CartItem:
    product_id = Identifier(required=True)
    name = String(max_length=100)
    unit_price = Float(required=True, min_value=0.0)
    image = String(max_length=500)
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()

    @property
    def line_total(self):
        return self.unit_price * self.quantity


@ordering.aggregate
class Cart:
    user_id = Identifier(identifier=True, required=True)
    items = HasMany(CartItem)
    revision = String(max_length=36)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def product_lines_must_be_unique(self):
        product_ids = [str(item.product_id) for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValidationError({"items": ["A product can appear only once in the cart"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id):
        now = datetime.now(UTC)
        return cls(user_id=user_id, created_at=now, updated_at=now)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def total(self):
        return round(sum(item.line_total for item in self.items), 2)

    def line_for(self, product_id):
        return next((i for i in self.items if str(i.product_id) == str(product_id)), None)

    def quantities(self) -> dict[str, int]:
        return {str(item.product_id): item.quantity for item in self.items}

    def _touch(self):
        self.revision = str(uuid4())
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product, quantity=1):
        """Add a catalogue product to the cart, or increase the quantity of its line."""
        if quantity is None or quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be a positive integer"]})

        existing = self.line_for(product.product_id)
        if existing:
            existing.quantity += quantity
            existing.unit_price = product.price
            existing.name = product.name
            existing.image = product.image
            new_quantity = existing.quantity
        else:
            self.add_items(
                CartItem(
                    product_id=product.product_id,
                    name=product.name,
                    unit_price=product.price,
                    image=product.image,
                    quantity=quantity,
                    added_at=datetime.now(UTC),
                )
            )
            new_quantity = quantity

        self._touch()

        self.raise_(
            CartItemAdded(
                user_id=str(self.user_id),
                product_id=str(product.product_id),
                quantity=quantity,
                line_quantity=new_quantity,
                unit_price=product.price,
            )
        )

    def remove_item(self, product_id) -> bool:
        """Remove the product's line. Returns False when there was nothing to remove."""
        item = self.line_for(product_id)
        if item is None:
            return False

        self.remove_items(item)
        self._touch()

        self.raise_(
            CartItemRemoved(
                user_id=str(self.user_id),
                product_id=str(product_id),
            )
        )
        return True

    def update_quantity(self, product_id, quantity):
        """Set a line's quantity. Zero removes the line."""
        if quantity is None or quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})

        item = self.line_for(product_id)
        if item is None:
            raise NotFoundError("Item not found in cart", product_id=str(product_id))

        if quantity == 0:
            self.remove_item(product_id)
            return

        previous_quantity = item.quantity
        item.quantity = quantity
        self._touch()

        self.raise_(
            CartQuantityUpdated(
                user_id=str(self.user_id),
                product_id=str(product_id),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )

    def replace_items(self, lines):
        """Replace every line at once.

        Args:
            lines: List of (ProductSnapshot, quantity) pairs, one per product.
        """
        for item in list(self.items):
            self.remove_items(item)

        now = datetime.now(UTC)
        for product, quantity in lines:
            self.add_items(
                CartItem(
                    product_id=product.product_id,
                    name=product.name,
                    unit_price=product.price,
                    image=product.image,
                    quantity=quantity,
                    added_at=now,
                )
            )

        self._touch()

        self.raise_(
            CartItemsReplaced(
                user_id=str(self.user_id),
                items=json.dumps(self.quantities()),
                revision=self.revision,
            )
        )

    def subtract(self, quantities: dict[str, int]):
        """Take checked-out quantities out of the cart, keeping anything added since."""
        for product_id, quantity in quantities.items():
            item = self.line_for(product_id)
            if item is None:
                continue
            if item.quantity <= quantity:
                self.remove_items(item)
            else:
                item.quantity -= quantity

        self._touch()
