"""Product aggregate — the authoritative source of price, stock, name and image.

Categories and units are explicit enumerations; every product record has the
same typed shape regardless of category.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from catalogue.domain import catalogue
from catalogue.product.events import ProductAdded, ProductPriceChanged, StockAdjusted


class ProductCategory(Enum):
    ANIMAL_PRODUCTS = "Animal-Products"
    BIOPRODUCTS = "Bioproducts"
    CROP_PRODUCTS = "Crop-Products"
    VALUE_ADDED_PRODUCTS = "Value-Added-Products"


class ProductUnit(Enum):
    KG = "kg"
    G = "g"
    LB = "lb"
    PIECE = "piece"
    LITER = "liter"
    PACKET = "packet"


MAX_PRICE = 100000.0


@catalogue.aggregate
class Product:
    name = String(required=True, max_length=100)
    description = String(required=True, max_length=1000)
    price = Float(required=True, min_value=0.0, max_value=MAX_PRICE)
    category = String(required=True, choices=ProductCategory)
    subcategory = String(required=True, max_length=100)
    images = Text(required=True)  # JSON array of image URLs
    stock = Integer(default=0, min_value=0)
    unit = String(choices=ProductUnit, default=ProductUnit.KG.value)
    organic = Boolean(default=False)
    seller_id = Identifier()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def must_have_at_least_one_image(self):
        if not self.image_list:
            raise ValidationError({"images": ["At least one image is required"]})

    @property
    def image_list(self) -> list[str]:
        try:
            images = json.loads(self.images) if self.images else []
        except (json.JSONDecodeError, TypeError):
            return []
        return images if isinstance(images, list) else []

    @property
    def primary_image(self) -> str | None:
        images = self.image_list
        return images[0] if images else None

    @classmethod
    def add(
        cls,
        name,
        description,
        price,
        category,
        subcategory,
        images,
        stock=0,
        unit=ProductUnit.KG.value,
        organic=False,
        seller_id=None,
    ):
        now = datetime.now(UTC)
        product = cls(
            name=name,
            description=description,
            price=price,
            category=category,
            subcategory=subcategory,
            images=json.dumps(list(images)),
            stock=stock,
            unit=unit,
            organic=organic,
            seller_id=seller_id,
            created_at=now,
            updated_at=now,
        )
        product.raise_(
            ProductAdded(
                product_id=str(product.id),
                name=name,
                category=category,
                price=price,
                stock=stock,
            )
        )
        return product

    def update_price(self, new_price):
        if new_price < 0 or new_price > MAX_PRICE:
            raise ValidationError({"price": [f"Price must be between 0 and {MAX_PRICE:.0f}"]})

        previous_price = self.price
        self.price = new_price
        self.updated_at = datetime.now(UTC)

        self.raise_(
            ProductPriceChanged(
                product_id=str(self.id),
                previous_price=previous_price,
                new_price=new_price,
            )
        )

    def adjust_stock(self, delta, reason=None):
        """Add (positive) or remove (negative) units of stock."""
        new_stock = self.stock + delta
        if new_stock < 0:
            raise ValidationError({"stock": ["Stock cannot be negative"]})

        self.stock = new_stock
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockAdjusted(
                product_id=str(self.id),
                delta=delta,
                new_stock=new_stock,
                reason=reason,
            )
        )
