"""Product catalogue port.

The ordering context never owns product data. It reads price, stock, name
and image through this interface at the moment it needs them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ProductSnapshot:
    """Product data as read from the catalogue at one instant."""

    product_id: str
    name: str
    price: float
    stock: int
    image: str | None = None

    def has_stock_for(self, quantity: int) -> bool:
        return self.stock >= quantity


class ProductCatalogue(ABC):
    @abstractmethod
    def get_product(self, product_id: str) -> ProductSnapshot | None:
        """Return the product, or None when it does not exist."""
        ...

    def get_products(self, product_ids) -> dict[str, ProductSnapshot]:
        """Return the known products among ``product_ids`` keyed by id."""
        found = {}
        for product_id in product_ids:
            product = self.get_product(str(product_id))
            if product is not None:
                found[product.product_id] = product
        return found
