"""Domain events for the Product aggregate."""

from protean.fields import Float, Identifier, Integer, String

from catalogue.domain import catalogue


@catalogue.event(part_of="Product")
class ProductAdded:
    """A new product was listed in the catalogue."""

    __version__ = 1

    product_id = Identifier(required=True)
    name = String(required=True)
    category = String(required=True)
    price = Float(required=True)
    stock = Integer(required=True)


@catalogue.event(part_of="Product")
class ProductPriceChanged:
    """A product's price changed. Placed orders keep their frozen prices."""

    __version__ = 1

    product_id = Identifier(required=True)
    previous_price = Float(required=True)
    new_price = Float(required=True)


@catalogue.event(part_of="Product")
class StockAdjusted:
    __version__ = 1

    product_id = Identifier(required=True)
    delta = Integer(required=True)
    new_stock = Integer(required=True)
    reason = String(max_length=255)
