"""In-memory product catalogue for development and testing."""

from dataclasses import replace

from ordering.products.port import ProductCatalogue, ProductSnapshot


class InMemoryCatalogue(ProductCatalogue):
    def __init__(self) -> None:
        self.products: dict[str, ProductSnapshot] = {}

    def get_product(self, product_id: str) -> ProductSnapshot | None:
        return self.products.get(str(product_id))

    # -------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------
    def add_product(self, product_id, name, price, stock=100, image=None) -> ProductSnapshot:
        product = ProductSnapshot(
            product_id=str(product_id),
            name=name,
            price=price,
            stock=stock,
            image=image or f"https://img.agromart.test/{product_id}.jpg",
        )
        self.products[product.product_id] = product
        return product

    def set_price(self, product_id, price) -> None:
        self.products[str(product_id)] = replace(self.products[str(product_id)], price=price)

    def set_stock(self, product_id, stock) -> None:
        self.products[str(product_id)] = replace(self.products[str(product_id)], stock=stock)

    def remove_product(self, product_id) -> None:
        self.products.pop(str(product_id), None)
