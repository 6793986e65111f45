"""Application tests for catalogue product commands."""

import json

import pytest
from catalogue.product.management import AddProduct, AdjustStock, UpdateProductPrice
from catalogue.product.product import Product, ProductCategory
from protean import current_domain
from protean.exceptions import ValidationError


def _add_product(**overrides):
    data = {
        "name": "Neem Oil",
        "description": "Cold-pressed neem oil for organic pest control",
        "price": 50.0,
        "category": ProductCategory.BIOPRODUCTS.value,
        "subcategory": "Pest Control",
        "images": json.dumps(["https://img.agromart.test/neem.jpg"]),
        "stock": 20,
        "unit": "liter",
        "organic": True,
    }
    data.update(overrides)
    return current_domain.process(AddProduct(**data), asynchronous=False)


class TestAddProduct:
    def test_add_product_persists(self):
        product_id = _add_product()

        product = current_domain.repository_for(Product).get(product_id)
        assert product.name == "Neem Oil"
        assert product.unit == "liter"
        assert product.organic is True
        assert product.primary_image == "https://img.agromart.test/neem.jpg"

    def test_product_without_images_is_rejected(self):
        with pytest.raises(ValidationError):
            _add_product(images=json.dumps([]))


class TestProductMaintenance:
    def test_update_price(self):
        product_id = _add_product()
        current_domain.process(UpdateProductPrice(product_id=product_id, price=65.0), asynchronous=False)
        assert current_domain.repository_for(Product).get(product_id).price == 65.0

    def test_adjust_stock(self):
        product_id = _add_product()
        current_domain.process(AdjustStock(product_id=product_id, delta=-5, reason="Sold offline"), asynchronous=False)
        assert current_domain.repository_for(Product).get(product_id).stock == 15

    def test_overdrawn_stock_is_rejected(self):
        product_id = _add_product()
        with pytest.raises(ValidationError):
            current_domain.process(AdjustStock(product_id=product_id, delta=-21), asynchronous=False)
        assert current_domain.repository_for(Product).get(product_id).stock == 20
