"""Product management — commands and handler."""

import json

from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from catalogue.domain import catalogue, logger
from catalogue.product.product import Product, ProductCategory, ProductUnit


@catalogue.command(part_of="Product")
class AddProduct:
    name = String(required=True, max_length=100)
    description = String(required=True, max_length=1000)
    price = Float(required=True, min_value=0.0)
    category = String(required=True, choices=ProductCategory)
    subcategory = String(required=True, max_length=100)
    images = Text(required=True)  # JSON array of image URLs
    stock = Integer(default=0, min_value=0)
    unit = String(choices=ProductUnit, default=ProductUnit.KG.value)
    organic = Boolean(default=False)
    seller_id = Identifier()


@catalogue.command(part_of="Product")
class UpdateProductPrice:
    product_id = Identifier(required=True)
    price = Float(required=True)


@catalogue.command(part_of="Product")
class AdjustStock:
    product_id = Identifier(required=True)
    delta = Integer(required=True)
    reason = String(max_length=255)


@catalogue.command_handler(part_of=Product)
class ManageProductHandler:
    @handle(AddProduct)
    def add_product(self, command):
        images = json.loads(command.images) if isinstance(command.images, str) else command.images
        product = Product.add(
            name=command.name,
            description=command.description,
            price=command.price,
            category=command.category,
            subcategory=command.subcategory,
            images=images,
            stock=command.stock or 0,
            unit=command.unit,
            organic=command.organic,
            seller_id=command.seller_id,
        )
        current_domain.repository_for(Product).add(product)
        logger.info("product_added", product_id=str(product.id), category=product.category)
        return str(product.id)

    @handle(UpdateProductPrice)
    def update_product_price(self, command):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.update_price(command.price)
        repo.add(product)

    @handle(AdjustStock)
    def adjust_stock(self, command):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.adjust_stock(command.delta, reason=command.reason)
        repo.add(product)
