"""Product catalogue backed by the catalogue bounded context.

Reads the catalogue's ``Product`` aggregate inside the catalogue domain's
own context, then hands the ordering side a plain snapshot.

Reads are usually made from inside an ordering command handler, whose unit
of work is still open. Both domains name their provider ``default``, so the
reads run in a unit of work of their own; otherwise the catalogue session
would be enlisted in the ordering transaction and receive its writes.
"""

from protean import UnitOfWork
from protean.exceptions import ObjectNotFoundError

from catalogue.domain import catalogue
from catalogue.product.product import Product
from ordering.products.port import ProductCatalogue, ProductSnapshot


class CatalogueDomainAdapter(ProductCatalogue):
    def get_product(self, product_id: str) -> ProductSnapshot | None:
        return self.get_products([product_id]).get(str(product_id))

    def get_products(self, product_ids) -> dict[str, ProductSnapshot]:
        found = {}
        with catalogue.domain_context(), UnitOfWork():
            repo = catalogue.repository_for(Product)
            for product_id in product_ids:
                try:
                    product = repo.get(str(product_id))
                except ObjectNotFoundError:
                    continue
                found[str(product.id)] = _snapshot(product)
        return found


def _snapshot(product: Product) -> ProductSnapshot:
    return ProductSnapshot(
        product_id=str(product.id),
        name=product.name,
        price=product.price,
        stock=product.stock or 0,
        image=product.primary_image,
    )
