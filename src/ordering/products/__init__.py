"""Product catalogue factory.

Provides get_catalogue() / set_catalogue() to swap implementations:
- CatalogueDomainAdapter reading the catalogue bounded context (default)
- InMemoryCatalogue for development and testing
"""

from ordering.products.catalogue_adapter import CatalogueDomainAdapter
from ordering.products.port import ProductCatalogue

_current_catalogue: ProductCatalogue | None = None


def get_catalogue() -> ProductCatalogue:
    """Return the current product catalogue. Defaults to the catalogue domain."""
    global _current_catalogue
    if _current_catalogue is None:
        _current_catalogue = CatalogueDomainAdapter()
    return _current_catalogue


def set_catalogue(product_catalogue: ProductCatalogue) -> None:
    """Override the active product catalogue (useful for tests)."""
    global _current_catalogue
    _current_catalogue = product_catalogue


def reset_catalogue() -> None:
    global _current_catalogue
    _current_catalogue = None
