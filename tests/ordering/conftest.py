import pytest
from ordering.products import reset_catalogue, set_catalogue
from ordering.products.memory_adapter import InMemoryCatalogue
from payments.gateway import reset_gateway, set_gateway
from payments.gateway.fake_adapter import FakeGateway
from protean.integrations.pytest import DomainFixture

WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def products():
    """In-memory product catalogue, pre-stocked with two products."""
    product_catalogue = InMemoryCatalogue()
    product_catalogue.add_product("P1", "Organic Wheat", price=100.0, stock=50)
    product_catalogue.add_product("P2", "Neem Oil", price=50.0, stock=20)
    set_catalogue(product_catalogue)
    yield product_catalogue
    reset_catalogue()


@pytest.fixture(autouse=True)
def gateway():
    fake = FakeGateway(webhook_secret=WEBHOOK_SECRET)
    set_gateway(fake)
    yield fake
    reset_gateway()
