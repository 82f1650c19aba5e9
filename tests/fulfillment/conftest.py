import pytest
from fulfillment.ledger import reset_ledger, set_ledger
from fulfillment.ledger.fake_adapter import FakeWalletLedger
from fulfillment.order.locks import reset_locks
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def fulfillment_bed():
    from fulfillment.domain import fulfillment

    bed = DomainFixture(fulfillment)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(fulfillment_bed):
    with fulfillment_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def ledger():
    """A fresh in-memory wallet ledger for every test."""
    fake = FakeWalletLedger()
    set_ledger(fake)
    yield fake
    reset_ledger()
    reset_locks()
