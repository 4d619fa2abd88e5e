import pytest
from protean.integrations.pytest import DomainFixture


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

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def ledger():
    """A fresh FakeLedger installed as the active ledger for every test."""
    from ordering.ledger import reset_ledger, set_ledger
    from ordering.ledger.fake_adapter import FakeLedger

    fake = FakeLedger()
    set_ledger(fake)
    yield fake
    reset_ledger()


@pytest.fixture(autouse=True)
def courier():
    """A fresh FakeCourier installed as the active courier adapter for every test."""
    from ordering.courier import reset_courier, set_courier
    from ordering.courier.fake_adapter import FakeCourier

    fake = FakeCourier()
    set_courier(fake)
    yield fake
    reset_courier()


@pytest.fixture()
def failing_commit():
    """Make unit-of-work commits raise ``error`` when they hold a matching aggregate.

    Usage: ``failing_commit(lambda item: isinstance(item, Order), RuntimeError("connection lost"))``
    """
    from unittest.mock import patch

    from protean.core.unit_of_work import UnitOfWork

    patchers = []

    def _install(matches, error):
        original = UnitOfWork.commit

        def commit(uow):
            held = [item for items in uow._identity_map.values() for item in items.values()]
            if any(matches(item) for item in held):
                raise error
            return original(uow)

        patcher = patch.object(UnitOfWork, "commit", commit)
        patcher.start()
        patchers.append(patcher)

    yield _install
    for patcher in reversed(patchers):
        patcher.stop()


@pytest.fixture()
def place_order():
    """Factory persisting an order: one line (qty 2 at 500), shipping 200, Lahore."""
    from ordering.order.order import Order
    from protean import current_domain

    def _place(status="pending", lines=None, shipping_amount=200.0, discount_total=0.0, city="Lahore", **overrides):
        order = Order.place(
            customer_name="Ayesha Khan",
            phone="03001234567",
            address="House 12, Street 4, Gulberg",
            city=city,
            lines_data=lines or [{"variant_id": "var-001", "qty": 2, "unit_price": 500.0}],
            shipping_amount=shipping_amount,
            discount_total=discount_total,
            short_code=overrides.pop("short_code", "ORD-1001"),
        )
        order.status = status
        for name, value in overrides.items():
            setattr(order, name, value)

        repo = current_domain.repository_for(Order)
        repo.add(order)
        return repo.get(order.id)

    return _place


@pytest.fixture()
def leopards():
    """A persisted Leopards courier with a Lahore city mapping."""
    from ordering.courier.courier import Courier, CourierCityMapping
    from protean import current_domain

    courier = Courier(name="Leopards", api_type="leopards")
    current_domain.repository_for(Courier).add(courier)
    current_domain.repository_for(CourierCityMapping).add(
        CourierCityMapping(
            courier_id=courier.id,
            our_city_name="Lahore",
            courier_city_code="789",
            courier_city_name="Lahore",
        )
    )
    return courier
