"""Shared BDD fixtures and step definitions for the Ordering domain."""

import pytest
from ordering.lifecycle import assign_courier, book_courier, change_status, submit_edit
from ordering.order.order import Order
from protean import current_domain
from pytest_bdd import given, parsers, then


def _stored(order):
    return current_domain.repository_for(Order).get(order.id)


def _succeeded(result):
    return getattr(result, "ok", None) or getattr(result, "success", False)


def _message(result):
    return getattr(result, "message", None) or getattr(result, "error", None) or ""


@pytest.fixture()
def outcome():
    """Container for the results of When steps."""
    return {}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a pending order for "{city}" with {qty:d} units at {price:g} and shipping {shipping:g}'),
    target_fixture="order",
)
def _(place_order, city, qty, price, shipping):
    return place_order(
        city=city,
        lines=[{"variant_id": "var-001", "qty": qty, "unit_price": price}],
        shipping_amount=shipping,
    )


@given(parsers.cfparse('the order was moved to "{status}"'))
def _(order, status):
    assert change_status(order.id, status).ok


@given("the order is assigned to Leopards")
def _(order, leopards):
    assert assign_courier(order.id, leopards.id).ok


@given("the order was booked with the courier")
def _(order):
    assert book_courier(order.id).ok


@given(parsers.cfparse('the order city was changed to "{city}"'))
def _(order, city):
    stored = _stored(order)
    assert submit_edit(order.id, stored.edit_version, {"city": city}, "city correction").success


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the operation succeeds")
def _(outcome):
    assert _succeeded(outcome["result"])


@then(parsers.cfparse('the operation fails with "{code}"'))
def _(outcome, code):
    assert not _succeeded(outcome["result"])
    assert outcome["result"].error_code == code


@then(parsers.cfparse('the failure message mentions "{text}"'))
def _(outcome, text):
    assert text in _message(outcome["result"])


@then(parsers.cfparse('the first edit succeeds with version {version:d}'))
def _(outcome, version):
    assert outcome["first"].success
    assert outcome["first"].new_edit_version == version


@then(parsers.cfparse('the second edit fails with "{code}"'))
def _(outcome, code):
    assert not outcome["second"].success
    assert outcome["second"].error_code == code


@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert _stored(order).status == status


@then(parsers.cfparse('the order city is "{city}"'))
def _(order, city):
    assert _stored(order).city == city


@then(parsers.cfparse('the order address is "{address}"'))
def _(order, address):
    assert _stored(order).address == address


@then(parsers.cfparse("the order total is {total:g}"))
def _(order, total):
    assert _stored(order).totals()["total"] == total


@then("the order has no tracking number")
def _(order):
    assert _stored(order).courier_tracking_number is None


@then(parsers.cfparse('the ledger received {count:d} "{method}" call'))
def _(ledger, count, method):
    assert len(ledger.calls_for(method)) == count


@then(parsers.cfparse("the ledger received {count:d} calls"))
def _(ledger, count):
    assert len(ledger.calls) == count


@then(parsers.cfparse("the courier received {count:d} booking call"))
def _(courier, count):
    assert len([call for call in courier.calls if call["method"] == "book"]) == count
