"""Domain tests for the Order aggregate."""

import json

from ordering.order.editing import LineInsert, LinePlan, LineUpdate
from ordering.order.events import CourierBooked, OrderEdited, OrderPlaced, OrderStatusChanged
from ordering.order.order import LineReturnStatus, Order, OrderLine, OrderStatus


def _place(**kwargs):
    defaults = dict(
        customer_name="Ayesha Khan",
        phone="03001234567",
        address="House 12, Gulberg",
        city="Lahore",
        lines_data=[{"variant_id": "var-001", "qty": 2, "unit_price": 500.0}],
        shipping_amount=200.0,
    )
    defaults.update(kwargs)
    return Order.place(**defaults)


class TestPlaceOrder:
    def test_placed_order_is_pending_at_version_one(self):
        order = _place()
        assert order.status == OrderStatus.PENDING.value
        assert order.edit_version == 1
        assert len(order.lines) == 1
        assert order.lines[0].line_total == 1000.0

    def test_raises_order_placed(self):
        order = _place(short_code="ORD-42")
        event = order._events[-1]
        assert isinstance(event, OrderPlaced)
        assert event.short_code == "ORD-42"
        assert event.total == 1200.0
        assert json.loads(event.lines)[0]["variant_id"] == "var-001"


class TestTotals:
    def test_total_is_lines_plus_shipping_minus_discount(self):
        order = _place(discount_total=150.0)
        assert order.totals() == {
            "subtotal": 1000.0,
            "shipping": 200.0,
            "discount": 150.0,
            "total": 1050.0,
        }

    def test_totals_follow_lines(self):
        order = _place()
        order.add_lines(OrderLine(variant_id="var-002", qty=1, unit_price=99.5, line_total=99.5))
        assert order.totals()["total"] == 1299.5


class TestRecordStatusChange:
    def test_records_status_and_event(self):
        order = _place()
        order.record_status_change("packed", "DirectUpdate")

        assert order.status == "packed"
        event = order._events[-1]
        assert isinstance(event, OrderStatusChanged)
        assert event.from_status == "pending"
        assert event.to_status == "packed"
        assert event.transition_class == "DirectUpdate"

    def test_returned_captures_line_conditions(self):
        order = _place(
            lines_data=[
                {"variant_id": "var-001", "qty": 1, "unit_price": 100.0},
                {"variant_id": "var-002", "qty": 1, "unit_price": 100.0},
            ]
        )
        order.status = "delivered"
        first, second = (str(line.id) for line in order.lines)

        order.record_status_change("returned", "LedgerAdjust", {first: "resellable", second: "unset"})

        assert order.line_by_id(first).return_status == LineReturnStatus.RETURNED.value
        assert order.line_by_id(first).return_condition == "resellable"
        assert order.line_by_id(second).return_condition == "unset"


class TestApplyEdit:
    def test_changed_fields_end_up_in_diff(self):
        order = _place()
        diff = order.apply_edit({"city": "Karachi", "customer_name": "Ayesha Khan"}, reason="moved")

        assert diff == {"city": {"from": "Lahore", "to": "Karachi"}}
        assert order.city == "Karachi"
        assert order.edit_version == 2

    def test_version_bumps_even_without_changes(self):
        order = _place()
        order.apply_edit({}, reason="no-op edit")
        assert order.edit_version == 2

    def test_raises_order_edited(self):
        order = _place()
        order.apply_edit({"shipping_amount": 250}, reason="courier surcharge")
        event = order._events[-1]
        assert isinstance(event, OrderEdited)
        assert event.edit_version == 2
        assert event.total == 1250.0
        assert event.cn_locked is False
        assert json.loads(event.diff)["shipping_amount"] == {"from": 200.0, "to": 250.0}

    def test_order_edited_flags_booked_orders(self):
        order = _place()
        order.record_courier_booking("LE1234567890")

        order.apply_edit({"address": "Flat 3, DHA Phase 5"}, reason="customer moved")

        assert order._events[-1].cn_locked is True

    def test_line_plan_is_applied(self):
        order = _place()
        existing_id = str(order.lines[0].id)
        plan = LinePlan(
            inserts=[LineInsert(variant_id="var-009", qty=1, unit_price=300.0)],
            updates=[LineUpdate(line_id=existing_id, qty=3, unit_price=500.0)],
        )

        diff = order.apply_edit({}, line_plan=plan, reason="add scarf")

        assert len(order.lines) == 2
        assert order.line_by_id(existing_id).line_total == 1500.0
        assert order.totals()["subtotal"] == 1800.0
        assert diff["lines"]["added"][0]["variant_id"] == "var-009"
        assert diff["lines"]["updated"][0]["to"]["qty"] == 3
        assert diff["lines"]["removed"] == []

    def test_line_delete(self):
        order = _place(
            lines_data=[
                {"variant_id": "var-001", "qty": 1, "unit_price": 100.0},
                {"variant_id": "var-002", "qty": 1, "unit_price": 100.0},
            ]
        )
        doomed = str(order.lines[1].id)
        diff = order.apply_edit({}, line_plan=LinePlan(deletes=[doomed]), reason="out of stock")

        assert doomed not in [str(line.id) for line in order.lines]
        assert len(order.lines) == 1
        assert diff["lines"]["removed"][0]["id"] == doomed


class TestCourierFields:
    def test_assign_courier(self):
        order = _place()
        order.assign_courier("courier-1", courier_notes="fragile")
        assert str(order.courier_id) == "courier-1"
        assert order.courier_notes == "fragile"

    def test_booking_locks_order(self):
        order = _place()
        assert not order.is_cn_locked

        order.record_courier_booking("LE1234567890")

        assert order.is_cn_locked
        assert order.courier_booked_at is not None
        assert order.status == OrderStatus.PENDING.value
        assert isinstance(order._events[-1], CourierBooked)
