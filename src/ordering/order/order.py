"""Order aggregate (CQRS): the core of the ordering domain.

An Order is placed by checkout in ``pending`` and afterwards changes only
through three paths:

- the status dispatcher (status, and per-line return data on returns),
- the edit coordinator (customer/address/notes, pricing and lines),
- the courier flow (courier assignment, tracking number and booked timestamp).

Orders are never hard-deleted. ``edit_version`` is the optimistic
concurrency token for edits and only ever grows.

Status values (closed set):
    pending, packed, shipped, delivered, return_in_transit, cancelled, returned
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
)

from ordering.domain import ordering
from ordering.order.events import (
    CourierAssigned,
    CourierBooked,
    OrderEdited,
    OrderPlaced,
    OrderStatusChanged,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PACKED = "packed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RETURN_IN_TRANSIT = "return_in_transit"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class ReturnCondition(Enum):
    RESELLABLE = "resellable"
    NOT_RESELLABLE = "not_resellable"
    UNSET = "unset"


class LineReturnStatus(Enum):
    NONE = "none"
    RETURNED = "returned"


# Only these statuses accept operator edits
EDITABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.PACKED}

# Fields an edit may touch even after a CN has been booked
CUSTOMER_FIELDS = (
    "customer_name",
    "phone",
    "alternate_phone",
    "email",
    "address",
    "city",
    "notes",
)

# Fields frozen once a CN has been booked
FINANCIAL_FIELDS = ("shipping_amount", "discount_total")


def _money(value) -> float:
    return round(float(value or 0.0), 2)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderLine:
    """A line of the order: one product variant at a locked unit price.

    ``return_status`` and ``return_condition`` are filled in when the order is
    marked returned, so the ledger can restock or scrap each line.
    """

    variant_id = Identifier(required=True)
    qty = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(default=0.0)
    return_status = String(
        max_length=20,
        choices=LineReturnStatus,
        default=LineReturnStatus.NONE.value,
    )
    return_condition = String(
        max_length=20,
        choices=ReturnCondition,
        default=ReturnCondition.UNSET.value,
    )

    def snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "variant_id": str(self.variant_id),
            "qty": self.qty,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
        }


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    short_code = String(max_length=20)
    status = String(
        max_length=20,
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    edit_version = Integer(default=1, min_value=1)

    # Customer / address
    customer_name = String(max_length=255)
    phone = String(max_length=50)
    alternate_phone = String(max_length=50)
    email = String(max_length=255)
    address = Text()
    city = String(max_length=100)
    notes = Text()

    # Pricing
    shipping_amount = Float(default=0.0, min_value=0.0)
    discount_total = Float(default=0.0, min_value=0.0)
    promo_name = String(max_length=100)

    # Courier
    courier_id = Identifier()
    courier_notes = Text()
    courier_tracking_number = String(max_length=100)
    courier_booked_at = DateTime()

    lines = HasMany(OrderLine)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_name,
        phone,
        address,
        city,
        lines_data,
        shipping_amount=0.0,
        discount_total=0.0,
        short_code=None,
        email=None,
        promo_name=None,
        notes=None,
    ):
        """Place a new order in ``pending``, as checkout does.

        Args:
            lines_data: List of dicts with variant_id, qty, unit_price.
        """
        now = datetime.now(UTC)
        order = cls(
            short_code=short_code,
            status=OrderStatus.PENDING.value,
            edit_version=1,
            customer_name=customer_name,
            phone=phone,
            email=email,
            address=address,
            city=city,
            notes=notes,
            shipping_amount=_money(shipping_amount),
            discount_total=_money(discount_total),
            promo_name=promo_name,
            created_at=now,
            updated_at=now,
        )
        for line_data in lines_data:
            qty = int(line_data["qty"])
            unit_price = _money(line_data["unit_price"])
            order.add_lines(
                OrderLine(
                    variant_id=line_data["variant_id"],
                    qty=qty,
                    unit_price=unit_price,
                    line_total=_money(qty * unit_price),
                )
            )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                short_code=short_code,
                city=city,
                lines=json.dumps([line.snapshot() for line in order.lines]),
                shipping_amount=order.shipping_amount,
                discount_total=order.discount_total,
                total=order.totals()["total"],
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_cn_locked(self) -> bool:
        """True once a courier booking exists; pricing and lines are then frozen."""
        return bool(self.courier_tracking_number or self.courier_booked_at)

    def line_by_id(self, line_id):
        return next((line for line in self.lines if str(line.id) == str(line_id)), None)

    def totals(self) -> dict:
        """Recompute totals from current lines. Never cached."""
        subtotal = _money(sum(line.line_total or 0.0 for line in self.lines))
        shipping = _money(self.shipping_amount)
        discount = _money(self.discount_total)
        return {
            "subtotal": subtotal,
            "shipping": shipping,
            "discount": discount,
            "total": _money(subtotal + shipping - discount),
        }

    # -------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------
    def record_status_change(self, to_status, transition_class, return_lines=None):
        """Persist a status decided by the transition validator.

        The validator is the only gatekeeper; this method just records the
        outcome. When the order is returned, each line's return condition is
        captured from ``return_lines`` ({line_id: condition}).
        """
        target = OrderStatus(to_status)
        from_status = self.status
        now = datetime.now(UTC)

        if target == OrderStatus.RETURNED and return_lines is not None:
            for line in self.lines:
                line.return_status = LineReturnStatus.RETURNED.value
                line.return_condition = return_lines.get(str(line.id), ReturnCondition.UNSET.value)

        self.status = target.value
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                from_status=from_status,
                to_status=target.value,
                transition_class=transition_class,
                return_lines=json.dumps(return_lines) if return_lines is not None else None,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Edits
    # -------------------------------------------------------------------
    def apply_edit(self, field_changes, line_plan=None, reason=""):
        """Apply a validated edit and bump ``edit_version``.

        Args:
            field_changes: {field_name: new_value} for customer and
                financial fields. Values equal to the current ones are ignored.
            line_plan: Optional ``LinePlan`` with inserts, updates and
                deletes, already validated against this order.
            reason: Operator-supplied reason, recorded on the event.

        Returns:
            The diff that was applied.
        """
        diff = {}
        for name, new_value in field_changes.items():
            old_value = getattr(self, name)
            if name in FINANCIAL_FIELDS:
                new_value = _money(new_value)
            if old_value != new_value:
                diff[name] = {"from": old_value, "to": new_value}
                setattr(self, name, new_value)

        if line_plan is not None and not line_plan.is_empty:
            diff["lines"] = self._apply_line_plan(line_plan)

        now = datetime.now(UTC)
        self.edit_version = (self.edit_version or 1) + 1
        self.updated_at = now

        self.raise_(
            OrderEdited(
                order_id=str(self.id),
                edit_version=self.edit_version,
                reason=reason,
                diff=json.dumps(diff, default=str),
                cn_locked=self.is_cn_locked,
                total=self.totals()["total"],
                edited_at=now,
            )
        )
        return diff

    def _apply_line_plan(self, line_plan) -> dict:
        removed = []
        for line_id in line_plan.deletes:
            line = self.line_by_id(line_id)
            removed.append(line.snapshot())
            self.remove_lines(line)

        updated = []
        for change in line_plan.updates:
            line = self.line_by_id(change.line_id)
            before = line.snapshot()
            line.qty = change.qty
            line.unit_price = _money(change.unit_price)
            line.line_total = _money(change.qty * change.unit_price)
            updated.append({"from": before, "to": line.snapshot()})

        added = []
        for insert in line_plan.inserts:
            line = OrderLine(
                variant_id=insert.variant_id,
                qty=insert.qty,
                unit_price=_money(insert.unit_price),
                line_total=_money(insert.qty * insert.unit_price),
            )
            self.add_lines(line)
            added.append(line.snapshot())

        return {"added": added, "removed": removed, "updated": updated}

    # -------------------------------------------------------------------
    # Courier
    # -------------------------------------------------------------------
    def assign_courier(self, courier_id, courier_notes=None):
        now = datetime.now(UTC)
        self.courier_id = courier_id
        if courier_notes is not None:
            self.courier_notes = courier_notes
        self.updated_at = now
        self.raise_(
            CourierAssigned(
                order_id=str(self.id),
                courier_id=str(courier_id),
                assigned_at=now,
            )
        )

    def record_courier_booking(self, tracking_number, booked_at=None):
        """Store the CN issued by the courier. Status is left untouched."""
        booked_at = booked_at or datetime.now(UTC)
        self.courier_tracking_number = tracking_number
        self.courier_booked_at = booked_at
        self.updated_at = booked_at
        self.raise_(
            CourierBooked(
                order_id=str(self.id),
                courier_id=str(self.courier_id) if self.courier_id else None,
                tracking_number=tracking_number,
                booked_at=booked_at,
            )
        )
