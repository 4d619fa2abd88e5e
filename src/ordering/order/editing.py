"""Order editing: command, line reconciliation and the edit coordinator.

Operators may edit pending and packed orders. Each edit:

1. needs a reason of at least three characters,
2. carries the ``edit_version`` the operator last saw; a mismatch aborts the
   whole edit with CONCURRENCY_ERROR and nothing is applied,
3. loses its shipping, discount and line changes if a CN is already booked
   (customer, address and notes changes still apply),
4. reconciles submitted lines against stored ones: no id is an insert, a
   missing id is a delete, a changed qty or price is an update,
5. bumps ``edit_version`` and appends an ``OrderEditRecord``.
"""

import json
import math
from dataclasses import dataclass, field

import structlog
from protean import handle
from protean.fields import Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import (
    ConcurrencyError,
    EditResult,
    ErrorCode,
    OrderLifecycleError,
    PersistenceError,
    StateError,
    ValidationError,
)
from ordering.order.edit_record import OrderEditRecord
from ordering.order.order import (
    CUSTOMER_FIELDS,
    EDITABLE_STATUSES,
    FINANCIAL_FIELDS,
    Order,
    OrderStatus,
)
from ordering.order.status import load_order

logger = structlog.get_logger(__name__)

MIN_REASON_LENGTH = 3


@ordering.command(part_of="Order")
class SubmitOrderEdit:
    """Edit an order's customer details, pricing or lines."""

    order_id = Identifier(required=True)
    expected_edit_version = Integer(required=True)
    reason = String(required=True, max_length=500)
    customer_name = String(max_length=255)
    phone = String(max_length=50)
    alternate_phone = String(max_length=50)
    email = String(max_length=255)
    address = Text()
    city = String(max_length=100)
    notes = Text()
    shipping_amount = Float()
    discount_total = Float()
    lines = Text()  # JSON: list of {id?, variant_id, qty, unit_price?}
    edited_by = String(max_length=255)
    actor_timezone = String(max_length=100)
    user_agent = String(max_length=500)


# ---------------------------------------------------------------------------
# Line reconciliation
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class LineInsert:
    variant_id: str
    qty: int
    unit_price: float


@dataclass(frozen=True)
class LineUpdate:
    line_id: str
    qty: int
    unit_price: float


@dataclass(frozen=True)
class LinePlan:
    inserts: list[LineInsert] = field(default_factory=list)
    updates: list[LineUpdate] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)


def _as_qty(value, position):
    if isinstance(value, bool):
        raise ValidationError(f"Line {position}: qty must be a whole number")
    try:
        qty = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Line {position}: qty must be a whole number") from exc
    if qty != value and str(qty) != str(value):
        raise ValidationError(f"Line {position}: qty must be a whole number")
    if qty < 1:
        raise ValidationError(f"Line {position}: qty must be at least 1")
    return qty


def _as_price(value, position):
    if value is None:
        return None
    try:
        price = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Line {position}: unit_price must be a number") from exc
    if not math.isfinite(price):
        raise ValidationError(f"Line {position}: unit_price must be a finite number")
    if price < 0:
        raise ValidationError(f"Line {position}: unit_price cannot be negative")
    return price


def reconcile_lines(order, submitted) -> LinePlan:
    """Turn the submitted line set into inserts, updates and deletes.

    Raises ValidationError for a patch that would leave no lines, repeats a
    variant or a line id, references a line of another order, or inserts a
    line without a unit price.
    """
    if not isinstance(submitted, list):
        raise ValidationError("lines must be a list")
    if not submitted:
        raise ValidationError("An order must keep at least one line. Cancel the order instead.")

    existing = {str(line.id): line for line in order.lines}
    seen_variants = set()
    seen_ids = set()
    inserts, updates = [], []

    for position, raw in enumerate(submitted, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Line {position}: expected an object")
        variant_id = str(raw.get("variant_id") or "").strip()
        if not variant_id:
            raise ValidationError(f"Line {position}: variant_id is required")
        if variant_id in seen_variants:
            raise ValidationError(f"Variant {variant_id} appears more than once")
        seen_variants.add(variant_id)

        qty = _as_qty(raw.get("qty"), position)
        unit_price = _as_price(raw.get("unit_price"), position)
        line_id = raw.get("id")

        if not line_id:
            if unit_price is None:
                raise ValidationError(f"Line {position}: unit_price is required for new lines")
            inserts.append(LineInsert(variant_id=variant_id, qty=qty, unit_price=unit_price))
            continue

        line_id = str(line_id)
        if line_id in seen_ids:
            raise ValidationError(f"Line {line_id} appears more than once")
        seen_ids.add(line_id)
        line = existing.get(line_id)
        if line is None:
            raise ValidationError(f"Line {line_id} does not belong to this order")
        if str(line.variant_id) != variant_id:
            raise ValidationError(f"Line {line_id} cannot change variant; remove it and add a new line")

        new_price = line.unit_price if unit_price is None else unit_price
        if qty != line.qty or new_price != line.unit_price:
            updates.append(LineUpdate(line_id=line_id, qty=qty, unit_price=new_price))

    deletes = [line_id for line_id in existing if line_id not in seen_ids]
    return LinePlan(inserts=inserts, updates=updates, deletes=deletes)


def _projected_subtotal(order, plan) -> float:
    if plan is None:
        return sum(line.line_total or 0.0 for line in order.lines)
    updated = {change.line_id: change for change in plan.updates}
    subtotal = 0.0
    for line in order.lines:
        line_id = str(line.id)
        if line_id in plan.deletes:
            continue
        if line_id in updated:
            subtotal += updated[line_id].qty * updated[line_id].unit_price
        else:
            subtotal += line.line_total or 0.0
    subtotal += sum(insert.qty * insert.unit_price for insert in plan.inserts)
    return subtotal


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------
class EditCoordinator:
    """Validates and applies one edit to a loaded order."""

    def apply(self, order, command) -> EditResult:
        order_id = str(order.id)

        if OrderStatus(order.status) not in EDITABLE_STATUSES:
            raise StateError(
                f"Cannot edit order with status: {order.status}. Only pending/packed orders can be edited.",
                ErrorCode.INVALID_STATUS,
            )

        if order.edit_version != command.expected_edit_version:
            logger.info(
                "Order edit rejected: stale edit_version",
                order_id=order_id,
                expected=command.expected_edit_version,
                actual=order.edit_version,
            )
            raise ConcurrencyError(
                "This order was modified by someone else. Reload it and apply your changes again."
            )

        field_changes = {}
        for name in CUSTOMER_FIELDS:
            value = getattr(command, name)
            if value not in (None, ""):
                field_changes[name] = value

        submitted_lines = self._parse_lines(command.lines)
        financial = {name: getattr(command, name) for name in FINANCIAL_FIELDS if getattr(command, name) is not None}

        cn_locked = order.is_cn_locked
        discarded = []
        if cn_locked:
            discarded = sorted(financial) + (["lines"] if submitted_lines is not None else [])
            financial, submitted_lines = {}, None
            if discarded:
                logger.info(
                    "CN booked: discarding locked fields from edit",
                    order_id=order_id,
                    discarded=discarded,
                )

        for name, value in financial.items():
            if not math.isfinite(value):
                raise ValidationError(f"{name} must be a finite number")
            if value < 0:
                raise ValidationError(f"{name} cannot be negative")
        field_changes.update(financial)

        plan = reconcile_lines(order, submitted_lines) if submitted_lines is not None else None

        shipping = financial.get("shipping_amount", order.shipping_amount or 0.0)
        discount = financial.get("discount_total", order.discount_total or 0.0)
        if _projected_subtotal(order, plan) + shipping - discount < 0:
            raise ValidationError("Discount cannot exceed the order subtotal plus shipping")

        diff = order.apply_edit(field_changes, line_plan=plan, reason=command.reason.strip())

        try:
            record = OrderEditRecord.record(
                order_id=order_id,
                edit_version=order.edit_version,
                reason=command.reason.strip(),
                diff=diff,
                edited_by=command.edited_by,
                actor_timezone=command.actor_timezone,
                user_agent=command.user_agent,
            )
            current_domain.repository_for(Order).add(order)
            current_domain.repository_for(OrderEditRecord).add(record)
        except Exception as exc:
            logger.error("Order edit failed to save", order_id=order_id, error=str(exc))
            raise PersistenceError(f"Database error: {exc}") from exc

        logger.info(
            "Order edited",
            order_id=order_id,
            edit_version=order.edit_version,
            changed=sorted(diff),
            cn_locked=cn_locked,
        )
        return EditResult(
            success=True,
            totals=order.totals(),
            new_edit_version=order.edit_version,
            cn_booked=cn_locked,
            discarded_fields=discarded,
        )

    @staticmethod
    def _parse_lines(raw_lines):
        if raw_lines in (None, ""):
            return None
        try:
            return json.loads(raw_lines) if isinstance(raw_lines, str) else raw_lines
        except ValueError as exc:
            raise ValidationError("lines must be a JSON list") from exc


@ordering.command_handler(part_of=Order)
class OrderEditHandler:
    @handle(SubmitOrderEdit)
    def submit_edit(self, command) -> EditResult:
        try:
            if len((command.reason or "").strip()) < MIN_REASON_LENGTH:
                raise ValidationError(
                    f"Please provide a reason for the edit (min {MIN_REASON_LENGTH} characters)"
                )
            order = load_order(command.order_id)
            return EditCoordinator().apply(order, command)
        except OrderLifecycleError as exc:
            return EditResult.failure(exc)
