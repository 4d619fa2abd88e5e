"""Domain events for the Order aggregate.

All events are versioned, immutable facts representing state changes.
They are raised by the aggregate and dispatched when the unit of work
commits.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A new cash-on-delivery order was placed at checkout."""

    __version__ = 1

    order_id = Identifier(required=True)
    short_code = String()
    city = String()
    lines = Text(required=True)  # JSON: list of line dicts
    shipping_amount = Float()
    discount_total = Float()
    total = Float(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderStatusChanged:
    """An order moved from one fulfillment status to another."""

    __version__ = 1

    order_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    transition_class = String(required=True)
    return_lines = Text()  # JSON: {line_id: condition}, only for returns
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderEdited:
    """An operator edit was accepted and edit_version was bumped."""

    __version__ = 1

    order_id = Identifier(required=True)
    edit_version = Integer(required=True)
    reason = String(required=True)
    diff = Text(required=True)  # JSON
    cn_locked = Boolean(default=False)
    total = Float(required=True)
    edited_at = DateTime(required=True)


@ordering.event(part_of="Order")
class CourierAssigned:
    """A courier was assigned to the order ahead of booking."""

    __version__ = 1

    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    assigned_at = DateTime(required=True)


@ordering.event(part_of="Order")
class CourierBooked:
    """The courier accepted the shipment and issued a tracking number (CN)."""

    __version__ = 1

    order_id = Identifier(required=True)
    courier_id = Identifier()
    tracking_number = String(required=True)
    booked_at = DateTime(required=True)
