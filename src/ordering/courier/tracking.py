"""Courier tracking sync: command and handler for courier status updates.

Every update is logged, mapped or not. A mapped status that differs from the
order's current one goes through the status dispatcher, so the transition
rules and ledger gating apply to courier-driven changes exactly as they do to
operator changes.
"""

import json

import structlog
from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from ordering.courier.courier import CourierStatusLogEntry
from ordering.courier.port import map_courier_status
from ordering.domain import ordering
from ordering.errors import NotFoundError, OperationResult, OrderLifecycleError
from ordering.order.order import Order
from ordering.order.status import StatusDispatcher

logger = structlog.get_logger(__name__)


def find_order_by_tracking_number(tracking_number) -> Order | None:
    if not tracking_number:
        return None
    repo = current_domain.repository_for(Order)
    return repo._dao.query.filter(courier_tracking_number=tracking_number).all().first


@ordering.command(part_of="Order")
class RecordCourierStatus:
    """A tracking update reported by the courier for a booked order."""

    tracking_number = String(required=True, max_length=100)
    courier_status = String(max_length=255)
    raw_payload = Text()  # JSON


@ordering.command_handler(part_of=Order)
class CourierTrackingHandler:
    @handle(RecordCourierStatus)
    def record_courier_status(self, command) -> OperationResult:
        order = find_order_by_tracking_number(command.tracking_number)
        if order is None:
            return OperationResult.failure(NotFoundError("Order not found"))

        order_id = str(order.id)
        old_status = order.status
        new_status = map_courier_status(command.courier_status)

        current_domain.repository_for(CourierStatusLogEntry).add(
            CourierStatusLogEntry.record(
                order_id=order_id,
                courier_id=str(order.courier_id) if order.courier_id else None,
                tracking_number=command.tracking_number,
                old_status=old_status,
                new_status=new_status or old_status,
                courier_status=command.courier_status,
                raw_payload=json.loads(command.raw_payload) if command.raw_payload else {},
            )
        )

        if not new_status or new_status == old_status:
            return OperationResult(
                ok=True,
                message=f"No status change ({command.courier_status})",
                data={"order_id": order_id, "status": old_status},
            )

        try:
            result = StatusDispatcher().dispatch(
                order,
                new_status,
                idempotency_key=f"{order_id}:{command.tracking_number}:{new_status}",
            )
        except OrderLifecycleError as exc:
            logger.warning(
                "Courier status not applied",
                order_id=order_id,
                courier_status=command.courier_status,
                error=exc.message,
            )
            return OperationResult.failure(exc)

        return OperationResult(
            ok=True,
            message=f"Status updated: {old_status} → {result.status}",
            data={"order_id": order_id, "status": result.status},
        )
