"""Courier assignment: command and handler.

An order must be assigned to a courier before it can be booked. Once a CN
has been issued the assignment is frozen.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from ordering.courier.courier import Courier
from ordering.domain import ordering
from ordering.errors import ErrorCode, NotFoundError, OperationResult, OrderLifecycleError, StateError
from ordering.order.order import Order
from ordering.order.status import load_order


@ordering.command(part_of="Order")
class AssignCourier:
    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    courier_notes = Text()


@ordering.command_handler(part_of=Order)
class CourierAssignmentHandler:
    @handle(AssignCourier)
    def assign_courier(self, command) -> OperationResult:
        try:
            order = load_order(command.order_id)
            try:
                current_domain.repository_for(Courier).get(command.courier_id)
            except ObjectNotFoundError as exc:
                raise NotFoundError("Courier not found") from exc

            if order.courier_tracking_number:
                raise StateError(
                    f"Order already booked with tracking number {order.courier_tracking_number}; "
                    "the courier cannot be changed.",
                    ErrorCode.ALREADY_BOOKED,
                )

            order.assign_courier(command.courier_id, courier_notes=command.courier_notes)
            current_domain.repository_for(Order).add(order)
            return OperationResult(ok=True, data={"courier_id": str(command.courier_id)})
        except OrderLifecycleError as exc:
            return OperationResult.failure(exc)
