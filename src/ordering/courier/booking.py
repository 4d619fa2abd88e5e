"""Courier booking: booking guard, tracking number command and handler.

Booking is a two-phase effect across two systems and is not atomic:

1. call the courier API,
2. write a ``CourierApiLogEntry`` whether the call succeeded, was rejected
   or raised,
3. only on success, store the tracking number and booked timestamp.

The guard runs outside any unit of work. The log entry commits on its own
as soon as it is added, and step 3 is a separate ``RecordCourierBooking``
command with its own unit of work. If step 3 fails, including at commit,
after step 1 succeeded, the courier holds a booking the order does not know
about. That is reported as PERSISTENCE_ERROR naming the CN and is never
retried here; an operator reconciles it by hand.

A second booking of an order that already has a CN is refused before any
external call and returns the existing number.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.courier import get_courier
from ordering.courier.city_mappings import lookup_city
from ordering.courier.courier import Courier, CourierApiLogEntry
from ordering.domain import ordering
from ordering.errors import (
    BookingOutcome,
    ErrorCode,
    ExternalServiceError,
    PersistenceError,
    StateError,
)
from ordering.order.order import Order
from ordering.order.status import load_order

logger = structlog.get_logger(__name__)

BOOKING_ENDPOINT = "bookPacket"
PRODUCT_TYPE = "COD"


@ordering.command(part_of="Order")
class RecordCourierBooking:
    """Store the tracking number the courier issued for an order."""

    order_id = Identifier(required=True)
    tracking_number = String(required=True, max_length=100)


class BookingGuard:
    """Idempotent booking orchestration for one courier integration type."""

    def __init__(self, courier=None):
        self.courier = courier or get_courier()

    @property
    def courier_label(self) -> str:
        return (self.courier.api_type or "courier").title()

    def book(self, order) -> BookingOutcome:
        order_id = str(order.id)

        if order.courier_tracking_number:
            logger.info(
                "Booking refused: order already has a CN",
                order_id=order_id,
                tracking_number=order.courier_tracking_number,
            )
            return BookingOutcome(
                ok=False,
                tracking_number=order.courier_tracking_number,
                message=f"Order already has tracking number: {order.courier_tracking_number}",
                error_code=ErrorCode.ALREADY_BOOKED.value,
            )

        courier = self._assigned_courier(order)
        mapping = lookup_city(courier.id, order.city)
        if mapping is None:
            raise StateError(
                f'No {self.courier_label} city mapping found for "{order.city}". Please add it in city mappings.',
                ErrorCode.MISSING_CITY_MAPPING,
            )

        request = {
            "consignee_name": order.customer_name,
            "consignee_phone": order.phone,
            "consignee_address": order.address,
            "destination_city_code": mapping.courier_city_code or mapping.courier_city_name,
            "reference_number": order.short_code or order_id,
            "collect_amount": order.totals()["total"],
            "product_type": PRODUCT_TYPE,
            "idempotency_key": f"{order_id}:book",
        }

        try:
            result = self.courier.book(**request)
        except Exception as exc:
            self._log_call(courier.id, order_id, request, None, success=False, error=str(exc))
            logger.error("Courier booking call raised", order_id=order_id, error=str(exc))
            raise ExternalServiceError(f"API error: {exc}") from exc

        self._log_call(
            courier.id,
            order_id,
            request,
            result.raw,
            success=result.success,
            error=None if result.success else result.error,
        )

        if not result.success or not result.tracking_number:
            logger.warning("Courier rejected booking", order_id=order_id, error=result.error)
            raise ExternalServiceError(result.error or "Booking failed - no tracking number returned")

        tracking_number = result.tracking_number
        try:
            current_domain.process(
                RecordCourierBooking(order_id=order_id, tracking_number=tracking_number),
                asynchronous=False,
            )
        except Exception as exc:
            logger.error(
                "Courier booked but CN failed to save; manual reconciliation required",
                order_id=order_id,
                tracking_number=tracking_number,
                error=str(exc),
            )
            raise PersistenceError(
                f"Booking succeeded (CN: {tracking_number}) but failed to save: {exc}",
                ErrorCode.PERSISTENCE_ERROR,
            ) from exc

        logger.info("Courier booked", order_id=order_id, tracking_number=tracking_number)
        return BookingOutcome(ok=True, tracking_number=tracking_number)

    def _assigned_courier(self, order):
        mismatch = StateError(
            f"Order courier must be set to {self.courier_label} before booking",
            ErrorCode.COURIER_MISMATCH,
        )
        if not order.courier_id:
            raise mismatch
        try:
            courier = current_domain.repository_for(Courier).get(order.courier_id)
        except ObjectNotFoundError as exc:
            raise mismatch from exc
        if courier.api_type != self.courier.api_type:
            raise mismatch
        return courier

    def _log_call(self, courier_id, order_id, request, response, success, error=None):
        try:
            current_domain.repository_for(CourierApiLogEntry).add(
                CourierApiLogEntry.record(
                    courier_id=str(courier_id),
                    order_id=order_id,
                    endpoint=BOOKING_ENDPOINT,
                    request_payload=request,
                    response_payload=response,
                    success=success,
                    error_message=error,
                )
            )
        except Exception as exc:
            logger.error("Courier API log write failed", order_id=order_id, error=str(exc))


@ordering.command_handler(part_of=Order)
class CourierBookingHandler:
    @handle(RecordCourierBooking)
    def record_courier_booking(self, command) -> None:
        order = load_order(command.order_id)
        order.record_courier_booking(command.tracking_number)
        current_domain.repository_for(Order).add(order)
