"""Entry points exposed to the presentation layer.

Each function builds the matching command, runs it synchronously under the
order's row lock and returns the handler's structured result. Malformed input
that Protean rejects, while constructing the command or inside the handler,
comes back as a ``VALIDATION`` result. Only ``list_edits`` raises.
"""

import json

import structlog
from protean.exceptions import ValidationError as CommandValidationError
from protean.utils.globals import current_domain

from ordering.courier.assignment import AssignCourier
from ordering.courier.booking import BookingGuard
from ordering.courier.city_mappings import ImportCourierCities
from ordering.courier.tracking import RecordCourierStatus, find_order_by_tracking_number
from ordering.effects import tracking_external_effects
from ordering.errors import (
    BookingOutcome,
    EditResult,
    ErrorCode,
    NotFoundError,
    OperationResult,
    OrderLifecycleError,
    PersistenceError,
    StatusChangeResult,
    ValidationError,
)
from ordering.order.edit_record import edits_for_order
from ordering.order.editing import SubmitOrderEdit
from ordering.order.locking import order_row_lock
from ordering.order.order import CUSTOMER_FIELDS, FINANCIAL_FIELDS
from ordering.order.status import ChangeOrderStatus, load_order

logger = structlog.get_logger(__name__)

PATCH_FIELDS = frozenset(CUSTOMER_FIELDS) | frozenset(FINANCIAL_FIELDS) | {"lines"}


def _describe(exc: CommandValidationError) -> str:
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        return "; ".join(
            f"{field}: {', '.join(str(m) for m in errors) if isinstance(errors, list) else errors}"
            for field, errors in messages.items()
        )
    return str(exc)


def _process(command, result_cls, **log_context):
    """Process ``command`` synchronously and turn escaping errors into a result.

    Errors that escape the handler were raised by Protean field checks or by
    the unit-of-work commit. A commit that fails after the ledger already
    acted is PERSISTENCE_ERROR; any other failure is SERVICE_ERROR.
    """
    with tracking_external_effects() as effects:
        try:
            return current_domain.process(command, asynchronous=False)
        except CommandValidationError as exc:
            if not effects:
                return result_cls.failure(ValidationError(_describe(exc)))
            error = exc
        except Exception as exc:
            error = exc

    logger.error(
        "Command failed to commit",
        command=command.__class__.__name__,
        external_effects=effects,
        error=str(error),
        **log_context,
    )
    if effects:
        return result_cls.failure(
            PersistenceError(f"{effects[-1]} but failed to save: {error}", ErrorCode.PERSISTENCE_ERROR)
        )
    return result_cls.failure(PersistenceError(f"Database error: {error}"))


def _run(command, order_id, result_cls):
    """Process ``command`` under the order's row lock."""
    with order_row_lock(order_id):
        return _process(command, result_cls, order_id=str(order_id))


def change_status(order_id, status, return_conditions=None, idempotency_key=None) -> StatusChangeResult:
    """Move an order to ``status``.

    ``return_conditions`` is either ``{line_id: condition}`` or the raw form
    mapping with ``item[<line_id>][return_condition]`` keys.
    """
    try:
        command = ChangeOrderStatus(
            order_id=order_id,
            status=status,
            return_conditions=json.dumps(return_conditions) if return_conditions else None,
            idempotency_key=idempotency_key,
        )
    except CommandValidationError as exc:
        return StatusChangeResult.failure(ValidationError(_describe(exc)))
    return _run(command, order_id, StatusChangeResult)


def submit_edit(
    order_id,
    expected_edit_version,
    patch,
    reason,
    edited_by=None,
    actor_timezone=None,
    user_agent=None,
) -> EditResult:
    patch = dict(patch or {})
    unknown = sorted(set(patch) - PATCH_FIELDS)
    if unknown:
        return EditResult.failure(ValidationError(f"Unknown field(s): {', '.join(unknown)}"))

    if "lines" in patch and patch["lines"] is not None:
        patch["lines"] = json.dumps(patch["lines"])

    try:
        command = SubmitOrderEdit(
            order_id=order_id,
            expected_edit_version=expected_edit_version,
            reason=reason,
            edited_by=edited_by,
            actor_timezone=actor_timezone,
            user_agent=user_agent,
            **patch,
        )
    except CommandValidationError as exc:
        return EditResult.failure(ValidationError(_describe(exc)))
    return _run(command, order_id, EditResult)


def list_edits(order_id) -> list[dict]:
    """Edit history of an order, newest first. Raises NotFoundError."""
    load_order(order_id)
    return [record.to_dict() for record in edits_for_order(order_id)]


def book_courier(order_id) -> BookingOutcome:
    """Book the order with its assigned courier.

    The guard runs outside a unit of work so the courier API log and the
    tracking number commit separately from each other.
    """
    if not order_id:
        return BookingOutcome.failure(ValidationError("order_id is required"))

    with order_row_lock(order_id):
        try:
            return BookingGuard().book(load_order(order_id))
        except OrderLifecycleError as exc:
            return BookingOutcome.failure(exc)
        except Exception as exc:
            logger.error("Courier booking failed", order_id=str(order_id), error=str(exc))
            return BookingOutcome.failure(PersistenceError(f"Database error: {exc}"))


def assign_courier(order_id, courier_id, courier_notes=None) -> OperationResult:
    try:
        command = AssignCourier(order_id=order_id, courier_id=courier_id, courier_notes=courier_notes)
    except CommandValidationError as exc:
        return OperationResult.failure(ValidationError(_describe(exc)))
    return _run(command, order_id, OperationResult)


def import_courier_cities(courier_id) -> OperationResult:
    try:
        command = ImportCourierCities(courier_id=courier_id)
    except CommandValidationError as exc:
        return OperationResult.failure(ValidationError(_describe(exc)))
    return _process(command, OperationResult, courier_id=str(courier_id))


def record_courier_status(tracking_number, courier_status, raw_payload=None) -> OperationResult:
    order = find_order_by_tracking_number(tracking_number)
    if order is None:
        return OperationResult.failure(NotFoundError("Order not found"))

    try:
        command = RecordCourierStatus(
            tracking_number=tracking_number,
            courier_status=courier_status,
            raw_payload=json.dumps(raw_payload, default=str) if raw_payload is not None else None,
        )
    except CommandValidationError as exc:
        return OperationResult.failure(ValidationError(_describe(exc)))
    return _run(command, order.id, OperationResult)
