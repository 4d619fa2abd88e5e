"""Order status changes: command, dispatcher and handler.

The dispatcher composes the transition validator, the conditional inventory
ledger call and the status write:

    NO_OP          -> nothing is called or written
    DIRECT_UPDATE  -> status write (after ``release_reservation`` for
                      pending -> cancelled)
    LEDGER_ADJUST  -> ``adjust_for_status_change``; status is written only
                      when the ledger reports success

The ledger call and the status write are not one transaction. A failed write
after a successful ledger call is reported as PERSISTENCE_ERROR.
"""

import json
from uuid import uuid4

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.effects import note_external_effect
from ordering.errors import (
    ErrorCode,
    ExternalServiceError,
    NotFoundError,
    OrderLifecycleError,
    PersistenceError,
    StateError,
    StatusChangeResult,
    ValidationError,
)
from ordering.ledger import get_ledger
from ordering.order.order import Order
from ordering.order.transitions import TransitionClass, validate

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class ChangeOrderStatus:
    """Move an order to another fulfillment status."""

    order_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    return_conditions = Text()  # JSON: {line_id: condition} or raw form keys
    idempotency_key = String(max_length=255)


class StatusDispatcher:
    """Applies a validated status change to a loaded order."""

    def __init__(self, ledger=None):
        self.ledger = ledger or get_ledger()

    def dispatch(self, order, requested_status, form_context=None, idempotency_key=None) -> StatusChangeResult:
        decision = validate(order, requested_status, form_context)
        order_id = str(order.id)

        if not decision.allowed:
            logger.warning(
                "Status transition denied",
                order_id=order_id,
                transition=decision.key,
                reason=decision.message,
            )
            if decision.error_code == ErrorCode.VALIDATION:
                raise ValidationError(decision.message)
            raise StateError(decision.message)

        if decision.transition_class == TransitionClass.NO_OP:
            return StatusChangeResult(
                ok=True,
                status=decision.to_status,
                transition=TransitionClass.NO_OP.value,
            )

        key = idempotency_key or f"{order_id}:{decision.key}:{uuid4().hex}"
        effect = None

        if decision.release_reservation:
            self._call_ledger(order_id, decision, self.ledger.release_reservation, order_id, idempotency_key=key)
            effect = f"Inventory reservation was released for {decision.key}"
        elif decision.transition_class == TransitionClass.LEDGER_ADJUST:
            self._call_ledger(
                order_id,
                decision,
                self.ledger.adjust_for_status_change,
                order_id,
                decision.from_status,
                decision.to_status,
                decision.return_lines,
                idempotency_key=key,
            )
            effect = f"Inventory was adjusted for {decision.key}"

        if effect:
            note_external_effect(effect)

        try:
            order.record_status_change(
                to_status=decision.to_status,
                transition_class=decision.transition_class.value,
                return_lines=decision.return_lines,
            )
            current_domain.repository_for(Order).add(order)
        except Exception as exc:
            logger.error(
                "Status write failed",
                order_id=order_id,
                transition=decision.key,
                ledger_applied=effect is not None,
                error=str(exc),
            )
            if effect:
                raise PersistenceError(
                    f"{effect} but failed to save: {exc}",
                    ErrorCode.PERSISTENCE_ERROR,
                ) from exc
            raise PersistenceError(str(exc)) from exc

        logger.info(
            "Order status changed",
            order_id=order_id,
            from_status=decision.from_status,
            to_status=decision.to_status,
            transition_class=decision.transition_class.value,
        )
        return StatusChangeResult(
            ok=True,
            status=decision.to_status,
            transition=decision.transition_class.value,
        )

    def _call_ledger(self, order_id, decision, method, *args, **kwargs):
        try:
            result = method(*args, **kwargs)
        except Exception as exc:
            logger.error(
                "Inventory ledger call raised",
                order_id=order_id,
                transition=decision.key,
                error=str(exc),
            )
            raise ExternalServiceError(str(exc)) from exc

        if not result.success:
            logger.error(
                "Inventory ledger rejected status change",
                order_id=order_id,
                transition=decision.key,
                error=result.error,
            )
            raise ExternalServiceError(result.error or f"Inventory ledger rejected {decision.key}")
        return result


def load_order(order_id) -> Order:
    try:
        return current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError as exc:
        raise NotFoundError("Order not found") from exc


@ordering.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(ChangeOrderStatus)
    def change_status(self, command) -> StatusChangeResult:
        try:
            try:
                form_context = json.loads(command.return_conditions) if command.return_conditions else None
            except ValueError as exc:
                raise ValidationError("return_conditions must be a JSON object") from exc
            if form_context is not None and not isinstance(form_context, dict):
                raise ValidationError("return_conditions must be a JSON object")
            order = load_order(command.order_id)
            return StatusDispatcher().dispatch(
                order,
                command.status,
                form_context=form_context,
                idempotency_key=command.idempotency_key,
            )
        except OrderLifecycleError as exc:
            return StatusChangeResult.failure(exc)
