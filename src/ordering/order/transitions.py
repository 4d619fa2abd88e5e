"""Status transition validator: pure decision table, no I/O.

Given an order, a requested status and the request's form context, decides
whether the transition is allowed and which class of side effect it needs:

    NO_OP          same status requested; nothing happens
    DIRECT_UPDATE  status write only (``release_reservation`` first for
                   pending -> cancelled)
    LEDGER_ADJUST  inventory ledger adjusts stock atomically; status is
                   written only if the ledger reports success

Denied:
    shipped -> cancelled, delivered -> cancelled
    returned -> anything else (terminal)
    X -> returned unless X in {shipped, delivered, return_in_transit}
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from ordering.errors import ErrorCode
from ordering.order.order import OrderStatus, ReturnCondition


class TransitionClass(Enum):
    NO_OP = "NoOp"
    DIRECT_UPDATE = "DirectUpdate"
    LEDGER_ADJUST = "LedgerAdjust"


_RETURNABLE_FROM = {
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.RETURN_IN_TRANSIT,
}

_NON_CANCELLABLE = {OrderStatus.SHIPPED, OrderStatus.DELIVERED}

# Transitions that move no stock
_STATUS_ONLY = {
    (OrderStatus.SHIPPED, OrderStatus.RETURN_IN_TRANSIT),
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    (OrderStatus.DELIVERED, OrderStatus.RETURN_IN_TRANSIT),
    (OrderStatus.PENDING, OrderStatus.PACKED),
    (OrderStatus.PACKED, OrderStatus.SHIPPED),
    (OrderStatus.PACKED, OrderStatus.PENDING),
}

_RETURN_CONDITION_KEY = re.compile(r"^item\[(.+)\]\[return_condition\]$")
_RECOGNIZED_CONDITIONS = {ReturnCondition.RESELLABLE.value, ReturnCondition.NOT_RESELLABLE.value}


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    from_status: str | None
    to_status: str
    transition_class: TransitionClass | None = None
    release_reservation: bool = False
    return_lines: dict | None = None
    message: str | None = None
    error_code: ErrorCode | None = None

    @property
    def key(self) -> str:
        return f"{self.from_status}->{self.to_status}"


def parse_return_conditions(form_context: Mapping | None) -> dict[str, str]:
    """Extract {line_id: condition} from a request.

    Accepts raw form keys shaped ``item[<line_id>][return_condition]`` as well
    as a plain {line_id: condition} mapping. Unrecognized values are dropped,
    which leaves those lines ``unset``.
    """
    conditions = {}
    for key, value in (form_context or {}).items():
        match = _RETURN_CONDITION_KEY.match(str(key))
        line_id = match.group(1) if match else str(key)
        condition = str(value)
        if condition in _RECOGNIZED_CONDITIONS:
            conditions[line_id] = condition
    return conditions


def _deny(from_status, to_status, message, error_code=ErrorCode.INVALID_TRANSITION):
    return TransitionDecision(
        allowed=False,
        from_status=from_status,
        to_status=to_status,
        message=message,
        error_code=error_code,
    )


def validate(order, requested_status, form_context=None) -> TransitionDecision:
    """Decide whether ``order`` may move to ``requested_status``.

    Args:
        order: The order as currently stored (only ``status`` and ``lines``
            are read).
        requested_status: Raw status string from the caller.
        form_context: Return-condition flags, see ``parse_return_conditions``.
    """
    requested = "" if requested_status is None else str(requested_status)
    current_value = order.status or OrderStatus.PENDING.value

    try:
        target = OrderStatus(requested)
    except ValueError:
        return _deny(current_value, requested, f"Invalid status: {requested_status!r}", ErrorCode.VALIDATION)

    current = OrderStatus(current_value)

    if current == target:
        return TransitionDecision(
            allowed=True,
            from_status=current.value,
            to_status=target.value,
            transition_class=TransitionClass.NO_OP,
        )

    if target == OrderStatus.CANCELLED and current in _NON_CANCELLABLE:
        return _deny(current.value, target.value, f"Cannot cancel {current.value} orders.")

    if current == OrderStatus.RETURNED:
        return _deny(current.value, target.value, f"Cannot move returned orders to {target.value}.")

    if target == OrderStatus.RETURNED and current not in _RETURNABLE_FROM:
        return _deny(
            current.value,
            target.value,
            "Returned status is only allowed from Shipped, Delivered, or Return in transit.",
        )

    if (current, target) == (OrderStatus.PENDING, OrderStatus.CANCELLED):
        return TransitionDecision(
            allowed=True,
            from_status=current.value,
            to_status=target.value,
            transition_class=TransitionClass.DIRECT_UPDATE,
            release_reservation=True,
        )

    if (current, target) in _STATUS_ONLY:
        return TransitionDecision(
            allowed=True,
            from_status=current.value,
            to_status=target.value,
            transition_class=TransitionClass.DIRECT_UPDATE,
        )

    return_lines = None
    if target == OrderStatus.RETURNED:
        flags = parse_return_conditions(form_context)
        return_lines = {
            str(line.id): flags.get(str(line.id), ReturnCondition.UNSET.value) for line in (order.lines or [])
        }

    return TransitionDecision(
        allowed=True,
        from_status=current.value,
        to_status=target.value,
        transition_class=TransitionClass.LEDGER_ADJUST,
        return_lines=return_lines,
    )
