"""Courier aggregates: couriers, city mappings and the courier audit logs.

``CourierApiLogEntry`` and ``CourierStatusLogEntry`` are append-only: they are
created once through their ``record`` factories and never updated.
"""

import json
from datetime import UTC, datetime

from protean.fields import Boolean, DateTime, Identifier, String, Text

from ordering.domain import ordering


@ordering.aggregate
class Courier:
    """A courier partner. ``api_type`` names the integration that books for it."""

    name = String(required=True, max_length=100)
    api_type = String(max_length=50)
    active = Boolean(default=True)


@ordering.aggregate
class CourierCityMapping:
    """Maps one of our city spellings to the courier's city code."""

    courier_id = Identifier(required=True)
    our_city_name = String(required=True, max_length=100)
    courier_city_code = String(max_length=50)
    courier_city_name = String(max_length=100)


@ordering.aggregate
class CourierApiLogEntry:
    """One call made to a courier API, successful or not."""

    courier_id = Identifier()
    order_id = Identifier(required=True)
    endpoint = String(required=True, max_length=100)
    request_payload = Text()  # JSON
    response_payload = Text()  # JSON
    success = Boolean(default=False)
    error_message = Text()
    created_at = DateTime()

    @classmethod
    def record(cls, courier_id, order_id, endpoint, request_payload, response_payload, success, error_message=None):
        return cls(
            courier_id=courier_id,
            order_id=order_id,
            endpoint=endpoint,
            request_payload=json.dumps(request_payload, default=str),
            response_payload=json.dumps(response_payload, default=str) if response_payload is not None else None,
            success=success,
            error_message=error_message,
            created_at=datetime.now(UTC),
        )


@ordering.aggregate
class CourierStatusLogEntry:
    """A tracking update received from the courier, mapped or not."""

    order_id = Identifier(required=True)
    courier_id = Identifier()
    tracking_number = String(required=True, max_length=100)
    old_status = String(max_length=20)
    new_status = String(max_length=20)
    courier_status = String(max_length=255)
    raw_payload = Text()  # JSON
    created_at = DateTime()

    @classmethod
    def record(cls, order_id, courier_id, tracking_number, old_status, new_status, courier_status, raw_payload):
        return cls(
            order_id=order_id,
            courier_id=courier_id,
            tracking_number=tracking_number,
            old_status=old_status,
            new_status=new_status,
            courier_status=courier_status,
            raw_payload=json.dumps(raw_payload, default=str),
            created_at=datetime.now(UTC),
        )
