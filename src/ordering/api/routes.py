"""FastAPI routes for the Ordering domain: order lifecycle and couriers.

Lifecycle routes are plain functions so FastAPI runs them in its threadpool;
they hold row locks and may wait on the courier API.
"""

import asyncio

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from ordering import lifecycle
from ordering.api.schemas import (
    AssignCourierRequest,
    BookingResponse,
    ChangeStatusRequest,
    EditHistoryResponse,
    EditResponse,
    OperationResponse,
    StatusChangeResponse,
    SubmitEditRequest,
    WebhookResponse,
)
from ordering.courier import get_courier
from ordering.errors import ErrorCode, NotFoundError
from ordering.lifecycle import PATCH_FIELDS

_HTTP_STATUS = {
    ErrorCode.VALIDATION.value: 422,
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.EXTERNAL_SERVICE_ERROR.value: 502,
    ErrorCode.PERSISTENCE_ERROR.value: 500,
    ErrorCode.SERVICE_ERROR.value: 500,
}


def _failure(result) -> JSONResponse:
    """Render a failed result; state and concurrency errors are conflicts."""
    return JSONResponse(
        status_code=_HTTP_STATUS.get(result.error_code, 409),
        content=result.to_dict(),
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.put("/{order_id}/status", response_model=StatusChangeResponse)
def change_order_status(order_id: str, body: ChangeStatusRequest) -> StatusChangeResponse:
    result = lifecycle.change_status(
        order_id,
        body.status,
        return_conditions=body.return_conditions,
        idempotency_key=body.idempotency_key,
    )
    if not result.ok:
        return _failure(result)
    return StatusChangeResponse(ok=True, status=result.status, transition=result.transition)


@order_router.post("/{order_id}/edits", response_model=EditResponse)
def submit_order_edit(
    order_id: str,
    body: SubmitEditRequest,
    user_agent: str | None = Header(default=None),
) -> EditResponse:
    patch = body.model_dump(include=set(PATCH_FIELDS), exclude_none=True)
    result = lifecycle.submit_edit(
        order_id,
        body.expected_edit_version,
        patch,
        body.reason,
        edited_by=body.edited_by,
        actor_timezone=body.actor_timezone,
        user_agent=user_agent,
    )
    if not result.success:
        return _failure(result)
    return EditResponse(**result.to_dict())


@order_router.get("/{order_id}/edits", response_model=EditHistoryResponse)
def list_order_edits(order_id: str) -> EditHistoryResponse:
    try:
        edits = lifecycle.list_edits(order_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    return EditHistoryResponse(order_id=order_id, edits=edits)


@order_router.post("/{order_id}/courier/booking", response_model=BookingResponse)
def book_order_courier(order_id: str) -> BookingResponse:
    result = lifecycle.book_courier(order_id)
    if not result.ok:
        return _failure(result)
    return BookingResponse(ok=True, tracking_number=result.tracking_number)


@order_router.put("/{order_id}/courier", response_model=OperationResponse)
def assign_order_courier(order_id: str, body: AssignCourierRequest) -> OperationResponse:
    result = lifecycle.assign_courier(order_id, body.courier_id, courier_notes=body.courier_notes)
    if not result.ok:
        return _failure(result)
    return OperationResponse(ok=True, data=result.data)


# ---------------------------------------------------------------------------
# Courier Router
# ---------------------------------------------------------------------------
courier_router = APIRouter(prefix="/couriers", tags=["couriers"])


@courier_router.post("/{courier_id}/city-mappings/import", response_model=OperationResponse)
def import_city_mappings(courier_id: str) -> OperationResponse:
    result = lifecycle.import_courier_cities(courier_id)
    if not result.ok:
        return _failure(result)
    return OperationResponse(ok=True, message=f"Imported {result.data['count']} cities", data=result.data)


def _webhook_items(payload) -> list:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return payload["data"]
    return [payload]


def _apply_tracking_updates(items) -> list[dict]:
    results = []
    for item in items:
        if not isinstance(item, dict):
            results.append({"ok": False, "message": "Invalid item"})
            continue
        tracking_number = item.get("track_number") or item.get("tracking_number") or item.get("cn_number")
        courier_status = item.get("status") or item.get("booked_packet_status")
        if courier_status is not None:
            courier_status = str(courier_status)
        if not tracking_number:
            results.append({"ok": False, "message": "Missing tracking number"})
            continue

        result = lifecycle.record_courier_status(str(tracking_number), courier_status, raw_payload=item)
        results.append({"tracking_number": str(tracking_number), **result.to_dict()})
    return results


@courier_router.post("/leopards/webhook", response_model=WebhookResponse)
async def leopards_webhook(
    request: Request,
    x_leopards_secret: str = Header(default=""),
) -> WebhookResponse:
    """Apply Leopards tracking updates. Each item is processed on its own."""
    courier = get_courier()
    if not courier.verify_webhook_secret(x_leopards_secret):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON") from exc

    results = await asyncio.to_thread(_apply_tracking_updates, _webhook_items(payload))
    return WebhookResponse(results=results)
