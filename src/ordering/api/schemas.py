"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class ChangeStatusRequest(BaseModel):
    status: str
    return_conditions: dict[str, str] | None = None
    idempotency_key: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "returned",
                    "return_conditions": {"item[line-1][return_condition]": "resellable"},
                }
            ]
        }
    }


class EditLineSchema(BaseModel):
    id: str | None = None
    variant_id: str
    qty: int
    unit_price: float | None = None


class SubmitEditRequest(BaseModel):
    expected_edit_version: int
    reason: str
    customer_name: str | None = None
    phone: str | None = None
    alternate_phone: str | None = None
    email: str | None = None
    address: str | None = None
    city: str | None = None
    notes: str | None = None
    shipping_amount: float | None = None
    discount_total: float | None = None
    lines: list[EditLineSchema] | None = None
    edited_by: str | None = None
    actor_timezone: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "expected_edit_version": 3,
                    "reason": "Customer called to change address",
                    "address": "House 12, Street 4, Gulberg",
                    "city": "Lahore",
                }
            ]
        }
    }


class AssignCourierRequest(BaseModel):
    courier_id: str
    courier_notes: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class StatusChangeResponse(BaseModel):
    ok: bool
    status: str | None = None
    transition: str | None = None


class TotalsSchema(BaseModel):
    subtotal: float
    shipping: float
    discount: float
    total: float


class EditResponse(BaseModel):
    success: bool
    totals: TotalsSchema
    new_edit_version: int
    cn_booked: bool
    discarded_fields: list[str] = Field(default_factory=list)


class EditRecordSchema(BaseModel):
    id: str
    order_id: str
    edit_version: int
    reason: str
    diff: dict
    edited_by: str | None = None
    actor_timezone: str | None = None
    user_agent: str | None = None
    created_at: str | None = None


class EditHistoryResponse(BaseModel):
    order_id: str
    edits: list[EditRecordSchema]


class BookingResponse(BaseModel):
    ok: bool
    tracking_number: str


class OperationResponse(BaseModel):
    ok: bool
    message: str | None = None
    data: dict = Field(default_factory=dict)


class WebhookResponse(BaseModel):
    results: list[dict]
