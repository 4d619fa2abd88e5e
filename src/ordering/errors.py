"""Error taxonomy and structured results for order lifecycle operations.

Command handlers raise the exceptions below internally and convert them into
result objects at their boundary, so callers always receive a structured
outcome instead of an exception. None of these are retried automatically.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum


class ErrorCode(Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INVALID_STATUS = "INVALID_STATUS"
    CONCURRENCY_ERROR = "CONCURRENCY_ERROR"
    ALREADY_BOOKED = "ALREADY_BOOKED"
    COURIER_MISMATCH = "COURIER_MISMATCH"
    MISSING_CITY_MAPPING = "MISSING_CITY_MAPPING"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    SERVICE_ERROR = "SERVICE_ERROR"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
class OrderLifecycleError(Exception):
    """Base class for every failure surfaced by the lifecycle core."""

    code = ErrorCode.SERVICE_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(OrderLifecycleError):
    """Malformed input; no side effect has been attempted."""

    code = ErrorCode.VALIDATION


class StateError(OrderLifecycleError):
    """The order's current state does not allow the operation."""

    code = ErrorCode.INVALID_TRANSITION


class ConcurrencyError(OrderLifecycleError):
    """The caller's edit_version is stale. Re-fetch and retry."""

    code = ErrorCode.CONCURRENCY_ERROR


class NotFoundError(OrderLifecycleError):
    code = ErrorCode.NOT_FOUND


class ExternalServiceError(OrderLifecycleError):
    """The ledger or courier call failed, was rejected, or raised."""

    code = ErrorCode.EXTERNAL_SERVICE_ERROR


class PersistenceError(OrderLifecycleError):
    """A write failed.

    Raised with ``PERSISTENCE_ERROR`` when an external effect has already
    succeeded, which leaves local state behind the external system and needs
    human reconciliation.
    """

    code = ErrorCode.SERVICE_ERROR


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class StatusChangeResult:
    ok: bool
    status: str | None = None
    transition: str | None = None
    message: str | None = None
    error_code: str | None = None

    @classmethod
    def failure(cls, error: OrderLifecycleError) -> "StatusChangeResult":
        return cls(ok=False, message=error.message, error_code=error.code.value)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class EditResult:
    success: bool
    totals: dict | None = None
    new_edit_version: int | None = None
    cn_booked: bool = False
    discarded_fields: list[str] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def failure(cls, error: OrderLifecycleError) -> "EditResult":
        return cls(success=False, error=error.message, error_code=error.code.value)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BookingOutcome:
    ok: bool
    tracking_number: str | None = None
    message: str | None = None
    error_code: str | None = None

    @classmethod
    def failure(cls, error: OrderLifecycleError, tracking_number: str | None = None) -> "BookingOutcome":
        return cls(
            ok=False,
            tracking_number=tracking_number,
            message=error.message,
            error_code=error.code.value,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class OperationResult:
    """Outcome of the supplementary courier operations (assignment, city import, tracking sync)."""

    ok: bool
    message: str | None = None
    error_code: str | None = None
    data: dict = field(default_factory=dict)

    @classmethod
    def failure(cls, error: OrderLifecycleError) -> "OperationResult":
        return cls(ok=False, message=error.message, error_code=error.code.value)

    def to_dict(self) -> dict:
        return asdict(self)
