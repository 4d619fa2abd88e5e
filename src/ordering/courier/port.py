"""Courier port: abstract interface for courier partner integrations.

The booking guard programs against this port; adapters are swapped via
configuration. Each adapter declares its ``api_type`` so the guard can refuse
orders assigned to a courier of a different integration type.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class BookingResult:
    """Outcome of a booking request accepted or rejected by the courier."""

    success: bool
    tracking_number: str | None = None
    slip_url: str | None = None
    error: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CourierCity:
    code: str
    name: str


@dataclass(frozen=True)
class CityListResult:
    success: bool
    cities: list[CourierCity] = field(default_factory=list)
    error: str | None = None


class CourierPort(ABC):
    """Abstract interface for courier adapters."""

    api_type: str = ""

    @abstractmethod
    def book(
        self,
        consignee_name: str,
        consignee_phone: str,
        consignee_address: str,
        destination_city_code: str,
        reference_number: str,
        collect_amount: float,
        product_type: str = "COD",
        idempotency_key: str | None = None,
    ) -> BookingResult:
        """Book a shipment.

        May raise on transport errors; the caller treats that as
        "effect unknown" and never retries on its own.
        """
        ...

    @abstractmethod
    def get_cities(self) -> CityListResult:
        """List the destination cities the courier serves."""
        ...

    @abstractmethod
    def verify_webhook_secret(self, secret: str | None) -> bool:
        """Verify that a tracking webhook call is authentic."""
        ...


def map_courier_status(courier_status: str | None) -> str | None:
    """Map a courier tracking status to an order status.

    Statuses like "Booked", "Arrived at Station" or "Out for Delivery" leave
    the order where it is and map to None.
    """
    status = (courier_status or "").lower()
    if "delivered" in status:
        return "delivered"
    if "return" in status and "transit" in status:
        return "return_in_transit"
    if "returned" in status:
        return "returned"
    return None
