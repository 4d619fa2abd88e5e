"""Leopards Courier adapter (merchant API v2).

Configuration is read from the environment when the adapter is built:

    LEOPARDS_API_BASE        API base URL
    LEOPARDS_API_KEY         merchant API key
    LEOPARDS_API_PASSWORD    merchant API password
    LEOPARDS_ORIGIN_CITY     origin city code for pickups
    LEOPARDS_WEBHOOK_SECRET  shared secret sent in X-Leopards-Secret
"""

import os
from datetime import UTC, datetime

import httpx
import structlog

from ordering.courier.port import BookingResult, CityListResult, CourierCity, CourierPort

logger = structlog.get_logger(__name__)

DEFAULT_API_BASE = "https://merchantapi.leopardscourier.com/api"
DEFAULT_ORIGIN_CITY = "789"  # Lahore
DEFAULT_PACKET_WEIGHT = 500  # grams


class LeopardsCourier(CourierPort):
    api_type = "leopards"

    def __init__(
        self,
        api_key: str,
        api_password: str,
        api_base: str = DEFAULT_API_BASE,
        origin_city: str = DEFAULT_ORIGIN_CITY,
        webhook_secret: str | None = None,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key or not api_password:
            raise ValueError("Leopards API credentials not configured")
        self.api_key = api_key
        self.api_password = api_password
        self.api_base = api_base.rstrip("/")
        self.origin_city = origin_city
        self.webhook_secret = webhook_secret
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @classmethod
    def from_env(cls) -> "LeopardsCourier":
        return cls(
            api_key=os.environ.get("LEOPARDS_API_KEY", ""),
            api_password=os.environ.get("LEOPARDS_API_PASSWORD", ""),
            api_base=os.environ.get("LEOPARDS_API_BASE", DEFAULT_API_BASE),
            origin_city=os.environ.get("LEOPARDS_ORIGIN_CITY", DEFAULT_ORIGIN_CITY),
            webhook_secret=os.environ.get("LEOPARDS_WEBHOOK_SECRET"),
        )

    def _post(self, endpoint: str, payload: dict) -> dict:
        body = {"api_key": self.api_key, "api_password": self.api_password, **payload}
        response = self._client.post(f"{self.api_base}/{endpoint}/", json=body)
        response.raise_for_status()
        return response.json()

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
        # The merchant API has no idempotency header; the order reference is
        # the closest dedup handle it offers.
        payload = {
            "booked_packet_weight": DEFAULT_PACKET_WEIGHT,
            "booked_packet_no_piece": 1,
            "booked_packet_collect_amount": collect_amount,
            "booked_packet_order_id": reference_number,
            "origin_city": self.origin_city,
            "destination_city": destination_city_code,
            "shipment_name_eng": consignee_name,
            "shipment_email": "",
            "shipment_phone": consignee_phone,
            "shipment_address": consignee_address,
            "booking_date": datetime.now(UTC).date().isoformat(),
            "special_handling": "",
            "shipment_type": product_type,
            "remarks": "",
        }
        result = self._post("bookPacket", payload)
        packets = result.get("packet_list") or []
        if result.get("status") != 1 or not packets:
            return BookingResult(
                success=False,
                error=result.get("message") or "Booking failed - no tracking number returned",
                raw=result,
            )
        return BookingResult(
            success=True,
            tracking_number=packets[0].get("track_number"),
            slip_url=packets[0].get("slip_link"),
            raw=result,
        )

    def get_cities(self) -> CityListResult:
        result = self._post("getAllCities", {})
        cities = result.get("city_list") or []
        if result.get("status") != 1 or not cities:
            return CityListResult(success=False, error=result.get("message") or "No cities returned from Leopards")
        return CityListResult(
            success=True,
            cities=[CourierCity(code=str(city["id"]), name=city["name"]) for city in cities],
        )

    def verify_webhook_secret(self, secret: str | None) -> bool:
        if not self.webhook_secret:
            logger.error("Leopards webhook secret not configured")
            return False
        return secret == self.webhook_secret
