"""Fake courier adapter: deterministic courier for testing and development.

Generates mock tracking numbers and records every booking request.
Configurable success, rejection and exception behavior for integration
testing of the booking guard.
"""

from uuid import uuid4

from ordering.courier.port import BookingResult, CityListResult, CourierCity, CourierPort


class FakeCourier(CourierPort):
    """Fake courier that always books successfully by default."""

    def __init__(self, api_type: str = "leopards", webhook_secret: str = "fake-secret"):
        self.api_type = api_type
        self.webhook_secret = webhook_secret
        self.should_succeed = True
        self.failure_reason = "Courier unavailable"
        self.raise_error: Exception | None = None
        self.cities = [
            CourierCity(code="789", name="Lahore"),
            CourierCity(code="475", name="Karachi"),
            CourierCity(code="632", name="Islamabad"),
        ]
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Courier unavailable",
        raise_error: Exception | None = None,
    ):
        """Configure the fake courier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_error = raise_error

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
        self.calls.append(
            {
                "method": "book",
                "consignee_name": consignee_name,
                "consignee_phone": consignee_phone,
                "consignee_address": consignee_address,
                "destination_city_code": destination_city_code,
                "reference_number": reference_number,
                "collect_amount": collect_amount,
                "product_type": product_type,
                "idempotency_key": idempotency_key,
            }
        )

        if self.raise_error is not None:
            raise self.raise_error

        if not self.should_succeed:
            return BookingResult(
                success=False,
                error=self.failure_reason,
                raw={"status": 0, "message": self.failure_reason},
            )

        tracking_number = f"LE{uuid4().hex[:10].upper()}"
        return BookingResult(
            success=True,
            tracking_number=tracking_number,
            slip_url=f"https://fake-courier.example.com/slips/{tracking_number}.pdf",
            raw={
                "status": 1,
                "message": "Booked",
                "packet_list": [{"track_number": tracking_number}],
            },
        )

    def get_cities(self) -> CityListResult:
        self.calls.append({"method": "get_cities"})
        if not self.should_succeed:
            return CityListResult(success=False, error=self.failure_reason)
        return CityListResult(success=True, cities=list(self.cities))

    def verify_webhook_secret(self, secret: str | None) -> bool:
        return bool(secret) and secret == self.webhook_secret
