"""Courier adapter abstraction: pluggable courier partner integration."""

import os

from ordering.courier.port import CourierPort

_courier_instance: CourierPort | None = None


def get_courier() -> CourierPort:
    """Return the configured courier adapter (singleton).

    Uses FakeCourier by default. In production, set COURIER_ADAPTER=leopards
    and the LEOPARDS_* credentials.
    """
    global _courier_instance
    if _courier_instance is None:
        adapter = os.environ.get("COURIER_ADAPTER", "fake")
        if adapter == "fake":
            from ordering.courier.fake_adapter import FakeCourier

            _courier_instance = FakeCourier()
        elif adapter == "leopards":
            from ordering.courier.leopards_adapter import LeopardsCourier

            _courier_instance = LeopardsCourier.from_env()
        else:
            raise ValueError(f"Unknown courier adapter: {adapter}")
    return _courier_instance


def set_courier(courier: CourierPort) -> None:
    """Override the active courier adapter (useful for tests)."""
    global _courier_instance
    _courier_instance = courier


def reset_courier():
    """Reset the courier singleton (useful for testing)."""
    global _courier_instance
    _courier_instance = None
