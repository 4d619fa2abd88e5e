"""Inventory ledger factory.

Provides get_ledger() / set_ledger() to swap implementations. The concrete
ledger lives outside this service; deployments register their adapter with
set_ledger(). LEDGER_ADAPTER selects a built-in adapter ("fake" by default).
"""

import os

from ordering.ledger.port import InventoryLedger

_current_ledger: InventoryLedger | None = None


def get_ledger() -> InventoryLedger:
    """Return the configured inventory ledger (singleton)."""
    global _current_ledger
    if _current_ledger is None:
        adapter = os.environ.get("LEDGER_ADAPTER", "fake")
        if adapter == "fake":
            from ordering.ledger.fake_adapter import FakeLedger

            _current_ledger = FakeLedger()
        else:
            raise ValueError(f"Unknown ledger adapter: {adapter}")
    return _current_ledger


def set_ledger(ledger: InventoryLedger) -> None:
    """Override the active ledger (production wiring and tests)."""
    global _current_ledger
    _current_ledger = ledger


def reset_ledger() -> None:
    """Reset to the default ledger."""
    global _current_ledger
    _current_ledger = None
