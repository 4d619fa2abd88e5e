"""Inventory ledger port (abstract interface).

The ledger is the external system of record for stock-on-hand and reserved
quantities. The ordering domain never does inventory arithmetic itself; it
asks the ledger to release a reservation or to adjust stock for a status
change, and each call is atomic on the ledger's side.

Every call carries an idempotency key so that a retried request for the same
logical operation is applied at most once.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class LedgerResult:
    """Result of a ledger call."""

    success: bool
    error: str | None = None
    replayed: bool = False


class InventoryLedger(ABC):
    """Abstract inventory ledger interface."""

    @abstractmethod
    def release_reservation(self, order_id: str, idempotency_key: str) -> LedgerResult:
        """Release the stock reserved for an order that is being cancelled."""
        ...

    @abstractmethod
    def adjust_for_status_change(
        self,
        order_id: str,
        from_status: str,
        to_status: str,
        return_lines: dict | None,
        idempotency_key: str,
    ) -> LedgerResult:
        """Apply all inventory movements implied by a status change.

        Args:
            return_lines: {line_id: condition} when the target is
                ``returned``; conditions are ``resellable``,
                ``not_resellable`` or ``unset``.
        """
        ...
