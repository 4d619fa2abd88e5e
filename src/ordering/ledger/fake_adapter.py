"""Configurable fake inventory ledger for development and testing.

Records every call and can be configured to reject or to raise, so tests can
assert exactly which ledger calls a status change produced. Calls repeating
an idempotency key return the first outcome without being applied again.
"""

from ordering.ledger.port import InventoryLedger, LedgerResult


class FakeLedger(InventoryLedger):
    """In-memory ledger that accepts every call by default."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Insufficient stock"
        self.raise_error: Exception | None = None
        self.calls: list[dict] = []
        self._outcomes: dict[str, LedgerResult] = {}

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Insufficient stock",
        raise_error: Exception | None = None,
    ) -> None:
        """Configure ledger behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_error = raise_error

    def calls_for(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def release_reservation(self, order_id: str, idempotency_key: str) -> LedgerResult:
        self.calls.append(
            {
                "method": "release_reservation",
                "order_id": order_id,
                "idempotency_key": idempotency_key,
            }
        )
        return self._outcome(idempotency_key)

    def adjust_for_status_change(
        self,
        order_id: str,
        from_status: str,
        to_status: str,
        return_lines: dict | None,
        idempotency_key: str,
    ) -> LedgerResult:
        self.calls.append(
            {
                "method": "adjust_for_status_change",
                "order_id": order_id,
                "from_status": from_status,
                "to_status": to_status,
                "return_lines": return_lines,
                "idempotency_key": idempotency_key,
            }
        )
        return self._outcome(idempotency_key)

    def _outcome(self, idempotency_key: str) -> LedgerResult:
        if idempotency_key in self._outcomes:
            previous = self._outcomes[idempotency_key]
            return LedgerResult(success=previous.success, error=previous.error, replayed=True)

        if self.raise_error is not None:
            raise self.raise_error

        if self.should_succeed:
            result = LedgerResult(success=True)
        else:
            result = LedgerResult(success=False, error=self.failure_reason)
        self._outcomes[idempotency_key] = result
        return result
