"""In-memory wallet ledger for development and testing.

Behaves like the real ledger where it matters to settlement: debits are
keyed by idempotency key, insufficient balance is reported with the amount
available, and repeated keys return the original outcome. Failure modes can
be switched on at runtime to exercise the timeout and outage paths:

- ``timeout_after_commit``: apply the debit, then raise ``LedgerTimeout``
- ``timeout_before_commit``: raise ``LedgerTimeout`` without applying
- ``unavailable``: raise ``LedgerConnectionError`` on every debit
- ``lookup_fails``: raise ``LedgerTimeout`` from ``lookup``

Each failure flag can be limited to the next N calls with ``failure_count``.
"""

import threading
from uuid import uuid4

from fulfillment.ledger.port import (
    DebitResult,
    DebitStatus,
    LedgerConnectionError,
    LedgerTimeout,
    WalletLedger,
)


class FakeWalletLedger(WalletLedger):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._balances: dict[str, int] = {}
        self._debits: dict[str, DebitResult] = {}
        self.transactions: list[dict] = []
        self.calls: list[dict] = []
        self.configure()

    def configure(
        self,
        timeout_after_commit: bool = False,
        timeout_before_commit: bool = False,
        unavailable: bool = False,
        lookup_fails: bool = False,
        failure_count: int | None = None,
    ) -> None:
        """Switch failure injection on or off. ``failure_count=None`` means every call."""
        self.timeout_after_commit = timeout_after_commit
        self.timeout_before_commit = timeout_before_commit
        self.unavailable = unavailable
        self.lookup_fails = lookup_fails
        self.failure_count = failure_count

    def _consume_failure(self) -> bool:
        if self.failure_count is None:
            return True
        if self.failure_count <= 0:
            return False
        self.failure_count -= 1
        return True

    def debit(self, operator_id: str, amount: int, idempotency_key: str) -> DebitResult:
        with self._lock:
            self.calls.append(
                {
                    "method": "debit",
                    "operator_id": operator_id,
                    "amount": amount,
                    "idempotency_key": idempotency_key,
                }
            )

            if self.unavailable and self._consume_failure():
                raise LedgerConnectionError("Wallet ledger unreachable")
            if self.timeout_before_commit and self._consume_failure():
                raise LedgerTimeout("Wallet ledger did not answer in time")

            existing = self._debits.get(idempotency_key)
            if existing is not None:
                return existing

            available = self._balances.get(operator_id, 0)
            if available < amount:
                return DebitResult(
                    status=DebitStatus.INSUFFICIENT_FUNDS,
                    idempotency_key=idempotency_key,
                    amount=amount,
                    available=available,
                )

            balance_after = available - amount
            self._balances[operator_id] = balance_after
            result = DebitResult(
                status=DebitStatus.APPLIED,
                idempotency_key=idempotency_key,
                amount=amount,
                transaction_ref=f"wtx_{uuid4().hex[:12]}",
                balance_after=balance_after,
            )
            self._debits[idempotency_key] = result
            self.transactions.append(
                {
                    "type": "debit",
                    "operator_id": operator_id,
                    "amount": amount,
                    "reference": idempotency_key,
                    "transaction_ref": result.transaction_ref,
                    "balance_before": available,
                    "balance_after": balance_after,
                }
            )

            if self.timeout_after_commit and self._consume_failure():
                raise LedgerTimeout("Wallet ledger did not answer in time")
            return result

    def lookup(self, idempotency_key: str) -> DebitResult | None:
        with self._lock:
            self.calls.append({"method": "lookup", "idempotency_key": idempotency_key})
            if self.lookup_fails:
                raise LedgerTimeout("Wallet ledger lookup did not answer in time")
            return self._debits.get(idempotency_key)

    def credit(self, operator_id: str, amount: int, reference: str) -> str:
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        with self._lock:
            balance_before = self._balances.get(operator_id, 0)
            self._balances[operator_id] = balance_before + amount
            transaction_ref = f"wtx_{uuid4().hex[:12]}"
            self.transactions.append(
                {
                    "type": "credit",
                    "operator_id": operator_id,
                    "amount": amount,
                    "reference": reference,
                    "transaction_ref": transaction_ref,
                    "balance_before": balance_before,
                    "balance_after": balance_before + amount,
                }
            )
            return transaction_ref

    def balance(self, operator_id: str) -> int:
        with self._lock:
            return self._balances.get(operator_id, 0)

    def debits_for(self, operator_id: str) -> list[dict]:
        """Applied debit transactions for one operator, oldest first."""
        return [t for t in self.transactions if t["type"] == "debit" and t["operator_id"] == operator_id]
