"""Wallet ledger port (abstract interface).

The ledger owns operator balances. Fulfillment only ever observes a balance
through the result of a debit; it never caches one. Every debit carries an
idempotency key, and the ledger guarantees that a repeated key returns the
original outcome instead of moving money twice.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class DebitStatus(Enum):
    APPLIED = "applied"
    INSUFFICIENT_FUNDS = "insufficient_funds"


@dataclass(frozen=True)
class DebitResult:
    """Outcome the ledger recorded for one idempotency key."""

    status: DebitStatus
    idempotency_key: str
    amount: int
    transaction_ref: str | None = None
    available: int | None = None
    balance_after: int | None = None

    @property
    def applied(self) -> bool:
        return self.status == DebitStatus.APPLIED


class LedgerError(Exception):
    """Base class for ledger communication failures."""


class LedgerTimeout(LedgerError):
    """No answer within the bounded timeout; the debit may or may not have happened."""


class LedgerConnectionError(LedgerError):
    """The request never reached the ledger, so nothing was applied."""


class WalletLedger(ABC):
    """Abstract wallet ledger interface."""

    @abstractmethod
    def debit(self, operator_id: str, amount: int, idempotency_key: str) -> DebitResult:
        """Debit ``amount`` minor units from the operator's wallet.

        Insufficient balance is a normal result (``INSUFFICIENT_FUNDS`` with
        ``available`` set), not an exception. Raises ``LedgerTimeout`` or
        ``LedgerConnectionError`` when the outcome could not be received.
        """
        ...

    @abstractmethod
    def lookup(self, idempotency_key: str) -> DebitResult | None:
        """Return the applied debit recorded for ``idempotency_key``, or None."""
        ...

    @abstractmethod
    def credit(self, operator_id: str, amount: int, reference: str) -> str:
        """Top up the operator's wallet. Returns the ledger transaction reference."""
        ...

    @abstractmethod
    def balance(self, operator_id: str) -> int:
        """Current balance in minor units."""
        ...
