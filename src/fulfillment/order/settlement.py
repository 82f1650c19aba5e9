"""Wallet settlement — compute the charge, debit the ledger, reconcile the outcome.

Every debit uses the order's natural key as idempotency key, so a repeated
attempt for the same order can never move money twice. A timed-out debit is
never treated as a failure: the ledger is asked what it recorded for the key
before anything else happens.

    recorded debit      → the original outcome is used
    nothing recorded    → the debit never happened; retry with the same key
    lookup also fails   → Ambiguous; the order is failed for manual review

When every attempt ends in "nothing recorded" (or the ledger refuses the
connection), ``LedgerUnavailable`` is raised and the order is left alone.
"""

from dataclasses import dataclass

import structlog

from fulfillment.ledger.port import (
    DebitResult,
    LedgerConnectionError,
    LedgerError,
    WalletLedger,
)
from fulfillment.order.exceptions import LedgerUnavailable
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)

MAX_LEDGER_ATTEMPTS = 3
NO_CHARGE_REF = "no-charge"


@dataclass(frozen=True)
class Charged:
    amount: int
    transaction_ref: str


@dataclass(frozen=True)
class InsufficientFunds:
    required: int
    available: int

    @property
    def shortage(self) -> int:
        return self.required - self.available


@dataclass(frozen=True)
class Ambiguous:
    reason: str


ChargeOutcome = Charged | InsufficientFunds | Ambiguous


def compute_required(order: Order) -> int:
    """Product cost + shipping cost + service fee, in minor units."""
    return order.required_amount()


def idempotency_key(order: Order) -> str:
    return order.natural_key


def _to_outcome(result: DebitResult, required: int) -> ChargeOutcome:
    if not result.applied:
        return InsufficientFunds(required=required, available=result.available or 0)
    if result.amount != required:
        return Ambiguous(
            f"ledger holds a debit of {result.amount} for {result.idempotency_key} but {required} is required"
        )
    return Charged(amount=result.amount, transaction_ref=result.transaction_ref)


def attempt_charge(order: Order, ledger: WalletLedger, max_attempts: int = MAX_LEDGER_ATTEMPTS) -> ChargeOutcome:
    """Debit the operator's wallet for ``order`` and classify the outcome.

    Does not touch the order. Raises ``LedgerUnavailable`` when the ledger
    definitely did not apply the debit.
    """
    required = compute_required(order)
    if required == 0:
        return Charged(amount=0, transaction_ref=NO_CHARGE_REF)

    key = idempotency_key(order)
    operator_id = str(order.operator_id)
    last_error: LedgerError | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = ledger.debit(operator_id, required, key)
        except LedgerConnectionError as exc:
            logger.warning("Wallet ledger unreachable", order_id=str(order.id), attempt=attempt, error=str(exc))
            raise LedgerUnavailable(str(exc)) from exc
        except LedgerError as exc:
            logger.warning(
                "Wallet debit outcome unknown, querying ledger",
                order_id=str(order.id),
                idempotency_key=key,
                attempt=attempt,
                error=str(exc),
            )
            try:
                recorded = ledger.lookup(key)
            except LedgerError as lookup_exc:
                return Ambiguous(f"debit failed with '{exc}' and lookup failed with '{lookup_exc}'")
            if recorded is not None:
                return _to_outcome(recorded, required)
            last_error = exc
            continue

        return _to_outcome(result, required)

    raise LedgerUnavailable(f"Wallet debit not applied after {max_attempts} attempts: {last_error}")


def settle(order: Order, ledger: WalletLedger, max_attempts: int = MAX_LEDGER_ATTEMPTS) -> ChargeOutcome:
    """Run one settlement attempt and apply its outcome to ``order``."""
    order.record_settlement_attempt()
    outcome = attempt_charge(order, ledger, max_attempts=max_attempts)

    if isinstance(outcome, Charged):
        order.record_charge(outcome.amount, outcome.transaction_ref)
        logger.info(
            "Wallet charged",
            order_id=str(order.id),
            operator_id=str(order.operator_id),
            amount=outcome.amount,
            transaction_ref=outcome.transaction_ref,
        )
    elif isinstance(outcome, InsufficientFunds):
        order.record_shortage(outcome.required, outcome.available)
        logger.info(
            "Insufficient wallet balance, order parked",
            order_id=str(order.id),
            operator_id=str(order.operator_id),
            required=outcome.required,
            available=outcome.available,
            shortage=outcome.shortage,
        )
    else:
        order.flag_for_manual_review(outcome.reason)
        logger.error(
            "Wallet debit ambiguous, order flagged for manual review",
            order_id=str(order.id),
            operator_id=str(order.operator_id),
            reason=outcome.reason,
        )
    return outcome
