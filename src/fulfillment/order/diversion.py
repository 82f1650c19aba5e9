"""Diversion into ZEN fulfillment — commands and handler.

RequestDiversion charges the operator's wallet for a PLATFORM_NATIVE order.
RetrySettlement re-runs the charge for an order parked in AWAITING_WALLET;
the auto-resume scanner issues it after a top-up.

Both are safe to repeat: once the order has left the source state the
command is a no-op that reports the current status.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.ledger import get_ledger
from fulfillment.order.order import SYSTEM_AUTHOR, Order, ZenStatus
from fulfillment.order.settlement import MAX_LEDGER_ATTEMPTS, settle

logger = structlog.get_logger(__name__)


def max_ledger_attempts() -> int:
    custom = current_domain.config.get("custom") or {}
    return int(custom.get("MAX_LEDGER_ATTEMPTS", MAX_LEDGER_ATTEMPTS))


@fulfillment.command(part_of="Order")
class RequestDiversion:
    """Divert a storefront order into ZEN fulfillment and charge the wallet."""

    order_id = Identifier(required=True)
    requested_by = String(max_length=100, default=SYSTEM_AUTHOR)


@fulfillment.command(part_of="Order")
class RetrySettlement:
    """Re-attempt the wallet charge for an order awaiting a top-up."""

    order_id = Identifier(required=True)
    note = Text()


@fulfillment.command_handler(part_of=Order)
class DiversionHandler:
    @handle(RequestDiversion)
    def request_diversion(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if order.current_status != ZenStatus.PLATFORM_NATIVE:
            logger.info(
                "Diversion already processed",
                order_id=str(order.id),
                status=order.status,
            )
            return order.status

        order.add_note(command.requested_by or SYSTEM_AUTHOR, "Diversion to ZEN fulfillment requested")
        settle(order, get_ledger(), max_attempts=max_ledger_attempts())
        repo.add(order)
        return order.status

    @handle(RetrySettlement)
    def retry_settlement(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if order.current_status != ZenStatus.AWAITING_WALLET:
            logger.info(
                "Order no longer awaiting wallet, retry skipped",
                order_id=str(order.id),
                status=order.status,
            )
            return order.status

        if command.note:
            order.add_note(SYSTEM_AUTHOR, command.note)
        settle(order, get_ledger(), max_attempts=max_ledger_attempts())
        repo.add(order)
        return order.status
