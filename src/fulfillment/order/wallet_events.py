"""Inbound cross-domain event handler — Fulfillment reacts to Wallet Ledger events.

A wallet credit may be enough to release orders parked in AWAITING_WALLET,
so every WalletCredited event starts an auto-resume scan for that operator.

Cross-domain events are imported from shared.events.wallet and registered
as external events via fulfillment.register_external_event().
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle
from shared.events.wallet import WalletCredited

from fulfillment.domain import fulfillment
from fulfillment.order.auto_resume import ResumeAwaitingOrders
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)

fulfillment.register_external_event(WalletCredited, "Wallet.WalletCredited.v1")


@fulfillment.event_handler(part_of=Order, stream_category="wallet::ledger")
class WalletLedgerEventHandler:
    """Reacts to events published by the wallet ledger."""

    @handle(WalletCredited)
    def on_wallet_credited(self, event: WalletCredited) -> dict:
        logger.info(
            "Wallet credited, resuming awaiting orders",
            operator_id=str(event.operator_id),
            amount=event.amount,
            transaction_ref=event.transaction_ref,
        )
        return current_domain.process(
            ResumeAwaitingOrders(operator_id=str(event.operator_id)),
            asynchronous=False,
        )
