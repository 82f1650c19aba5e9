"""Operator wallet queue — how much each operator must top up to release parked orders.

Orders are counted in when their first shortage is recorded and counted out
when they leave AWAITING_WALLET. A repeated shortage for an order already in
the queue only adjusts the total by the difference.
"""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, Integer
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.events import FulfillmentStatusChanged, WalletShortageRecorded
from fulfillment.order.order import Order, ZenStatus


@fulfillment.projection
class OperatorWalletQueue:
    operator_id = Identifier(identifier=True, required=True)
    awaiting_count = Integer(default=0)
    total_shortage = Integer(default=0)
    suggested_top_up = Integer(default=0)
    updated_at = DateTime()


def _get_or_create(operator_id) -> OperatorWalletQueue:
    repo = current_domain.repository_for(OperatorWalletQueue)
    try:
        return repo.get(str(operator_id))
    except ObjectNotFoundError:
        return OperatorWalletQueue(operator_id=str(operator_id))


@fulfillment.projector(projector_for=OperatorWalletQueue, aggregates=[Order])
class OperatorWalletQueueProjector:
    @on(WalletShortageRecorded)
    def on_wallet_shortage_recorded(self, event):
        queue = _get_or_create(event.operator_id)
        previous = event.previous_shortage or 0
        if previous == 0:
            queue.awaiting_count = (queue.awaiting_count or 0) + 1
        queue.total_shortage = (queue.total_shortage or 0) + event.shortage - previous
        queue.suggested_top_up = queue.total_shortage
        queue.updated_at = event.recorded_at
        current_domain.repository_for(OperatorWalletQueue).add(queue)

    @on(FulfillmentStatusChanged)
    def on_status_changed(self, event):
        if event.from_status != ZenStatus.AWAITING_WALLET.value:
            return
        queue = _get_or_create(event.operator_id)
        queue.awaiting_count = max((queue.awaiting_count or 0) - 1, 0)
        queue.total_shortage = max((queue.total_shortage or 0) - (event.released_shortage or 0), 0)
        queue.suggested_top_up = queue.total_shortage
        queue.updated_at = event.changed_at
        current_domain.repository_for(OperatorWalletQueue).add(queue)
