"""Lifecycle progression — commands and handler.

Moves a settled order through sourcing, packing, dispatch and delivery, or
down the return branch. Settlement-owned states cannot be reached here.
"""

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.order import SYSTEM_AUTHOR, Order


@fulfillment.command(part_of="Order")
class AdvanceOrder:
    """Move the order to a directly reachable status."""

    order_id = Identifier(required=True)
    next_status = String(required=True, max_length=50)
    changed_by = String(max_length=100, default=SYSTEM_AUTHOR)
    tracking_number = String(max_length=100)
    tracking_url = String(max_length=500)
    courier_provider = String(max_length=100)
    note = Text()


@fulfillment.command(part_of="Order")
class MarkReturned:
    """Close a dispatched order as returned, keeping the wallet charge as is."""

    order_id = Identifier(required=True)
    reason = Text(required=True)
    changed_by = String(max_length=100, default=SYSTEM_AUTHOR)


@fulfillment.command_handler(part_of=Order)
class ProgressionHandler:
    @handle(AdvanceOrder)
    def advance_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.advance(
            command.next_status,
            changed_by=command.changed_by or SYSTEM_AUTHOR,
            tracking_number=command.tracking_number,
            tracking_url=command.tracking_url,
            courier_provider=command.courier_provider,
            note=command.note,
        )
        repo.add(order)
        return order.status

    @handle(MarkReturned)
    def mark_returned(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.mark_returned(command.reason, changed_by=command.changed_by or SYSTEM_AUTHOR)
        repo.add(order)
        return order.status
