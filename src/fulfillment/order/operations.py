"""Operations staff actions — notes, assignment, flags, tracking and costs."""

from protean import handle
from protean.fields import Boolean, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.order import Order


@fulfillment.command(part_of="Order")
class AddInternalNote:
    order_id = Identifier(required=True)
    author_id = String(required=True, max_length=100)
    content = Text(required=True)


@fulfillment.command(part_of="Order")
class AssignOrder:
    order_id = Identifier(required=True)
    assigned_to = String(required=True, max_length=100)
    assigned_by = String(max_length=100)


@fulfillment.command(part_of="Order")
class UpdateTracking:
    """Record courier tracking details on a dispatched order."""

    order_id = Identifier(required=True)
    tracking_number = String(max_length=100)
    tracking_url = String(max_length=500)
    courier_provider = String(max_length=100)


@fulfillment.command(part_of="Order")
class UpdateOrderFlags:
    order_id = Identifier(required=True)
    is_priority = Boolean()
    has_issue = Boolean()
    issue_description = Text()
    updated_by = String(max_length=100)


@fulfillment.command(part_of="Order")
class SetFulfillmentCosts:
    """Price the fulfillment in minor units before diversion."""

    order_id = Identifier(required=True)
    product_cost = Integer(required=True, min_value=0)
    shipping_cost = Integer(required=True, min_value=0)
    service_fee = Integer(default=0, min_value=0)
    set_by = String(max_length=100)


@fulfillment.command_handler(part_of=Order)
class OperationsHandler:
    @handle(AddInternalNote)
    def add_internal_note(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        note = order.add_note(command.author_id, command.content)
        repo.add(order)
        return str(note.id)

    @handle(AssignOrder)
    def assign_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.assign(command.assigned_to, assigned_by=command.assigned_by)
        repo.add(order)

    @handle(UpdateTracking)
    def update_tracking(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.update_tracking(
            tracking_number=command.tracking_number,
            tracking_url=command.tracking_url,
            courier_provider=command.courier_provider,
        )
        repo.add(order)

    @handle(UpdateOrderFlags)
    def update_order_flags(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.update_flags(
            is_priority=command.is_priority,
            has_issue=command.has_issue,
            issue_description=command.issue_description,
            updated_by=command.updated_by,
        )
        repo.add(order)

    @handle(SetFulfillmentCosts)
    def set_fulfillment_costs(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.set_costs(
            product_cost=command.product_cost,
            shipping_cost=command.shipping_cost,
            service_fee=command.service_fee or 0,
            set_by=command.set_by or "",
        )
        repo.add(order)
        return order.required_amount()
