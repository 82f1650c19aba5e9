"""Order domain events — immutable facts about diversion, settlement and fulfillment.

All events are past tense, versioned, and carry enough data for projectors
and for the notification subscriber without reloading the order.
"""

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from fulfillment.domain import fulfillment


@fulfillment.event(part_of="Order")
class OrderIngested:
    """A storefront order was captured for the first time."""

    __version__ = 1

    order_id = Identifier(required=True)
    store_connection_id = Identifier(required=True)
    platform_order_id = String(required=True)
    platform_order_name = String()
    operator_id = Identifier(required=True)
    line_item_count = Integer(default=0)
    total = Integer(default=0)
    currency = String()
    ingested_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderSnapshotRefreshed:
    """A corrective update from the storefront replaced the commerce snapshot."""

    __version__ = 1

    order_id = Identifier(required=True)
    platform_order_id = String(required=True)
    financial_status = String()
    platform_fulfillment_status = String()
    total = Integer(default=0)
    refreshed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class FulfillmentCostsSet:
    """Operations staff priced the fulfillment before diversion."""

    __version__ = 1

    order_id = Identifier(required=True)
    product_cost = Integer(default=0)
    shipping_cost = Integer(default=0)
    service_fee = Integer(default=0)
    required_amount = Integer(default=0)
    set_by = String()
    set_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class WalletCharged:
    """The operator's wallet was debited for this order."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    store_connection_id = Identifier(required=True)
    platform_order_id = String(required=True)
    amount = Integer(default=0)
    transaction_ref = String(required=True)
    charged_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class WalletShortageRecorded:
    """The wallet could not cover the charge; the order is waiting for a top-up."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    required_amount = Integer(default=0)
    available = Integer(default=0)
    shortage = Integer(required=True)
    previous_shortage = Integer(default=0)
    recorded_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class SettlementFlaggedForReview:
    """The ledger outcome of a debit could not be determined."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    reason = Text(required=True)
    flagged_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class FulfillmentStatusChanged:
    """The order moved along one edge of the lifecycle."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    changed_by = String(required=True)
    wallet_shortage = Integer(default=0)
    released_shortage = Integer(default=0)
    changed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class TrackingUpdated:
    """Courier tracking details were recorded."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_number = String()
    tracking_url = String()
    courier_provider = String()
    updated_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderAssigned:
    """An operations staff member took ownership of the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    assigned_to = String(required=True)
    assigned_by = String()
    assigned_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderFlagsUpdated:
    """Operations marked the order as priority or as having an issue."""

    __version__ = 1

    order_id = Identifier(required=True)
    is_priority = Boolean(default=False)
    has_issue = Boolean(default=False)
    issue_description = Text()
    updated_by = String()
    updated_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class InternalNoteAdded:
    """An entry was appended to the order's audit trail."""

    __version__ = 1

    order_id = Identifier(required=True)
    author_id = String(required=True)
    content = Text(required=True)
    added_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderDelivered:
    """The courier confirmed delivery to the customer."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    wallet_charge_amount = Integer(default=0)
    wallet_transaction_ref = String()
    delivered_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderReturned:
    """The order came back; the wallet charge is left untouched."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    reason = Text()
    wallet_charge_amount = Integer(default=0)
    wallet_transaction_ref = String()
    returned_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderRtoDelivered:
    """A return-to-origin shipment reached the warehouse."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    wallet_charge_amount = Integer(default=0)
    wallet_transaction_ref = String()
    rto_delivered_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderFailed:
    """The order was closed without being fulfilled."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    reason = Text(required=True)
    needs_manual_review = Boolean(default=False)
    failed_at = DateTime(required=True)
