"""Cross-domain event contracts for Fulfillment domain events.

These classes define the event shape for consumption by other domains
(e.g., the Notifications domain telling an operator that a wallet charge
went through or that an order closed). They are registered as external
events via domain.register_external_event() with matching __type__ strings
so Protean's stream deserialization works correctly.

The source-of-truth events are in src/fulfillment/order/events.py.
"""

from protean.core.event import BaseEvent
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text


class WalletCharged(BaseEvent):
    """The operator's wallet was debited for an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    store_connection_id = Identifier(required=True)
    platform_order_id = String(required=True)
    amount = Integer(default=0)
    transaction_ref = String(required=True)
    charged_at = DateTime(required=True)


class WalletShortageRecorded(BaseEvent):
    """An order is waiting for the operator to top up the wallet."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    required_amount = Integer(default=0)
    available = Integer(default=0)
    shortage = Integer(required=True)
    previous_shortage = Integer(default=0)
    recorded_at = DateTime(required=True)


class OrderDelivered(BaseEvent):
    """The courier confirmed delivery to the customer."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    wallet_charge_amount = Integer(default=0)
    wallet_transaction_ref = String()
    delivered_at = DateTime(required=True)


class OrderReturned(BaseEvent):
    """The order came back to the operator."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    reason = Text()
    wallet_charge_amount = Integer(default=0)
    wallet_transaction_ref = String()
    returned_at = DateTime(required=True)


class OrderRtoDelivered(BaseEvent):
    """A return-to-origin shipment reached the warehouse."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    wallet_charge_amount = Integer(default=0)
    wallet_transaction_ref = String()
    rto_delivered_at = DateTime(required=True)


class OrderFailed(BaseEvent):
    """The order was closed without being fulfilled."""

    __version__ = 1

    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)
    reason = Text(required=True)
    needs_manual_review = Boolean(default=False)
    failed_at = DateTime(required=True)
