"""Cross-domain event contracts for Wallet Ledger events.

The ledger is an external service; these classes describe the events it
publishes on the ``wallet::ledger`` stream. They are registered as external
events via domain.register_external_event() with matching __type__ strings
so Protean's stream deserialization works correctly.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Identifier, Integer, String


class WalletCredited(BaseEvent):
    """An operator topped up their prepaid wallet."""

    __version__ = 1

    operator_id = Identifier(required=True)
    amount = Integer(required=True)
    transaction_ref = String(required=True)
    balance_after = Integer()
    credited_at = DateTime(required=True)
