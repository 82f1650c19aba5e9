"""Order lifecycle and settlement errors.

Validation-style failures subclass Protean's ``ValidationError`` so the API
layer maps them to 400 responses without extra wiring. Ledger availability
is a separate family: those errors mean no state was touched and the caller
may simply try again later.
"""

from protean.exceptions import ValidationError


class InvalidTransition(ValidationError):
    """Requested status change is not an edge of the lifecycle table."""

    def __init__(self, current: str, target: str, reason: str | None = None):
        self.current = current
        self.target = target
        message = reason or f"Cannot transition from {current} to {target}"
        super().__init__({"status": [message]})


class DuplicateOrder(ValidationError):
    """An order with the same storefront natural key already exists."""

    def __init__(self, store_connection_id: str, platform_order_id: str, existing_id: str | None = None):
        self.store_connection_id = store_connection_id
        self.platform_order_id = platform_order_id
        self.existing_id = existing_id
        super().__init__(
            {
                "platform_order_id": [
                    f"Order {platform_order_id} already ingested for store connection {store_connection_id}"
                ]
            }
        )


class LedgerUnavailable(Exception):
    """The wallet ledger definitely did not apply the debit; safe to retry later."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
