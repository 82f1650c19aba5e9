"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state — no cross-user sharing.
State tracks ids returned by the webhook endpoint so follow-up operations
can reference them.
"""

from dataclasses import dataclass


@dataclass
class ZenOrderState:
    """Tracks state for a single simulated order diversion."""

    store_connection_id: str | None = None
    operator_id: str | None = None
    platform_order_id: int | None = None
    order_id: str | None = None
    required_amount: int = 0
    current_status: str = "platform_native"
