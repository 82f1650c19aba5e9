"""Fulfillment bounded context — Order Diversion and Wallet Settlement.

Takes orders placed on a connected storefront, diverts them into the
internally operated fulfillment pipeline, charges the operator's prepaid
wallet exactly once, and tracks each order from sourcing to delivery (or
return). Uses CQRS because the lifecycle is linear and the wallet ledger
owns balance state.
"""

from protean.domain import Domain

from fulfillment.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

fulfillment = Domain(name="fulfillment")
