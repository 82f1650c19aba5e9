"""ZEN Fulfillment Observatory — real-time message flow observability.

Uses Protean's built-in Observatory server to provide a live dashboard,
Prometheus metrics, and REST API for monitoring settlement and wallet
ledger events flowing through the fulfillment domain.

Usage:
    uvicorn src.observatory:app --host 0.0.0.0 --port 9000
"""

from fulfillment.domain import fulfillment
from protean.server.observatory import create_observatory_app

fulfillment.init()

app = create_observatory_app(
    domains=[fulfillment],
    title="ZEN Fulfillment Observatory",
)
