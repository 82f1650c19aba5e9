"""Protean Engine runner for the ZEN Fulfillment domain.

Starts Engine workers that process events asynchronously:
- OutboxProcessor: polls outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams, invokes projectors and the
  wallet ledger event handler (auto-resume on WalletCredited)

Usage:
    python src/server.py
"""

import asyncio

from protean.server.engine import Engine


def _get_domain():
    """Import and initialize the fulfillment domain."""
    from fulfillment.domain import fulfillment

    fulfillment.init()
    return fulfillment


async def run():
    engine = Engine(_get_domain())
    await engine.run()


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
