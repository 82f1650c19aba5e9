"""Wallet ledger factory.

Provides get_ledger() / set_ledger() to swap implementations:
- FakeWalletLedger for development and testing (default)
- HttpWalletLedger against the ledger service

Selected with WALLET_LEDGER_ADAPTER ("fake" or "http"); the HTTP adapter
reads WALLET_LEDGER_URL, WALLET_LEDGER_TOKEN and WALLET_LEDGER_TIMEOUT.
"""

import os

from fulfillment.ledger.port import WalletLedger

_current_ledger: WalletLedger | None = None


def _build_ledger() -> WalletLedger:
    adapter = os.environ.get("WALLET_LEDGER_ADAPTER", "fake")
    if adapter == "fake":
        from fulfillment.ledger.fake_adapter import FakeWalletLedger

        return FakeWalletLedger()
    if adapter == "http":
        from fulfillment.ledger.http_adapter import DEFAULT_TIMEOUT_SECONDS, HttpWalletLedger

        base_url = os.environ.get("WALLET_LEDGER_URL")
        if not base_url:
            raise ValueError("WALLET_LEDGER_URL must be set for the http wallet ledger")
        return HttpWalletLedger(
            base_url=base_url,
            token=os.environ.get("WALLET_LEDGER_TOKEN"),
            timeout=float(os.environ.get("WALLET_LEDGER_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
        )
    raise ValueError(f"Unknown wallet ledger adapter: {adapter}")


def get_ledger() -> WalletLedger:
    """Return the configured wallet ledger (singleton)."""
    global _current_ledger
    if _current_ledger is None:
        _current_ledger = _build_ledger()
    return _current_ledger


def set_ledger(ledger: WalletLedger) -> None:
    """Override the active wallet ledger (useful for tests)."""
    global _current_ledger
    _current_ledger = ledger


def reset_ledger() -> None:
    global _current_ledger
    _current_ledger = None
