"""Tests for the wallet ledger adapters."""

import json

import httpx
import pytest
from fulfillment.ledger import get_ledger, reset_ledger
from fulfillment.ledger.fake_adapter import FakeWalletLedger
from fulfillment.ledger.http_adapter import HttpWalletLedger
from fulfillment.ledger.port import DebitStatus, LedgerConnectionError, LedgerError, LedgerTimeout


class TestFakeWalletLedger:
    def test_debit_applies_and_reduces_balance(self):
        ledger = FakeWalletLedger()
        ledger.credit("op-1", 10_000, reference="seed")
        result = ledger.debit("op-1", 4_000, "store-1:1")
        assert result.applied
        assert result.balance_after == 6_000
        assert result.transaction_ref.startswith("wtx_")
        assert ledger.balance("op-1") == 6_000

    def test_repeated_key_returns_original_outcome(self):
        ledger = FakeWalletLedger()
        ledger.credit("op-1", 10_000, reference="seed")
        first = ledger.debit("op-1", 4_000, "store-1:1")
        second = ledger.debit("op-1", 4_000, "store-1:1")
        assert second == first
        assert ledger.balance("op-1") == 6_000
        assert len(ledger.debits_for("op-1")) == 1

    def test_insufficient_funds_is_a_result(self):
        ledger = FakeWalletLedger()
        ledger.credit("op-1", 1_000, reference="seed")
        result = ledger.debit("op-1", 4_000, "store-1:1")
        assert result.status == DebitStatus.INSUFFICIENT_FUNDS
        assert result.available == 1_000
        assert ledger.lookup("store-1:1") is None

    def test_timeout_after_commit_applies_debit(self):
        ledger = FakeWalletLedger()
        ledger.credit("op-1", 10_000, reference="seed")
        ledger.configure(timeout_after_commit=True)
        with pytest.raises(LedgerTimeout):
            ledger.debit("op-1", 4_000, "store-1:1")
        assert ledger.lookup("store-1:1").applied
        assert ledger.balance("op-1") == 6_000

    def test_timeout_before_commit_applies_nothing(self):
        ledger = FakeWalletLedger()
        ledger.credit("op-1", 10_000, reference="seed")
        ledger.configure(timeout_before_commit=True)
        with pytest.raises(LedgerTimeout):
            ledger.debit("op-1", 4_000, "store-1:1")
        assert ledger.lookup("store-1:1") is None
        assert ledger.balance("op-1") == 10_000

    def test_failure_count_limits_injected_failures(self):
        ledger = FakeWalletLedger()
        ledger.credit("op-1", 10_000, reference="seed")
        ledger.configure(unavailable=True, failure_count=1)
        with pytest.raises(LedgerConnectionError):
            ledger.debit("op-1", 4_000, "store-1:1")
        assert ledger.debit("op-1", 4_000, "store-1:1").applied

    def test_credit_must_be_positive(self):
        with pytest.raises(ValueError):
            FakeWalletLedger().credit("op-1", 0, reference="nothing")


class TestLedgerFactory:
    @pytest.fixture(autouse=True)
    def _unset(self, ledger):
        reset_ledger()

    def test_defaults_to_fake(self, monkeypatch):
        monkeypatch.delenv("WALLET_LEDGER_ADAPTER", raising=False)
        assert isinstance(get_ledger(), FakeWalletLedger)

    def test_singleton(self, monkeypatch):
        monkeypatch.setenv("WALLET_LEDGER_ADAPTER", "fake")
        assert get_ledger() is get_ledger()

    def test_http_requires_url(self, monkeypatch):
        monkeypatch.setenv("WALLET_LEDGER_ADAPTER", "http")
        monkeypatch.delenv("WALLET_LEDGER_URL", raising=False)
        with pytest.raises(ValueError):
            get_ledger()

    def test_http_adapter_selected(self, monkeypatch):
        monkeypatch.setenv("WALLET_LEDGER_ADAPTER", "http")
        monkeypatch.setenv("WALLET_LEDGER_URL", "http://ledger.test")
        assert isinstance(get_ledger(), HttpWalletLedger)

    def test_unknown_adapter(self, monkeypatch):
        monkeypatch.setenv("WALLET_LEDGER_ADAPTER", "carrier-pigeon")
        with pytest.raises(ValueError):
            get_ledger()


def _http_ledger(handler):
    client = httpx.Client(base_url="http://ledger.test", transport=httpx.MockTransport(handler))
    return HttpWalletLedger(base_url="http://ledger.test", client=client)


class TestHttpWalletLedger:
    def test_debit_applied(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["key"] = request.headers["Idempotency-Key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                201,
                json={"status": "applied", "amount": 5_000, "transaction_ref": "wtx_h1", "balance_after": 1_000},
            )

        result = _http_ledger(handler).debit("op-1", 5_000, "store-1:9")
        assert result.applied
        assert result.transaction_ref == "wtx_h1"
        assert seen["path"] == "/wallets/op-1/debits"
        assert seen["key"] == "store-1:9"
        assert seen["body"] == {"amount": 5_000, "idempotency_key": "store-1:9"}

    def test_debit_insufficient_funds(self):
        def handler(request):
            return httpx.Response(402, json={"status": "insufficient_funds", "amount": 5_000, "available": 1_200})

        result = _http_ledger(handler).debit("op-1", 5_000, "store-1:9")
        assert result.status == DebitStatus.INSUFFICIENT_FUNDS
        assert result.available == 1_200

    def test_timeout_is_ledger_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(LedgerTimeout):
            _http_ledger(handler).debit("op-1", 5_000, "store-1:9")

    def test_server_error_is_ledger_timeout(self):
        def handler(request):
            return httpx.Response(503, text="overloaded")

        with pytest.raises(LedgerTimeout):
            _http_ledger(handler).debit("op-1", 5_000, "store-1:9")

    def test_refused_connection(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(LedgerConnectionError):
            _http_ledger(handler).debit("op-1", 5_000, "store-1:9")

    def test_unexpected_status(self):
        def handler(request):
            return httpx.Response(409, text="conflict")

        with pytest.raises(LedgerError):
            _http_ledger(handler).debit("op-1", 5_000, "store-1:9")

    def test_lookup_found(self):
        def handler(request):
            return httpx.Response(200, json={"status": "applied", "amount": 5_000, "transaction_ref": "wtx_h2"})

        result = _http_ledger(handler).lookup("store-1:9")
        assert result.transaction_ref == "wtx_h2"

    def test_lookup_missing(self):
        def handler(request):
            return httpx.Response(404, json={"detail": "not found"})

        assert _http_ledger(handler).lookup("store-1:9") is None

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>proxy error</html>"),
            httpx.Response(201, json={"amount": 5_000, "transaction_ref": "wtx_h3"}),
            httpx.Response(201, json={"status": "pending", "amount": 5_000}),
            httpx.Response(200, json=["applied"]),
        ],
        ids=["html-body", "missing-status", "unknown-status", "not-an-object"],
    )
    def test_unreadable_debit_answer_is_ledger_timeout(self, response):
        def handler(request):
            return response

        with pytest.raises(LedgerTimeout):
            _http_ledger(handler).debit("op-1", 5_000, "store-1:9")

    def test_unreadable_lookup_answer_is_ledger_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>proxy error</html>")

        with pytest.raises(LedgerError):
            _http_ledger(handler).lookup("store-1:9")

    def test_credit_and_balance(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(201, json={"transaction_ref": "wtx_c1"})
            return httpx.Response(200, json={"balance": 42_000})

        ledger = _http_ledger(handler)
        assert ledger.credit("op-1", 42_000, reference="topup-1") == "wtx_c1"
        assert ledger.balance("op-1") == 42_000
