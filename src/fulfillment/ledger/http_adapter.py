"""HTTP wallet ledger adapter.

Talks to the ledger service over JSON/HTTP with a bounded timeout:

    POST /wallets/{operator_id}/debits    {"amount", "idempotency_key"}
    GET  /debits/{idempotency_key}
    POST /wallets/{operator_id}/credits   {"amount", "reference"}
    GET  /wallets/{operator_id}

A timed-out request or a 5xx answer leaves the debit outcome unknown and is
surfaced as ``LedgerTimeout``; settlement resolves it through ``lookup``.
A refused connection never reached the ledger and becomes
``LedgerConnectionError``.
A 2xx debit answer whose body cannot be read is treated like a timeout, so
the key is looked up before anything else; an unreadable lookup answer is a
plain ``LedgerError``.
"""

import httpx
import structlog

from fulfillment.ledger.port import (
    DebitResult,
    DebitStatus,
    LedgerConnectionError,
    LedgerError,
    LedgerTimeout,
    WalletLedger,
)

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


class HttpWalletLedger(WalletLedger):
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.Client(base_url=base_url, headers=headers, timeout=timeout)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise LedgerTimeout(f"Ledger {method} {path} timed out") from exc
        except httpx.ConnectError as exc:
            raise LedgerConnectionError(f"Ledger {method} {path} unreachable: {exc}") from exc
        except httpx.TransportError as exc:
            # The request may have been sent before the transport broke
            raise LedgerTimeout(f"Ledger {method} {path} interrupted: {exc}") from exc

        if response.status_code >= 500:
            logger.warning("Ledger server error", method=method, path=path, status_code=response.status_code)
            raise LedgerTimeout(f"Ledger {method} {path} answered {response.status_code}")
        return response

    @staticmethod
    def _to_result(payload: dict, idempotency_key: str, amount: int) -> DebitResult:
        return DebitResult(
            status=DebitStatus(payload["status"]),
            idempotency_key=payload.get("idempotency_key", idempotency_key),
            amount=int(payload.get("amount", amount)),
            transaction_ref=payload.get("transaction_ref"),
            available=payload.get("available"),
            balance_after=payload.get("balance_after"),
        )

    def debit(self, operator_id: str, amount: int, idempotency_key: str) -> DebitResult:
        response = self._request(
            "POST",
            f"/wallets/{operator_id}/debits",
            json={"amount": amount, "idempotency_key": idempotency_key},
            headers={"Idempotency-Key": idempotency_key},
        )
        if response.status_code in (200, 201, 402):
            try:
                return self._to_result(response.json(), idempotency_key, amount)
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                # The debit may have been applied behind a garbled answer
                logger.warning(
                    "Unreadable ledger debit response",
                    idempotency_key=idempotency_key,
                    status_code=response.status_code,
                    error=str(exc),
                )
                raise LedgerTimeout(f"Ledger debit answered {response.status_code} with an unreadable body") from exc
        raise LedgerError(f"Unexpected ledger response {response.status_code}: {response.text}")

    def lookup(self, idempotency_key: str) -> DebitResult | None:
        response = self._request("GET", f"/debits/{idempotency_key}")
        if response.status_code == 404:
            return None
        if response.status_code == 200:
            try:
                payload = response.json()
                result = self._to_result(payload, idempotency_key, int(payload.get("amount", 0)))
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                raise LedgerError(f"Ledger lookup answered with an unreadable body: {exc}") from exc
            return result if result.applied else None
        raise LedgerError(f"Unexpected ledger response {response.status_code}: {response.text}")

    def credit(self, operator_id: str, amount: int, reference: str) -> str:
        response = self._request(
            "POST",
            f"/wallets/{operator_id}/credits",
            json={"amount": amount, "reference": reference},
        )
        response.raise_for_status()
        return response.json()["transaction_ref"]

    def balance(self, operator_id: str) -> int:
        response = self._request("GET", f"/wallets/{operator_id}")
        response.raise_for_status()
        return int(response.json()["balance"])
