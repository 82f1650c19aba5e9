"""Order diversion load test scenarios.

DiversionJourney walks one storefront order through ingestion, a redelivered
webhook, pricing, wallet funding, a doubled diversion request and the first
fulfillment stages. WalletShortageJourney parks an order on an empty wallet
and releases it through the ledger credit webhook.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import costs_data, operator_id, store_connection_id, storefront_order_payload
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import ZenOrderState


class _OrderJourney(SequentialTaskSet):
    def on_start(self):
        self.state = ZenOrderState(store_connection_id=store_connection_id(), operator_id=operator_id())

    def _ingest(self, name: str):
        payload = storefront_order_payload(order_id=self.state.platform_order_id)
        self.state.platform_order_id = payload["id"]
        with self.client.post(
            f"/orders/webhooks/{self.state.store_connection_id}",
            json=payload,
            headers={"X-Zen-Operator-Id": self.state.operator_id},
            catch_response=True,
            name=name,
        ) as resp:
            if resp.status_code in (200, 201):
                order_id = resp.json()["order_id"]
                if self.state.order_id and order_id != self.state.order_id:
                    resp.failure(f"Redelivery created a second order: {order_id} != {self.state.order_id}")
                self.state.order_id = order_id
            else:
                resp.failure(f"Ingest failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    def _set_costs(self):
        with self.client.put(
            f"/orders/{self.state.order_id}/costs",
            json=costs_data(),
            catch_response=True,
            name="PUT /orders/{id}/costs",
        ) as resp:
            if resp.status_code == 200:
                self.state.required_amount = resp.json()["required_amount"]
            else:
                resp.failure(f"Set costs failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    def _fund(self, amount: int):
        self.client.post(
            "/orders/ledger/configure",
            json={"credits": [{"operator_id": self.state.operator_id, "amount": amount}]},
            name="POST /orders/ledger/configure",
        )

    def _divert(self, name: str = "PUT /orders/{id}/divert"):
        with self.client.put(
            f"/orders/{self.state.order_id}/divert",
            json={"requested_by": "loadtest"},
            catch_response=True,
            name=name,
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = resp.json()["status"]
            else:
                resp.failure(f"Divert failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()


class DiversionJourney(_OrderJourney):
    """Webhook -> Redelivery -> Costs -> Fund -> Divert x2 -> Sourcing -> Packed."""

    @task
    def ingest(self):
        self._ingest("POST /orders/webhooks/{store}")

    @task
    def redeliver(self):
        self._ingest("POST /orders/webhooks/{store} [redelivery]")

    @task
    def set_costs(self):
        self._set_costs()

    @task
    def fund_wallet(self):
        self._fund(self.state.required_amount + random.randint(0, 5_000))

    @task
    def divert(self):
        self._divert()

    @task
    def divert_again(self):
        self._divert("PUT /orders/{id}/divert [repeat]")
        if self.state.current_status != "ready_for_fulfillment":
            self.interrupt()

    @task
    def start_sourcing(self):
        self.client.put(
            f"/orders/{self.state.order_id}/advance",
            json={"next_status": "sourcing", "changed_by": "loadtest"},
            name="PUT /orders/{id}/advance",
        )

    @task
    def packed(self):
        self.client.put(
            f"/orders/{self.state.order_id}/advance",
            json={"next_status": "ready_for_dispatch", "changed_by": "loadtest"},
            name="PUT /orders/{id}/advance",
        )
        self.interrupt()


class WalletShortageJourney(_OrderJourney):
    """Webhook -> Costs -> Divert (parked) -> Credit webhook -> Check released."""

    @task
    def ingest(self):
        self._ingest("POST /orders/webhooks/{store}")

    @task
    def set_costs(self):
        self._set_costs()

    @task
    def divert_without_funds(self):
        self._divert()

    @task
    def top_up(self):
        self._fund(self.state.required_amount)
        self.client.post(
            "/orders/ledger/credit-webhook",
            json={
                "operator_id": self.state.operator_id,
                "amount": self.state.required_amount,
                "transaction_ref": f"lt-credit-{self.state.platform_order_id}",
            },
            name="POST /orders/ledger/credit-webhook",
        )

    @task
    def check_released(self):
        with self.client.get(
            f"/orders/{self.state.order_id}",
            catch_response=True,
            name="GET /orders/{id}",
        ) as resp:
            if resp.status_code == 200 and resp.json()["status"] != "ready_for_fulfillment":
                resp.failure(f"Order still {resp.json()['status']} after top-up")
        self.interrupt()


class DiversionUser(HttpUser):
    wait_time = between(0.5, 2)
    tasks = {DiversionJourney: 3, WalletShortageJourney: 1}
