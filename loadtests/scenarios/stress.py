"""Stress test scenarios for duplicate delivery and concurrent settlement.

WebhookStormUser redelivers the same storefront order many times in a row.
ConcurrentDiversionUser fires repeated diversion requests at one funded
order; exactly one wallet debit must come out of it.
"""

from locust import HttpUser, constant_pacing, task

from loadtests.data_generators import costs_data, operator_id, store_connection_id, storefront_order_payload


class WebhookStormUser(HttpUser):
    """Maximum redelivery of a small set of orders per user."""

    wait_time = constant_pacing(0.1)

    def on_start(self):
        self.store = store_connection_id()
        self.operator = operator_id()
        self.payloads = [storefront_order_payload() for _ in range(3)]

    @task
    def redeliver(self):
        for payload in self.payloads:
            self.client.post(
                f"/orders/webhooks/{self.store}",
                json=payload,
                headers={"X-Zen-Operator-Id": self.operator},
                name="[STRESS] POST /orders/webhooks/{store}",
            )


class ConcurrentDiversionUser(HttpUser):
    """Hammers divert on one order after it has been charged."""

    wait_time = constant_pacing(0.05)

    def on_start(self):
        self.operator = operator_id()
        store = store_connection_id()
        resp = self.client.post(
            f"/orders/webhooks/{store}",
            json=storefront_order_payload(),
            headers={"X-Zen-Operator-Id": self.operator},
            name="[STRESS] setup webhook",
        )
        self.order_id = resp.json()["order_id"]
        costs = self.client.put(f"/orders/{self.order_id}/costs", json=costs_data(), name="[STRESS] setup costs")
        self.client.post(
            "/orders/ledger/configure",
            json={"credits": [{"operator_id": self.operator, "amount": costs.json()["required_amount"]}]},
            name="[STRESS] setup fund",
        )

    @task
    def divert(self):
        self.client.put(
            f"/orders/{self.order_id}/divert",
            json={"requested_by": "stress"},
            name="[STRESS] PUT /orders/{id}/divert",
        )
