"""Faker-based data generators for Locust load test scenarios.

Payloads mimic storefront order webhooks closely enough for the ingestion
mapper: prices are decimal strings in major units, ids are integers.
"""

import random
import uuid
from datetime import datetime, timezone

from faker import Faker

fake = Faker("en_IN")


def store_connection_id() -> str:
    return f"store-{uuid.uuid4().hex[:8]}"


def operator_id() -> str:
    return f"op-{uuid.uuid4().hex[:8]}"


def platform_order_id() -> int:
    return random.randint(10**12, 10**13 - 1)


def line_item() -> dict:
    return {
        "id": platform_order_id(),
        "title": fake.catch_phrase()[:80],
        "variant_title": random.choice(["S", "M", "L", "Default"]),
        "sku": f"LT-{uuid.uuid4().hex[:6].upper()}",
        "quantity": random.randint(1, 3),
        "price": f"{random.randint(199, 2999)}.00",
        "product_id": platform_order_id(),
        "variant_id": platform_order_id(),
    }


def storefront_order_payload(order_id: int | None = None, num_items: int = 2) -> dict:
    """Order create/update webhook body. Reuse ``order_id`` to simulate redelivery."""
    first, last = fake.first_name(), fake.last_name()
    items = [line_item() for _ in range(num_items)]
    subtotal = sum(float(item["price"]) * item["quantity"] for item in items)
    now = datetime.now(timezone.utc).isoformat()
    return {
        "id": order_id or platform_order_id(),
        "name": f"#{random.randint(1000, 99999)}",
        "order_number": random.randint(1000, 99999),
        "email": fake.email(),
        "currency": "INR",
        "subtotal_price": f"{subtotal:.2f}",
        "total_tax": "0.00",
        "total_price": f"{subtotal + 99:.2f}",
        "total_shipping_price_set": {"shop_money": {"amount": "99.00"}},
        "financial_status": "paid",
        "fulfillment_status": None,
        "created_at": now,
        "updated_at": now,
        "customer": {"id": platform_order_id(), "email": fake.email(), "first_name": first, "last_name": last},
        "shipping_address": {
            "first_name": first,
            "last_name": last,
            "address1": fake.street_address(),
            "city": fake.city(),
            "province": fake.state(),
            "zip": fake.postcode(),
            "country": "India",
        },
        "line_items": items,
    }


def costs_data() -> dict:
    return {
        "product_cost": random.randint(20_000, 150_000),
        "shipping_cost": random.randint(4_000, 12_000),
        "service_fee": random.randint(0, 2_500),
        "set_by": "loadtest",
    }
