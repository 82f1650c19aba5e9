"""Tests for storefront payload mapping and webhook signature checks."""

import base64
import hashlib
import hmac

import pytest
from protean.exceptions import ValidationError

from fulfillment.order.ingestion import snapshot_from_platform_payload, to_minor_units, verify_platform_signature

_PAYLOAD = {
    "id": 820982911946154508,
    "name": "#1042",
    "order_number": 1042,
    "email": "meera@example.com",
    "currency": "INR",
    "subtotal_price": "1499.00",
    "total_tax": "0.00",
    "total_price": "1598.00",
    "total_shipping_price_set": {"shop_money": {"amount": "99.00"}},
    "financial_status": "paid",
    "fulfillment_status": None,
    "created_at": "2026-03-01T10:00:00+05:30",
    "updated_at": "2026-03-01T10:05:00+05:30",
    "customer": {"id": 115310627, "email": "meera@example.com", "first_name": "Meera", "last_name": "Iyer"},
    "shipping_address": {
        "first_name": "Meera",
        "last_name": "Iyer",
        "address1": "4 Residency Road",
        "city": "Bengaluru",
        "province": "Karnataka",
        "zip": "560025",
        "country": "India",
    },
    "line_items": [
        {
            "id": 466157049,
            "title": "Block Print Dupatta",
            "variant_title": "Indigo",
            "sku": "BPD-IND",
            "quantity": 1,
            "price": "1499.00",
            "product_id": 632910392,
            "variant_id": 39072856,
        }
    ],
}


class TestMinorUnits:
    def test_decimal_string(self):
        assert to_minor_units("1499.99") == 149_999

    def test_missing_amount(self):
        assert to_minor_units(None) == 0

    def test_integer_amount(self):
        assert to_minor_units(12) == 1_200

    def test_non_numeric_amount_is_rejected_with_field_name(self):
        with pytest.raises(ValidationError) as exc:
            to_minor_units("free", "total_price")
        assert "total_price" in exc.value.messages


class TestSnapshotMapping:
    def test_maps_totals(self):
        snapshot = snapshot_from_platform_payload(_PAYLOAD)
        assert snapshot["totals"] == {"subtotal": 149_900, "tax": 0, "shipping": 9_900, "total": 159_800}

    def test_maps_address(self):
        address = snapshot_from_platform_payload(_PAYLOAD)["shipping_address"]
        assert address["name"] == "Meera Iyer"
        assert address["postal_code"] == "560025"

    def test_maps_line_items(self):
        (item,) = snapshot_from_platform_payload(_PAYLOAD)["line_items"]
        assert item["platform_line_item_id"] == "466157049"
        assert item["unit_price"] == 149_900
        assert item["product_ref"] == "632910392"

    def test_maps_customer(self):
        customer = snapshot_from_platform_payload(_PAYLOAD)["customer"]
        assert customer["platform_customer_id"] == "115310627"

    def test_minimal_payload(self):
        snapshot = snapshot_from_platform_payload({"id": 1})
        assert snapshot["customer"] is None
        assert snapshot["shipping_address"] is None
        assert snapshot["line_items"] == []
        assert snapshot["currency"] == "INR"

    def test_null_shop_money_means_no_shipping(self):
        payload = {**_PAYLOAD, "total_shipping_price_set": {"shop_money": None}}
        assert snapshot_from_platform_payload(payload)["totals"]["shipping"] == 0

    def test_garbled_line_item_price_is_rejected(self):
        payload = {**_PAYLOAD, "line_items": [{**_PAYLOAD["line_items"][0], "price": "N/A"}]}
        with pytest.raises(ValidationError) as exc:
            snapshot_from_platform_payload(payload)
        assert "line_items.price" in exc.value.messages


class TestWebhookSignature:
    def _sign(self, body: bytes, secret: str) -> str:
        return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()

    def test_valid_signature(self):
        body = b'{"id": 1}'
        assert verify_platform_signature(body, self._sign(body, "s3cret"), "s3cret") is True

    def test_tampered_body(self):
        signature = self._sign(b'{"id": 1}', "s3cret")
        assert verify_platform_signature(b'{"id": 2}', signature, "s3cret") is False

    def test_missing_signature(self):
        assert verify_platform_signature(b"{}", None, "s3cret") is False

    def test_no_secret_accepts_everything(self):
        assert verify_platform_signature(b"{}", None, None) is True
