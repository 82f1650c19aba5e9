"""Storefront order ingestion — command, handler and payload mapping.

Storefront webhooks are delivered at least once, so ingestion is an upsert
on the natural key (store_connection_id, platform_order_id): the first
delivery creates the order in PLATFORM_NATIVE, later deliveries only refresh
the commerce snapshot and never touch the fulfillment lifecycle.
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime
from decimal import Decimal, InvalidOperation

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.exceptions import DuplicateOrder
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


def to_minor_units(amount, field: str = "amount") -> int:
    """Convert a decimal currency string such as "499.50" into paise."""
    if amount in (None, ""):
        return 0
    try:
        return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError({field: [f"Not a valid amount: {amount!r}"]}) from exc


def _parse_datetime(value):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def snapshot_from_platform_payload(payload: dict) -> dict:
    """Map a storefront order payload onto the Order commerce snapshot."""
    customer = payload.get("customer") or {}
    address = payload.get("shipping_address") or {}
    first_name = address.get("first_name") or ""
    last_name = address.get("last_name") or ""

    return {
        "platform_order_name": payload.get("name"),
        "platform_order_number": payload.get("order_number"),
        "email": payload.get("email") or customer.get("email"),
        "customer": {
            "platform_customer_id": str(customer["id"]) if customer.get("id") is not None else None,
            "email": customer.get("email"),
            "first_name": customer.get("first_name"),
            "last_name": customer.get("last_name"),
            "phone": customer.get("phone"),
        }
        if customer
        else None,
        "shipping_address": {
            "name": address.get("name") or f"{first_name} {last_name}".strip() or None,
            "address1": address.get("address1"),
            "address2": address.get("address2"),
            "city": address.get("city"),
            "province": address.get("province"),
            "postal_code": address.get("zip"),
            "country": address.get("country"),
            "phone": address.get("phone"),
        }
        if address
        else None,
        "currency": payload.get("currency") or "INR",
        "totals": {
            "subtotal": to_minor_units(payload.get("subtotal_price"), "subtotal_price"),
            "tax": to_minor_units(payload.get("total_tax"), "total_tax"),
            "shipping": to_minor_units(
                ((payload.get("total_shipping_price_set") or {}).get("shop_money") or {}).get(
                    "amount"
                ),
                "total_shipping_price_set",
            ),
            "total": to_minor_units(payload.get("total_price"), "total_price"),
        },
        "financial_status": payload.get("financial_status"),
        "platform_fulfillment_status": payload.get("fulfillment_status"),
        "platform_created_at": payload.get("created_at"),
        "platform_updated_at": payload.get("updated_at"),
        "line_items": [
            {
                "platform_line_item_id": str(item["id"]) if item.get("id") is not None else None,
                "title": item.get("title") or item.get("name") or "Untitled item",
                "variant_title": item.get("variant_title"),
                "sku": item.get("sku"),
                "quantity": int(item.get("quantity") or 1),
                "unit_price": to_minor_units(item.get("price"), "line_items.price"),
                "product_ref": str(item["product_id"]) if item.get("product_id") is not None else None,
                "variant_ref": str(item["variant_id"]) if item.get("variant_id") is not None else None,
            }
            for item in payload.get("line_items") or []
        ],
    }


def verify_platform_signature(body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check the storefront's base64 HMAC-SHA256 webhook signature.

    With no shared secret configured every delivery is accepted.
    """
    if not secret:
        return True
    if not signature:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, signature)


@fulfillment.command(part_of="Order")
class IngestPlatformOrder:
    """Create or refresh the Order for a storefront order."""

    store_connection_id = Identifier(required=True)
    platform_order_id = String(required=True, max_length=100)
    operator_id = Identifier(required=True)
    snapshot = Text(required=True)  # JSON commerce snapshot


@fulfillment.command_handler(part_of=Order)
class IngestionHandler:
    @handle(IngestPlatformOrder)
    def ingest_platform_order(self, command):
        snapshot = json.loads(command.snapshot) if isinstance(command.snapshot, str) else command.snapshot
        snapshot["platform_created_at"] = _parse_datetime(snapshot.get("platform_created_at"))
        snapshot["platform_updated_at"] = _parse_datetime(snapshot.get("platform_updated_at"))

        repo = current_domain.repository_for(Order)
        existing = repo.find_by_platform_key(command.store_connection_id, command.platform_order_id)

        if existing is None:
            order = Order.create(
                store_connection_id=str(command.store_connection_id),
                platform_order_id=command.platform_order_id,
                operator_id=str(command.operator_id),
                snapshot=snapshot,
            )
            try:
                repo.add_new(order)
            except DuplicateOrder as exc:
                logger.info(
                    "Order ingested concurrently, refreshing snapshot instead",
                    platform_order_id=command.platform_order_id,
                    existing_id=exc.existing_id,
                )
                existing = repo.get(exc.existing_id)
            else:
                logger.info(
                    "Storefront order ingested",
                    order_id=str(order.id),
                    platform_order_id=command.platform_order_id,
                    operator_id=str(command.operator_id),
                )
                return {"order_id": str(order.id), "created": True}

        if existing.refresh_snapshot(snapshot):
            repo.add(existing)
            logger.info("Order snapshot refreshed", order_id=str(existing.id))
        else:
            logger.info("Stale storefront update ignored", order_id=str(existing.id))
        return {"order_id": str(existing.id), "created": False}
