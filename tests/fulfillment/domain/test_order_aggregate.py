"""Tests for the Order aggregate — ingestion snapshot, costs and natural key."""

from datetime import UTC, datetime, timedelta

import pytest
from fulfillment.order.order import Order, ZenStatus
from protean.exceptions import ValidationError


def _snapshot(**overrides):
    snapshot = {
        "platform_order_name": "#1001",
        "platform_order_number": 1001,
        "email": "asha@example.com",
        "customer": {"platform_customer_id": "c-1", "email": "asha@example.com", "first_name": "Asha"},
        "shipping_address": {"name": "Asha Rao", "address1": "12 MG Road", "city": "Bengaluru", "postal_code": "560001"},
        "currency": "INR",
        "totals": {"subtotal": 149_900, "tax": 0, "shipping": 9_900, "total": 159_800},
        "financial_status": "paid",
        "platform_updated_at": datetime(2026, 3, 1, 10, 0, tzinfo=UTC),
        "line_items": [
            {"platform_line_item_id": "li-1", "title": "Linen Shirt", "sku": "LS-M", "quantity": 1, "unit_price": 99_900},
            {"platform_line_item_id": "li-2", "title": "Canvas Tote", "sku": "CT-1", "quantity": 2, "unit_price": 25_000},
        ],
    }
    snapshot.update(overrides)
    return snapshot


def _make_order(**overrides):
    return Order.create(
        store_connection_id="store-1",
        platform_order_id="1001",
        operator_id="op-1",
        snapshot=_snapshot(**overrides),
    )


class TestOrderCreation:
    def test_starts_platform_native(self):
        order = _make_order()
        assert order.status == ZenStatus.PLATFORM_NATIVE.value
        assert order.current_status == ZenStatus.PLATFORM_NATIVE

    def test_captures_commerce_snapshot(self):
        order = _make_order()
        assert order.platform_order_name == "#1001"
        assert order.totals.total == 159_800
        assert order.customer.first_name == "Asha"
        assert order.shipping_address.city == "Bengaluru"
        assert len(order.line_items) == 2

    def test_settlement_fields_start_empty(self):
        order = _make_order()
        assert order.wallet_shortage == 0
        assert order.wallet_charge_amount is None
        assert order.wallet_transaction_ref is None
        assert order.settlement_attempts == 0
        assert order.needs_manual_review is False

    def test_natural_key(self):
        order = _make_order()
        assert order.natural_key == "store-1:1001"

    def test_line_item_requires_title(self):
        with pytest.raises(ValidationError):
            _make_order(line_items=[{"quantity": 1}])

    def test_line_item_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            _make_order(line_items=[{"title": "Shirt", "quantity": 0}])

    def test_snapshot_without_customer_or_address(self):
        order = _make_order(customer=None, shipping_address=None)
        assert order.customer is None
        assert order.shipping_address is None


class TestSnapshotRefresh:
    def test_newer_update_replaces_snapshot(self):
        order = _make_order()
        newer = _snapshot(
            financial_status="partially_refunded",
            platform_updated_at=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
            line_items=[{"title": "Linen Shirt", "quantity": 1, "unit_price": 99_900}],
        )
        assert order.refresh_snapshot(newer) is True
        assert order.financial_status == "partially_refunded"
        assert len(order.line_items) == 1

    def test_older_update_is_ignored(self):
        order = _make_order()
        older = _snapshot(
            financial_status="pending",
            platform_updated_at=datetime(2026, 3, 1, 10, 0, tzinfo=UTC) - timedelta(hours=1),
        )
        assert order.refresh_snapshot(older) is False
        assert order.financial_status == "paid"

    def test_refresh_leaves_lifecycle_alone(self):
        order = _make_order()
        order.set_costs(100_000, 8_000, 2_000, set_by="ops-1")
        order.record_charge(110_000, "wtx_abc")
        order.refresh_snapshot(_snapshot(platform_updated_at=datetime(2026, 3, 2, tzinfo=UTC)))
        assert order.status == ZenStatus.READY_FOR_FULFILLMENT.value
        assert order.wallet_transaction_ref == "wtx_abc"
        assert order.product_cost == 100_000


class TestFulfillmentCosts:
    def test_required_amount_is_sum_of_costs(self):
        order = _make_order()
        order.set_costs(100_000, 8_000, 2_000, set_by="ops-1")
        assert order.required_amount() == 110_000

    def test_required_amount_defaults_to_zero(self):
        assert _make_order().required_amount() == 0

    def test_negative_cost_rejected(self):
        order = _make_order()
        with pytest.raises(ValidationError) as exc:
            order.set_costs(-1, 0, 0, set_by="ops-1")
        assert "product_cost" in exc.value.messages

    def test_costs_frozen_after_diversion(self):
        order = _make_order()
        order.set_costs(100_000, 8_000, 0, set_by="ops-1")
        order.record_shortage(108_000, 0)
        with pytest.raises(ValidationError) as exc:
            order.set_costs(1, 1, 1, set_by="ops-1")
        assert "frozen" in str(exc.value)


class TestOperationsActions:
    def test_add_note_appends_to_audit_trail(self):
        order = _make_order()
        note = order.add_note("ops-1", "  Customer called about size  ")
        assert note.content == "Customer called about size"
        assert note.author_id == "ops-1"
        assert order.internal_notes[-1].id == note.id

    def test_empty_note_rejected(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.add_note("ops-1", "   ")

    def test_assign(self):
        order = _make_order()
        order.assign("staff-7", assigned_by="lead-1")
        assert order.assigned_to == "staff-7"

    def test_cannot_assign_terminal_order(self):
        order = _make_order()
        order.fail("Cancelled on storefront")
        with pytest.raises(ValidationError):
            order.assign("staff-7")

    def test_tracking_rejected_before_dispatch(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.update_tracking(tracking_number="AWB123")


class TestOperationsFlags:
    def test_flags_start_clear(self):
        order = _make_order()
        assert order.is_priority is False
        assert order.has_issue is False

    def test_mark_priority_leaves_issue_alone(self):
        order = _make_order()
        order.update_flags(has_issue=True, issue_description="Wrong size in stock")
        order.update_flags(is_priority=True)
        assert order.is_priority is True
        assert order.has_issue is True
        assert order.issue_description == "Wrong size in stock"

    def test_clearing_issue_clears_description(self):
        order = _make_order()
        order.update_flags(has_issue=True, issue_description="Courier lost parcel")
        order.update_flags(has_issue=False)
        assert order.has_issue is False
        assert order.issue_description is None

    def test_description_without_issue_rejected(self):
        order = _make_order()
        with pytest.raises(ValidationError) as exc:
            order.update_flags(issue_description="Damaged")
        assert "issue_description" in exc.value.messages

    def test_nothing_to_update_rejected(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.update_flags()
