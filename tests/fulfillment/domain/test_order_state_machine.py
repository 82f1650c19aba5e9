"""Tests for the Order lifecycle table — every edge, and everything that is not an edge."""

import pytest
from fulfillment.order.exceptions import InvalidTransition
from fulfillment.order.order import Order, ZenStatus
from protean.exceptions import ValidationError

S = ZenStatus

ALLOWED = {
    S.PLATFORM_NATIVE: {S.AWAITING_WALLET, S.READY_FOR_FULFILLMENT, S.FAILED},
    S.AWAITING_WALLET: {S.READY_FOR_FULFILLMENT, S.FAILED},
    S.READY_FOR_FULFILLMENT: {S.SOURCING, S.FAILED},
    S.SOURCING: {S.PACKING, S.FAILED},
    S.PACKING: {S.READY_FOR_DISPATCH, S.FAILED},
    S.READY_FOR_DISPATCH: {S.DISPATCHED, S.FAILED},
    S.DISPATCHED: {S.SHIPPED, S.RTO_INITIATED, S.RETURNED, S.FAILED},
    S.SHIPPED: {S.OUT_FOR_DELIVERY, S.RTO_INITIATED, S.RETURNED, S.FAILED},
    S.OUT_FOR_DELIVERY: {S.DELIVERED, S.RTO_INITIATED, S.RETURNED, S.FAILED},
    S.RTO_INITIATED: {S.RTO_DELIVERED, S.RETURNED, S.FAILED},
    S.DELIVERED: set(),
    S.RTO_DELIVERED: set(),
    S.RETURNED: set(),
    S.FAILED: set(),
}

_FORWARD = [S.SOURCING, S.PACKING, S.READY_FOR_DISPATCH, S.DISPATCHED, S.SHIPPED, S.OUT_FOR_DELIVERY, S.DELIVERED]


def _make_order():
    order = Order.create(
        store_connection_id="store-1",
        platform_order_id="2001",
        operator_id="op-1",
        snapshot={"line_items": [{"title": "Linen Shirt", "quantity": 1, "unit_price": 99_900}]},
    )
    order.set_costs(60_000, 8_000, 2_000, set_by="ops-1")
    return order


def _order_in(status: ZenStatus) -> Order:
    order = _make_order()
    if status == S.PLATFORM_NATIVE:
        return order
    if status == S.AWAITING_WALLET:
        order.record_shortage(70_000, 20_000)
        return order
    if status == S.FAILED:
        order.fail("Cancelled on storefront", changed_by="ops-1")
        return order

    order.record_charge(70_000, "wtx_state")
    if status == S.READY_FOR_FULFILLMENT:
        return order
    if status in (S.RTO_INITIATED, S.RTO_DELIVERED, S.RETURNED):
        for step in _FORWARD[:4]:
            order.advance(step.value, changed_by="ops-1")
        if status == S.RETURNED:
            order.mark_returned("Customer refused", changed_by="ops-1")
            return order
        order.advance(S.RTO_INITIATED.value, changed_by="ops-1")
        if status == S.RTO_DELIVERED:
            order.advance(S.RTO_DELIVERED.value, changed_by="ops-1")
        return order

    for step in _FORWARD:
        order.advance(step.value, changed_by="ops-1")
        if step == status:
            break
    return order


@pytest.mark.parametrize("status", list(ZenStatus))
def test_helper_reaches_every_status(status):
    assert _order_in(status).current_status == status


@pytest.mark.parametrize("current", list(ZenStatus), ids=lambda s: s.value)
@pytest.mark.parametrize(
    "target",
    [s for s in ZenStatus if s not in (S.PLATFORM_NATIVE, S.AWAITING_WALLET, S.READY_FOR_FULFILLMENT)],
    ids=lambda s: s.value,
)
def test_advance_follows_lifecycle_table(current, target):
    order = _order_in(current)
    if target in ALLOWED[current]:
        order.advance(target.value, changed_by="ops-1", note="moving on")
        assert order.current_status == target
    else:
        with pytest.raises(ValidationError):
            order.advance(target.value, changed_by="ops-1", note="moving on")
        assert order.current_status == current


@pytest.mark.parametrize("current", list(ZenStatus), ids=lambda s: s.value)
@pytest.mark.parametrize("target", [S.AWAITING_WALLET, S.READY_FOR_FULFILLMENT], ids=lambda s: s.value)
def test_settlement_states_unreachable_by_advance(current, target):
    order = _order_in(current)
    with pytest.raises(InvalidTransition) as exc:
        order.advance(target.value, changed_by="ops-1")
    assert order.current_status == current
    assert "status" in exc.value.messages


def test_platform_native_is_not_a_target():
    order = _order_in(S.READY_FOR_FULFILLMENT)
    with pytest.raises(InvalidTransition):
        order.advance(S.PLATFORM_NATIVE.value, changed_by="ops-1")


def test_unknown_status_rejected():
    order = _order_in(S.READY_FOR_FULFILLMENT)
    with pytest.raises(ValidationError) as exc:
        order.advance("teleported", changed_by="ops-1")
    assert "Unknown fulfillment status" in str(exc.value)


class TestStatusHistory:
    def test_every_transition_is_recorded(self):
        order = _order_in(S.SHIPPED)
        path = [(c.from_status, c.to_status) for c in order.status_history]
        assert path == [
            ("platform_native", "ready_for_fulfillment"),
            ("ready_for_fulfillment", "sourcing"),
            ("sourcing", "packing"),
            ("packing", "ready_for_dispatch"),
            ("ready_for_dispatch", "dispatched"),
            ("dispatched", "shipped"),
        ]

    def test_stage_timestamps(self):
        order = _order_in(S.DELIVERED)
        assert order.sourcing_started_at is not None
        assert order.packed_at is not None
        assert order.dispatched_at is not None
        assert order.shipped_at is not None
        assert order.delivered_at is not None
        assert order.closed_at == order.delivered_at

    def test_terminal_orders_record_closed_at(self):
        for status in (S.RTO_DELIVERED, S.RETURNED, S.FAILED):
            assert _order_in(status).closed_at is not None

    def test_open_orders_have_no_closed_at(self):
        assert _order_in(S.OUT_FOR_DELIVERY).closed_at is None


class TestTrackingDetails:
    def test_tracking_recorded_on_dispatch(self):
        order = _order_in(S.READY_FOR_DISPATCH)
        order.advance(
            S.DISPATCHED.value,
            changed_by="ops-1",
            tracking_number="AWB-7781",
            tracking_url="https://track.example.com/AWB-7781",
            courier_provider="Delhivery",
        )
        assert order.tracking_number == "AWB-7781"
        assert order.courier_provider == "Delhivery"

    def test_tracking_rejected_before_dispatch(self):
        order = _order_in(S.READY_FOR_FULFILLMENT)
        with pytest.raises(ValidationError):
            order.advance(S.SOURCING.value, changed_by="ops-1", tracking_number="AWB-1")
        assert order.current_status == S.READY_FOR_FULFILLMENT

    def test_update_tracking_after_dispatch(self):
        order = _order_in(S.SHIPPED)
        order.update_tracking(courier_provider="BlueDart")
        assert order.courier_provider == "BlueDart"


class TestReturnsAndFailures:
    def test_return_requires_reason(self):
        order = _order_in(S.SHIPPED)
        with pytest.raises(ValidationError):
            order.mark_returned("  ", changed_by="ops-1")

    def test_return_keeps_wallet_charge(self):
        order = _order_in(S.OUT_FOR_DELIVERY)
        order.mark_returned("Customer refused delivery", changed_by="ops-1")
        assert order.current_status == S.RETURNED
        assert order.wallet_charge_amount == 70_000
        assert order.wallet_transaction_ref == "wtx_state"

    def test_return_note_in_audit_trail(self):
        order = _order_in(S.DISPATCHED)
        order.mark_returned("Address not found", changed_by="ops-1")
        assert order.internal_notes[-1].content == "Order returned: Address not found"

    def test_fail_from_awaiting_clears_shortage(self):
        order = _order_in(S.AWAITING_WALLET)
        order.fail("Operator cancelled", changed_by="ops-1")
        assert order.current_status == S.FAILED
        assert order.wallet_shortage == 0

    def test_fail_requires_reason(self):
        order = _order_in(S.SOURCING)
        with pytest.raises(ValidationError):
            order.fail("")
