"""Shared BDD fixtures and step definitions for ZEN order settlement."""

import json

import pytest
from fulfillment.order.diversion import RequestDiversion
from fulfillment.order.exceptions import LedgerUnavailable
from fulfillment.order.ingestion import IngestPlatformOrder
from fulfillment.order.locks import process_for_order
from fulfillment.order.operations import SetFulfillmentCosts
from fulfillment.order.order import Order
from fulfillment.order.progression import AdvanceOrder
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

_counter = {"next": 5000}


def _next_platform_order_id():
    _counter["next"] += 1
    return str(_counter["next"])


def ingest_priced_order(operator_id, product_cost, shipping_cost):
    platform_order_id = _next_platform_order_id()
    result = process_for_order(
        f"store-bdd:{platform_order_id}",
        IngestPlatformOrder(
            store_connection_id="store-bdd",
            platform_order_id=platform_order_id,
            operator_id=operator_id,
            snapshot=json.dumps(
                {
                    "platform_order_name": f"#{platform_order_id}",
                    "line_items": [{"title": "Handloom Saree", "quantity": 1, "unit_price": 150_000}],
                }
            ),
        ),
    )
    order_id = result["order_id"]
    process_for_order(
        order_id,
        SetFulfillmentCosts(order_id=order_id, product_cost=product_cost, shipping_cost=shipping_cost),
    )
    return order_id


def load(order_id) -> Order:
    return current_domain.repository_for(Order).get(order_id)


@pytest.fixture()
def error():
    """Container for captured errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('operator "{operator_id}" has a wallet balance of {amount:d}'))
def operator_balance(ledger, operator_id, amount):
    if amount:
        ledger.credit(operator_id, amount, reference="bdd-seed")


@given(
    parsers.cfparse(
        'an order for operator "{operator_id}" costing {product_cost:d} product and {shipping_cost:d} shipping'
    ),
    target_fixture="order_id",
)
def priced_order(operator_id, product_cost, shipping_cost):
    return ingest_priced_order(operator_id, product_cost, shipping_cost)


def _settle(ledger):
    ledger.credit("op-bdd", 50_000, reference="bdd-seed")
    order_id = ingest_priced_order("op-bdd", 30_000, 5_000)
    process_for_order(order_id, RequestDiversion(order_id=order_id))
    return order_id


@given("a settled order", target_fixture="order_id")
def settled_order(ledger):
    return _settle(ledger)


@given("a dispatched order", target_fixture="order_id")
def dispatched_order(ledger):
    order_id = _settle(ledger)
    for status in ("sourcing", "packing", "ready_for_dispatch"):
        process_for_order(order_id, AdvanceOrder(order_id=order_id, next_status=status))
    process_for_order(
        order_id,
        AdvanceOrder(
            order_id=order_id,
            next_status="dispatched",
            tracking_number="AWB-BDD-1",
            courier_provider="Delhivery",
        ),
    )
    return order_id


@given("an order awaiting a wallet top-up", target_fixture="order_id")
def awaiting_order():
    order_id = ingest_priced_order("op-empty", 30_000, 5_000)
    process_for_order(order_id, RequestDiversion(order_id=order_id))
    return order_id


@given(parsers.cfparse("the ledger {behaviour}"))
def ledger_behaviour(ledger, behaviour):
    flags = {
        "times out after committing the debit once": {"timeout_after_commit": True, "failure_count": 1},
        "times out before committing the debit once": {"timeout_before_commit": True, "failure_count": 1},
        "times out after committing and cannot be queried": {"timeout_after_commit": True, "lookup_fails": True},
        "is unreachable": {"unavailable": True},
    }
    ledger.configure(**flags[behaviour])


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the order is diverted")
def divert(order_id, error):
    try:
        process_for_order(order_id, RequestDiversion(order_id=order_id, requested_by="ops-bdd"))
    except (ValidationError, LedgerUnavailable) as exc:
        error["exc"] = exc


@when(parsers.cfparse('the order is advanced to "{status}"'))
def advance_to(order_id, status, error):
    try:
        process_for_order(order_id, AdvanceOrder(order_id=order_id, next_status=status, changed_by="ops-bdd"))
    except ValidationError as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order_id, status):
    assert load(order_id).status == status


@then(parsers.cfparse("the wallet was charged {amount:d}"))
def wallet_charged(order_id, amount):
    order = load(order_id)
    assert order.wallet_charge_amount == amount
    assert order.wallet_transaction_ref


@then("the wallet was not charged")
def wallet_not_charged(order_id):
    order = load(order_id)
    assert order.wallet_charge_amount is None
    assert order.wallet_transaction_ref is None


@then(parsers.cfparse('operator "{operator_id}" is left with {amount:d} in the wallet'))
def wallet_left_with(ledger, operator_id, amount):
    assert ledger.balance(operator_id) == amount


@then(parsers.cfparse('the ledger holds {count:d} debit for operator "{operator_id}"'))
@then(parsers.cfparse('the ledger holds {count:d} debits for operator "{operator_id}"'))
def ledger_debit_count(ledger, operator_id, count):
    assert len(ledger.debits_for(operator_id)) == count


@then(parsers.cfparse('the audit trail includes "{content}"'))
def audit_trail_includes(order_id, content):
    contents = [note.content for note in load(order_id).internal_notes]
    assert any(content in c for c in contents), contents


@then("the order action fails with a validation error")
def order_action_fails(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)
