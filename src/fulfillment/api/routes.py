"""FastAPI routes for ZEN order diversion and wallet settlement."""

import hmac
import json
import os
from collections import Counter

import structlog
from fastapi import APIRouter, Header, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from fulfillment.api.schemas import (
    AddNoteRequest,
    AdvanceOrderRequest,
    AssignOrderRequest,
    ConfigureLedgerRequest,
    CostsResponse,
    DivertOrderRequest,
    IngestResponse,
    LedgerConfigResponse,
    LineItemResponse,
    MarkReturnedRequest,
    NoteIdResponse,
    NoteResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    OrderSummaryResponse,
    ResumeAwaitingRequest,
    ResumeReportResponse,
    RetrySettlementRequest,
    SetCostsRequest,
    StatusChangeResponse,
    StatusResponse,
    UpdateFlagsRequest,
    UpdateTrackingRequest,
    WalletCreditedRequest,
    WalletQueueResponse,
)
from fulfillment.ledger import get_ledger
from fulfillment.ledger.fake_adapter import FakeWalletLedger
from fulfillment.order.auto_resume import ResumeAwaitingOrders
from fulfillment.order.diversion import RequestDiversion, RetrySettlement
from fulfillment.order.exceptions import LedgerUnavailable
from fulfillment.order.ingestion import (
    IngestPlatformOrder,
    snapshot_from_platform_payload,
    verify_platform_signature,
)
from fulfillment.order.locks import process_for_order
from fulfillment.order.operations import (
    AddInternalNote,
    AssignOrder,
    SetFulfillmentCosts,
    UpdateOrderFlags,
    UpdateTracking,
)
from fulfillment.order.order import SYSTEM_AUTHOR, TERMINAL_STATUSES, Order, ZenStatus
from fulfillment.order.progression import AdvanceOrder, MarkReturned
from fulfillment.projections.operator_wallet_queue import OperatorWalletQueue
from fulfillment.projections.order_status import OrderStatusView

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
# Handlers that reach the wallet ledger or the store are plain functions so
# FastAPI runs them in its threadpool instead of on the event loop.
order_router = APIRouter(prefix="/orders", tags=["orders"])


async def ledger_unavailable_handler(request: Request, exc: LedgerUnavailable) -> JSONResponse:
    """Settlement could not reach the ledger; the order is unchanged and may be retried."""
    return JSONResponse(
        status_code=503,
        content={"error": "Wallet ledger unavailable", "reason": exc.reason},
    )


def _order_response(order: Order) -> OrderResponse:
    notes = sorted(order.internal_notes or [], key=lambda n: n.created_at)
    history = sorted(order.status_history or [], key=lambda c: c.changed_at)
    return OrderResponse(
        order_id=str(order.id),
        store_connection_id=str(order.store_connection_id),
        platform_order_id=order.platform_order_id,
        platform_order_name=order.platform_order_name,
        operator_id=str(order.operator_id),
        status=order.status,
        currency=order.currency,
        total=order.totals.total if order.totals else 0,
        product_cost=order.product_cost or 0,
        shipping_cost=order.shipping_cost or 0,
        service_fee=order.service_fee or 0,
        required_amount=order.required_amount(),
        wallet_charge_amount=order.wallet_charge_amount,
        wallet_transaction_ref=order.wallet_transaction_ref,
        wallet_charged_at=order.wallet_charged_at,
        wallet_shortage=order.wallet_shortage or 0,
        settlement_attempts=order.settlement_attempts or 0,
        needs_manual_review=bool(order.needs_manual_review),
        is_priority=bool(order.is_priority),
        has_issue=bool(order.has_issue),
        issue_description=order.issue_description,
        assigned_to=order.assigned_to,
        tracking_number=order.tracking_number,
        tracking_url=order.tracking_url,
        courier_provider=order.courier_provider,
        line_items=[
            LineItemResponse(title=item.title, sku=item.sku, quantity=item.quantity, unit_price=item.unit_price or 0)
            for item in order.line_items or []
        ],
        internal_notes=[
            NoteResponse(note_id=str(n.id), author_id=n.author_id, content=n.content, created_at=n.created_at)
            for n in notes
        ],
        status_history=[
            StatusChangeResponse(
                from_status=c.from_status,
                to_status=c.to_status,
                changed_by=c.changed_by,
                changed_at=c.changed_at,
                note=c.note,
            )
            for c in history
        ],
    )


@order_router.post("/webhooks/{store_connection_id}", response_model=IngestResponse)
async def ingest_order_webhook(
    store_connection_id: str,
    request: Request,
    response: Response,
    x_zen_operator_id: str = Header(default=""),
    x_shopify_hmac_sha256: str = Header(default=""),
) -> IngestResponse:
    """Capture a storefront order create/update webhook. Repeated deliveries are absorbed."""
    raw_body = await request.body()
    if not verify_platform_signature(raw_body, x_shopify_hmac_sha256, os.environ.get("SHOPIFY_WEBHOOK_SECRET")):
        raise HTTPException(status_code=401, detail="Invalid storefront webhook signature")
    if not x_zen_operator_id:
        raise HTTPException(status_code=400, detail="X-Zen-Operator-Id header is required")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON")
    if not isinstance(payload, dict) or payload.get("id") is None:
        raise HTTPException(status_code=400, detail="Webhook payload has no order id")

    platform_order_id = str(payload["id"])
    command = IngestPlatformOrder(
        store_connection_id=store_connection_id,
        platform_order_id=platform_order_id,
        operator_id=x_zen_operator_id,
        snapshot=json.dumps(snapshot_from_platform_payload(payload)),
    )
    result = await run_in_threadpool(process_for_order, f"{store_connection_id}:{platform_order_id}", command)
    response.status_code = 201 if result["created"] else 200
    return IngestResponse(**result)


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------
def _dashboard_views(
    status: str | None = None,
    operator_id: str | None = None,
    is_priority: bool | None = None,
    has_issue: bool | None = None,
) -> list[OrderStatusView]:
    """Status views matching the filters, newest first."""
    query = current_domain.repository_for(OrderStatusView)._dao.query
    if status == "active":
        query = query.exclude(status__in=[s.value for s in TERMINAL_STATUSES])
    elif status:
        if status not in {s.value for s in ZenStatus}:
            raise HTTPException(status_code=400, detail=f"Unknown status filter {status!r}")
        query = query.filter(status=status)
    if operator_id:
        query = query.filter(operator_id=operator_id)
    if is_priority is not None:
        query = query.filter(is_priority=is_priority)
    if has_issue is not None:
        query = query.filter(has_issue=has_issue)
    return query.order_by("-created_at").all().items


def _matches_search(view: OrderStatusView, needle: str) -> bool:
    values = (view.platform_order_name, view.platform_order_id, view.tracking_number, view.assigned_to)
    return any(needle in value.lower() for value in values if value)


@order_router.get("", response_model=OrderListResponse)
def list_orders(
    status: str | None = None,
    operator_id: str | None = None,
    is_priority: bool | None = None,
    has_issue: bool | None = None,
    search: str | None = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> OrderListResponse:
    """Page through diverted orders, priority orders first.

    ``status`` takes a fulfillment status or ``active`` for every order that
    is not closed. ``search`` matches order name, storefront id, tracking
    number or assignee, case-insensitively.
    """
    views = _dashboard_views(status, operator_id, is_priority, has_issue)
    if search:
        needle = search.strip().lower()
        views = [v for v in views if _matches_search(v, needle)]
    views = sorted(views, key=lambda v: not v.is_priority)

    page = views[offset : offset + limit]
    return OrderListResponse(
        orders=[
            OrderSummaryResponse(
                order_id=str(v.order_id),
                operator_id=str(v.operator_id),
                platform_order_id=v.platform_order_id,
                platform_order_name=v.platform_order_name,
                status=v.status,
                total=v.total or 0,
                wallet_charge_amount=v.wallet_charge_amount,
                wallet_shortage=v.wallet_shortage or 0,
                needs_manual_review=bool(v.needs_manual_review),
                is_priority=bool(v.is_priority),
                has_issue=bool(v.has_issue),
                assigned_to=v.assigned_to,
                tracking_number=v.tracking_number,
                created_at=v.created_at,
                updated_at=v.updated_at,
            )
            for v in page
        ],
        total=len(views),
        limit=limit,
        offset=offset,
        has_more=offset + limit < len(views),
    )


@order_router.get("/stats", response_model=OrderStatsResponse)
def order_stats(operator_id: str | None = None) -> OrderStatsResponse:
    """Order counts by status and the money moved through settlement."""
    views = _dashboard_views(operator_id=operator_id)
    awaiting = ZenStatus.AWAITING_WALLET.value
    return OrderStatsResponse(
        total_orders=len(views),
        status_counts=dict(Counter(v.status for v in views)),
        order_value=sum(v.total or 0 for v in views),
        total_charged=sum(v.wallet_charge_amount or 0 for v in views),
        total_shortage=sum(v.wallet_shortage or 0 for v in views if v.status == awaiting),
        priority_count=sum(1 for v in views if v.is_priority),
        issue_count=sum(1 for v in views if v.has_issue),
        review_count=sum(1 for v in views if v.needs_manual_review),
    )


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str) -> OrderResponse:
    """Return the order with its settlement state and audit trail."""
    try:
        order = current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return _order_response(order)


@order_router.put("/{order_id}/costs", response_model=CostsResponse)
def set_costs(order_id: str, body: SetCostsRequest) -> CostsResponse:
    """Price the fulfillment before the order is diverted."""
    command = SetFulfillmentCosts(
        order_id=order_id,
        product_cost=body.product_cost,
        shipping_cost=body.shipping_cost,
        service_fee=body.service_fee,
        set_by=body.set_by,
    )
    required = process_for_order(order_id, command)
    return CostsResponse(required_amount=required)


@order_router.put("/{order_id}/divert", response_model=StatusResponse)
def divert_order(order_id: str, body: DivertOrderRequest | None = None) -> StatusResponse:
    """Divert the order into ZEN fulfillment and charge the operator's wallet."""
    requested_by = body.requested_by if body and body.requested_by else SYSTEM_AUTHOR
    status = process_for_order(order_id, RequestDiversion(order_id=order_id, requested_by=requested_by))
    return StatusResponse(status=status)


@order_router.put("/{order_id}/retry-settlement", response_model=StatusResponse)
def retry_settlement(order_id: str, body: RetrySettlementRequest | None = None) -> StatusResponse:
    """Retry the wallet charge of an order awaiting a top-up."""
    command = RetrySettlement(order_id=order_id, note=body.note if body else None)
    status = process_for_order(order_id, command)
    return StatusResponse(status=status)


@order_router.put("/{order_id}/advance", response_model=StatusResponse)
def advance_order(order_id: str, body: AdvanceOrderRequest) -> StatusResponse:
    """Move a settled order to its next fulfillment stage."""
    command = AdvanceOrder(
        order_id=order_id,
        next_status=body.next_status,
        changed_by=body.changed_by or SYSTEM_AUTHOR,
        tracking_number=body.tracking_number,
        tracking_url=body.tracking_url,
        courier_provider=body.courier_provider,
        note=body.note,
    )
    status = process_for_order(order_id, command)
    return StatusResponse(status=status)


@order_router.put("/{order_id}/return", response_model=StatusResponse)
def mark_returned(order_id: str, body: MarkReturnedRequest) -> StatusResponse:
    """Close a dispatched order as returned."""
    command = MarkReturned(
        order_id=order_id,
        reason=body.reason,
        changed_by=body.changed_by or SYSTEM_AUTHOR,
    )
    status = process_for_order(order_id, command)
    return StatusResponse(status=status)


@order_router.put("/{order_id}/assign", response_model=StatusResponse)
def assign_order(order_id: str, body: AssignOrderRequest) -> StatusResponse:
    """Hand the order to an operations staff member."""
    command = AssignOrder(order_id=order_id, assigned_to=body.assigned_to, assigned_by=body.assigned_by)
    process_for_order(order_id, command)
    return StatusResponse(status="assigned")


@order_router.put("/{order_id}/flags", response_model=StatusResponse)
def update_flags(order_id: str, body: UpdateFlagsRequest) -> StatusResponse:
    """Mark the order as priority or as having an issue."""
    command = UpdateOrderFlags(
        order_id=order_id,
        is_priority=body.is_priority,
        has_issue=body.has_issue,
        issue_description=body.issue_description,
        updated_by=body.updated_by,
    )
    process_for_order(order_id, command)
    return StatusResponse(status="flags_updated")


@order_router.put("/{order_id}/tracking", response_model=StatusResponse)
def update_tracking(order_id: str, body: UpdateTrackingRequest) -> StatusResponse:
    """Record courier tracking details on a dispatched order."""
    command = UpdateTracking(
        order_id=order_id,
        tracking_number=body.tracking_number,
        tracking_url=body.tracking_url,
        courier_provider=body.courier_provider,
    )
    process_for_order(order_id, command)
    return StatusResponse(status="tracking_updated")


@order_router.post("/{order_id}/notes", status_code=201, response_model=NoteIdResponse)
def add_note(order_id: str, body: AddNoteRequest) -> NoteIdResponse:
    """Append a staff note to the order's audit trail."""
    note_id = process_for_order(
        order_id,
        AddInternalNote(order_id=order_id, author_id=body.author_id, content=body.content),
    )
    return NoteIdResponse(note_id=note_id)


@order_router.post("/maintenance/resume-awaiting", response_model=ResumeReportResponse)
def resume_awaiting(body: ResumeAwaitingRequest | None = None) -> ResumeReportResponse:
    """Run the auto-resume scanner over orders awaiting a wallet top-up."""
    operator_id = body.operator_id if body else None
    report = current_domain.process(ResumeAwaitingOrders(operator_id=operator_id), asynchronous=False)
    return ResumeReportResponse(**report)


@order_router.post("/ledger/credit-webhook", response_model=ResumeReportResponse)
def wallet_credited_webhook(
    body: WalletCreditedRequest,
    x_ledger_token: str = Header(default=""),
) -> ResumeReportResponse:
    """Ledger notification that an operator's wallet was topped up."""
    expected = os.environ.get("WALLET_LEDGER_WEBHOOK_TOKEN")
    if expected and not hmac.compare_digest(expected, x_ledger_token):
        raise HTTPException(status_code=401, detail="Invalid ledger webhook token")

    logger.info(
        "Wallet credit notification received",
        operator_id=body.operator_id,
        amount=body.amount,
        transaction_ref=body.transaction_ref,
    )
    report = current_domain.process(ResumeAwaitingOrders(operator_id=body.operator_id), asynchronous=False)
    return ResumeReportResponse(**report)


@order_router.get("/operators/{operator_id}/wallet-queue", response_model=WalletQueueResponse)
def get_wallet_queue(operator_id: str) -> WalletQueueResponse:
    """How much the operator must top up to release every parked order."""
    try:
        queue = current_domain.repository_for(OperatorWalletQueue).get(operator_id)
    except ObjectNotFoundError:
        return WalletQueueResponse(operator_id=operator_id, awaiting_count=0, total_shortage=0, suggested_top_up=0)
    return WalletQueueResponse(
        operator_id=operator_id,
        awaiting_count=queue.awaiting_count or 0,
        total_shortage=queue.total_shortage or 0,
        suggested_top_up=queue.suggested_top_up or 0,
    )


@order_router.post("/ledger/configure", response_model=LedgerConfigResponse)
def configure_ledger(body: ConfigureLedgerRequest) -> LedgerConfigResponse:
    """Configure the FakeWalletLedger behavior and balances (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Ledger configuration not available in production")

    ledger = get_ledger()
    if not isinstance(ledger, FakeWalletLedger):
        raise HTTPException(status_code=400, detail="Ledger configuration only available for FakeWalletLedger")

    ledger.configure(
        timeout_after_commit=body.timeout_after_commit,
        timeout_before_commit=body.timeout_before_commit,
        unavailable=body.unavailable,
        lookup_fails=body.lookup_fails,
        failure_count=body.failure_count,
    )
    for credit in body.credits:
        ledger.credit(credit.operator_id, credit.amount, reference="dev-top-up")

    operators = {credit.operator_id for credit in body.credits}
    return LedgerConfigResponse(
        ledger=type(ledger).__name__,
        timeout_after_commit=ledger.timeout_after_commit,
        timeout_before_commit=ledger.timeout_before_commit,
        unavailable=ledger.unavailable,
        lookup_fails=ledger.lookup_fails,
        failure_count=ledger.failure_count,
        balances={operator_id: ledger.balance(operator_id) for operator_id in operators},
    )
