"""Pydantic API schemas for ZEN order diversion and wallet settlement.

These are the external API contracts — separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class SetCostsRequest(BaseModel):
    product_cost: int = Field(ge=0)
    shipping_cost: int = Field(ge=0)
    service_fee: int = Field(default=0, ge=0)
    set_by: str | None = None


class DivertOrderRequest(BaseModel):
    requested_by: str | None = None


class RetrySettlementRequest(BaseModel):
    note: str | None = None


class AdvanceOrderRequest(BaseModel):
    next_status: str
    changed_by: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    courier_provider: str | None = None
    note: str | None = None


class MarkReturnedRequest(BaseModel):
    reason: str
    changed_by: str | None = None


class AssignOrderRequest(BaseModel):
    assigned_to: str
    assigned_by: str | None = None


class UpdateTrackingRequest(BaseModel):
    tracking_number: str | None = None
    tracking_url: str | None = None
    courier_provider: str | None = None


class UpdateFlagsRequest(BaseModel):
    is_priority: bool | None = None
    has_issue: bool | None = None
    issue_description: str | None = None
    updated_by: str | None = None


class AddNoteRequest(BaseModel):
    author_id: str
    content: str


class ResumeAwaitingRequest(BaseModel):
    operator_id: str | None = None


class WalletCreditedRequest(BaseModel):
    operator_id: str
    amount: int = Field(gt=0)
    transaction_ref: str
    balance_after: int | None = None


class LedgerCredit(BaseModel):
    operator_id: str
    amount: int = Field(gt=0)


class ConfigureLedgerRequest(BaseModel):
    timeout_after_commit: bool = False
    timeout_before_commit: bool = False
    unavailable: bool = False
    lookup_fails: bool = False
    failure_count: int | None = None
    credits: list[LedgerCredit] = []


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class IngestResponse(BaseModel):
    order_id: str
    created: bool


class StatusResponse(BaseModel):
    status: str


class CostsResponse(BaseModel):
    required_amount: int


class NoteIdResponse(BaseModel):
    note_id: str


class ResumeReportResponse(BaseModel):
    operators: int
    scanned: int
    resumed: int
    still_waiting: int
    flagged: int
    skipped: int
    errors: int


class LedgerConfigResponse(BaseModel):
    ledger: str
    timeout_after_commit: bool
    timeout_before_commit: bool
    unavailable: bool
    lookup_fails: bool
    failure_count: int | None = None
    balances: dict[str, int] = {}


class WalletQueueResponse(BaseModel):
    operator_id: str
    awaiting_count: int
    total_shortage: int
    suggested_top_up: int


class LineItemResponse(BaseModel):
    title: str
    sku: str | None = None
    quantity: int
    unit_price: int


class NoteResponse(BaseModel):
    note_id: str
    author_id: str
    content: str
    created_at: datetime


class StatusChangeResponse(BaseModel):
    from_status: str
    to_status: str
    changed_by: str
    changed_at: datetime
    note: str | None = None


class OrderResponse(BaseModel):
    order_id: str
    store_connection_id: str
    platform_order_id: str
    platform_order_name: str | None = None
    operator_id: str
    status: str
    currency: str
    total: int
    product_cost: int
    shipping_cost: int
    service_fee: int
    required_amount: int
    wallet_charge_amount: int | None = None
    wallet_transaction_ref: str | None = None
    wallet_charged_at: datetime | None = None
    wallet_shortage: int
    settlement_attempts: int
    needs_manual_review: bool
    is_priority: bool
    has_issue: bool
    issue_description: str | None = None
    assigned_to: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    courier_provider: str | None = None
    line_items: list[LineItemResponse]
    internal_notes: list[NoteResponse]
    status_history: list[StatusChangeResponse]


class OrderSummaryResponse(BaseModel):
    order_id: str
    operator_id: str
    platform_order_id: str
    platform_order_name: str | None = None
    status: str
    total: int
    wallet_charge_amount: int | None = None
    wallet_shortage: int
    needs_manual_review: bool
    is_priority: bool
    has_issue: bool
    assigned_to: str | None = None
    tracking_number: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OrderListResponse(BaseModel):
    orders: list[OrderSummaryResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class OrderStatsResponse(BaseModel):
    total_orders: int
    status_counts: dict[str, int]
    order_value: int
    total_charged: int
    total_shortage: int
    priority_count: int
    issue_count: int
    review_count: int
