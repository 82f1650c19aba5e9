"""Order aggregate (CQRS) — a storefront order diverted into ZEN fulfillment.

One Order record per storefront order, keyed by the natural key
(store_connection_id, platform_order_id). The record carries the commerce
snapshot captured at ingestion, the cost breakdown and wallet charge, the
fulfillment lifecycle status, and an append-only audit trail.

State Machine:
    PLATFORM_NATIVE → {AWAITING_WALLET, READY_FOR_FULFILLMENT}   (settlement only)
    AWAITING_WALLET → READY_FOR_FULFILLMENT                      (settlement only)
    READY_FOR_FULFILLMENT → SOURCING → PACKING → READY_FOR_DISPATCH → DISPATCHED
    DISPATCHED → SHIPPED → OUT_FOR_DELIVERY → DELIVERED
    {DISPATCHED, SHIPPED, OUT_FOR_DELIVERY} → {RTO_INITIATED, RETURNED}
    RTO_INITIATED → {RTO_DELIVERED, RETURNED}
    any non-terminal → FAILED
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from fulfillment.domain import fulfillment
from fulfillment.order.events import (
    FulfillmentCostsSet,
    FulfillmentStatusChanged,
    InternalNoteAdded,
    OrderAssigned,
    OrderDelivered,
    OrderFailed,
    OrderFlagsUpdated,
    OrderIngested,
    OrderReturned,
    OrderRtoDelivered,
    OrderSnapshotRefreshed,
    SettlementFlaggedForReview,
    TrackingUpdated,
    WalletCharged,
    WalletShortageRecorded,
)
from fulfillment.order.exceptions import InvalidTransition

SYSTEM_AUTHOR = "system"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ZenStatus(Enum):
    PLATFORM_NATIVE = "platform_native"
    AWAITING_WALLET = "awaiting_wallet"
    READY_FOR_FULFILLMENT = "ready_for_fulfillment"
    SOURCING = "sourcing"
    PACKING = "packing"
    READY_FOR_DISPATCH = "ready_for_dispatch"
    DISPATCHED = "dispatched"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    RTO_INITIATED = "rto_initiated"
    RTO_DELIVERED = "rto_delivered"
    RETURNED = "returned"
    FAILED = "failed"


_VALID_TRANSITIONS = {
    ZenStatus.PLATFORM_NATIVE: {ZenStatus.AWAITING_WALLET, ZenStatus.READY_FOR_FULFILLMENT, ZenStatus.FAILED},
    ZenStatus.AWAITING_WALLET: {ZenStatus.READY_FOR_FULFILLMENT, ZenStatus.FAILED},
    ZenStatus.READY_FOR_FULFILLMENT: {ZenStatus.SOURCING, ZenStatus.FAILED},
    ZenStatus.SOURCING: {ZenStatus.PACKING, ZenStatus.FAILED},
    ZenStatus.PACKING: {ZenStatus.READY_FOR_DISPATCH, ZenStatus.FAILED},
    ZenStatus.READY_FOR_DISPATCH: {ZenStatus.DISPATCHED, ZenStatus.FAILED},
    ZenStatus.DISPATCHED: {ZenStatus.SHIPPED, ZenStatus.RTO_INITIATED, ZenStatus.RETURNED, ZenStatus.FAILED},
    ZenStatus.SHIPPED: {ZenStatus.OUT_FOR_DELIVERY, ZenStatus.RTO_INITIATED, ZenStatus.RETURNED, ZenStatus.FAILED},
    ZenStatus.OUT_FOR_DELIVERY: {
        ZenStatus.DELIVERED,
        ZenStatus.RTO_INITIATED,
        ZenStatus.RETURNED,
        ZenStatus.FAILED,
    },
    ZenStatus.RTO_INITIATED: {ZenStatus.RTO_DELIVERED, ZenStatus.RETURNED, ZenStatus.FAILED},
    ZenStatus.DELIVERED: set(),  # terminal
    ZenStatus.RTO_DELIVERED: set(),  # terminal
    ZenStatus.RETURNED: set(),  # terminal
    ZenStatus.FAILED: set(),  # terminal
}

# Reached only through wallet settlement, never through advance()
SETTLEMENT_STATUSES = {ZenStatus.AWAITING_WALLET, ZenStatus.READY_FOR_FULFILLMENT}

TERMINAL_STATUSES = {status for status, targets in _VALID_TRANSITIONS.items() if not targets}

_RETURNABLE_STATUSES = {
    ZenStatus.DISPATCHED,
    ZenStatus.SHIPPED,
    ZenStatus.OUT_FOR_DELIVERY,
    ZenStatus.RTO_INITIATED,
}

_TRACKING_STATUSES = {
    ZenStatus.DISPATCHED,
    ZenStatus.SHIPPED,
    ZenStatus.OUT_FOR_DELIVERY,
    ZenStatus.DELIVERED,
    ZenStatus.RTO_INITIATED,
    ZenStatus.RTO_DELIVERED,
    ZenStatus.RETURNED,
}

_STAGE_TIMESTAMPS = {
    ZenStatus.SOURCING: "sourcing_started_at",
    ZenStatus.READY_FOR_DISPATCH: "packed_at",
    ZenStatus.DISPATCHED: "dispatched_at",
    ZenStatus.SHIPPED: "shipped_at",
    ZenStatus.DELIVERED: "delivered_at",
}


def parse_status(value) -> ZenStatus:
    if isinstance(value, ZenStatus):
        return value
    try:
        return ZenStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown fulfillment status: {value}"]}) from None


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Order")
class Customer:
    """Storefront customer as captured on the order."""

    platform_customer_id = String(max_length=100)
    email = String(max_length=254)
    first_name = String(max_length=100)
    last_name = String(max_length=100)
    phone = String(max_length=30)


@fulfillment.value_object(part_of="Order")
class ShippingAddress:
    name = String(max_length=200)
    address1 = String(max_length=255)
    address2 = String(max_length=255)
    city = String(max_length=100)
    province = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=100)
    phone = String(max_length=30)


@fulfillment.value_object(part_of="Order")
class OrderTotals:
    """Storefront totals in minor currency units."""

    subtotal = Integer(default=0, min_value=0)
    tax = Integer(default=0, min_value=0)
    shipping = Integer(default=0, min_value=0)
    total = Integer(default=0, min_value=0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="Order")
class LineItem:
    platform_line_item_id = String(max_length=100)
    title = String(required=True, max_length=255)
    variant_title = String(max_length=255)
    sku = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(default=0, min_value=0)
    product_ref = String(max_length=100)
    variant_ref = String(max_length=100)


@fulfillment.entity(part_of="Order")
class InternalNote:
    """One immutable audit trail entry."""

    content = Text(required=True)
    author_id = String(required=True, max_length=100)
    created_at = DateTime(required=True)


@fulfillment.entity(part_of="Order")
class StatusChange:
    from_status = String(required=True, max_length=50)
    to_status = String(required=True, max_length=50)
    changed_by = String(required=True, max_length=100)
    changed_at = DateTime(required=True)
    note = Text()


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Order:
    # Natural key and ownership
    store_connection_id = Identifier(required=True)
    platform_order_id = String(required=True, max_length=100)
    operator_id = Identifier(required=True)

    # Commerce snapshot
    platform_order_name = String(max_length=50)
    platform_order_number = Integer()
    email = String(max_length=254)
    customer = ValueObject(Customer)
    shipping_address = ValueObject(ShippingAddress)
    line_items = HasMany(LineItem)
    currency = String(max_length=3, default="INR")
    totals = ValueObject(OrderTotals)
    financial_status = String(max_length=50)
    platform_fulfillment_status = String(max_length=50)
    platform_created_at = DateTime()
    platform_updated_at = DateTime()

    # Fulfillment lifecycle and settlement
    status = String(choices=ZenStatus, default=ZenStatus.PLATFORM_NATIVE.value)
    product_cost = Integer(default=0, min_value=0)
    shipping_cost = Integer(default=0, min_value=0)
    service_fee = Integer(default=0, min_value=0)
    wallet_charge_amount = Integer(min_value=0)
    wallet_charged_at = DateTime()
    wallet_transaction_ref = String(max_length=100)
    wallet_shortage = Integer(default=0, min_value=0)
    settlement_attempts = Integer(default=0)
    last_settlement_attempt_at = DateTime()
    needs_manual_review = Boolean(default=False)

    # Operations
    tracking_number = String(max_length=100)
    tracking_url = String(max_length=500)
    courier_provider = String(max_length=100)
    assigned_to = String(max_length=100)
    is_priority = Boolean(default=False)
    has_issue = Boolean(default=False)
    issue_description = Text()
    sourcing_started_at = DateTime()
    packed_at = DateTime()
    dispatched_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    closed_at = DateTime()

    # Audit
    internal_notes = HasMany(InternalNote)
    status_history = HasMany(StatusChange)

    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def shortage_only_while_awaiting_wallet(self):
        awaiting = self.status == ZenStatus.AWAITING_WALLET.value
        if awaiting != ((self.wallet_shortage or 0) > 0):
            raise ValidationError(
                {"wallet_shortage": ["Wallet shortage must be positive exactly while awaiting wallet"]}
            )

    @invariant.post
    def charge_fields_recorded_together(self):
        if (self.wallet_charged_at is None) != (self.wallet_transaction_ref is None):
            raise ValidationError({"wallet_transaction_ref": ["Charge timestamp and reference are set together"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, store_connection_id: str, platform_order_id: str, operator_id: str, snapshot: dict):
        """Capture a storefront order in PLATFORM_NATIVE state."""
        now = datetime.now(UTC)
        order = cls(
            store_connection_id=store_connection_id,
            platform_order_id=platform_order_id,
            operator_id=operator_id,
            status=ZenStatus.PLATFORM_NATIVE.value,
            created_at=now,
            updated_at=now,
        )
        order._apply_snapshot(snapshot)
        order.raise_(
            OrderIngested(
                order_id=str(order.id),
                store_connection_id=store_connection_id,
                platform_order_id=platform_order_id,
                platform_order_name=order.platform_order_name or "",
                operator_id=operator_id,
                line_item_count=len(order.line_items or []),
                total=order.totals.total if order.totals else 0,
                currency=order.currency,
                ingested_at=now,
            )
        )
        return order

    @property
    def natural_key(self) -> str:
        return f"{self.store_connection_id}:{self.platform_order_id}"

    @property
    def current_status(self) -> ZenStatus:
        return ZenStatus(self.status)

    @property
    def is_charged(self) -> bool:
        return self.wallet_transaction_ref is not None

    def required_amount(self) -> int:
        """Wallet amount this order needs, in minor units."""
        return (self.product_cost or 0) + (self.shipping_cost or 0) + (self.service_fee or 0)

    # -------------------------------------------------------------------
    # Commerce snapshot
    # -------------------------------------------------------------------
    def _apply_snapshot(self, snapshot: dict) -> None:
        customer = snapshot.get("customer")
        address = snapshot.get("shipping_address")
        totals = snapshot.get("totals")

        self.platform_order_name = snapshot.get("platform_order_name")
        self.platform_order_number = snapshot.get("platform_order_number")
        self.email = snapshot.get("email")
        self.customer = Customer(**customer) if customer else None
        self.shipping_address = ShippingAddress(**address) if address else None
        self.totals = OrderTotals(**totals) if totals else None
        self.currency = snapshot.get("currency") or "INR"
        self.financial_status = snapshot.get("financial_status")
        self.platform_fulfillment_status = snapshot.get("platform_fulfillment_status")
        self.platform_created_at = snapshot.get("platform_created_at")
        self.platform_updated_at = snapshot.get("platform_updated_at")

        for item in list(self.line_items or []):
            self.remove_line_items(item)
        for item_data in snapshot.get("line_items") or []:
            self.add_line_items(LineItem(**item_data))

    def refresh_snapshot(self, snapshot: dict) -> bool:
        """Apply a corrective update from the storefront.

        Only the commerce snapshot changes; lifecycle, cost and charge fields
        are left alone. Replays older than the stored snapshot are ignored.
        Returns True when the snapshot was replaced.
        """
        incoming = snapshot.get("platform_updated_at")
        if incoming and self.platform_updated_at and _naive(incoming) < _naive(self.platform_updated_at):
            return False

        now = datetime.now(UTC)
        self._apply_snapshot(snapshot)
        self.updated_at = now
        self.raise_(
            OrderSnapshotRefreshed(
                order_id=str(self.id),
                platform_order_id=self.platform_order_id,
                financial_status=self.financial_status or "",
                platform_fulfillment_status=self.platform_fulfillment_status or "",
                total=self.totals.total if self.totals else 0,
                refreshed_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Costs
    # -------------------------------------------------------------------
    def set_costs(self, product_cost: int, shipping_cost: int, service_fee: int, set_by: str) -> None:
        """Price the fulfillment. Costs are frozen once the order leaves PLATFORM_NATIVE."""
        if self.current_status != ZenStatus.PLATFORM_NATIVE:
            raise ValidationError({"status": ["Fulfillment costs are frozen once the order has been diverted"]})
        for name, value in (
            ("product_cost", product_cost),
            ("shipping_cost", shipping_cost),
            ("service_fee", service_fee),
        ):
            if value is None or value < 0:
                raise ValidationError({name: ["Must be a non-negative amount in minor units"]})

        now = datetime.now(UTC)
        self.product_cost = product_cost
        self.shipping_cost = shipping_cost
        self.service_fee = service_fee
        self.updated_at = now
        self.raise_(
            FulfillmentCostsSet(
                order_id=str(self.id),
                product_cost=product_cost,
                shipping_cost=shipping_cost,
                service_fee=service_fee,
                required_amount=self.required_amount(),
                set_by=set_by,
                set_at=now,
            )
        )

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: ZenStatus) -> None:
        current = self.current_status
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(current.value, target_status.value)

    def _apply_status(self, target_status: ZenStatus, changed_by: str, now: datetime, note: str | None = None):
        """Mutate status and its bookkeeping. Callers wrap this in atomic_change."""
        previous = self.current_status
        self.status = target_status.value
        if previous == ZenStatus.AWAITING_WALLET:
            self.wallet_shortage = 0
        stage_field = _STAGE_TIMESTAMPS.get(target_status)
        if stage_field:
            setattr(self, stage_field, now)
        if target_status in TERMINAL_STATUSES:
            self.closed_at = now
        self.updated_at = now
        self.add_status_history(
            StatusChange(
                from_status=previous.value,
                to_status=target_status.value,
                changed_by=changed_by,
                changed_at=now,
                note=note,
            )
        )
        return previous

    def _announce_status_change(
        self,
        previous: ZenStatus,
        changed_by: str,
        now: datetime,
        reason: str | None = None,
        released_shortage: int = 0,
    ) -> None:
        current = self.current_status
        self.raise_(
            FulfillmentStatusChanged(
                order_id=str(self.id),
                operator_id=str(self.operator_id),
                from_status=previous.value,
                to_status=current.value,
                changed_by=changed_by,
                wallet_shortage=self.wallet_shortage or 0,
                released_shortage=released_shortage,
                changed_at=now,
            )
        )
        if current == ZenStatus.DELIVERED:
            self.raise_(
                OrderDelivered(
                    order_id=str(self.id),
                    operator_id=str(self.operator_id),
                    wallet_charge_amount=self.wallet_charge_amount or 0,
                    wallet_transaction_ref=self.wallet_transaction_ref,
                    delivered_at=now,
                )
            )
        elif current == ZenStatus.RETURNED:
            self.raise_(
                OrderReturned(
                    order_id=str(self.id),
                    operator_id=str(self.operator_id),
                    reason=reason,
                    wallet_charge_amount=self.wallet_charge_amount or 0,
                    wallet_transaction_ref=self.wallet_transaction_ref,
                    returned_at=now,
                )
            )
        elif current == ZenStatus.RTO_DELIVERED:
            self.raise_(
                OrderRtoDelivered(
                    order_id=str(self.id),
                    operator_id=str(self.operator_id),
                    wallet_charge_amount=self.wallet_charge_amount or 0,
                    wallet_transaction_ref=self.wallet_transaction_ref,
                    rto_delivered_at=now,
                )
            )
        elif current == ZenStatus.FAILED:
            self.raise_(
                OrderFailed(
                    order_id=str(self.id),
                    operator_id=str(self.operator_id),
                    reason=reason or "Order failed",
                    needs_manual_review=bool(self.needs_manual_review),
                    failed_at=now,
                )
            )

    def _append_note(self, author_id: str, content: str, now: datetime) -> None:
        self.add_internal_notes(InternalNote(content=content, author_id=author_id, created_at=now))
        self.raise_(
            InternalNoteAdded(
                order_id=str(self.id),
                author_id=author_id,
                content=content,
                added_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Wallet settlement outcomes
    # -------------------------------------------------------------------
    def record_settlement_attempt(self) -> None:
        self.settlement_attempts = (self.settlement_attempts or 0) + 1
        self.last_settlement_attempt_at = datetime.now(UTC)

    def record_charge(self, amount: int, transaction_ref: str, charged_by: str = SYSTEM_AUTHOR) -> None:
        """Record a successful wallet debit and release the order for fulfillment."""
        if self.is_charged:
            raise ValidationError({"wallet_transaction_ref": ["Order has already been charged"]})
        if amount != self.required_amount():
            raise ValidationError(
                {"wallet_charge_amount": [f"Charge of {amount} does not match required amount {self.required_amount()}"]}
            )
        self._assert_can_transition(ZenStatus.READY_FOR_FULFILLMENT)

        now = datetime.now(UTC)
        released = self.wallet_shortage or 0
        with atomic_change(self):
            self.wallet_charge_amount = amount
            self.wallet_charged_at = now
            self.wallet_transaction_ref = transaction_ref
            previous = self._apply_status(ZenStatus.READY_FOR_FULFILLMENT, charged_by, now)

        self._append_note(
            SYSTEM_AUTHOR,
            f"Wallet charged {amount} {self.currency} (transaction {transaction_ref})",
            now,
        )
        self.raise_(
            WalletCharged(
                order_id=str(self.id),
                operator_id=str(self.operator_id),
                store_connection_id=str(self.store_connection_id),
                platform_order_id=self.platform_order_id,
                amount=amount,
                transaction_ref=transaction_ref,
                charged_at=now,
            )
        )
        self._announce_status_change(previous, charged_by, now, released_shortage=released)

    def record_shortage(self, required: int, available: int) -> None:
        """Park the order until the operator tops up the wallet."""
        shortage = required - available
        if shortage <= 0:
            raise ValidationError({"wallet_shortage": ["Shortage must be positive"]})
        current = self.current_status
        if current not in (ZenStatus.PLATFORM_NATIVE, ZenStatus.AWAITING_WALLET):
            raise InvalidTransition(current.value, ZenStatus.AWAITING_WALLET.value)

        previous_shortage = self.wallet_shortage or 0
        now = datetime.now(UTC)
        previous = None
        with atomic_change(self):
            self.wallet_shortage = shortage
            if current == ZenStatus.PLATFORM_NATIVE:
                previous = self._apply_status(ZenStatus.AWAITING_WALLET, SYSTEM_AUTHOR, now)
            else:
                self.updated_at = now

        self._append_note(
            SYSTEM_AUTHOR,
            f"Insufficient wallet balance: required {required}, available {available}, short by {shortage}",
            now,
        )
        self.raise_(
            WalletShortageRecorded(
                order_id=str(self.id),
                operator_id=str(self.operator_id),
                required_amount=required,
                available=available,
                shortage=shortage,
                previous_shortage=previous_shortage,
                recorded_at=now,
            )
        )
        if previous is not None:
            self._announce_status_change(previous, SYSTEM_AUTHOR, now)

    def flag_for_manual_review(self, reason: str) -> None:
        """The debit outcome is unknown: fail the order and hand it to a human."""
        self._assert_can_transition(ZenStatus.FAILED)
        now = datetime.now(UTC)
        message = f"Wallet debit outcome unknown ({reason}); manual review required"
        released = self.wallet_shortage or 0
        with atomic_change(self):
            self.needs_manual_review = True
            previous = self._apply_status(ZenStatus.FAILED, SYSTEM_AUTHOR, now, note=message)

        self._append_note(SYSTEM_AUTHOR, message, now)
        self.raise_(
            SettlementFlaggedForReview(
                order_id=str(self.id),
                operator_id=str(self.operator_id),
                reason=reason,
                flagged_at=now,
            )
        )
        self._announce_status_change(previous, SYSTEM_AUTHOR, now, reason=message, released_shortage=released)

    # -------------------------------------------------------------------
    # Lifecycle progression
    # -------------------------------------------------------------------
    def advance(
        self,
        next_status,
        changed_by: str,
        tracking_number: str | None = None,
        tracking_url: str | None = None,
        courier_provider: str | None = None,
        note: str | None = None,
    ) -> None:
        """Move the order one step along the lifecycle table."""
        target = parse_status(next_status)
        current = self.current_status

        if target in SETTLEMENT_STATUSES:
            raise InvalidTransition(
                current.value,
                target.value,
                f"{target.value} can only be reached through wallet settlement",
            )
        if target == ZenStatus.RETURNED:
            self.mark_returned(note or "Returned", changed_by=changed_by)
            return
        if target == ZenStatus.FAILED:
            self.fail(note or f"Marked failed by {changed_by}", changed_by=changed_by)
            return

        self._assert_can_transition(target)
        has_tracking = any(v is not None for v in (tracking_number, tracking_url, courier_provider))
        if has_tracking and target not in _TRACKING_STATUSES:
            raise ValidationError(
                {"tracking_number": ["Tracking details can only be recorded once the order is dispatched"]}
            )

        now = datetime.now(UTC)
        with atomic_change(self):
            previous = self._apply_status(target, changed_by, now, note=note)

        if note:
            self._append_note(changed_by, f"Status changed from {previous.value} to {target.value}: {note}", now)
        if has_tracking:
            self._apply_tracking(tracking_number, tracking_url, courier_provider, now)
        self._announce_status_change(previous, changed_by, now)

    def mark_returned(self, reason: str, changed_by: str = SYSTEM_AUTHOR) -> None:
        """Close a dispatched order as returned. The wallet charge is left as it is."""
        current = self.current_status
        if current not in _RETURNABLE_STATUSES:
            raise InvalidTransition(current.value, ZenStatus.RETURNED.value)
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A return reason is required"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            previous = self._apply_status(ZenStatus.RETURNED, changed_by, now, note=reason)

        self._append_note(changed_by, f"Order returned: {reason}", now)
        self._announce_status_change(previous, changed_by, now, reason=reason)

    def fail(self, reason: str, changed_by: str = SYSTEM_AUTHOR) -> None:
        self._assert_can_transition(ZenStatus.FAILED)
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A failure reason is required"]})

        now = datetime.now(UTC)
        released = self.wallet_shortage or 0
        with atomic_change(self):
            previous = self._apply_status(ZenStatus.FAILED, changed_by, now, note=reason)

        self._append_note(changed_by, f"Order failed: {reason}", now)
        self._announce_status_change(previous, changed_by, now, reason=reason, released_shortage=released)

    # -------------------------------------------------------------------
    # Operations staff actions
    # -------------------------------------------------------------------
    def add_note(self, author_id: str, content: str) -> InternalNote:
        """Append an immutable note to the audit trail."""
        if not content or not content.strip():
            raise ValidationError({"content": ["Note content cannot be empty"]})
        if not author_id:
            raise ValidationError({"author_id": ["Note author is required"]})

        now = datetime.now(UTC)
        self._append_note(author_id, content.strip(), now)
        self.updated_at = now
        return self.internal_notes[-1]

    def assign(self, staff_id: str, assigned_by: str | None = None) -> None:
        if self.current_status in TERMINAL_STATUSES:
            raise ValidationError({"status": [f"Cannot assign an order in {self.status} state"]})
        if not staff_id:
            raise ValidationError({"assigned_to": ["Assignee is required"]})

        now = datetime.now(UTC)
        self.assigned_to = staff_id
        self.updated_at = now
        self.raise_(
            OrderAssigned(
                order_id=str(self.id),
                assigned_to=staff_id,
                assigned_by=assigned_by or "",
                assigned_at=now,
            )
        )

    def update_flags(
        self,
        is_priority: bool | None = None,
        has_issue: bool | None = None,
        issue_description: str | None = None,
        updated_by: str | None = None,
    ) -> None:
        """Set the operations flags. Omitted flags keep their value.

        Clearing the issue flag also clears its description.
        """
        if all(v is None for v in (is_priority, has_issue, issue_description)):
            raise ValidationError({"flags": ["No flags supplied"]})

        flagged = self.has_issue if has_issue is None else has_issue
        if issue_description and not flagged:
            raise ValidationError({"issue_description": ["An issue description needs the issue flag set"]})

        now = datetime.now(UTC)
        if is_priority is not None:
            self.is_priority = is_priority
        if has_issue is not None:
            self.has_issue = has_issue
        if not flagged:
            self.issue_description = None
        elif issue_description is not None:
            self.issue_description = issue_description
        self.updated_at = now
        self.raise_(
            OrderFlagsUpdated(
                order_id=str(self.id),
                is_priority=bool(self.is_priority),
                has_issue=bool(self.has_issue),
                issue_description=self.issue_description,
                updated_by=updated_by or "",
                updated_at=now,
            )
        )

    def update_tracking(
        self,
        tracking_number: str | None = None,
        tracking_url: str | None = None,
        courier_provider: str | None = None,
    ) -> None:
        if self.current_status not in _TRACKING_STATUSES:
            raise ValidationError(
                {"tracking_number": ["Tracking details can only be recorded once the order is dispatched"]}
            )
        if all(v is None for v in (tracking_number, tracking_url, courier_provider)):
            raise ValidationError({"tracking_number": ["No tracking details supplied"]})
        self._apply_tracking(tracking_number, tracking_url, courier_provider, datetime.now(UTC))

    def _apply_tracking(self, tracking_number, tracking_url, courier_provider, now: datetime) -> None:
        if tracking_number is not None:
            self.tracking_number = tracking_number
        if tracking_url is not None:
            self.tracking_url = tracking_url
        if courier_provider is not None:
            self.courier_provider = courier_provider
        self.updated_at = now
        self.raise_(
            TrackingUpdated(
                order_id=str(self.id),
                tracking_number=self.tracking_number,
                tracking_url=self.tracking_url,
                courier_provider=self.courier_provider,
                updated_at=now,
            )
        )


def _naive(value: datetime) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.replace(tzinfo=None)
