"""Order status — operations dashboard view of every diverted order."""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.events import (
    FulfillmentStatusChanged,
    InternalNoteAdded,
    OrderAssigned,
    OrderFlagsUpdated,
    OrderIngested,
    OrderSnapshotRefreshed,
    SettlementFlaggedForReview,
    TrackingUpdated,
    WalletCharged,
    WalletShortageRecorded,
)
from fulfillment.order.order import Order, ZenStatus


@fulfillment.projection
class OrderStatusView:
    order_id = Identifier(identifier=True, required=True)
    operator_id = Identifier(required=True)
    store_connection_id = Identifier(required=True)
    platform_order_id = String(required=True)
    platform_order_name = String()
    status = String(required=True)
    total = Integer(default=0)
    wallet_shortage = Integer(default=0)
    wallet_charge_amount = Integer()
    wallet_transaction_ref = String()
    needs_manual_review = Boolean(default=False)
    assigned_to = String()
    is_priority = Boolean(default=False)
    has_issue = Boolean(default=False)
    issue_description = Text()
    tracking_number = String()
    courier_provider = String()
    note_count = Integer(default=0)
    last_note = String(max_length=1000)
    created_at = DateTime()
    updated_at = DateTime()


@fulfillment.projector(projector_for=OrderStatusView, aggregates=[Order])
class OrderStatusProjector:
    @staticmethod
    def _load(order_id):
        try:
            return current_domain.repository_for(OrderStatusView).get(str(order_id))
        except ObjectNotFoundError:
            return None

    @on(OrderIngested)
    def on_order_ingested(self, event):
        current_domain.repository_for(OrderStatusView).add(
            OrderStatusView(
                order_id=event.order_id,
                operator_id=event.operator_id,
                store_connection_id=event.store_connection_id,
                platform_order_id=event.platform_order_id,
                platform_order_name=event.platform_order_name,
                status=ZenStatus.PLATFORM_NATIVE.value,
                total=event.total or 0,
                created_at=event.ingested_at,
                updated_at=event.ingested_at,
            )
        )

    @on(OrderSnapshotRefreshed)
    def on_snapshot_refreshed(self, event):
        view = self._load(event.order_id)
        if view is None:
            return
        view.total = event.total or 0
        view.updated_at = event.refreshed_at
        current_domain.repository_for(OrderStatusView).add(view)

    @on(FulfillmentStatusChanged)
    def on_status_changed(self, event):
        view = self._load(event.order_id)
        if view is None:
            return
        view.status = event.to_status
        view.wallet_shortage = event.wallet_shortage or 0
        view.updated_at = event.changed_at
        current_domain.repository_for(OrderStatusView).add(view)

    @on(WalletCharged)
    def on_wallet_charged(self, event):
        view = self._load(event.order_id)
        if view is None:
            return
        view.wallet_charge_amount = event.amount
        view.wallet_transaction_ref = event.transaction_ref
        view.updated_at = event.charged_at
        current_domain.repository_for(OrderStatusView).add(view)

    @on(WalletShortageRecorded)
    def on_wallet_shortage_recorded(self, event):
        view = self._load(event.order_id)
        if view is None:
            return
        view.wallet_shortage = event.shortage
        view.updated_at = event.recorded_at
        current_domain.repository_for(OrderStatusView).add(view)

    @on(SettlementFlaggedForReview)
    def on_settlement_flagged(self, event):
        view = self._load(event.order_id)
        if view is None:
            return
        view.needs_manual_review = True
        view.updated_at = event.flagged_at
        current_domain.repository_for(OrderStatusView).add(view)

    @on(OrderAssigned)
    def on_order_assigned(self, event):
        view = self._load(event.order_id)
        if view is None:
            return
        view.assigned_to = event.assigned_to
        view.updated_at = event.assigned_at
        current_domain.repository_for(OrderStatusView).add(view)

    @on(OrderFlagsUpdated)
    def on_order_flags_updated(self, event):
        view = self._load(event.order_id)
        if view is None:
            return
        view.is_priority = event.is_priority
        view.has_issue = event.has_issue
        view.issue_description = event.issue_description
        view.updated_at = event.updated_at
        current_domain.repository_for(OrderStatusView).add(view)

    @on(TrackingUpdated)
    def on_tracking_updated(self, event):
        view = self._load(event.order_id)
        if view is None:
            return
        view.tracking_number = event.tracking_number
        view.courier_provider = event.courier_provider
        view.updated_at = event.updated_at
        current_domain.repository_for(OrderStatusView).add(view)

    @on(InternalNoteAdded)
    def on_internal_note_added(self, event):
        view = self._load(event.order_id)
        if view is None:
            return
        view.note_count = (view.note_count or 0) + 1
        view.last_note = event.content[:1000]
        view.updated_at = event.added_at
        current_domain.repository_for(OrderStatusView).add(view)
