"""Repository for the Order aggregate.

Adds the natural-key lookup used by ingestion and the ordered query the
auto-resume scanner walks.
"""

from collections.abc import Iterator

from fulfillment.domain import fulfillment
from fulfillment.order.exceptions import DuplicateOrder
from fulfillment.order.order import Order, ZenStatus

_PAGE_SIZE = 100


@fulfillment.repository(part_of=Order)
class OrderRepository:
    def find_by_platform_key(self, store_connection_id: str, platform_order_id: str) -> Order | None:
        """Find an order by (store_connection_id, platform_order_id)."""
        return (
            self._dao.query.filter(
                store_connection_id=str(store_connection_id),
                platform_order_id=str(platform_order_id),
            )
            .all()
            .first
        )

    def add_new(self, order: Order) -> Order:
        """Persist a freshly ingested order, refusing a second record for the same natural key."""
        existing = self.find_by_platform_key(order.store_connection_id, order.platform_order_id)
        if existing is not None:
            raise DuplicateOrder(
                str(order.store_connection_id),
                order.platform_order_id,
                existing_id=str(existing.id),
            )
        self.add(order)
        return order

    def _awaiting_query(self, operator_id: str | None = None):
        criteria = {
            "status": ZenStatus.AWAITING_WALLET.value,
            "wallet_shortage__gt": 0,
        }
        if operator_id is not None:
            criteria["operator_id"] = str(operator_id)
        return self._dao.query.filter(**criteria).order_by("created_at")

    def awaiting_wallet(self, operator_id: str | None = None) -> Iterator[Order]:
        """Orders parked for insufficient funds, oldest first.

        All pages are read before yielding so that orders leaving the
        result set while the caller resumes them do not shift later pages.
        """
        query = self._awaiting_query(operator_id)
        orders: list[Order] = []
        offset = 0
        while True:
            page = query.offset(offset).limit(_PAGE_SIZE).all().items
            orders.extend(page)
            if len(page) < _PAGE_SIZE:
                break
            offset += _PAGE_SIZE
        yield from orders

    def operators_with_awaiting(self) -> list[str]:
        """Operators with at least one parked order, in order of their oldest parked order."""
        operators: list[str] = []
        for order in self.awaiting_wallet():
            operator_id = str(order.operator_id)
            if operator_id not in operators:
                operators.append(operator_id)
        return operators
