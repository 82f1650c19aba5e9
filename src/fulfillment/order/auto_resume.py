"""Auto-resume scanner — command and handler for orders awaiting a wallet top-up.

Triggered periodically through the maintenance API endpoint and whenever the
ledger reports a wallet credit. For each operator, parked orders are retried
oldest first; the operator's queue stops at the first order the wallet still
cannot cover, so a small top-up is spent on the oldest orders rather than
on whichever happens to fit. An unreachable ledger also ends that
operator's queue for this scan, since every later debit would fail the same
way. Any other error is counted against its order and the scan moves on.
Operators are independent of one another.
"""

from dataclasses import asdict, dataclass

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.diversion import RetrySettlement
from fulfillment.order.exceptions import LedgerUnavailable
from fulfillment.order.locks import process_for_order
from fulfillment.order.order import Order, ZenStatus

logger = structlog.get_logger(__name__)

AUTO_RESUME_NOTE = "Auto-resume attempt"


@dataclass
class ResumeReport:
    operators: int = 0
    scanned: int = 0
    resumed: int = 0
    still_waiting: int = 0
    flagged: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


@fulfillment.command(part_of="Order")
class ResumeAwaitingOrders:
    """Retry settlement for parked orders of one operator, or of every operator."""

    operator_id = Identifier()


@fulfillment.command_handler(part_of=Order)
class AutoResumeHandler:
    @handle(ResumeAwaitingOrders)
    def resume_awaiting_orders(self, command):
        repo = current_domain.repository_for(Order)
        operators = [str(command.operator_id)] if command.operator_id else repo.operators_with_awaiting()

        logger.info("Auto-resume scan started", operator_count=len(operators))

        report = ResumeReport(operators=len(operators))
        for operator_id in operators:
            self._resume_operator(repo, operator_id, report)

        logger.info("Auto-resume scan complete", **report.as_dict())
        return report.as_dict()

    def _resume_operator(self, repo, operator_id: str, report: ResumeReport) -> None:
        for candidate in repo.awaiting_wallet(operator_id):
            report.scanned += 1
            order_id = str(candidate.id)
            try:
                status = process_for_order(
                    order_id,
                    RetrySettlement(order_id=order_id, note=AUTO_RESUME_NOTE),
                )
            except LedgerUnavailable as exc:
                report.errors += 1
                logger.warning(
                    "Wallet ledger unavailable, operator queue deferred",
                    operator_id=operator_id,
                    order_id=order_id,
                    error=exc.reason,
                )
                return
            except (ValidationError, InvalidOperationError, ObjectNotFoundError) as exc:
                report.errors += 1
                logger.warning(
                    "Failed to resume awaiting order",
                    operator_id=operator_id,
                    order_id=order_id,
                    error=str(exc),
                )
                continue
            except Exception as exc:
                report.errors += 1
                logger.error(
                    "Unexpected error resuming awaiting order",
                    operator_id=operator_id,
                    order_id=order_id,
                    error=str(exc),
                    exc_info=True,
                )
                continue

            if status == ZenStatus.READY_FOR_FULFILLMENT.value:
                report.resumed += 1
                logger.info("Awaiting order resumed", operator_id=operator_id, order_id=order_id)
            elif status == ZenStatus.AWAITING_WALLET.value:
                report.still_waiting += 1
                logger.info(
                    "Wallet still short, operator queue stopped",
                    operator_id=operator_id,
                    order_id=order_id,
                )
                return
            elif status == ZenStatus.FAILED.value:
                report.flagged += 1
            else:
                report.skipped += 1
