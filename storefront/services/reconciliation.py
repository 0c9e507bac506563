"""
SettlementReconciler — finds and repairs settlement side effects that did not
happen.

  report()                 orders without an 'order' points entry, orders
                           without items, balances that disagree with history
  retry_points_credit(id)  credit one order's points (idempotent)
  retry_all()              retry every order missing its points entry
"""

from __future__ import annotations

import logging
from typing import Optional

from storefront.errors import OrderNotFound
from storefront.schemas.points import BalanceMismatch, ReconciliationReport
from storefront.services.gateway import PersistenceGateway
from storefront.services.points import PointsLedger

logger = logging.getLogger(__name__)


class SettlementReconciler:
    def __init__(
        self,
        gateway: PersistenceGateway,
        points_ledger: Optional[PointsLedger] = None,
    ) -> None:
        self._gateway = gateway
        self._ledger = points_ledger or PointsLedger(gateway)

    async def report(self) -> ReconciliationReport:
        async with self._gateway.session() as db:
            missing = await self._gateway.orders_missing_points(db)
            without_items = await self._gateway.orders_without_items(db)
            balances, history_sums = await self._gateway.points_totals(db)

        mismatches = [
            BalanceMismatch(
                user_id=user_id,
                total_points=balances.get(user_id, 0),
                history_sum=history_sums.get(user_id, 0),
            )
            for user_id in sorted(set(balances) | set(history_sums), key=str)
            if balances.get(user_id, 0) != history_sums.get(user_id, 0)
        ]

        report = ReconciliationReport(
            orders_missing_points=[o.id for o in missing],
            orders_without_items=without_items,
            balance_mismatches=mismatches,
        )
        if not report.is_clean:
            logger.warning(
                "Reconciliation: %d orders missing points, %d orders without items, "
                "%d balance mismatches",
                len(report.orders_missing_points),
                len(report.orders_without_items),
                len(report.balance_mismatches),
            )
        return report

    async def retry_points_credit(self, order_id: int) -> int:
        """
        Credit the points of one order. Returns the points written, 0 when the
        order was already credited. PointsCreditFailure propagates.
        """
        async with self._gateway.transaction() as db:
            order = await self._gateway.get_order(db, order_id)
            if order is None:
                raise OrderNotFound(f"Order {order_id} not found")
            entry = await self._ledger.credit_order(
                db, order.user_id, order.id, order.order_number
            )
        awarded = entry.points if entry is not None else 0
        if awarded:
            logger.info("Reconciled points for order %s (+%d)", order_id, awarded)
        return awarded

    async def retry_all(self) -> dict[int, int]:
        """Retry every order missing points; order id → points written (-1 on failure)."""
        async with self._gateway.session() as db:
            missing = [o.id for o in await self._gateway.orders_missing_points(db)]

        results: dict[int, int] = {}
        for order_id in missing:
            try:
                results[order_id] = await self.retry_points_credit(order_id)
            except Exception as exc:
                logger.error("Points retry failed for order %s: %s", order_id, exc)
                results[order_id] = -1
        return results
