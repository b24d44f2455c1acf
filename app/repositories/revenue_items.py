"""Stores for the two revenue sources a settlement draws from.

Charging transactions and restaurant orders are queried and flagged the
same way; only the completion timestamp and the path to the owning vendor
differ. Settlement flags are only ever changed through
``bulk_update_status``, which re-checks the current flag in the UPDATE
itself so a row that moved on since it was read is left alone.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Query, Session

from app.models.charging_transaction import ChargingTransaction
from app.models.enums import COMPLETED, ItemSettlementStatus
from app.models.restaurant import Restaurant
from app.models.restaurant_order import RestaurantOrder
from app.services.settlement.periods import SettlementWindow

UNSETTLED = (ItemSettlementStatus.PENDING,)
EARMARKED = (ItemSettlementStatus.INCLUDED,)
SETTLED = (ItemSettlementStatus.SETTLED,)


def _status_values(statuses: Iterable[Any]) -> list[str]:
    return [s.value if isinstance(s, Enum) else s for s in statuses]


class _RevenueItemStore:
    model: Any = None

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Hooks ────────────────────────────────────────────────────────

    def _completion_predicate(self, window: SettlementWindow):
        raise NotImplementedError

    def _for_vendor(self, query: Query, vendor_id: str) -> Query:
        raise NotImplementedError

    # ── Queries ──────────────────────────────────────────────────────

    def _status_predicate(self, statuses: Iterable[Any]):
        values = _status_values(statuses)
        column = self.model.settlement_status
        clauses = [column.in_(values)]
        # A never-flagged row counts as pending
        if ItemSettlementStatus.PENDING.value in values:
            clauses.append(column.is_(None))
        return or_(*clauses)

    def query_by_vendor_and_window(
        self,
        vendor_id: Optional[str],
        window: SettlementWindow,
        statuses: Optional[Iterable[Any]] = None,
    ) -> list:
        """Completed items finishing inside *window*, optionally for one vendor."""
        query = self.db.query(self.model).filter(
            self.model.status == COMPLETED,
            self._completion_predicate(window),
        )
        if vendor_id is not None:
            query = self._for_vendor(query, vendor_id)
        if statuses is not None:
            query = query.filter(self._status_predicate(statuses))
        return query.order_by(self.model.id).all()

    def query_unsettled(self, vendor_id: str, window: SettlementWindow) -> list:
        return self.query_by_vendor_and_window(vendor_id, window, UNSETTLED)

    def query_earmarked(self, vendor_id: str, window: SettlementWindow) -> list:
        return self.query_by_vendor_and_window(vendor_id, window, EARMARKED)

    def query_settled(self, vendor_id: str, window: SettlementWindow) -> list:
        return self.query_by_vendor_and_window(vendor_id, window, SETTLED)

    def query_completed_for_vendor(self, vendor_id: str) -> list:
        query = self.db.query(self.model).filter(self.model.status == COMPLETED)
        return self._for_vendor(query, vendor_id).all()

    def get_many(self, ids: Sequence[str]) -> list:
        if not ids:
            return []
        return self.db.query(self.model).filter(self.model.id.in_(list(ids))).all()

    # ── Writes ───────────────────────────────────────────────────────

    def bulk_update_status(
        self,
        ids: Sequence[str],
        from_statuses: Iterable[Any],
        to_status: ItemSettlementStatus,
        **fields: Any,
    ) -> int:
        """Move rows still in one of *from_statuses* to *to_status*.

        Returns the number of rows changed. Does not commit.
        """
        if not ids:
            return 0
        values = {"settlement_status": to_status.value, **fields}
        return (
            self.db.query(self.model)
            .filter(
                self.model.id.in_(list(ids)),
                self._status_predicate(from_statuses),
            )
            .update(values, synchronize_session="fetch")
        )


class TransactionStore(_RevenueItemStore):
    """Charging sessions; completion time is ``actual_end_time`` or ``updated_at``."""

    model = ChargingTransaction

    def _completion_predicate(self, window: SettlementWindow):
        t = ChargingTransaction
        return or_(
            and_(t.actual_end_time >= window.start, t.actual_end_time < window.end),
            and_(
                t.actual_end_time.is_(None),
                t.updated_at >= window.start,
                t.updated_at < window.end,
            ),
        )

    def _for_vendor(self, query: Query, vendor_id: str) -> Query:
        return query.filter(ChargingTransaction.vendor_id == vendor_id)


class OrderStore(_RevenueItemStore):
    """Restaurant orders; the vendor is reached through the restaurant."""

    model = RestaurantOrder

    def _completion_predicate(self, window: SettlementWindow):
        o = RestaurantOrder
        return or_(
            and_(o.completed_at >= window.start, o.completed_at < window.end),
            and_(
                o.completed_at.is_(None),
                o.updated_at >= window.start,
                o.updated_at < window.end,
            ),
        )

    def _for_vendor(self, query: Query, vendor_id: str) -> Query:
        restaurant_ids = select(Restaurant.id).where(Restaurant.vendor_id == vendor_id)
        return query.filter(RestaurantOrder.restaurant_id.in_(restaurant_ids))
