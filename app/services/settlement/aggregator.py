"""Settlement aggregation: who is owed what for a given day.

Walks the completed charging transactions and restaurant orders that
finished inside a UTC day, prices each one with the revenue calculator,
and sorts the result into three buckets by its settlement flag:

* ``settled``                 : already paid out
* ``included_in_settlement``  : earmarked by an in-flight settlement
* ``pending``                 : not yet claimed (includes never-flagged rows)

Records whose vendor cannot be resolved are logged and skipped; one bad
row never fails the whole aggregation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Union

from app.core.logging import get_logger
from app.models.enums import ItemSettlementStatus
from app.repositories.revenue_items import OrderStore, TransactionStore
from app.repositories.vendors import VendorDirectory
from app.services.settlement.periods import SettlementWindow, settlement_window
from app.services.settlement.revenue import ZERO, RevenueCalculator

logger = get_logger(__name__)


def classify(settlement_status: Optional[str]) -> ItemSettlementStatus:
    """Map a stored flag to its bucket; anything unknown counts as pending."""
    if settlement_status == ItemSettlementStatus.SETTLED.value:
        return ItemSettlementStatus.SETTLED
    if settlement_status == ItemSettlementStatus.INCLUDED.value:
        return ItemSettlementStatus.INCLUDED
    return ItemSettlementStatus.PENDING


@dataclass
class SettlementBuckets:
    total_to_be_received: Decimal = ZERO
    payment_settled: Decimal = ZERO
    in_settlement_process: Decimal = ZERO
    pending_settlement: Decimal = ZERO
    transaction_count: int = 0

    def add(self, amount: Decimal, settlement_status: Optional[str]) -> None:
        self.total_to_be_received += amount
        self.transaction_count += 1
        bucket = classify(settlement_status)
        if bucket is ItemSettlementStatus.SETTLED:
            self.payment_settled += amount
        elif bucket is ItemSettlementStatus.INCLUDED:
            self.in_settlement_process += amount
        else:
            self.pending_settlement += amount

    @property
    def has_outstanding(self) -> bool:
        return self.pending_settlement > 0 or self.in_settlement_process > 0


@dataclass
class LineItem:
    """One priced transaction or order as shown in a vendor's day view."""

    kind: str
    item_id: str
    reference: Optional[str]
    amount: Decimal
    completed_at: Optional[datetime]
    settlement_status: str
    settlement_id: Optional[str]
    customer_name: str
    station_name: Optional[str]
    restaurant_name: Optional[str]
    description: str


@dataclass
class VendorSettlementSummary:
    vendor_id: str
    business_name: Optional[str]
    name: Optional[str]
    email: Optional[str]
    phone_number: Optional[str]
    buckets: SettlementBuckets = field(default_factory=SettlementBuckets)
    transaction_ids: list[str] = field(default_factory=list)
    order_ids: list[str] = field(default_factory=list)


@dataclass
class PendingVendorsReport:
    day: date
    vendors: list[VendorSettlementSummary]
    total_vendors: int
    total_pending_amount: Decimal
    total_in_process_amount: Decimal


@dataclass
class VendorDayBreakdown:
    window: SettlementWindow
    items: list[LineItem]
    buckets: SettlementBuckets
    charging_revenue: Decimal
    restaurant_revenue: Decimal


class SettlementAggregator:
    """Groups and prices outstanding revenue per vendor for one day."""

    def __init__(
        self,
        calculator: RevenueCalculator,
        transactions: TransactionStore,
        orders: OrderStore,
        vendors: VendorDirectory,
    ) -> None:
        self.calculator = calculator
        self.transactions = transactions
        self.orders = orders
        self.vendors = vendors

    # ── Public API ───────────────────────────────────────────────────

    def vendors_with_pending(self, day: Union[str, date]) -> PendingVendorsReport:
        """Vendors that still have pending or in-flight revenue for *day*.

        Ranked by pending amount, largest first.
        """
        window = settlement_window(day)
        transactions = self.transactions.query_by_vendor_and_window(None, window)
        orders = self.orders.query_by_vendor_and_window(None, window)

        vendor_ids = {t.vendor_id for t in transactions if t.vendor_id}
        vendor_ids.update(
            o.restaurant.vendor_id for o in orders if o.restaurant and o.restaurant.vendor_id
        )
        directory = self.vendors.fetch_many(vendor_ids)

        summaries: dict[str, VendorSettlementSummary] = {}

        for txn in transactions:
            vendor = directory.get(txn.vendor_id) if txn.vendor_id else None
            if vendor is None:
                logger.warning(
                    "Skipping charging transaction %s: vendor %r not resolvable",
                    txn.id,
                    txn.vendor_id,
                )
                continue
            summary = self._summary_for(summaries, vendor)
            summary.buckets.add(self.calculator.for_transaction(txn), txn.settlement_status)
            summary.transaction_ids.append(txn.id)

        for order in orders:
            vendor_id = order.restaurant.vendor_id if order.restaurant else None
            vendor = directory.get(vendor_id) if vendor_id else None
            if vendor is None:
                logger.warning(
                    "Skipping restaurant order %s: restaurant or vendor missing "
                    "(restaurant=%r, vendor=%r)",
                    order.id,
                    order.restaurant_id,
                    vendor_id,
                )
                continue
            summary = self._summary_for(summaries, vendor)
            summary.buckets.add(self.calculator.for_order(order), order.settlement_status)
            summary.order_ids.append(order.id)

        ranked = sorted(
            (s for s in summaries.values() if s.buckets.has_outstanding),
            key=lambda s: s.buckets.pending_settlement,
            reverse=True,
        )

        logger.info(
            "Pending settlements for %s: vendors=%d (of %d with revenue) "
            "transactions=%d orders=%d",
            window.label,
            len(ranked),
            len(summaries),
            len(transactions),
            len(orders),
        )

        return PendingVendorsReport(
            day=window.day,
            vendors=ranked,
            total_vendors=len(ranked),
            total_pending_amount=sum((s.buckets.pending_settlement for s in ranked), ZERO),
            total_in_process_amount=sum(
                (s.buckets.in_settlement_process for s in ranked), ZERO
            ),
        )

    def vendor_day(self, vendor_id: str, day: Union[str, date]) -> VendorDayBreakdown:
        """Itemized view of one vendor's revenue for *day*, newest first."""
        window = settlement_window(day)
        buckets = SettlementBuckets()
        items: list[LineItem] = []
        charging_revenue = ZERO
        restaurant_revenue = ZERO

        for txn in self.transactions.query_by_vendor_and_window(vendor_id, window):
            amount = self.calculator.for_transaction(txn)
            buckets.add(amount, txn.settlement_status)
            charging_revenue += amount
            items.append(self._charging_line(txn, amount))

        for order in self.orders.query_by_vendor_and_window(vendor_id, window):
            amount = self.calculator.for_order(order)
            buckets.add(amount, order.settlement_status)
            restaurant_revenue += amount
            items.append(self._order_line(order, amount))

        items.sort(key=lambda i: i.completed_at or datetime.min, reverse=True)

        return VendorDayBreakdown(
            window=window,
            items=items,
            buckets=buckets,
            charging_revenue=charging_revenue,
            restaurant_revenue=restaurant_revenue,
        )

    def lifetime_balances(self, vendor_id: str) -> dict[str, Decimal]:
        """All-time receivables across every completed transaction and order.

        Also reports the percentage-based platform fee estimate for the same
        transactions, which is not what settlement deducts.
        """
        completed = self.transactions.query_completed_for_vendor(vendor_id)
        charging = sum((self.calculator.for_transaction(t) for t in completed), ZERO)
        reported_fees = sum((self.calculator.reported_fee(t) for t in completed), ZERO)
        restaurant = sum(
            (
                self.calculator.for_order(o)
                for o in self.orders.query_completed_for_vendor(vendor_id)
            ),
            ZERO,
        )
        return {
            "charging": charging,
            "restaurant": restaurant,
            "total": charging + restaurant,
            "reported_platform_fees": reported_fees,
        }

    # ── Private helpers ──────────────────────────────────────────────

    @staticmethod
    def _summary_for(
        summaries: dict[str, VendorSettlementSummary], vendor: Any
    ) -> VendorSettlementSummary:
        summary = summaries.get(vendor.id)
        if summary is None:
            summary = VendorSettlementSummary(
                vendor_id=vendor.id,
                business_name=vendor.business_name,
                name=vendor.name,
                email=vendor.email,
                phone_number=vendor.phone_number,
            )
            summaries[vendor.id] = summary
        return summary

    @staticmethod
    def _charging_line(txn: Any, amount: Decimal) -> LineItem:
        return LineItem(
            kind="charging",
            item_id=txn.id,
            reference=txn.booking_code,
            amount=amount,
            completed_at=txn.actual_end_time or txn.updated_at,
            settlement_status=txn.settlement_status or ItemSettlementStatus.PENDING.value,
            settlement_id=txn.settlement_id,
            customer_name=txn.customer_name or "Walk-in Customer",
            station_name=txn.station.name if txn.station else "Unknown Station",
            restaurant_name=None,
            description="EV Charging Session",
        )

    @staticmethod
    def _order_line(order: Any, amount: Decimal) -> LineItem:
        return LineItem(
            kind="restaurant",
            item_id=order.id,
            reference=order.order_number,
            amount=amount,
            completed_at=order.completed_at or order.updated_at,
            settlement_status=order.settlement_status or ItemSettlementStatus.PENDING.value,
            settlement_id=order.settlement_id,
            customer_name=order.customer_name or "Guest",
            station_name=None,
            restaurant_name=order.restaurant.name if order.restaurant else "Unknown Restaurant",
            description=f"Restaurant Order ({order.item_count or 0} items)",
        )
