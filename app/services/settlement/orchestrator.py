"""Settlement orchestrator: the payout workflow.

Coordinates the aggregator, the ledger and the two revenue stores:

  initiate   → check no active settlement overlaps the day
             → re-read the unsettled items (state may have moved)
             → in one commit: create the ledger record, then flag every
               item ``included_in_settlement`` pointing back at it
  complete   → locate the record through the resolver chain
             → in one commit: compare-and-swap the record to ``completed``
               and flip its items to ``settled``
             → notify the vendor (best effort, never fails the call)

The ledger row is always written before the flags that reference it. A
ledger row without flags can be cleaned up; flags pointing at a missing
ledger id are what the ``orphaned_items`` resolver exists to recover.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import SystemClock
from app.core.config import Settings
from app.core.database import atomic
from app.core.exceptions import (
    ConflictError,
    DependencyError,
    NoPendingWorkError,
    NotFoundError,
    ValidationError,
)
from app.core.logging import get_logger
from app.models.enums import ItemSettlementStatus, RequestType, SettlementStatus
from app.models.settlement import SettlementRecord
from app.models.vendor import Vendor
from app.repositories.revenue_items import (
    EARMARKED,
    UNSETTLED,
    OrderStore,
    TransactionStore,
)
from app.repositories.vendors import VendorDirectory
from app.services.settlement.aggregator import (
    PendingVendorsReport,
    SettlementAggregator,
    VendorDayBreakdown,
)
from app.services.settlement.ledger import SettlementLedger
from app.services.settlement.notifications import (
    VENDOR_PAYMENT_RECEIVED,
    LogNotificationService,
    NotificationService,
)
from app.services.settlement.periods import SettlementWindow, settlement_window
from app.services.settlement.resolvers import (
    CompletionTarget,
    Resolution,
    SettlementResolver,
    default_resolver_chain,
    resolve_target,
)
from app.services.settlement.revenue import RevenueCalculator, to_decimal

logger = get_logger(__name__)


@dataclass
class InitiateResult:
    settlement_id: str
    status: str
    amount: Decimal
    transaction_count: int
    booking_count: int
    order_count: int
    request_type: str


@dataclass
class CompleteResult:
    settlement_id: str
    status: str
    amount: Decimal
    payment_reference: str
    processed_at: datetime
    transaction_count: int
    booking_count: int
    order_count: int
    resolved_by: str


@dataclass
class VendorSettlementDetail:
    vendor: Vendor
    day: date
    breakdown: VendorDayBreakdown
    overall: dict[str, Decimal] = field(default_factory=dict)
    active_settlement: Optional[SettlementRecord] = None


class SettlementOrchestrator:
    """Entry point for every settlement operation exposed to the API."""

    def __init__(
        self,
        db: Session,
        config: Settings,
        clock: Any = None,
        notifier: Optional[NotificationService] = None,
        resolvers: Optional[list[SettlementResolver]] = None,
    ) -> None:
        self.db = db
        self.config = config
        self.clock = clock or SystemClock()
        self.notifier = notifier or LogNotificationService()

        self.vendors = VendorDirectory(db)
        self.transactions = TransactionStore(db)
        self.orders = OrderStore(db)
        self.calculator = RevenueCalculator(
            config.platform_fixed_fee, config.platform_fee_percent
        )
        self.ledger = SettlementLedger(db, config, self.clock)
        self.aggregator = SettlementAggregator(
            self.calculator, self.transactions, self.orders, self.vendors
        )
        self.resolvers = resolvers or default_resolver_chain(
            self.ledger, self.transactions, self.orders
        )

    # ── Reads ────────────────────────────────────────────────────────

    def list_vendors_with_pending_settlements(
        self, day: Union[str, date, None]
    ) -> PendingVendorsReport:
        return self.aggregator.vendors_with_pending(day)

    def get_vendor_settlement_detail(
        self, vendor_id: str, day: Union[str, date, None]
    ) -> VendorSettlementDetail:
        """Itemized day view plus all-time balances and the active record, if any."""
        window = settlement_window(day)
        vendor = self.vendors.require(vendor_id)
        breakdown = self.aggregator.vendor_day(vendor_id, window.day)
        balances = self.aggregator.lifetime_balances(vendor_id)
        withdrawn = self.ledger.total_withdrawn(vendor_id)

        overall = {
            "total_charging_balance": balances["charging"],
            "total_restaurant_balance": balances["restaurant"],
            "total_balance": balances["total"],
            "total_withdrawn": withdrawn,
            "pending_withdrawal": balances["total"] - withdrawn,
            "reported_platform_fees": balances["reported_platform_fees"],
        }
        return VendorSettlementDetail(
            vendor=vendor,
            day=window.day,
            breakdown=breakdown,
            overall=overall,
            active_settlement=self.ledger.find_overlapping_active(vendor_id, window),
        )

    def get_settlement(self, settlement_id: str) -> SettlementRecord:
        return self.ledger.require(settlement_id)

    def list_settlements(
        self,
        vendor_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> list[SettlementRecord]:
        return self.ledger.list_records(vendor_id, status, page, limit)

    # ── Initiate ─────────────────────────────────────────────────────

    def initiate_settlement(
        self,
        vendor_id: Optional[str],
        day: Union[str, date, None],
        amount: Any,
    ) -> InitiateResult:
        """Admin-initiated settlement: earmark the day's unsettled revenue."""
        if not vendor_id:
            raise ValidationError("Vendor ID is required", details={"field": "vendor_id"})
        window = settlement_window(day)
        payout = self._parse_amount(amount)

        vendor = self.vendors.require(vendor_id)
        self.ledger.ensure_no_active_overlap(vendor_id, window)

        transactions, orders = self._unsettled(vendor_id, window)
        now = self.clock.now()
        metadata = {
            "transaction_date": window.label,
            "requested_date": now.date().isoformat(),
            "is_admin_initiated": True,
            "booking_count": len(transactions),
            "order_count": len(orders),
            "calculated_amount": str(self.calculator.total(transactions, orders)),
        }
        settlement_id = self._earmark(
            vendor,
            window,
            payout,
            transactions,
            orders,
            status=SettlementStatus.PROCESSING,
            request_type=RequestType.ADMIN_INITIATED.value,
            reason="Admin initiated settlement",
            metadata=metadata,
        )

        return InitiateResult(
            settlement_id=settlement_id,
            status=SettlementStatus.PROCESSING.value,
            amount=payout,
            transaction_count=len(transactions) + len(orders),
            booking_count=len(transactions),
            order_count=len(orders),
            request_type=RequestType.ADMIN_INITIATED.value,
        )

    def request_settlement(
        self,
        vendor_id: Optional[str],
        day: Union[str, date, None],
        amount: Any,
        reason: Optional[str] = None,
    ) -> InitiateResult:
        """Vendor-requested (urgent) settlement.

        Unlike the admin path, the amount the vendor saw must match what we
        recompute now, and a bank account must be on file.
        """
        if not vendor_id:
            raise ValidationError("Vendor ID is required", details={"field": "vendor_id"})
        window = settlement_window(day)
        provided = self._parse_amount(amount)

        vendor = self.vendors.require(vendor_id)
        if not (vendor.bank_details or {}).get("account_number"):
            raise ValidationError(
                "Please add your bank details before requesting settlement",
                details={"field": "bank_details"},
            )
        self.ledger.ensure_no_active_overlap(vendor_id, window)

        transactions, orders = self._unsettled(vendor_id, window)
        charging_amount = self.calculator.total(transactions, [])
        restaurant_amount = self.calculator.total([], orders)
        calculated = charging_amount + restaurant_amount

        tolerance = to_decimal(self.config.amount_match_tolerance)
        if abs(calculated - provided) > tolerance:
            raise ValidationError(
                "Amount mismatch. Please refresh and try again.",
                details={
                    "calculated": calculated,
                    "provided": provided,
                    "breakdown": {
                        "charging_station": charging_amount,
                        "restaurant": restaurant_amount,
                    },
                },
            )

        now = self.clock.now()
        metadata = {
            "transaction_date": window.label,
            "requested_date": now.date().isoformat(),
            "is_urgent_for_past_date": window.day != now.date(),
            "breakdown": {
                "charging_station_amount": str(charging_amount),
                "restaurant_amount": str(restaurant_amount),
                "charging_station_transactions": len(transactions),
                "restaurant_orders": len(orders),
            },
        }
        settlement_id = self._earmark(
            vendor,
            window,
            calculated,
            transactions,
            orders,
            status=SettlementStatus.PENDING,
            request_type=RequestType.URGENT.value,
            reason=reason or "Urgent settlement request",
            metadata=metadata,
        )

        return InitiateResult(
            settlement_id=settlement_id,
            status=SettlementStatus.PENDING.value,
            amount=calculated,
            transaction_count=len(transactions) + len(orders),
            booking_count=len(transactions),
            order_count=len(orders),
            request_type=RequestType.URGENT.value,
        )

    # ── Complete ─────────────────────────────────────────────────────

    def complete_settlement(
        self,
        settlement_id: Optional[str] = None,
        vendor_id: Optional[str] = None,
        day: Union[str, date, None] = None,
        payment_reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CompleteResult:
        """Mark a settlement paid and its items settled, exactly once."""
        if not payment_reference:
            raise ValidationError(
                "Payment reference is required", details={"field": "payment_reference"}
            )
        if not settlement_id and not vendor_id:
            raise ValidationError(
                "Either a settlement ID or a vendor ID is required",
                details={"field": "settlement_id"},
            )
        window = settlement_window(day) if day else None
        target = CompletionTarget(settlement_id, vendor_id, window)

        resolution = resolve_target(self.resolvers, target)
        if resolution is None:
            raise NotFoundError(
                "No active settlement or pending transactions found for this "
                "vendor and date.",
                details={
                    "settlement_id": settlement_id,
                    "vendor_id": vendor_id,
                    "date": window.label if window else None,
                },
            )

        if resolution.is_orphan_recovery:
            return self._complete_orphans(target, resolution, payment_reference)
        return self._complete_record(resolution, payment_reference, notes)

    # ── Private helpers ──────────────────────────────────────────────

    @staticmethod
    def _parse_amount(amount: Any) -> Decimal:
        if amount is None or amount == "":
            raise ValidationError("Amount is required", details={"field": "amount"})
        try:
            value = to_decimal(amount)
        except (InvalidOperation, ValueError):
            raise ValidationError(
                f"Invalid amount '{amount}'", details={"field": "amount"}
            )
        if not value.is_finite() or value <= 0:
            raise ValidationError(
                "Amount must be greater than zero", details={"field": "amount"}
            )
        return value

    def _unsettled(self, vendor_id: str, window: SettlementWindow) -> tuple[list, list]:
        transactions = self.transactions.query_unsettled(vendor_id, window)
        orders = self.orders.query_unsettled(vendor_id, window)
        if not transactions and not orders:
            raise NoPendingWorkError(
                "No pending transactions found for the selected date",
                details={"vendor_id": vendor_id, "date": window.label},
            )
        return transactions, orders

    def _earmark(
        self,
        vendor: Vendor,
        window: SettlementWindow,
        amount: Decimal,
        transactions: list,
        orders: list,
        status: SettlementStatus,
        request_type: str,
        reason: str,
        metadata: dict[str, Any],
    ) -> str:
        """Create the record and claim its items in one commit."""
        transaction_ids = [t.id for t in transactions]
        order_ids = [o.id for o in orders]
        now = self.clock.now()

        try:
            with atomic(self.db, f"earmark settlement for vendor {vendor.id}"):
                record = self.ledger.create(
                    vendor=vendor,
                    window=window,
                    amount=amount,
                    transaction_ids=transaction_ids,
                    order_ids=order_ids,
                    status=status,
                    request_type=request_type,
                    bank_details=self.vendors.bank_details_snapshot(vendor),
                    reason=reason,
                    metadata=metadata,
                )
                settlement_id = record.id
                flags = {
                    "settlement_id": settlement_id,
                    "settlement_requested_at": now,
                    "settlement_requested_for": window.label,
                }
                claimed_txns = self.transactions.bulk_update_status(
                    transaction_ids, UNSETTLED, ItemSettlementStatus.INCLUDED, **flags
                )
                claimed_orders = self.orders.bulk_update_status(
                    order_ids, UNSETTLED, ItemSettlementStatus.INCLUDED, **flags
                )
                if claimed_txns != len(transaction_ids) or claimed_orders != len(order_ids):
                    raise ConflictError(
                        "Some transactions were claimed by another settlement; "
                        "refresh and retry",
                        details={
                            "expected": len(transaction_ids) + len(order_ids),
                            "claimed": claimed_txns + claimed_orders,
                        },
                    )
        except IntegrityError:
            blocking = self.ledger.find_overlapping_active(vendor.id, window)
            raise ConflictError(
                f"There is already an active settlement for vendor {vendor.id} "
                f"on {window.label}",
                details={
                    "settlement_id": blocking.id if blocking else None,
                    "vendor_id": vendor.id,
                    "period_start": window.start,
                    "period_end": window.end,
                },
            )
        except SQLAlchemyError as exc:
            raise DependencyError(
                f"Failed to persist settlement: {exc}",
                details={"vendor_id": vendor.id, "date": window.label},
            ) from exc

        logger.info(
            "Settlement %s created: vendor=%s date=%s status=%s amount=%s "
            "bookings=%d orders=%d",
            settlement_id,
            vendor.id,
            window.label,
            status.value,
            amount,
            len(transaction_ids),
            len(order_ids),
        )
        return settlement_id

    def _complete_record(
        self,
        resolution: Resolution,
        payment_reference: str,
        notes: Optional[str],
    ) -> CompleteResult:
        record = resolution.record
        self.ledger.ensure_transition(record, SettlementStatus.COMPLETED.value)

        try:
            with atomic(self.db, f"complete settlement {record.id}"):
                processed_at = self.ledger.mark_completed(record, payment_reference, notes)
                settled_txns = self.transactions.bulk_update_status(
                    record.transaction_ids,
                    EARMARKED,
                    ItemSettlementStatus.SETTLED,
                    settled_at=processed_at,
                )
                settled_orders = self.orders.bulk_update_status(
                    record.order_ids,
                    EARMARKED,
                    ItemSettlementStatus.SETTLED,
                    settled_at=processed_at,
                )
        except SQLAlchemyError as exc:
            raise DependencyError(
                f"Failed to complete settlement {record.id}: {exc}",
                details={"settlement_id": record.id},
            ) from exc

        expected = len(record.transaction_ids) + len(record.order_ids)
        if settled_txns + settled_orders != expected:
            logger.warning(
                "Settlement %s referenced %d items but only %d were still earmarked",
                record.id,
                expected,
                settled_txns + settled_orders,
            )
        logger.info(
            "Settlement %s completed via %s: vendor=%s amount=%s ref=%s",
            record.id,
            resolution.strategy,
            record.vendor_id,
            record.amount,
            payment_reference,
        )

        account = (record.bank_details or {}).get("account_number") or ""
        self._notify_vendor(
            record.vendor_id,
            record.id,
            f"Payment settled! {record.amount} for {record.settlement_date.isoformat()} "
            f"has been transferred to your account {account}. Ref: {payment_reference}.",
        )

        return CompleteResult(
            settlement_id=record.id,
            status=SettlementStatus.COMPLETED.value,
            amount=to_decimal(record.amount),
            payment_reference=payment_reference,
            processed_at=processed_at,
            transaction_count=settled_txns + settled_orders,
            booking_count=settled_txns,
            order_count=settled_orders,
            resolved_by=resolution.strategy,
        )

    def _complete_orphans(
        self,
        target: CompletionTarget,
        resolution: Resolution,
        payment_reference: str,
    ) -> CompleteResult:
        """Settle earmarked items whose ledger record no longer exists."""
        now = self.clock.now()
        amount = self.calculator.total(resolution.transactions, resolution.orders)
        millis = calendar.timegm(now.utctimetuple()) * 1000 + now.microsecond // 1000
        synthetic_id = f"{self.config.direct_settlement_prefix}{millis}"

        try:
            with atomic(self.db, f"direct settlement for vendor {target.vendor_id}"):
                settled_txns = self.transactions.bulk_update_status(
                    [t.id for t in resolution.transactions],
                    EARMARKED,
                    ItemSettlementStatus.SETTLED,
                    settled_at=now,
                    payment_reference=payment_reference,
                )
                settled_orders = self.orders.bulk_update_status(
                    [o.id for o in resolution.orders],
                    EARMARKED,
                    ItemSettlementStatus.SETTLED,
                    settled_at=now,
                    payment_reference=payment_reference,
                )
        except SQLAlchemyError as exc:
            raise DependencyError(
                f"Failed to settle orphaned items: {exc}",
                details={"vendor_id": target.vendor_id},
            ) from exc

        logger.warning(
            "Direct settlement %s recovered orphaned items: vendor=%s bookings=%d "
            "orders=%d amount=%s",
            synthetic_id,
            target.vendor_id,
            settled_txns,
            settled_orders,
            amount,
        )
        self._notify_vendor(
            target.vendor_id,
            synthetic_id,
            f"Payment settled! {amount} for {target.window.label} has been "
            f"transferred. Ref: {payment_reference}.",
        )

        return CompleteResult(
            settlement_id=synthetic_id,
            status=SettlementStatus.COMPLETED.value,
            amount=amount,
            payment_reference=payment_reference,
            processed_at=now,
            transaction_count=settled_txns + settled_orders,
            booking_count=settled_txns,
            order_count=settled_orders,
            resolved_by=resolution.strategy,
        )

    def _notify_vendor(self, vendor_id: str, settlement_id: str, message: str) -> None:
        """Fire-and-forget; a delivery failure is logged and swallowed."""
        if not self.config.notifications_enabled:
            return
        try:
            self.notifier.send(
                vendor_id,
                "Payment Settled",
                message,
                "success",
                data={"type": VENDOR_PAYMENT_RECEIVED, "settlement_id": settlement_id},
            )
        except Exception as exc:
            error = DependencyError(
                f"Settlement notification failed: {exc}",
                details={"settlement_id": settlement_id, "vendor_id": vendor_id},
            )
            logger.exception("%s", error.message)
