"""Strategies for locating the settlement a completion request refers to.

Callers do not always hold the settlement id (an admin screen may only
know the vendor and the day), so completion walks an ordered chain and
stops at the first strategy that finds something:

1. ``exact_id``        : the id the caller sent
2. ``vendor_date``     : a non-terminal record for the vendor dated on / overlapping the day
3. ``completed_day``   : refuses a retry for a day that has already been paid
4. ``latest_active``   : the vendor's most recent non-terminal record
5. ``orphaned_items``  : earmarked items for the day whose ledger record is gone
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from app.core.exceptions import ConflictError
from app.core.logging import get_logger
from app.models.enums import SettlementStatus
from app.models.settlement import SettlementRecord
from app.repositories.revenue_items import OrderStore, TransactionStore
from app.services.settlement.ledger import SettlementLedger
from app.services.settlement.periods import SettlementWindow

logger = get_logger(__name__)

# Placeholder id some clients send before a record exists
PLACEHOLDER_ID = "PENDING"


@dataclass
class CompletionTarget:
    """What the caller told us about the settlement to complete."""

    settlement_id: Optional[str] = None
    vendor_id: Optional[str] = None
    window: Optional[SettlementWindow] = None


@dataclass
class Resolution:
    """A located settlement, or a set of orphaned items when ``record`` is None."""

    strategy: str
    record: Optional[SettlementRecord] = None
    transactions: list = field(default_factory=list)
    orders: list = field(default_factory=list)

    @property
    def is_orphan_recovery(self) -> bool:
        return self.record is None


class SettlementResolver:
    name = "base"

    def resolve(self, target: CompletionTarget) -> Optional[Resolution]:
        raise NotImplementedError


class ExactIdResolver(SettlementResolver):
    name = "exact_id"

    def __init__(self, ledger: SettlementLedger) -> None:
        self.ledger = ledger

    def resolve(self, target: CompletionTarget) -> Optional[Resolution]:
        if not target.settlement_id or target.settlement_id == PLACEHOLDER_ID:
            return None
        record = self.ledger.get(target.settlement_id)
        return Resolution(self.name, record) if record else None


class VendorDateResolver(SettlementResolver):
    name = "vendor_date"

    def __init__(self, ledger: SettlementLedger) -> None:
        self.ledger = ledger

    def resolve(self, target: CompletionTarget) -> Optional[Resolution]:
        if not target.vendor_id or target.window is None:
            return None
        record = self.ledger.find_active_for_day(target.vendor_id, target.window)
        return Resolution(self.name, record) if record else None


class CompletedDayGuard(SettlementResolver):
    """Reject a vendor+day completion once that day has been paid.

    Never resolves anything: it either raises ConflictError carrying the
    original payment reference, or lets the chain continue. Runs before
    ``latest_active`` so a retry cannot settle another day's record.
    Earmarked items still waiting for the day mean this is not a retry.
    """

    name = "completed_day"

    def __init__(
        self,
        ledger: SettlementLedger,
        transactions: TransactionStore,
        orders: OrderStore,
    ) -> None:
        self.ledger = ledger
        self.transactions = transactions
        self.orders = orders

    def resolve(self, target: CompletionTarget) -> Optional[Resolution]:
        if not target.vendor_id or target.window is None:
            return None
        if self.transactions.query_earmarked(
            target.vendor_id, target.window
        ) or self.orders.query_earmarked(target.vendor_id, target.window):
            return None

        record = self.ledger.find_latest_completed(target.vendor_id, target.window)
        if record is not None:
            self.ledger.ensure_transition(record, SettlementStatus.COMPLETED.value)

        paid = self._latest_direct_payment(target)
        if paid is not None:
            raise ConflictError(
                f"Revenue for {target.window.label} has already been settled "
                f"(ref {paid.payment_reference})",
                details={
                    "settlement_id": paid.settlement_id,
                    "payment_reference": paid.payment_reference,
                    "processed_at": paid.settled_at,
                },
            )
        return None

    def _latest_direct_payment(self, target: CompletionTarget):
        """Most recent item settled by direct recovery (only those carry a reference)."""
        items = self.transactions.query_settled(
            target.vendor_id, target.window
        ) + self.orders.query_settled(target.vendor_id, target.window)
        paid = [item for item in items if item.payment_reference]
        if not paid:
            return None
        return max(paid, key=lambda item: item.settled_at or target.window.start)


class LatestActiveResolver(SettlementResolver):
    name = "latest_active"

    def __init__(self, ledger: SettlementLedger) -> None:
        self.ledger = ledger

    def resolve(self, target: CompletionTarget) -> Optional[Resolution]:
        if not target.vendor_id:
            return None
        record = self.ledger.find_latest_active(target.vendor_id)
        return Resolution(self.name, record) if record else None


class OrphanedItemsResolver(SettlementResolver):
    """Recover items flagged ``included_in_settlement`` with no ledger behind them."""

    name = "orphaned_items"

    def __init__(
        self,
        ledger: SettlementLedger,
        transactions: TransactionStore,
        orders: OrderStore,
    ) -> None:
        self.ledger = ledger
        self.transactions = transactions
        self.orders = orders

    def _orphaned(self, items: list) -> list:
        known: dict[str, bool] = {}
        orphaned = []
        for item in items:
            ref = item.settlement_id
            if ref not in known:
                known[ref] = self.ledger.get(ref) is not None
            if not known[ref]:
                orphaned.append(item)
        return orphaned

    def resolve(self, target: CompletionTarget) -> Optional[Resolution]:
        if not target.vendor_id or target.window is None:
            return None
        transactions = self._orphaned(
            self.transactions.query_earmarked(target.vendor_id, target.window)
        )
        orders = self._orphaned(self.orders.query_earmarked(target.vendor_id, target.window))
        if not transactions and not orders:
            return None
        return Resolution(self.name, None, transactions, orders)


def default_resolver_chain(
    ledger: SettlementLedger,
    transactions: TransactionStore,
    orders: OrderStore,
) -> list[SettlementResolver]:
    return [
        ExactIdResolver(ledger),
        VendorDateResolver(ledger),
        CompletedDayGuard(ledger, transactions, orders),
        LatestActiveResolver(ledger),
        OrphanedItemsResolver(ledger, transactions, orders),
    ]


def resolve_target(
    chain: list[SettlementResolver], target: CompletionTarget
) -> Optional[Resolution]:
    """Run *chain* in order and return the first hit."""
    for resolver in chain:
        resolution = resolver.resolve(target)
        if resolution is not None:
            logger.info(
                "Settlement resolved via %s: settlement=%s vendor=%s",
                resolver.name,
                resolution.record.id if resolution.record else None,
                target.vendor_id,
            )
            return resolution
    return None
