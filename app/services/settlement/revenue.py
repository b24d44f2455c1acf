"""Merchant receivable rules.

Pure functions: given a charging transaction or a restaurant order, work
out how much of it the vendor is owed. No database access, so every rule
is safe to re-evaluate and trivial to unit-test with stand-in objects.

Two fee models coexist on purpose:

* Settlement uses the stored ``merchant_amount`` when present and
  otherwise falls back to ``total_amount - fixed fee``.
* Reporting estimates the platform's cut as a percentage of
  ``total_amount``.

The two do not agree in general. Both are kept as-is.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from app.models.enums import AdjustmentStatus, AdjustmentType

ZERO = Decimal("0")
DEFAULT_FIXED_FEE = Decimal("5")


def to_decimal(value: Any) -> Decimal:
    """Coerce DB numerics, floats and ints to ``Decimal`` (``None`` -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _processed_total(adjustments: Iterable[Any], kind: AdjustmentType) -> Decimal:
    total = ZERO
    for adj in adjustments:
        if adj.type == kind and adj.status == AdjustmentStatus.PROCESSED:
            total += to_decimal(adj.amount)
    return total


def base_merchant_amount(transaction: Any, fixed_fee: Decimal = DEFAULT_FIXED_FEE) -> Decimal:
    """Stored merchant share, or ``max(0, total - fixed_fee)`` on legacy rows."""
    stored = getattr(transaction, "merchant_amount", None)
    if stored is not None:
        return to_decimal(stored)
    total = to_decimal(getattr(transaction, "total_amount", None))
    return max(ZERO, total - to_decimal(fixed_fee))


def transaction_receivable(
    transaction: Any,
    fixed_fee: Decimal = DEFAULT_FIXED_FEE,
) -> Decimal:
    """Net amount owed to the vendor for one charging session.

    Base amount plus processed additional charges minus processed refunds.
    Pending or rejected adjustments are ignored.
    """
    adjustments = getattr(transaction, "adjustments", None) or []
    return (
        base_merchant_amount(transaction, fixed_fee)
        + _processed_total(adjustments, AdjustmentType.ADDITIONAL_CHARGE)
        - _processed_total(adjustments, AdjustmentType.REFUND)
    )


def order_receivable(order: Any) -> Decimal:
    """Restaurant orders are passed through in full; the platform keeps 0%."""
    return to_decimal(getattr(order, "total_amount", None))


def reported_platform_fee(transaction: Any, percent: float) -> Decimal:
    """Percentage-based platform fee estimate used by reporting screens."""
    total = to_decimal(getattr(transaction, "total_amount", None))
    return (total * to_decimal(percent) / Decimal("100")).quantize(Decimal("0.01"))


class RevenueCalculator:
    """Binds the configured fixed fee so callers don't have to pass it around."""

    def __init__(self, fixed_fee: Any = DEFAULT_FIXED_FEE, fee_percent: float = 0.0) -> None:
        self.fixed_fee = to_decimal(fixed_fee)
        self.fee_percent = fee_percent

    def for_transaction(self, transaction: Any) -> Decimal:
        return transaction_receivable(transaction, self.fixed_fee)

    def for_order(self, order: Any) -> Decimal:
        return order_receivable(order)

    def reported_fee(self, transaction: Any) -> Decimal:
        return reported_platform_fee(transaction, self.fee_percent)

    def total(self, transactions: Iterable[Any], orders: Iterable[Any]) -> Decimal:
        return sum((self.for_transaction(t) for t in transactions), ZERO) + sum(
            (self.for_order(o) for o in orders), ZERO
        )
