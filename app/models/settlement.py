"""Settlement record model: one vendor payout covering a day of revenue."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, JSON, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class SettlementRecord(Base):
    """A batch payout to a vendor.

    The record lists exactly the charging transactions and restaurant
    orders it earmarked, and keeps a *copy* of the vendor's bank details
    taken at creation so later profile edits cannot redirect the payout.

    ``active_period_key`` is ``"<vendor_id>:<YYYY-MM-DD>"`` while the record
    is pending/processing and NULL once it is completed. The unique index
    on it guarantees at most one in-flight settlement per vendor and day,
    even when two requests pass the overlap check concurrently.
    """

    __tablename__ = "settlement_records"

    id: Mapped[str] = mapped_column(
        String(40),
        primary_key=True,
        comment="STL<epoch millis><4 random chars>",
    )
    vendor_id: Mapped[str] = mapped_column(
        ForeignKey("vendors.id"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    settlement_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    transaction_ids: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    order_ids: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="pending | processing | completed | failed",
    )
    request_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="regular",
        comment="regular | urgent | admin_initiated",
    )
    bank_details: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    period_start: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    period_end: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment="Exclusive upper bound",
    )
    active_period_key: Mapped[Optional[str]] = mapped_column(
        String(80),
        nullable=True,
        unique=True,
    )
    requested_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    processing_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    reason: Mapped[Optional[str]] = mapped_column(
        String(500),
    )
    metadata_json: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=func.now(),
    )

    vendor: Mapped["Vendor"] = relationship("Vendor", lazy="joined")

    __table_args__ = (
        Index("ix_settlement_vendor_date", "vendor_id", "settlement_date"),
        Index("ix_settlement_vendor_period", "vendor_id", "period_start", "period_end"),
        Index("ix_settlement_status", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ("pending", "processing")

    def __repr__(self) -> str:
        return (
            f"<SettlementRecord(id={self.id!r}, vendor_id={self.vendor_id!r}, "
            f"amount={self.amount}, status={self.status!r})>"
        )
