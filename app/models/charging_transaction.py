"""Charging transaction model: one completed (or in-flight) charging session.

Carries the pricing snapshot taken at booking time, any post-session
payment adjustments, and the denormalized settlement flags the payout
process flips.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class ChargingTransaction(Base):
    """A charging session booked at one of a vendor's stations."""

    __tablename__ = "charging_transactions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    booking_code: Mapped[Optional[str]] = mapped_column(
        String(40),
        index=True,
    )
    vendor_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("vendors.id"),
        nullable=True,
    )
    station_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("charging_stations.id"),
        nullable=True,
    )
    customer_name: Mapped[Optional[str]] = mapped_column(
        String(200),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="pending | confirmed | active | completed | cancelled | expired",
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=0,
    )
    platform_fee: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    merchant_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Vendor share fixed at booking time; NULL on legacy rows",
    )
    actual_end_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    # -- Settlement tracking --
    settlement_status: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        comment="NULL | pending | included_in_settlement | settled",
    )
    settlement_id: Mapped[Optional[str]] = mapped_column(
        String(40),
        nullable=True,
        index=True,
    )
    settlement_requested_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    settlement_requested_for: Mapped[Optional[str]] = mapped_column(
        String(10),
        comment="YYYY-MM-DD the settlement was requested for",
    )
    settled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    # -- Relationships --
    adjustments: Mapped[list[PaymentAdjustment]] = relationship(
        "PaymentAdjustment",
        back_populates="transaction",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    station: Mapped[Optional["ChargingStation"]] = relationship(
        "ChargingStation",
        lazy="select",
    )

    __table_args__ = (
        Index("ix_charging_txn_vendor_status", "vendor_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChargingTransaction(id={self.id!r}, total_amount={self.total_amount}, "
            f"settlement_status={self.settlement_status!r})>"
        )


class PaymentAdjustment(Base):
    """An additional charge or partial refund recorded after the session."""

    __tablename__ = "payment_adjustments"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    transaction_id: Mapped[str] = mapped_column(
        ForeignKey("charging_transactions.id"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="additional_charge | refund",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="pending | processed | rejected",
    )
    reason: Mapped[Optional[str]] = mapped_column(
        String(500),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    transaction: Mapped[ChargingTransaction] = relationship(
        "ChargingTransaction",
        back_populates="adjustments",
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentAdjustment(type={self.type!r}, amount={self.amount}, "
            f"status={self.status!r})>"
        )
