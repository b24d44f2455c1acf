"""Restaurant order model: food ordered for pickup at a charging site."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class RestaurantOrder(Base):
    """An order placed at a vendor's restaurant.

    The vendor is reached through ``restaurant.vendor_id``; there is no
    direct vendor column.
    """

    __tablename__ = "restaurant_orders"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    order_number: Mapped[Optional[str]] = mapped_column(
        String(40),
        index=True,
    )
    restaurant_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("restaurants.id"),
        nullable=True,
        index=True,
    )
    customer_name: Mapped[Optional[str]] = mapped_column(
        String(200),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="placed | preparing | ready | completed | cancelled",
    )
    subtotal: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=0,
    )
    item_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
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

    restaurant: Mapped[Optional["Restaurant"]] = relationship(
        "Restaurant",
        lazy="joined",
    )

    def __repr__(self) -> str:
        return (
            f"<RestaurantOrder(order_number={self.order_number!r}, "
            f"total_amount={self.total_amount}, "
            f"settlement_status={self.settlement_status!r})>"
        )
