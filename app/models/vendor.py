"""Vendor model: the charging-station operator that receives payouts."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, JSON, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Vendor(Base):
    """A station operator.

    Only the fields the settlement and station services touch are modelled;
    authentication and profile management live elsewhere.
    """

    __tablename__ = "vendors"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    business_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    name: Mapped[Optional[str]] = mapped_column(
        String(200),
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
    )
    phone_number: Mapped[Optional[str]] = mapped_column(
        String(30),
    )
    bank_details: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
        comment="account_number | account_holder_name | bank_name | ifsc_code",
    )
    station_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    total_image_uploads: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    total_image_removals: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    last_station_created: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    last_station_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Vendor(id={self.id!r}, business_name={self.business_name!r})>"
