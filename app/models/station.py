"""Charging station model: a vendor-owned site with an image gallery."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class ChargingStation(Base):
    """A charging site.

    ``images`` is stored inline as a JSON list; ``image_count`` mirrors its
    length so listings don't have to decode the gallery.
    """

    __tablename__ = "charging_stations"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    vendor_id: Mapped[str] = mapped_column(
        ForeignKey("vendors.id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    address: Mapped[Optional[str]] = mapped_column(
        String(500),
    )
    images: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    image_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="active",
        comment="active | inactive",
    )
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )

    vendor: Mapped["Vendor"] = relationship("Vendor", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<ChargingStation(id={self.id!r}, name={self.name!r}, "
            f"image_count={self.image_count})>"
        )
