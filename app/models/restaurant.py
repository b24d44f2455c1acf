"""Restaurant model: food outlet at a charging site, owned by a vendor."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class Restaurant(Base):
    __tablename__ = "restaurants"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    # Nullable: legacy restaurants may have lost their owner reference
    vendor_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("vendors.id"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    vendor: Mapped[Optional["Vendor"]] = relationship("Vendor", lazy="joined")

    def __repr__(self) -> str:
        return f"<Restaurant(id={self.id!r}, name={self.name!r})>"
