"""Vendor directory: the only place vendor rows are read or mutated."""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.vendor import Vendor

BANK_DETAIL_FIELDS = ("account_number", "account_holder_name", "bank_name", "ifsc_code")


class VendorDirectory:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, vendor_id: Optional[str]) -> Optional[Vendor]:
        if not vendor_id:
            return None
        return self.db.get(Vendor, vendor_id)

    def require(self, vendor_id: Optional[str]) -> Vendor:
        vendor = self.get(vendor_id)
        if vendor is None:
            raise NotFoundError(
                f"Vendor '{vendor_id}' not found",
                details={"vendor_id": vendor_id},
            )
        return vendor

    def fetch_many(self, vendor_ids: Iterable[str]) -> dict[str, Vendor]:
        ids = {vid for vid in vendor_ids if vid}
        if not ids:
            return {}
        rows = self.db.query(Vendor).filter(Vendor.id.in_(ids)).all()
        return {v.id: v for v in rows}

    @staticmethod
    def bank_details_snapshot(vendor: Vendor) -> dict[str, Any]:
        """Deep copy of the payout destination as it is right now."""
        details = vendor.bank_details or {}
        return {key: copy.deepcopy(details.get(key)) for key in BANK_DETAIL_FIELDS}

    def update_counters(
        self,
        vendor_id: str,
        stations: int = 0,
        image_uploads: int = 0,
        image_removals: int = 0,
        station_created_at: Optional[datetime] = None,
        station_updated_at: Optional[datetime] = None,
    ) -> None:
        """Increment aggregate counters in SQL so concurrent writers don't lose updates."""
        values: dict[Any, Any] = {
            Vendor.station_count: Vendor.station_count + stations,
            Vendor.total_image_uploads: Vendor.total_image_uploads + image_uploads,
            Vendor.total_image_removals: Vendor.total_image_removals + image_removals,
        }
        if station_created_at is not None:
            values[Vendor.last_station_created] = station_created_at
        if station_updated_at is not None:
            values[Vendor.last_station_updated] = station_updated_at

        updated = (
            self.db.query(Vendor)
            .filter(Vendor.id == vendor_id)
            .update(values, synchronize_session="fetch")
        )
        if updated == 0:
            raise NotFoundError(
                f"Vendor '{vendor_id}' not found",
                details={"vendor_id": vendor_id},
            )
