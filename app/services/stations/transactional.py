"""Atomic station writes.

Creating a station or changing its image gallery also moves the owning
vendor's aggregate counters. Both rows are written in one session and
committed together, so a failure anywhere leaves neither changed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import SystemClock
from app.core.database import atomic
from app.core.exceptions import (
    DependencyError,
    NotFoundError,
    SettlementServiceError,
    ValidationError,
)
from app.core.logging import get_logger
from app.models.station import ChargingStation
from app.repositories.vendors import VendorDirectory

logger = get_logger(__name__)

DEFAULT_MIMETYPE = "image/jpeg"
STATION_FIELDS = ("name", "address")


@dataclass
class BatchResult:
    success: bool
    result: Optional[ChargingStation] = None
    error: Optional[str] = None
    code: Optional[str] = None


def _basename(url: str) -> str:
    return url.rstrip("/").split("/")[-1]


def build_image_record(
    image: dict[str, Any], primary: bool, uploaded_at: str
) -> dict[str, Any]:
    """Normalize an uploaded image into the gallery entry shape."""
    return {
        "url": image.get("url"),
        "object_name": image.get("object_name") or image.get("key"),
        "original_name": image.get("original_name") or image.get("filename"),
        "is_primary": primary,
        "is_thumbnail": primary,
        "uploaded_at": uploaded_at,
        "upload_status": "completed",
        "size": image.get("size"),
        "mimetype": image.get("mimetype") or DEFAULT_MIMETYPE,
    }


def normalize_pre_uploaded(images: list[Any]) -> list[dict[str, Any]]:
    """Accept bare URL strings or dicts with a ``url`` key."""
    normalized = []
    for position, image in enumerate(images or []):
        if isinstance(image, str) and image:
            name = _basename(image)
            normalized.append({"url": image, "object_name": name, "original_name": name})
        elif isinstance(image, dict) and image.get("url"):
            name = _basename(image["url"])
            normalized.append(
                {
                    "url": image["url"],
                    "object_name": image.get("object_name") or name,
                    "original_name": image.get("original_name") or name,
                    "size": image.get("size"),
                    "mimetype": image.get("mimetype"),
                }
            )
        else:
            raise ValidationError(
                "Invalid image format in pre-uploaded images",
                details={"index": position},
            )
    return normalized


class TransactionalResourceService:
    """Station + vendor counter writes that commit together or not at all."""

    def __init__(self, db: Session, clock: Any = None) -> None:
        self.db = db
        self.clock = clock or SystemClock()
        self.vendors = VendorDirectory(db)

    # ── Reads ────────────────────────────────────────────────────────

    def get_station(self, station_id: str) -> ChargingStation:
        station = self.db.get(ChargingStation, station_id)
        if station is None:
            raise NotFoundError(
                f"Station '{station_id}' not found", details={"station_id": station_id}
            )
        return station

    # ── Writes ───────────────────────────────────────────────────────

    def create_station_with_images(
        self,
        station_data: dict[str, Any],
        images: Optional[list[dict[str, Any]]],
        vendor_id: str,
    ) -> ChargingStation:
        """Insert a station with its gallery and bump the vendor's counters."""
        if not vendor_id:
            raise ValidationError("Vendor ID is required", details={"field": "vendor_id"})
        if not (station_data or {}).get("name"):
            raise ValidationError("Station name is required", details={"field": "name"})

        self.vendors.require(vendor_id)
        images = images or []
        now = self.clock.now()
        gallery = [
            build_image_record(img, index == 0, now.isoformat())
            for index, img in enumerate(images)
        ]
        fields = {key: station_data[key] for key in STATION_FIELDS if key in station_data}

        try:
            with atomic(self.db, f"create station for vendor {vendor_id}"):
                station = ChargingStation(
                    vendor_id=vendor_id,
                    images=gallery,
                    image_count=len(gallery),
                    status="active",
                    created_at=now,
                    updated_at=now,
                    **fields,
                )
                self.db.add(station)
                self.db.flush()
                self.vendors.update_counters(
                    vendor_id,
                    stations=1,
                    image_uploads=len(gallery),
                    station_created_at=now,
                )
        except SQLAlchemyError as exc:
            raise DependencyError(
                f"Failed to create station: {exc}", details={"vendor_id": vendor_id}
            ) from exc

        logger.info(
            "Station %s created for vendor %s with %d images",
            station.id,
            vendor_id,
            len(gallery),
        )
        return station

    def update_station_images(
        self,
        station_id: str,
        new_images: Optional[list[dict[str, Any]]] = None,
        images_to_remove: Optional[list[str]] = None,
    ) -> ChargingStation:
        """Drop images by URL, append new ones, and record both on the vendor."""
        new_images = new_images or []
        remove_urls = set(images_to_remove or [])
        station = self.get_station(station_id)
        now = self.clock.now()

        try:
            with atomic(self.db, f"update images for station {station_id}"):
                kept = [img for img in station.images or [] if img.get("url") not in remove_urls]
                removed = len(station.images or []) - len(kept)
                added = [
                    build_image_record(img, not kept and index == 0, now.isoformat())
                    for index, img in enumerate(new_images)
                ]
                gallery = kept + added

                station.images = gallery
                station.image_count = len(gallery)
                station.updated_at = now
                self.db.flush()
                self.vendors.update_counters(
                    station.vendor_id,
                    image_uploads=len(added),
                    image_removals=removed,
                    station_updated_at=now,
                )
        except SQLAlchemyError as exc:
            raise DependencyError(
                f"Failed to update station images: {exc}",
                details={"station_id": station_id},
            ) from exc

        logger.info(
            "Station %s updated: +%d images, -%d images",
            station_id,
            len(added),
            removed,
        )
        return station

    def handle_pre_uploaded_images(
        self,
        station_id: Optional[str],
        station_data: Optional[dict[str, Any]],
        images: list[Any],
        vendor_id: Optional[str],
    ) -> ChargingStation:
        """Attach already-stored images to a new or existing station."""
        normalized = normalize_pre_uploaded(images)
        if station_id:
            return self.update_station_images(station_id, normalized, [])
        return self.create_station_with_images(station_data or {}, normalized, vendor_id)

    def perform_batch_operations(self, operations: list[dict[str, Any]]) -> list[BatchResult]:
        """Run each operation in its own transaction and report them individually."""
        results: list[BatchResult] = []
        for operation in operations:
            op_type = operation.get("type")
            data = operation.get("data") or {}
            try:
                if op_type == "create":
                    station = self.create_station_with_images(
                        data.get("station_data") or {},
                        data.get("images"),
                        data.get("vendor_id"),
                    )
                elif op_type == "update":
                    station = self.update_station_images(
                        operation.get("station_id"),
                        data.get("new_images"),
                        data.get("images_to_remove"),
                    )
                else:
                    results.append(
                        BatchResult(
                            success=False,
                            error=f"Unknown operation type: {op_type}",
                            code=ValidationError.code,
                        )
                    )
                    continue
            except SettlementServiceError as exc:
                logger.warning("Batch %s operation failed: %s", op_type, exc.message)
                results.append(BatchResult(success=False, error=exc.message, code=exc.code))
                continue
            except Exception as exc:
                logger.exception("Batch %s operation failed unexpectedly", op_type)
                results.append(
                    BatchResult(
                        success=False,
                        error=str(exc),
                        code=SettlementServiceError.code,
                    )
                )
                continue
            results.append(BatchResult(success=True, result=station))

        logger.info(
            "Batch operations completed: %d ok, %d failed",
            sum(1 for r in results if r.success),
            sum(1 for r in results if not r.success),
        )
        return results
