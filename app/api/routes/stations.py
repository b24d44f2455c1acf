"""Station write endpoints backed by the transactional resource service."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.station import (
    BatchOperationsRequest,
    BatchResultResponse,
    PreUploadedImagesRequest,
    StationCreateRequest,
    StationImagesUpdateRequest,
    StationResponse,
)
from app.services.stations.transactional import TransactionalResourceService

router = APIRouter()


@router.post("/", response_model=StationResponse, status_code=201)
def create_station(body: StationCreateRequest, db: Session = Depends(get_db)):
    """Create a station with its images and bump the vendor's counters together."""
    service = TransactionalResourceService(db)
    return service.create_station_with_images(
        body.model_dump(include={"name", "address"}),
        [img.model_dump(exclude_none=True) for img in body.images],
        body.vendor_id,
    )


@router.patch("/{station_id}/images", response_model=StationResponse)
def update_station_images(
    station_id: str,
    body: StationImagesUpdateRequest,
    db: Session = Depends(get_db),
):
    service = TransactionalResourceService(db)
    return service.update_station_images(
        station_id,
        [img.model_dump(exclude_none=True) for img in body.new_images],
        body.images_to_remove,
    )


@router.post("/pre-uploaded", response_model=StationResponse)
def attach_pre_uploaded_images(
    body: PreUploadedImagesRequest,
    db: Session = Depends(get_db),
):
    service = TransactionalResourceService(db)
    return service.handle_pre_uploaded_images(
        body.station_id, body.station_data, body.images, body.vendor_id
    )


@router.post("/batch", response_model=list[BatchResultResponse])
def perform_batch_operations(
    body: BatchOperationsRequest,
    db: Session = Depends(get_db),
):
    """Each operation commits on its own; failures are reported per entry."""
    service = TransactionalResourceService(db)
    return service.perform_batch_operations([op.model_dump() for op in body.operations])


@router.get("/{station_id}", response_model=StationResponse)
def get_station(station_id: str, db: Session = Depends(get_db)):
    return TransactionalResourceService(db).get_station(station_id)
