"""Pydantic schemas for station writes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ImagePayload(BaseModel):
    """An image that has already been stored; only the reference is sent."""

    url: str
    object_name: Optional[str] = None
    key: Optional[str] = None
    original_name: Optional[str] = None
    filename: Optional[str] = None
    size: Optional[int] = None
    mimetype: Optional[str] = None


class StationCreateRequest(BaseModel):
    vendor_id: str = Field(..., max_length=36)
    name: str = Field(..., max_length=200)
    address: Optional[str] = Field(None, max_length=500)
    images: list[ImagePayload] = Field(default_factory=list)


class StationImagesUpdateRequest(BaseModel):
    new_images: list[ImagePayload] = Field(default_factory=list)
    images_to_remove: list[str] = Field(
        default_factory=list,
        description="URLs of images to drop from the gallery",
    )


class PreUploadedImagesRequest(BaseModel):
    """Attach pre-uploaded images; omit ``station_id`` to create a new station."""

    station_id: Optional[str] = None
    vendor_id: Optional[str] = None
    station_data: dict[str, Any] = Field(default_factory=dict)
    images: list[Any] = Field(
        default_factory=list,
        description="URL strings or objects with a 'url' key",
    )


class BatchOperation(BaseModel):
    type: str = Field(..., description="create | update")
    station_id: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class BatchOperationsRequest(BaseModel):
    operations: list[BatchOperation]


class StationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    vendor_id: str
    name: str
    address: Optional[str] = None
    images: list[dict[str, Any]] = Field(default_factory=list)
    image_count: int
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BatchResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    result: Optional[StationResponse] = None
    error: Optional[str] = None
    code: Optional[str] = None
