"""Pydantic schemas for settlement requests and responses."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class InitiateSettlementRequest(BaseModel):
    """Admin-initiated payout for one vendor and day."""

    vendor_id: Optional[str] = Field(None, max_length=36)
    date: Optional[str] = Field(
        None,
        description="Settlement day (YYYY-MM-DD, UTC)",
    )
    amount: Optional[Decimal] = Field(
        None,
        description="Amount being paid out; must be positive",
    )


class RequestSettlementRequest(InitiateSettlementRequest):
    """Vendor-requested (urgent) payout; amount must match the recomputed total."""

    reason: Optional[str] = Field(None, max_length=500)


class CompleteSettlementRequest(BaseModel):
    """Either ``settlement_id`` or ``vendor_id`` (+ ``date``) identifies the payout."""

    settlement_id: Optional[str] = Field(None, max_length=40)
    vendor_id: Optional[str] = Field(None, max_length=36)
    date: Optional[str] = Field(None, description="YYYY-MM-DD, UTC")
    payment_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class InitiateSettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    settlement_id: str
    status: str
    amount: Decimal
    transaction_count: int
    booking_count: int
    order_count: int
    request_type: str


class CompleteSettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    settlement_id: str
    status: str
    amount: Decimal
    payment_reference: str
    processed_at: datetime
    transaction_count: int
    booking_count: int
    order_count: int
    resolved_by: str = Field(
        ...,
        description="exact_id | vendor_date | latest_active | orphaned_items",
    )


class SettlementBucketsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_to_be_received: Decimal
    payment_settled: Decimal
    in_settlement_process: Decimal
    pending_settlement: Decimal
    transaction_count: int


class VendorSummaryResponse(BaseModel):
    """One row of the pending-settlements list."""

    model_config = ConfigDict(from_attributes=True)

    vendor_id: str
    business_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    buckets: SettlementBucketsResponse
    transaction_ids: list[str] = Field(default_factory=list)
    order_ids: list[str] = Field(default_factory=list)


class PendingVendorsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: date
    vendors: list[VendorSummaryResponse]
    total_vendors: int
    total_pending_amount: Decimal
    total_in_process_amount: Decimal


class LineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str = Field(..., description="charging | restaurant")
    item_id: str
    reference: Optional[str] = None
    amount: Decimal
    completed_at: Optional[datetime] = None
    settlement_status: str
    settlement_id: Optional[str] = None
    customer_name: str
    station_name: Optional[str] = None
    restaurant_name: Optional[str] = None
    description: str


class SettlementRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    vendor_id: str
    amount: Decimal
    settlement_date: date
    transaction_ids: list[str] = Field(default_factory=list)
    order_ids: list[str] = Field(default_factory=list)
    status: str
    request_type: str
    bank_details: Optional[dict[str, Any]] = None
    period_start: datetime
    period_end: datetime
    requested_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    processing_notes: Optional[str] = None
    reason: Optional[str] = None
    metadata: Optional[dict[str, Any]] = Field(None, validation_alias="metadata_json")


class VendorInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    business_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    bank_details: Optional[dict[str, Any]] = None


class VendorSettlementDetailResponse(BaseModel):
    """Itemized day view for one vendor plus its all-time balances."""

    vendor: VendorInfoResponse
    day: date
    period_start: datetime
    period_end: datetime
    summary: SettlementBucketsResponse
    charging_revenue: Decimal
    restaurant_revenue: Decimal
    items: list[LineItemResponse]
    overall: dict[str, Decimal]
    active_settlement: Optional[SettlementRecordResponse] = None
