"""Settlement endpoints.

Admin-facing views of who is owed what, plus the initiate / request /
complete transitions. All business rules live in the orchestrator; these
handlers only translate between HTTP and service calls.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.logging import get_logger
from app.schemas.settlement import (
    CompleteSettlementRequest,
    CompleteSettlementResponse,
    InitiateSettlementRequest,
    InitiateSettlementResponse,
    PendingVendorsResponse,
    RequestSettlementRequest,
    SettlementRecordResponse,
    VendorSettlementDetailResponse,
)
from app.services.settlement.orchestrator import SettlementOrchestrator

logger = get_logger(__name__)

router = APIRouter()


def _orchestrator(db: Session) -> SettlementOrchestrator:
    return SettlementOrchestrator(db, settings)


@router.get("/vendors", response_model=PendingVendorsResponse)
def list_vendors_with_pending_settlements(
    date: Optional[str] = Query(None, description="Settlement day (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
) -> PendingVendorsResponse:
    """Vendors with pending or in-flight revenue for the day, largest pending first."""
    report = _orchestrator(db).list_vendors_with_pending_settlements(date)
    return PendingVendorsResponse.model_validate(report)


@router.get("/vendors/{vendor_id}", response_model=VendorSettlementDetailResponse)
def get_vendor_settlement_detail(
    vendor_id: str,
    date: Optional[str] = Query(None, description="Settlement day (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
) -> VendorSettlementDetailResponse:
    detail = _orchestrator(db).get_vendor_settlement_detail(vendor_id, date)
    breakdown = detail.breakdown
    return VendorSettlementDetailResponse.model_validate(
        {
            "vendor": detail.vendor,
            "day": detail.day,
            "period_start": breakdown.window.start,
            "period_end": breakdown.window.end,
            "summary": breakdown.buckets,
            "charging_revenue": breakdown.charging_revenue,
            "restaurant_revenue": breakdown.restaurant_revenue,
            "items": breakdown.items,
            "overall": detail.overall,
            "active_settlement": detail.active_settlement,
        },
        from_attributes=True,
    )


@router.post("/initiate", response_model=InitiateSettlementResponse, status_code=201)
def initiate_settlement(
    body: InitiateSettlementRequest,
    db: Session = Depends(get_db),
) -> InitiateSettlementResponse:
    result = _orchestrator(db).initiate_settlement(body.vendor_id, body.date, body.amount)
    return InitiateSettlementResponse.model_validate(result)


@router.post("/request", response_model=InitiateSettlementResponse, status_code=201)
def request_settlement(
    body: RequestSettlementRequest,
    db: Session = Depends(get_db),
) -> InitiateSettlementResponse:
    result = _orchestrator(db).request_settlement(
        body.vendor_id, body.date, body.amount, body.reason
    )
    return InitiateSettlementResponse.model_validate(result)


@router.post("/complete", response_model=CompleteSettlementResponse)
def complete_settlement(
    body: CompleteSettlementRequest,
    db: Session = Depends(get_db),
) -> CompleteSettlementResponse:
    result = _orchestrator(db).complete_settlement(
        settlement_id=body.settlement_id,
        vendor_id=body.vendor_id,
        day=body.date,
        payment_reference=body.payment_reference,
        notes=body.notes,
    )
    return CompleteSettlementResponse.model_validate(result)


@router.get("/", response_model=list[SettlementRecordResponse])
def list_settlements(
    vendor_id: Optional[str] = Query(None, description="Filter by vendor"),
    status: Optional[str] = Query(None, description="Filter by settlement status"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=500, description="Items per page"),
    db: Session = Depends(get_db),
) -> list:
    records = _orchestrator(db).list_settlements(vendor_id, status, page, limit)
    logger.info(
        "Settlements query: vendor=%s status=%s page=%d returned=%d",
        vendor_id,
        status,
        page,
        len(records),
    )
    return records


@router.get("/{settlement_id}", response_model=SettlementRecordResponse)
def get_settlement(settlement_id: str, db: Session = Depends(get_db)):
    return _orchestrator(db).get_settlement(settlement_id)
