"""Settlement ledger: persistence and transition rules for SettlementRecord.

Records are born ``pending`` (vendor request) or ``processing`` (admin
initiated) and end ``completed``. ``failed`` exists in the vocabulary but
is only ever set by hand; nothing here moves a record into it.
"""

from __future__ import annotations

import calendar
import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.models.enums import ACTIVE_SETTLEMENT_STATUSES, SettlementStatus
from app.models.settlement import SettlementRecord
from app.models.vendor import Vendor
from app.services.settlement.periods import SettlementWindow, active_period_key

logger = get_logger(__name__)

_ID_ALPHABET = string.ascii_uppercase + string.digits

# from-status -> statuses it may move to
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    SettlementStatus.PENDING.value: frozenset(
        {SettlementStatus.PROCESSING.value, SettlementStatus.COMPLETED.value}
    ),
    SettlementStatus.PROCESSING.value: frozenset({SettlementStatus.COMPLETED.value}),
    SettlementStatus.COMPLETED.value: frozenset(),
    SettlementStatus.FAILED.value: frozenset(),
}


def generate_settlement_id(prefix: str, now: datetime) -> str:
    """``<prefix><epoch millis><4 random base36 chars>``, e.g. ``STL1704877200000K3QZ``."""
    millis = calendar.timegm(now.utctimetuple()) * 1000 + now.microsecond // 1000
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(4))
    return f"{prefix}{millis}{suffix}"


class SettlementLedger:
    """Reads and writes settlement records. Never commits."""

    def __init__(self, db: Session, config: Settings, clock) -> None:
        self.db = db
        self.config = config
        self.clock = clock

    # ── Lookups ──────────────────────────────────────────────────────

    def get(self, settlement_id: Optional[str]) -> Optional[SettlementRecord]:
        if not settlement_id:
            return None
        return self.db.get(SettlementRecord, settlement_id)

    def require(self, settlement_id: str) -> SettlementRecord:
        record = self.get(settlement_id)
        if record is None:
            raise NotFoundError(
                f"Settlement '{settlement_id}' not found",
                details={"settlement_id": settlement_id},
            )
        return record

    def _active_for_vendor(self, vendor_id: str):
        return self.db.query(SettlementRecord).filter(
            SettlementRecord.vendor_id == vendor_id,
            SettlementRecord.status.in_(ACTIVE_SETTLEMENT_STATUSES),
        )

    def find_overlapping_active(
        self, vendor_id: str, window: SettlementWindow
    ) -> Optional[SettlementRecord]:
        """Non-terminal record whose period intersects *window*."""
        return (
            self._active_for_vendor(vendor_id)
            .filter(
                SettlementRecord.period_start < window.end,
                SettlementRecord.period_end > window.start,
            )
            .order_by(SettlementRecord.requested_at.desc())
            .first()
        )

    def find_active_for_day(
        self, vendor_id: str, window: SettlementWindow
    ) -> Optional[SettlementRecord]:
        """Non-terminal record dated on, or overlapping, the given day."""
        return (
            self._active_for_vendor(vendor_id)
            .filter(
                or_(
                    SettlementRecord.settlement_date == window.day,
                    (SettlementRecord.period_start < window.end)
                    & (SettlementRecord.period_end > window.start),
                )
            )
            .order_by(SettlementRecord.requested_at.desc())
            .first()
        )

    def find_latest_active(self, vendor_id: str) -> Optional[SettlementRecord]:
        return (
            self._active_for_vendor(vendor_id)
            .order_by(
                SettlementRecord.requested_at.desc(),
                SettlementRecord.created_at.desc(),
            )
            .first()
        )

    def find_latest_completed(
        self, vendor_id: str, window: SettlementWindow
    ) -> Optional[SettlementRecord]:
        return (
            self.db.query(SettlementRecord)
            .filter(
                SettlementRecord.vendor_id == vendor_id,
                SettlementRecord.status == SettlementStatus.COMPLETED.value,
                SettlementRecord.period_start < window.end,
                SettlementRecord.period_end > window.start,
            )
            .order_by(SettlementRecord.processed_at.desc())
            .first()
        )

    def total_withdrawn(self, vendor_id: str) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(SettlementRecord.amount), 0))
            .filter(
                SettlementRecord.vendor_id == vendor_id,
                SettlementRecord.status == SettlementStatus.COMPLETED.value,
            )
            .scalar()
        )
        return Decimal(str(total or 0))

    def list_records(
        self,
        vendor_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> list[SettlementRecord]:
        query = self.db.query(SettlementRecord)
        if vendor_id:
            query = query.filter(SettlementRecord.vendor_id == vendor_id)
        if status:
            query = query.filter(SettlementRecord.status == status)
        offset = (page - 1) * limit
        return (
            query.order_by(SettlementRecord.requested_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    # ── Rules ────────────────────────────────────────────────────────

    def ensure_no_active_overlap(self, vendor_id: str, window: SettlementWindow) -> None:
        """Reject a new settlement while another one covers the same period."""
        existing = self.find_overlapping_active(vendor_id, window)
        if existing is not None:
            raise ConflictError(
                f"There is already an active settlement ({existing.id}) for "
                f"{existing.period_start.isoformat()} - {existing.period_end.isoformat()}",
                details={
                    "settlement_id": existing.id,
                    "status": existing.status,
                    "period_start": existing.period_start,
                    "period_end": existing.period_end,
                },
            )

    @staticmethod
    def ensure_transition(record: SettlementRecord, to_status: str) -> None:
        if record.status == SettlementStatus.COMPLETED.value:
            raise ConflictError(
                f"Settlement {record.id} has already been completed",
                details={
                    "settlement_id": record.id,
                    "payment_reference": record.payment_reference,
                    "processed_at": record.processed_at,
                },
            )
        if to_status not in ALLOWED_TRANSITIONS.get(record.status, frozenset()):
            raise ConflictError(
                f"Settlement {record.id} cannot move from {record.status} to {to_status}",
                details={"settlement_id": record.id, "status": record.status},
            )

    # ── Writes ───────────────────────────────────────────────────────

    def create(
        self,
        vendor: Vendor,
        window: SettlementWindow,
        amount: Decimal,
        transaction_ids: list[str],
        order_ids: list[str],
        status: SettlementStatus,
        request_type: str,
        bank_details: dict[str, Any],
        reason: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> SettlementRecord:
        """Insert a new non-terminal record and flush it.

        The unique ``active_period_key`` makes the flush (or the enclosing
        commit) fail with IntegrityError if another in-flight record for the
        same vendor and day got there first.
        """
        if status.value not in ACTIVE_SETTLEMENT_STATUSES:
            raise ValidationError(
                f"A settlement cannot be created as {status.value}",
                details={"status": status.value},
            )
        now = self.clock.now()
        record = SettlementRecord(
            id=generate_settlement_id(self.config.settlement_id_prefix, now),
            vendor_id=vendor.id,
            amount=amount,
            settlement_date=window.day,
            transaction_ids=list(transaction_ids),
            order_ids=list(order_ids),
            status=status.value,
            request_type=request_type,
            bank_details=bank_details,
            period_start=window.start,
            period_end=window.end,
            active_period_key=active_period_key(vendor.id, window),
            requested_at=now,
            reason=reason,
            metadata_json=metadata or {},
        )
        self.db.add(record)
        self.db.flush()
        return record

    def mark_completed(
        self,
        record: SettlementRecord,
        payment_reference: str,
        notes: Optional[str] = None,
    ) -> datetime:
        """Compare-and-swap the record to ``completed``.

        The UPDATE only matches while the row is still pending/processing,
        so two racing completions cannot both succeed.
        """
        self.ensure_transition(record, SettlementStatus.COMPLETED.value)
        processed_at = self.clock.now()
        updated = (
            self.db.query(SettlementRecord)
            .filter(
                SettlementRecord.id == record.id,
                SettlementRecord.status.in_(ACTIVE_SETTLEMENT_STATUSES),
            )
            .update(
                {
                    "status": SettlementStatus.COMPLETED.value,
                    "payment_reference": payment_reference,
                    "processing_notes": notes,
                    "processed_at": processed_at,
                    "active_period_key": None,
                },
                synchronize_session="fetch",
            )
        )
        if updated == 0:
            self.db.refresh(record)
            raise ConflictError(
                f"Settlement {record.id} was completed by another request",
                details={
                    "settlement_id": record.id,
                    "payment_reference": record.payment_reference,
                    "processed_at": record.processed_at,
                },
            )
        return processed_at
