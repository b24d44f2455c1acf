"""End-to-end tests for SettlementOrchestrator against the SQLite fixture DB.

Covers the initiate / request / complete workflow, the exactly-once
guarantees, and all-or-nothing behaviour under injected failures.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from app.core.config import settings
from app.core.exceptions import (
    ConflictError,
    NoPendingWorkError,
    NotFoundError,
    ValidationError,
)
from app.models import ChargingTransaction, RestaurantOrder, SettlementRecord
from app.services.settlement.notifications import NotificationService
from app.services.settlement.orchestrator import SettlementOrchestrator

SETTLEMENT_DAY = "2024-01-10"


class RecordingNotifier(NotificationService):
    def __init__(self):
        self.sent = []

    def send(self, recipient_id, title, message, severity="info", data=None):
        self.sent.append((recipient_id, title, message, severity, data))


class BrokenNotifier(NotificationService):
    def send(self, recipient_id, title, message, severity="info", data=None):
        raise ConnectionError("push gateway unreachable")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def orchestrator(db_session, clock, notifier) -> SettlementOrchestrator:
    return SettlementOrchestrator(db_session, settings, clock=clock, notifier=notifier)


@pytest.fixture
def vendor_with_revenue(seed):
    """One transaction (receivable 50) and one order (receivable 250) on the day."""
    vendor = seed.vendor()
    txn = seed.transaction(vendor)
    order = seed.order(seed.restaurant(vendor))
    return vendor, txn, order


def _statuses(db_session, txn, order):
    db_session.expire_all()
    return (
        db_session.get(ChargingTransaction, txn.id).settlement_status,
        db_session.get(RestaurantOrder, order.id).settlement_status,
    )


# ── Full workflow ────────────────────────────────────────────────────


def test_end_to_end_initiate_complete_reinitiate(
    db_session, seed, orchestrator, notifier, vendor_with_revenue
):
    vendor, txn, order = vendor_with_revenue

    result = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)

    assert result.status == "processing"
    assert result.transaction_count == 2
    assert _statuses(db_session, txn, order) == (
        "included_in_settlement",
        "included_in_settlement",
    )
    record = db_session.get(SettlementRecord, result.settlement_id)
    assert record.amount == Decimal("300")
    assert record.transaction_ids == [txn.id]
    assert record.order_ids == [order.id]

    with pytest.raises(ConflictError):
        orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)

    done = orchestrator.complete_settlement(result.settlement_id, payment_reference="TXN123")

    assert done.status == "completed"
    assert done.amount == Decimal("300")
    assert done.resolved_by == "exact_id"
    assert _statuses(db_session, txn, order) == ("settled", "settled")
    assert db_session.get(SettlementRecord, result.settlement_id).status == "completed"
    assert notifier.sent[0][0] == vendor.id
    assert "TXN123" in notifier.sent[0][2]

    seed.transaction(vendor, booking_code="BK-1002")
    again = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 50)
    assert again.settlement_id != result.settlement_id
    assert again.transaction_count == 1


def test_complete_is_rejected_the_second_time(
    db_session, orchestrator, vendor_with_revenue
):
    vendor, txn, order = vendor_with_revenue
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)
    first = orchestrator.complete_settlement(created.settlement_id, payment_reference="TXN123")

    with pytest.raises(ConflictError) as exc_info:
        orchestrator.complete_settlement(created.settlement_id, payment_reference="TXN999")

    assert exc_info.value.details["payment_reference"] == "TXN123"
    assert exc_info.value.details["processed_at"] == first.processed_at
    db_session.expire_all()
    record = db_session.get(SettlementRecord, created.settlement_id)
    assert record.payment_reference == "TXN123"


def test_retry_by_vendor_and_date_reports_original_completion(
    orchestrator, vendor_with_revenue
):
    vendor, _, _ = vendor_with_revenue
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)
    orchestrator.complete_settlement(
        vendor_id=vendor.id, day=SETTLEMENT_DAY, payment_reference="TXN123"
    )

    with pytest.raises(ConflictError) as exc_info:
        orchestrator.complete_settlement(
            vendor_id=vendor.id, day=SETTLEMENT_DAY, payment_reference="TXN123"
        )
    assert exc_info.value.details["settlement_id"] == created.settlement_id


def test_complete_by_vendor_and_date(orchestrator, vendor_with_revenue):
    vendor, _, _ = vendor_with_revenue
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)

    done = orchestrator.complete_settlement(
        settlement_id="PENDING",
        vendor_id=vendor.id,
        day=SETTLEMENT_DAY,
        payment_reference="UTR-1",
    )

    assert done.settlement_id == created.settlement_id
    assert done.resolved_by == "vendor_date"


def test_complete_recovers_orphaned_items(db_session, seed, orchestrator):
    vendor = seed.vendor()
    txn = seed.transaction(
        vendor, settlement_status="included_in_settlement", settlement_id="STL-LOST"
    )

    done = orchestrator.complete_settlement(
        vendor_id=vendor.id, day=SETTLEMENT_DAY, payment_reference="UTR-9"
    )

    assert done.resolved_by == "orphaned_items"
    assert done.settlement_id.startswith("DIRECT_")
    assert done.amount == Decimal("50")
    db_session.expire_all()
    row = db_session.get(ChargingTransaction, txn.id)
    assert row.settlement_status == "settled"
    assert row.payment_reference == "UTR-9"


def test_retry_for_paid_day_leaves_other_days_alone(
    db_session, seed, orchestrator, vendor_with_revenue
):
    vendor, _, _ = vendor_with_revenue
    seed.transaction(vendor, booking_code="BK-0901", actual_end_time=datetime(2024, 1, 9, 12))
    paid_day = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)
    other_day = orchestrator.initiate_settlement(vendor.id, "2024-01-09", 50)
    orchestrator.complete_settlement(
        vendor_id=vendor.id, day=SETTLEMENT_DAY, payment_reference="TXN123"
    )

    with pytest.raises(ConflictError) as exc_info:
        orchestrator.complete_settlement(
            vendor_id=vendor.id, day=SETTLEMENT_DAY, payment_reference="TXN123"
        )

    assert exc_info.value.details["settlement_id"] == paid_day.settlement_id
    assert exc_info.value.details["payment_reference"] == "TXN123"
    db_session.expire_all()
    untouched = db_session.get(SettlementRecord, other_day.settlement_id)
    assert untouched.status == "processing"
    assert untouched.payment_reference is None


def test_retry_after_direct_recovery_reports_original_payment(
    db_session, seed, orchestrator, clock
):
    vendor = seed.vendor()
    seed.transaction(
        vendor, settlement_status="included_in_settlement", settlement_id="STL-LOST"
    )
    orchestrator.complete_settlement(
        vendor_id=vendor.id, day=SETTLEMENT_DAY, payment_reference="UTR-9"
    )

    with pytest.raises(ConflictError) as exc_info:
        orchestrator.complete_settlement(
            vendor_id=vendor.id, day=SETTLEMENT_DAY, payment_reference="UTR-9"
        )

    assert exc_info.value.details["payment_reference"] == "UTR-9"
    assert exc_info.value.details["processed_at"] == clock.now()


def test_complete_with_nothing_to_find(seed, orchestrator):
    vendor = seed.vendor()
    with pytest.raises(NotFoundError):
        orchestrator.complete_settlement(
            vendor_id=vendor.id, day=SETTLEMENT_DAY, payment_reference="UTR-1"
        )


@pytest.mark.parametrize(
    "kwargs",
    [
        {"settlement_id": "STL1", "payment_reference": None},
        {"payment_reference": "UTR-1"},
    ],
)
def test_complete_validates_inputs(orchestrator, kwargs):
    with pytest.raises(ValidationError):
        orchestrator.complete_settlement(**kwargs)


# ── Invariants ───────────────────────────────────────────────────────


def test_buckets_conserved_through_lifecycle(orchestrator, vendor_with_revenue):
    vendor, _, _ = vendor_with_revenue

    def buckets():
        detail = orchestrator.get_vendor_settlement_detail(vendor.id, SETTLEMENT_DAY)
        return detail.breakdown.buckets

    before = buckets()
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)
    during = buckets()
    orchestrator.complete_settlement(created.settlement_id, payment_reference="TXN123")
    after = buckets()

    for b in (before, during, after):
        assert b.pending_settlement + b.in_settlement_process + b.payment_settled == Decimal(
            "300"
        )
    assert before.pending_settlement == Decimal("300")
    assert during.in_settlement_process == Decimal("300")
    assert after.payment_settled == Decimal("300")


def test_request_blocked_while_initiated_settlement_is_active(
    seed, orchestrator, vendor_with_revenue
):
    vendor, _, _ = vendor_with_revenue
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)
    seed.transaction(vendor, booking_code="BK-LATE")

    with pytest.raises(ConflictError) as exc_info:
        orchestrator.request_settlement(vendor.id, SETTLEMENT_DAY, 50)

    assert exc_info.value.details["settlement_id"] == created.settlement_id


def test_bank_details_snapshot_is_immutable(db_session, orchestrator, vendor_with_revenue):
    vendor, _, _ = vendor_with_revenue
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)

    vendor.bank_details = {
        "account_number": "99999999",
        "account_holder_name": "Someone Else",
        "bank_name": "Other Bank",
        "ifsc_code": "OTHR0000001",
    }
    db_session.commit()
    db_session.expire_all()

    record = db_session.get(SettlementRecord, created.settlement_id)
    assert record.bank_details["account_number"] == "00112233"
    assert record.bank_details["ifsc_code"] == "SBIN0000001"


# ── Failure injection ────────────────────────────────────────────────


def test_initiate_failure_leaves_nothing_behind(
    db_session, monkeypatch, orchestrator, vendor_with_revenue
):
    vendor, txn, order = vendor_with_revenue

    def explode(*args, **kwargs):
        raise RuntimeError("storage went away")

    monkeypatch.setattr(orchestrator.orders, "bulk_update_status", explode)

    with pytest.raises(RuntimeError):
        orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)

    assert db_session.query(SettlementRecord).count() == 0
    assert _statuses(db_session, txn, order) == (None, None)


def test_complete_failure_leaves_settlement_in_flight(
    db_session, monkeypatch, orchestrator, vendor_with_revenue
):
    vendor, txn, order = vendor_with_revenue
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)

    def explode(*args, **kwargs):
        raise RuntimeError("storage went away")

    monkeypatch.setattr(orchestrator.orders, "bulk_update_status", explode)

    with pytest.raises(RuntimeError):
        orchestrator.complete_settlement(created.settlement_id, payment_reference="TXN123")

    db_session.expire_all()
    record = db_session.get(SettlementRecord, created.settlement_id)
    assert record.status == "processing"
    assert record.payment_reference is None
    assert _statuses(db_session, txn, order) == (
        "included_in_settlement",
        "included_in_settlement",
    )

    monkeypatch.undo()
    done = orchestrator.complete_settlement(created.settlement_id, payment_reference="TXN123")
    assert done.status == "completed"


def test_unique_key_closes_overlap_race(
    db_session, seed, monkeypatch, orchestrator, vendor_with_revenue
):
    """Two initiates that both pass the overlap check cannot both commit."""
    vendor, _, _ = vendor_with_revenue
    first = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)
    late = seed.transaction(vendor, booking_code="BK-RACE")

    monkeypatch.setattr(orchestrator.ledger, "ensure_no_active_overlap", lambda *a: None)

    with pytest.raises(ConflictError) as exc_info:
        orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 50)

    assert exc_info.value.details["settlement_id"] == first.settlement_id

    assert db_session.query(SettlementRecord).count() == 1
    db_session.expire_all()
    assert db_session.get(ChargingTransaction, late.id).settlement_status is None


def test_notification_failure_does_not_fail_completion(
    db_session, clock, vendor_with_revenue
):
    vendor, txn, order = vendor_with_revenue
    orchestrator = SettlementOrchestrator(
        db_session, settings, clock=clock, notifier=BrokenNotifier()
    )
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)

    done = orchestrator.complete_settlement(created.settlement_id, payment_reference="TXN123")

    assert done.status == "completed"
    assert _statuses(db_session, txn, order) == ("settled", "settled")


# ── Initiate / request validation ────────────────────────────────────


@pytest.mark.parametrize("amount", [None, "", 0, -10, "abc"])
def test_initiate_rejects_bad_amount(orchestrator, vendor_with_revenue, amount):
    vendor, _, _ = vendor_with_revenue
    with pytest.raises(ValidationError):
        orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, amount)


def test_initiate_requires_known_vendor(orchestrator):
    with pytest.raises(NotFoundError):
        orchestrator.initiate_settlement("no-such-vendor", SETTLEMENT_DAY, 100)


def test_initiate_with_nothing_pending(seed, orchestrator):
    vendor = seed.vendor()
    with pytest.raises(NoPendingWorkError):
        orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 100)


def test_request_settlement_records_urgent_pending(db_session, orchestrator, vendor_with_revenue):
    vendor, txn, _ = vendor_with_revenue

    result = orchestrator.request_settlement(vendor.id, SETTLEMENT_DAY, "300.005", "rent due")

    assert result.status == "pending"
    assert result.request_type == "urgent"
    record = db_session.get(SettlementRecord, result.settlement_id)
    assert record.amount == Decimal("300")
    assert record.reason == "rent due"
    assert record.metadata_json["is_urgent_for_past_date"] is True
    assert record.metadata_json["breakdown"]["restaurant_amount"] == "250.00"
    db_session.expire_all()
    assert db_session.get(ChargingTransaction, txn.id).settlement_status == (
        "included_in_settlement"
    )


def test_request_settlement_amount_mismatch(orchestrator, vendor_with_revenue):
    vendor, _, _ = vendor_with_revenue
    with pytest.raises(ValidationError) as exc_info:
        orchestrator.request_settlement(vendor.id, SETTLEMENT_DAY, 280)
    assert exc_info.value.details["calculated"] == Decimal("300")
    assert exc_info.value.details["breakdown"]["charging_station"] == Decimal("50")


def test_request_settlement_needs_bank_account(seed, orchestrator):
    vendor = seed.vendor(bank_details={})
    seed.transaction(vendor)
    with pytest.raises(ValidationError):
        orchestrator.request_settlement(vendor.id, SETTLEMENT_DAY, 50)


# ── Reads ────────────────────────────────────────────────────────────


def test_vendor_detail_overall_stats(seed, orchestrator, vendor_with_revenue):
    vendor, _, _ = vendor_with_revenue
    seed.transaction(vendor, actual_end_time=datetime(2024, 1, 5), total_amount=Decimal("105"))
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)

    detail = orchestrator.get_vendor_settlement_detail(vendor.id, SETTLEMENT_DAY)
    assert detail.active_settlement.id == created.settlement_id

    orchestrator.complete_settlement(created.settlement_id, payment_reference="TXN123")
    detail = orchestrator.get_vendor_settlement_detail(vendor.id, SETTLEMENT_DAY)

    assert detail.active_settlement is None
    assert detail.overall["total_balance"] == Decimal("400")
    assert detail.overall["total_withdrawn"] == Decimal("300")
    assert detail.overall["pending_withdrawal"] == Decimal("100")
    assert detail.overall["reported_platform_fees"] == Decimal("16.00")


def test_list_and_get_settlements(orchestrator, vendor_with_revenue):
    vendor, _, _ = vendor_with_revenue
    created = orchestrator.initiate_settlement(vendor.id, SETTLEMENT_DAY, 300)

    assert [r.id for r in orchestrator.list_settlements(vendor_id=vendor.id)] == [
        created.settlement_id
    ]
    assert orchestrator.get_settlement(created.settlement_id).status == "processing"
    with pytest.raises(NotFoundError):
        orchestrator.get_settlement("STL-NOPE")
