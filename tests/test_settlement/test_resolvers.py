"""Tests for the completion resolver chain."""

from __future__ import annotations

from decimal import Decimal

import pytest

from app.core.config import settings
from app.core.exceptions import ConflictError
from app.models.enums import SettlementStatus
from app.repositories import OrderStore, TransactionStore
from app.services.settlement.ledger import SettlementLedger
from app.services.settlement.periods import settlement_window
from app.services.settlement.resolvers import (
    PLACEHOLDER_ID,
    CompletionTarget,
    default_resolver_chain,
    resolve_target,
)

SETTLEMENT_DAY = "2024-01-10"


@pytest.fixture
def ledger(db_session, clock) -> SettlementLedger:
    return SettlementLedger(db_session, settings, clock)


@pytest.fixture
def chain(db_session, ledger):
    return default_resolver_chain(ledger, TransactionStore(db_session), OrderStore(db_session))


def _record(db_session, ledger, vendor, day=SETTLEMENT_DAY):
    record = ledger.create(
        vendor=vendor,
        window=settlement_window(day),
        amount=Decimal("50"),
        transaction_ids=[],
        order_ids=[],
        status=SettlementStatus.PENDING,
        request_type="urgent",
        bank_details={},
    )
    db_session.commit()
    return record


def test_chain_order(chain):
    assert [r.name for r in chain] == [
        "exact_id",
        "vendor_date",
        "completed_day",
        "latest_active",
        "orphaned_items",
    ]


def test_exact_id(db_session, seed, ledger, chain):
    record = _record(db_session, ledger, seed.vendor())
    resolution = resolve_target(chain, CompletionTarget(settlement_id=record.id))
    assert resolution.strategy == "exact_id"
    assert resolution.record.id == record.id


def test_placeholder_id_falls_through_to_vendor_date(db_session, seed, ledger, chain):
    vendor = seed.vendor()
    record = _record(db_session, ledger, vendor)
    target = CompletionTarget(PLACEHOLDER_ID, vendor.id, settlement_window(SETTLEMENT_DAY))

    resolution = resolve_target(chain, target)

    assert resolution.strategy == "vendor_date"
    assert resolution.record.id == record.id


def test_latest_active_when_day_does_not_match(db_session, seed, ledger, chain):
    vendor = seed.vendor()
    record = _record(db_session, ledger, vendor, day="2024-01-08")
    target = CompletionTarget(None, vendor.id, settlement_window(SETTLEMENT_DAY))

    resolution = resolve_target(chain, target)

    assert resolution.strategy == "latest_active"
    assert resolution.record.id == record.id


def test_orphaned_items(seed, chain):
    vendor = seed.vendor()
    orphan = seed.transaction(
        vendor, settlement_status="included_in_settlement", settlement_id="STL-GONE"
    )
    target = CompletionTarget(None, vendor.id, settlement_window(SETTLEMENT_DAY))

    resolution = resolve_target(chain, target)

    assert resolution.is_orphan_recovery
    assert [t.id for t in resolution.transactions] == [orphan.id]


def test_nothing_found(seed, chain):
    vendor = seed.vendor()
    target = CompletionTarget(None, vendor.id, settlement_window(SETTLEMENT_DAY))
    assert resolve_target(chain, target) is None


def test_completed_day_blocks_latest_active(db_session, seed, ledger, chain):
    vendor = seed.vendor()
    paid = _record(db_session, ledger, vendor)
    ledger.mark_completed(paid, "UTR-100")
    db_session.commit()
    other = _record(db_session, ledger, vendor, day="2024-01-08")
    target = CompletionTarget(None, vendor.id, settlement_window(SETTLEMENT_DAY))

    with pytest.raises(ConflictError) as exc_info:
        resolve_target(chain, target)

    assert exc_info.value.details["settlement_id"] == paid.id
    assert exc_info.value.details["payment_reference"] == "UTR-100"
    assert other.status == SettlementStatus.PENDING.value


def test_completed_day_reports_directly_paid_items(seed, chain, clock):
    vendor = seed.vendor()
    seed.transaction(
        vendor,
        settlement_status="settled",
        settlement_id="DIRECT_1704965400000",
        payment_reference="UTR-7",
        settled_at=clock.now(),
    )
    target = CompletionTarget(None, vendor.id, settlement_window(SETTLEMENT_DAY))

    with pytest.raises(ConflictError) as exc_info:
        resolve_target(chain, target)

    assert exc_info.value.details["settlement_id"] == "DIRECT_1704965400000"
    assert exc_info.value.details["processed_at"] == clock.now()


def test_completed_day_steps_aside_for_earmarked_items(seed, chain):
    vendor = seed.vendor()
    seed.transaction(
        vendor,
        booking_code="BK-1002",
        settlement_status="settled",
        settlement_id="DIRECT_1704965400000",
        payment_reference="UTR-7",
    )
    seed.transaction(
        vendor, settlement_status="included_in_settlement", settlement_id="STL-GONE"
    )
    target = CompletionTarget(None, vendor.id, settlement_window(SETTLEMENT_DAY))

    resolution = resolve_target(chain, target)

    assert resolution.strategy == "orphaned_items"
