"""Settlement periods.

A settlement always covers one calendar day interpreted in UTC, held as
the half-open interval ``[day 00:00, next day 00:00)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Union

from app.core.exceptions import ValidationError


@dataclass(frozen=True)
class SettlementWindow:
    """A UTC day and its datetime bounds (``end`` is exclusive)."""

    day: date
    start: datetime
    end: datetime

    @property
    def label(self) -> str:
        return self.day.isoformat()

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def parse_settlement_date(value: Union[str, date, datetime, None]) -> date:
    """Accept ``YYYY-MM-DD`` strings, dates or datetimes."""
    if value is None or value == "":
        raise ValidationError("Date is required", details={"field": "date"})
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(
            f"Invalid date '{value}', expected YYYY-MM-DD",
            details={"field": "date", "value": str(value)},
        )


def settlement_window(value: Union[str, date, datetime, None]) -> SettlementWindow:
    day = parse_settlement_date(value)
    start = datetime.combine(day, time.min)
    return SettlementWindow(day=day, start=start, end=start + timedelta(days=1))


def overlaps(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """True when two half-open intervals share at least one instant."""
    return a_start < b_end and b_start < a_end


def active_period_key(vendor_id: str, window: SettlementWindow) -> str:
    return f"{vendor_id}:{window.label}"
