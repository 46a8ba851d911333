"""Date helpers shared by the query parser and the memory extractors."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

# Sidecar values that mean "no fixed date".
OPEN_ENDED_DATES = frozenset({"indefinite", "at-will", "at_will", "perpetual", "n/a", "tbd"})


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a sidecar date string, returning ``None`` when it is not a date."""
    if not value:
        return None
    text = value.strip()
    if not text or text.lower() in OPEN_ENDED_DATES:
        return None
    try:
        return dateutil_parser.parse(text, default=datetime(2000, 1, 1)).date()
    except (ValueError, OverflowError):
        return None


def is_open_ended(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() in OPEN_ENDED_DATES


def shift(moment: datetime, unit: str, amount: int) -> datetime:
    """Calendar arithmetic: move ``moment`` by ``amount`` days/weeks/months/years."""
    unit = unit.lower().rstrip("s")
    if unit == "day":
        return moment + relativedelta(days=amount)
    if unit == "week":
        return moment + relativedelta(weeks=amount)
    if unit == "month":
        return moment + relativedelta(months=amount)
    if unit == "year":
        return moment + relativedelta(years=amount)
    raise ValueError(f"Unsupported unit: {unit}")


def start_of(moment: datetime, unit: str) -> datetime:
    """Start of the current week (Sunday), month or year."""
    unit = unit.lower()
    moment = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit == "week":
        # isoweekday: Monday=1 .. Sunday=7
        return moment - relativedelta(days=moment.isoweekday() % 7)
    if unit == "month":
        return moment.replace(day=1)
    if unit == "year":
        return moment.replace(month=1, day=1)
    raise ValueError(f"Unsupported unit: {unit}")
