"""
Calendar-day helpers.

Every date exchanged with the data gateway is a timezone-naive
`YYYY-MM-DD` string. Timestamps are never converted through a timezone:
`parse_day` keeps only the calendar part, so a value written at 23:30 local
time cannot drift to the next or previous day.
"""
from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional, Union

DAY_FORMAT = "%Y-%m-%d"


def today() -> date:
    return datetime.now(tz=timezone.utc).date()


def format_day(day: date) -> str:
    if isinstance(day, datetime):
        day = day.date()
    return day.strftime(DAY_FORMAT)


def parse_day(value: Union[str, date]) -> date:
    """Accept `YYYY-MM-DD`, an ISO timestamp, or a date; return the calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    # "2026-10-19T00:00:00+09:00" and "2026-10-19 00:00:00" both keep 2026-10-19
    return datetime.strptime(text[:10], DAY_FORMAT).date()


def window_bounds(end: date, length: int) -> tuple[date, date]:
    """Return (start, end) of the trailing `length`-day window ending at `end`."""
    if length < 1:
        raise ValueError(f"window length must be a positive integer, got {length}")
    return end - timedelta(days=length - 1), end


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def month_bounds(anchor: date) -> tuple[date, date]:
    last = calendar.monthrange(anchor.year, anchor.month)[1]
    return anchor.replace(day=1), anchor.replace(day=last)


def clamp_anchor(anchor: Optional[date], reference: Optional[date] = None) -> date:
    """Window anchors never point into the future; None means today."""
    now = reference or today()
    if anchor is None or anchor > now:
        return now
    return anchor
