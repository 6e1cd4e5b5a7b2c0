from __future__ import annotations

import re
from datetime import datetime, time, timezone
from typing import Optional

_BARE_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

EPOCH = datetime(1970, 1, 1)
END_OF_DAY = time(23, 59, 59, 999000)


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, millisecond precision)."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    # Truncated to milliseconds so every stamp lands inside some day's [00:00:00.000, END_OF_DAY] window
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_window_bound(value: Optional[str], *, end: bool) -> Optional[datetime]:
    """
    Parse one bound of a report window.

    A bare calendar date ("2024-03-01") expands to that day's first
    millisecond for a start bound and its last millisecond for an end bound.
    Anything else must be a full ISO-8601 timestamp.
    """
    if value is None or not value.strip():
        return None
    s = value.strip()
    if _BARE_DATE.match(s):
        day = datetime.strptime(s, "%Y-%m-%d")
        if end:
            return datetime.combine(day.date(), END_OF_DAY)
        return day
    return parse_iso_datetime(s)


def parse_report_window(
    start: Optional[str], end: Optional[str]
) -> tuple[datetime, datetime]:
    """
    Resolve the inclusive [start, end] window used by reports.

    Missing start defaults to the Unix epoch, missing end to now.
    Raises ValueError on malformed input or an inverted window.
    """
    start_dt = parse_window_bound(start, end=False) or EPOCH
    end_dt = parse_window_bound(end, end=True) or utcnow()
    if start_dt > end_dt:
        raise ValueError("startDate must not be after endDate")
    return start_dt, end_dt


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with milliseconds and a trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc)
    return dt_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")
