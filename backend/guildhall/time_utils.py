from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Optional


PERIOD_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


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

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


# -----------------------------------------------------------------------------
# Compensation periods ("YYYY-MM")
# -----------------------------------------------------------------------------

def period_label(value: Optional[date | datetime] = None) -> str:
    """Period label for the month containing value (defaults to now)."""
    value = value or utcnow()
    return f"{value.year:04d}-{value.month:02d}"


def parse_period(label: str) -> tuple[int, int]:
    """Split a "YYYY-MM" label into (year, month); raises ValueError if malformed."""
    m = PERIOD_RE.match((label or "").strip())
    if not m:
        raise ValueError(f"Invalid period {label!r}; expected YYYY-MM")
    return int(m.group(1)), int(m.group(2))


def shift_period(label: str, months: int) -> str:
    """Move a period label forward (positive) or back (negative) by whole months."""
    year, month = parse_period(label)
    index = year * 12 + (month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def period_bounds(label: str) -> tuple[datetime, datetime]:
    """
    Half-open [start, end) datetime window for a period.

    Ledger entries are matched on occurred_at >= start and occurred_at < end.
    """
    year, month = parse_period(label)
    next_year, next_month = parse_period(shift_period(label, 1))
    return datetime(year, month, 1), datetime(next_year, next_month, 1)
