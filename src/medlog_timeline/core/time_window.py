"""Time-window parsing helpers.

Converts user-friendly selectors into the UTC range a timeline is built for.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime

from .timeline import DEFAULT_HOURS_AFTER, DEFAULT_HOURS_BEFORE, shift_hours

_WEEK_RE = re.compile(r"^(?P<y>\d{4})-W(?P<w>\d{2})$")
_MONTH_RE = re.compile(r"^(?P<y>\d{4})-(?P<m>\d{2})$")


def parse_iso_dt(s: str) -> datetime:
    """Parse ISO8601 datetime. If tz is missing, assume UTC."""
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    try:
        return dt.astimezone(UTC)
    except OverflowError as exc:
        raise ValueError(f"datetime out of range: {s}") from exc


def range_for_date(s: str) -> tuple[datetime, datetime]:
    """Return the UTC day window for an ISO date string."""
    d = date.fromisoformat(s)
    start = datetime(d.year, d.month, d.day, tzinfo=UTC)
    return start, shift_hours(start, 24)


def range_for_week(s: str) -> tuple[datetime, datetime]:
    """Return the UTC week window for a YYYY-Www selector."""
    m = _WEEK_RE.match(s)
    if not m:
        raise ValueError("week must look like YYYY-Www (e.g., 2025-W33)")
    start_date = date.fromisocalendar(int(m.group("y")), int(m.group("w")), 1)  # Monday
    start = datetime(start_date.year, start_date.month, start_date.day, tzinfo=UTC)
    return start, shift_hours(start, 24 * 7)


def range_for_month(s: str) -> tuple[datetime, datetime]:
    """Return the UTC month window for a YYYY-MM selector."""
    m = _MONTH_RE.match(s)
    if not m:
        raise ValueError("month must look like YYYY-MM (e.g., 2025-08)")
    y = int(m.group("y"))
    mo = int(m.group("m"))
    start = datetime(y, mo, 1, tzinfo=UTC)
    end = datetime(y + 1, 1, 1, tzinfo=UTC) if mo == 12 else datetime(y, mo + 1, 1, tzinfo=UTC)
    return start, end


def resolve_time_window(
    *,
    now: datetime,
    since: str | None = None,
    until: str | None = None,
    date_: str | None = None,
    week: str | None = None,
    month: str | None = None,
    hours_before: float = DEFAULT_HOURS_BEFORE,
    hours_after: float = DEFAULT_HOURS_AFTER,
) -> tuple[datetime, datetime]:
    """Resolve the timeline range.

    Selectors (date, week, month) win over explicit bounds. A missing bound
    falls back to now - hours_before / now + hours_after.
    """
    if date_:
        return range_for_date(date_)
    if week:
        return range_for_week(week)
    if month:
        return range_for_month(month)

    if hours_before < 0 or hours_after < 0:
        raise ValueError("hours_before and hours_after must be >= 0")

    s = parse_iso_dt(since) if since else shift_hours(now, -hours_before)
    u = parse_iso_dt(until) if until else shift_hours(now, hours_after)
    if s >= u:
        raise ValueError("since must be < until")
    return s, u
