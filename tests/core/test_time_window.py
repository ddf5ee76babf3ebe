from __future__ import annotations

from datetime import UTC, datetime

import pytest

from medlog_timeline.core.time_window import (
    parse_iso_dt,
    range_for_date,
    range_for_month,
    range_for_week,
    resolve_time_window,
)

NOW = datetime(2025, 8, 17, 12, 0, 0, tzinfo=UTC)


def test_parse_iso_dt_assumes_utc() -> None:
    dt = parse_iso_dt("2025-12-31T10:00:00")
    assert dt == datetime(2025, 12, 31, 10, 0, 0, tzinfo=UTC)


def test_range_for_date() -> None:
    start, end = range_for_date("2025-08-17")
    assert start == datetime(2025, 8, 17, tzinfo=UTC)
    assert end == datetime(2025, 8, 18, tzinfo=UTC)


def test_range_for_week_starts_monday() -> None:
    start, end = range_for_week("2025-W33")
    assert start == datetime(2025, 8, 11, tzinfo=UTC)
    assert end == datetime(2025, 8, 18, tzinfo=UTC)


def test_range_for_week_invalid_format() -> None:
    with pytest.raises(ValueError):
        range_for_week("2025-52")


def test_range_for_month_december_rolls_year() -> None:
    start, end = range_for_month("2025-12")
    assert start == datetime(2025, 12, 1, tzinfo=UTC)
    assert end == datetime(2026, 1, 1, tzinfo=UTC)


def test_range_for_month_invalid_format() -> None:
    with pytest.raises(ValueError):
        range_for_month("2025-W52")


def test_resolve_default_is_around_now() -> None:
    since, until = resolve_time_window(now=NOW)
    assert since == datetime(2025, 8, 14, 12, 0, 0, tzinfo=UTC)
    assert until == datetime(2025, 8, 18, 0, 0, 0, tzinfo=UTC)


def test_resolve_date_overrides_since_until() -> None:
    since, until = resolve_time_window(
        now=NOW,
        since="2025-12-31T10:00:00Z",
        until="2025-12-31T11:00:00Z",
        date_="2025-12-30",
    )
    assert since == datetime(2025, 12, 30, 0, 0, 0, tzinfo=UTC)
    assert until == datetime(2025, 12, 31, 0, 0, 0, tzinfo=UTC)


def test_resolve_since_only_uses_default_end() -> None:
    since, until = resolve_time_window(now=NOW, since="2025-08-17T00:00:00+02:00")
    assert since == datetime(2025, 8, 16, 22, 0, 0, tzinfo=UTC)
    assert until == datetime(2025, 8, 18, 0, 0, 0, tzinfo=UTC)


def test_resolve_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        resolve_time_window(now=NOW, since="2025-08-17T12:00:00Z", until="2025-08-17T11:00:00Z")


def test_resolve_rejects_negative_hours() -> None:
    with pytest.raises(ValueError):
        resolve_time_window(now=NOW, hours_before=-1)


def test_far_future_selectors_saturate() -> None:
    _, until = resolve_time_window(now=datetime.max.replace(tzinfo=UTC))
    assert until == datetime.max.replace(tzinfo=UTC)
    assert range_for_date("9999-12-31")[1] == datetime.max.replace(tzinfo=UTC)


def test_parse_iso_dt_out_of_range() -> None:
    with pytest.raises(ValueError, match="out of range"):
        parse_iso_dt("0001-01-01T00:00:00+05:00")
