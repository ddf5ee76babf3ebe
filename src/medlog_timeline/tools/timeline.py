"""MCP tool implementations.

This module contains the *implementation* behind the exposed MCP tools.
Keep this layer thin: validate inputs, translate them into core calls, and
return JSON-serializable data structures.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from medlog_timeline.core.config import load_config, resolve_default_tz
from medlog_timeline.core.events import split_mentions
from medlog_timeline.core.extraction import extract_doses
from medlog_timeline.core.models import (
    ConstraintViolation,
    ParsedDose,
    ProcessedMedicationDose,
    TimelineRow,
    UnitMismatch,
)
from medlog_timeline.core.pipeline import PipelineResult, run_pipeline
from medlog_timeline.core.sources import load_rows
from medlog_timeline.core.time_window import parse_iso_dt, resolve_time_window

DEFAULT_LIMIT = 500
HARD_LIMIT = 5000


def _iso(ts: datetime) -> str:
    return ts.astimezone(UTC).isoformat()


def dose_to_dict(dose: ParsedDose) -> dict[str, Any]:
    """Convert a ParsedDose into a JSON-serializable dict."""
    return {
        "medication_id": dose.medication_id,
        "display_name": dose.display_name,
        "amount": dose.amount,
        "unit": dose.unit,
        "timestamp": _iso(dose.timestamp),
        "active_duration_hours": dose.active_duration_hours,
        "is_configured": dose.is_configured,
        "theme": dose.theme,
    }


def _processed_to_dict(dose: ProcessedMedicationDose, *, now: datetime) -> dict[str, Any]:
    return {
        "medication_id": dose.medication_id,
        "display_name": dose.display_name,
        "amount": dose.amount,
        "unit": dose.unit,
        "start_time": _iso(dose.start_time),
        "end_time": _iso(dose.end_time),
        "is_configured": dose.is_configured,
        "is_active": dose.is_active_at(now),
        "theme": dose.theme,
    }


def _row_to_dict(row: TimelineRow, *, now: datetime, include_lanes: bool) -> dict[str, Any]:
    d: dict[str, Any] = {
        "medication_id": row.medication_id,
        "display_name": row.display_name,
        "theme": row.theme,
        "doses": [_processed_to_dict(x, now=now) for x in row.doses],
    }
    if include_lanes:
        d["lanes"] = [[_processed_to_dict(x, now=now) for x in lane] for lane in row.lanes()]
    return d


def violation_to_dict(v: ConstraintViolation) -> dict[str, Any]:
    return {
        "scope": v.scope,
        "subject": v.subject,
        "window_hours": v.window_hours,
        "max_amount": v.max_amount,
        "unit": v.unit,
        "cumulative_amount": v.cumulative_amount,
        "window_start": _iso(v.window_start),
        "window_end": _iso(v.window_end),
        "medication_id": v.dose.medication_id,
    }


def mismatch_to_dict(m: UnitMismatch) -> dict[str, Any]:
    return {
        "scope": m.scope,
        "subject": m.subject,
        "expected_unit": m.expected_unit,
        "actual_unit": m.actual_unit,
        "medication_id": m.dose.medication_id,
        "timestamp": _iso(m.dose.timestamp),
    }


def _resolve_now(now: str | None) -> datetime:
    return parse_iso_dt(now) if now else datetime.now(UTC)


async def _run(
    *,
    log_path: str,
    config_path: str | None,
    user: str | None,
    now: datetime,
    window: tuple[datetime, datetime] | None,
    tz: str | None,
) -> PipelineResult:
    rules = load_config(config_path, user=user)
    rows = await load_rows(log_path)
    return run_pipeline(rows, rules, now=now, window=window, default_tz=resolve_default_tz(tz))


async def build_timeline_impl(
    *,
    log_path: str,
    config_path: str | None = None,
    user: str | None = None,
    now: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    week: str | None = None,
    month: str | None = None,
    tz: str | None = None,
    include_lanes: bool = False,
    limit: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `build_timeline` MCP tool.

    Notes
    -----
    - Window precedence: date/week/month selectors, then since/until, then
      the default range around `now` (72h back, 12h ahead).
    - `limit` caps the number of rows returned (hard-capped).
    - Constraint results always cover every parsed dose, not just the window.
    """
    if limit is None:
        limit = DEFAULT_LIMIT
    if limit <= 0:
        raise ValueError("limit must be > 0")
    limit = min(limit, HARD_LIMIT)

    now_dt = _resolve_now(now)
    window = resolve_time_window(now=now_dt, since=since, until=until, date_=date, week=week, month=month)

    result = await _run(
        log_path=log_path,
        config_path=config_path,
        user=user,
        now=now_dt,
        window=window,
        tz=tz,
    )
    rows = result.timeline.rows[:limit]
    return {
        "now": _iso(now_dt),
        "window": {"start": _iso(window[0]), "end": _iso(window[1])},
        "count": len(rows),
        "dropped_rows": list(result.dropped_rows),
        "rows": [_row_to_dict(r, now=now_dt, include_lanes=include_lanes) for r in rows],
        "violations": [violation_to_dict(v) for v in result.report.violations],
        "unit_mismatches": [mismatch_to_dict(m) for m in result.report.unit_mismatches],
    }


async def check_limits_impl(
    *,
    log_path: str,
    config_path: str | None = None,
    user: str | None = None,
    now: str | None = None,
    tz: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `check_limits` MCP tool."""
    now_dt = _resolve_now(now)
    result = await _run(
        log_path=log_path,
        config_path=config_path,
        user=user,
        now=now_dt,
        window=None,
        tz=tz,
    )
    report = result.report
    return {
        "ok": report.ok,
        "dose_count": len(result.doses),
        "dropped_rows": list(result.dropped_rows),
        "violations": [violation_to_dict(v) for v in report.violations],
        "unit_mismatches": [mismatch_to_dict(m) for m in report.unit_mismatches],
    }


def parse_mentions_impl(
    *,
    text: str,
    timestamp: str | None = None,
    config_path: str | None = None,
    user: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `parse_mentions` MCP tool (single entry preview)."""
    rules = load_config(config_path, user=user)
    ts = _resolve_now(timestamp)
    tokens = split_mentions(text)
    return {
        "tokens": tokens,
        "doses": [dose_to_dict(d) for t in tokens for d in extract_doses(t, ts, rules)],
    }
