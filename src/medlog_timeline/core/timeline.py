"""Timeline aggregation: doses to per-medication rows of active windows."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from .models import ParsedDose, ProcessedMedicationDose, TimelineData, TimelineRow
from .rules import DEFAULT_WIDTH_HOURS, RuleSet

logger = logging.getLogger(__name__)

DEFAULT_HOURS_BEFORE = 72
DEFAULT_HOURS_AFTER = 12

EARLIEST = datetime.min.replace(tzinfo=UTC)
LATEST = datetime.max.replace(tzinfo=UTC)


def shift_hours(ts: datetime, hours: float) -> datetime:
    """Return ts + hours, saturating at the first and last representable instant."""
    try:
        return ts + timedelta(hours=hours)
    except OverflowError:
        return LATEST if hours > 0 else EARLIEST


def default_window(now: datetime) -> tuple[datetime, datetime]:
    """Window rendered around now when the caller asks for none."""
    return shift_hours(now, -DEFAULT_HOURS_BEFORE), shift_hours(now, DEFAULT_HOURS_AFTER)


def process_dose(dose: ParsedDose, *, default_width_hours: float = DEFAULT_WIDTH_HOURS) -> ProcessedMedicationDose:
    hours = dose.active_duration_hours
    if hours is None:
        hours = default_width_hours
    return ProcessedMedicationDose(
        medication_id=dose.medication_id,
        display_name=dose.display_name,
        amount=dose.amount,
        unit=dose.unit,
        start_time=dose.timestamp,
        end_time=shift_hours(dose.timestamp, hours),
        is_configured=dose.is_configured,
        theme=dose.theme,
    )


def process_doses(
    doses: Sequence[ParsedDose],
    *,
    default_width_hours: float = DEFAULT_WIDTH_HOURS,
) -> list[ProcessedMedicationDose]:
    """Attach an end time to every dose (typical duration or default width)."""
    return [process_dose(d, default_width_hours=default_width_hours) for d in doses]


def build_timeline(
    doses: Sequence[ParsedDose],
    rules: RuleSet,
    *,
    now: datetime,
    window: tuple[datetime, datetime] | None = None,
) -> TimelineData:
    """Group doses into timeline rows.

    Rows for configured medications come first, in rule order, followed by
    every other medication id in order of first appearance. Inside a row,
    doses are stably sorted by start time. Overlapping windows of the same
    medication stay separate entries. With a window, only doses whose active
    window overlaps it are kept and empty rows are omitted.
    """
    processed = process_doses(doses, default_width_hours=rules.default_width_hours)
    if window is not None:
        start, end = window
        if start >= end:
            raise ValueError("window start must be < end")
        processed = [p for p in processed if p.overlaps(start, end)]

    grouped: dict[str, list[ProcessedMedicationDose]] = {}
    for p in processed:
        grouped.setdefault(p.medication_id, []).append(p)

    rule_order = {mid: rules.order_of(mid) for mid in grouped}
    first_seen = {mid: i for i, mid in enumerate(grouped)}
    n_rules = len(rules.rules)

    def row_key(mid: str) -> tuple[int, int]:
        order = rule_order[mid]
        return (order, 0) if order is not None else (n_rules, first_seen[mid])

    rows: list[TimelineRow] = []
    for mid in sorted(grouped, key=row_key):
        items = sorted(grouped[mid], key=lambda p: p.start_time)
        order = rule_order[mid]
        rule = rules.rules[order] if order is not None else None
        rows.append(
            TimelineRow(
                medication_id=mid,
                display_name=rule.display_name if rule else items[0].display_name,
                theme=rule.theme if rule else items[0].theme,
                doses=tuple(items),
            )
        )

    logger.debug(
        "Timeline at %s: %d doses in %d rows (%d active)",
        now.isoformat(),
        len(processed),
        len(rows),
        sum(1 for p in processed if p.is_active_at(now)),
    )
    return TimelineData(rows=tuple(rows))
