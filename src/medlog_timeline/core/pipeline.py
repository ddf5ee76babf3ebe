"""End-to-end pipeline: rows to timeline and constraint report.

This module is the main integration point; every stage it calls is a pure
function, so runs with different inputs can execute side by side.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo

from .constraints import evaluate_all
from .events import to_medication_entries
from .extraction import extract_all
from .models import ConstraintReport, LogRow, MedicationEntry, ParsedDose, TimelineData
from .normalizer import normalize_rows
from .rules import RuleSet
from .timeline import build_timeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineResult:
    entries: list[MedicationEntry]
    doses: list[ParsedDose]
    timeline: TimelineData
    report: ConstraintReport
    dropped_rows: tuple[int, ...] = ()


def run_pipeline(
    rows: Sequence[LogRow],
    rules: RuleSet,
    *,
    now: datetime,
    window: tuple[datetime, datetime] | None = None,
    default_tz: tzinfo | None = None,
) -> PipelineResult:
    """Normalize, transform, extract, evaluate and aggregate.

    Constraints are evaluated over every extracted dose; the window only
    limits what ends up on the timeline. Naive timestamps (and a naive now)
    are read in ``default_tz``, falling back to the profile's zone.
    """
    if default_tz is None:
        default_tz = rules.default_tz
    if now.tzinfo is None:
        now = now.replace(tzinfo=default_tz)
    try:
        now = now.astimezone(UTC)
    except OverflowError as exc:
        raise ValueError(f"now is out of range: {now!r}") from exc

    normalized = normalize_rows(
        rows,
        timestamp_column=rules.timestamp_column,
        text_column=rules.text_column,
        default_tz=default_tz,
    )
    entries = to_medication_entries(normalized.events)
    doses = extract_all(entries, rules)
    report = evaluate_all(doses, rules)
    timeline = build_timeline(doses, rules, now=now, window=window)

    logger.debug(
        "Pipeline: %d rows -> %d entries -> %d doses -> %d rows; %d violations, %d unit mismatches",
        len(rows),
        len(entries),
        len(doses),
        len(timeline.rows),
        len(report.violations),
        len(report.unit_mismatches),
    )
    return PipelineResult(
        entries=entries,
        doses=doses,
        timeline=timeline,
        report=report,
        dropped_rows=normalized.dropped,
    )
