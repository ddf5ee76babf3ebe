"""Core data models for the dose timeline pipeline."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Literal, Union

LogRow = Mapping[str, str]

DEFAULT_THEME = "jade"

ConstraintScope = Literal["hourly", "global"]


@dataclass(frozen=True, slots=True)
class ParsedEvent:
    """One log row with a usable timestamp."""

    timestamp: datetime
    raw_text: str | None
    source_row: LogRow
    row_index: int


@dataclass(frozen=True, slots=True)
class MedicationEntry:
    """Timestamped entry split into mention tokens."""

    id: str
    timestamp: datetime
    mention_tokens: tuple[str, ...]
    row_index: int


@dataclass(frozen=True, slots=True)
class ConfiguredDose:
    """Dose extracted by a configured medication rule."""

    medication_id: str
    display_name: str
    amount: float | None
    unit: str
    timestamp: datetime
    active_duration_hours: float | None
    theme: str = DEFAULT_THEME

    @property
    def is_configured(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class UnconfiguredDose:
    """Mention that matched no rule; still rendered, without an amount."""

    medication_id: str
    display_name: str
    timestamp: datetime
    theme: str = DEFAULT_THEME

    @property
    def is_configured(self) -> bool:
        return False

    @property
    def amount(self) -> None:
        return None

    @property
    def unit(self) -> str:
        return ""

    @property
    def active_duration_hours(self) -> None:
        return None


ParsedDose = Union[ConfiguredDose, UnconfiguredDose]


@dataclass(frozen=True, slots=True)
class ProcessedMedicationDose:
    """Dose with its active window resolved."""

    medication_id: str
    display_name: str
    amount: float | None
    unit: str
    start_time: datetime
    end_time: datetime
    is_configured: bool
    theme: str

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Return True when the active window touches [start, end]."""
        return self.start_time <= end and self.end_time >= start

    def is_active_at(self, instant: datetime) -> bool:
        return self.start_time <= instant <= self.end_time


@dataclass(frozen=True, slots=True)
class TimelineRow:
    """All doses of one medication, ordered by start time."""

    medication_id: str
    display_name: str
    theme: str
    doses: tuple[ProcessedMedicationDose, ...]

    def lanes(self) -> list[list[ProcessedMedicationDose]]:
        """Pack doses into sub-rows where no two windows overlap.

        Each dose goes into the first lane it does not overlap; a new lane is
        opened otherwise. Touching windows (end == start) share a lane.
        """
        lanes: list[list[ProcessedMedicationDose]] = []
        for dose in self.doses:
            for lane in lanes:
                if all(
                    not (dose.start_time < other.end_time and dose.end_time > other.start_time)
                    for other in lane
                ):
                    lane.append(dose)
                    break
            else:
                lanes.append([dose])
        return lanes


@dataclass(frozen=True, slots=True)
class TimelineData:
    """Ordered timeline rows ready for rendering."""

    rows: tuple[TimelineRow, ...] = ()

    def active_at(self, now: datetime) -> list[ProcessedMedicationDose]:
        """Return the doses whose active window contains now."""
        return [d for row in self.rows for d in row.doses if d.is_active_at(now)]


@dataclass(frozen=True, slots=True)
class ConstraintViolation:
    """Cumulative amount above a configured ceiling."""

    scope: ConstraintScope
    subject: str  # medication id (hourly) or ingredient name (global)
    window_hours: float
    max_amount: float
    unit: str
    cumulative_amount: float
    window_start: datetime
    window_end: datetime
    dose: ParsedDose

    @property
    def window(self) -> timedelta:
        return self.window_end - self.window_start


@dataclass(frozen=True, slots=True)
class UnitMismatch:
    """Dose whose unit differs from the constraint it is checked against."""

    scope: ConstraintScope
    subject: str
    expected_unit: str
    actual_unit: str
    dose: ParsedDose


class UnitMismatchError(ValueError):
    """Raised on request when a report carries unit mismatches."""

    def __init__(self, mismatches: tuple[UnitMismatch, ...]) -> None:
        self.mismatches = mismatches
        first = mismatches[0]
        super().__init__(
            f"{len(mismatches)} unit mismatch(es); first: {first.subject} expects "
            f"'{first.expected_unit}', got '{first.actual_unit}'"
        )


@dataclass(frozen=True, slots=True)
class ConstraintReport:
    """Result of evaluating constraints; never mutates the doses."""

    violations: tuple[ConstraintViolation, ...] = ()
    unit_mismatches: tuple[UnitMismatch, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return not self.violations and not self.unit_mismatches

    def merge(self, other: ConstraintReport) -> ConstraintReport:
        return ConstraintReport(
            violations=self.violations + other.violations,
            unit_mismatches=self.unit_mismatches + other.unit_mismatches,
        )

    def raise_for_unit_mismatch(self) -> None:
        if self.unit_mismatches:
            raise UnitMismatchError(self.unit_mismatches)
