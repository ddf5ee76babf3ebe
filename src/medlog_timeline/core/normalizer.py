"""Row normalization: raw spreadsheet rows to timestamped events."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo

from .models import LogRow, ParsedEvent
from .rules import DEFAULT_TEXT_COLUMN, DEFAULT_TIMESTAMP_COLUMN

logger = logging.getLogger(__name__)

# Tried in order after ISO-8601. strptime accepts single-digit M/D/H here.
TIMESTAMP_FORMATS: Sequence[str] = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y",
)


@dataclass(frozen=True, slots=True)
class NormalizationResult:
    """Events that survived normalization plus indices of dropped rows."""

    events: list[ParsedEvent]
    dropped: tuple[int, ...] = ()

    @property
    def dropped_count(self) -> int:
        return len(self.dropped)


def _localize(ts: datetime, default_tz: tzinfo) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=default_tz)
    return ts.astimezone(UTC)


def parse_timestamp(value: str | None, *, default_tz: tzinfo = UTC) -> datetime | None:
    """Parse a timestamp permissively; return UTC-aware datetime or None.

    Values that cannot be represented once converted to UTC (year 1 with a
    positive offset, year 9999 in a zone behind UTC) count as unparseable.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    try:
        return _localize(datetime.fromisoformat(s.replace("Z", "+00:00")), default_tz)
    except (ValueError, OverflowError):
        pass

    for fmt in TIMESTAMP_FORMATS:
        try:
            return _localize(datetime.strptime(s, fmt), default_tz)
        except (ValueError, OverflowError):
            continue
    return None


def normalize_rows(
    rows: Sequence[LogRow],
    *,
    timestamp_column: str = DEFAULT_TIMESTAMP_COLUMN,
    text_column: str = DEFAULT_TEXT_COLUMN,
    default_tz: tzinfo = UTC,
) -> NormalizationResult:
    """Turn rows into ParsedEvents, dropping rows without a usable timestamp.

    Order is preserved. A bad row is logged and skipped; it never aborts the
    run.
    """
    events: list[ParsedEvent] = []
    dropped: list[int] = []

    for index, row in enumerate(rows):
        raw_ts = row.get(timestamp_column)
        ts = parse_timestamp(raw_ts, default_tz=default_tz)
        if ts is None:
            logger.warning("Row %d: unparseable %r value %r; dropped", index, timestamp_column, raw_ts)
            dropped.append(index)
            continue

        text = row.get(text_column)
        text = text.strip() if isinstance(text, str) else None
        events.append(
            ParsedEvent(timestamp=ts, raw_text=text or None, source_row=row, row_index=index)
        )

    logger.debug("Normalized %d rows: %d events, %d dropped", len(rows), len(events), len(dropped))
    return NormalizationResult(events=events, dropped=tuple(dropped))
