"""Event transformation: ParsedEvent to MedicationEntry."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from .models import MedicationEntry, ParsedEvent

logger = logging.getLogger(__name__)


def split_mentions(text: str | None) -> list[str]:
    """Split a free-text field on commas into trimmed, non-empty tokens."""
    if not text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


def entry_id(ts: datetime) -> str:
    """ISO-8601 id of an entry timestamp (UTC, millisecond precision)."""
    return ts.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_medication_entries(events: Sequence[ParsedEvent]) -> list[MedicationEntry]:
    """Give each event an id and its mention tokens.

    Ids come from the timestamp; a repeated timestamp gets a ``#n`` suffix
    (n = occurrence number) so ids stay unique and stable for a given input.
    """
    seen: dict[str, int] = {}
    out: list[MedicationEntry] = []
    for ev in events:
        base = entry_id(ev.timestamp)
        n = seen.get(base, 0) + 1
        seen[base] = n
        if n > 1:
            logger.warning("Row %d: timestamp id %s already used; using #%d", ev.row_index, base, n)
        out.append(
            MedicationEntry(
                id=base if n == 1 else f"{base}#{n}",
                timestamp=ev.timestamp,
                mention_tokens=tuple(split_mentions(ev.raw_text)),
                row_index=ev.row_index,
            )
        )
    return out
