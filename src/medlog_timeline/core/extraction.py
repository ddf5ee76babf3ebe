"""Dose extraction: mention tokens to ParsedDose records.

A single generic routine interprets the declarative parsers of every rule.
Rules are tried in declaration order and patterns inside a parser in
declaration order; the first match wins in both cases.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from .models import DEFAULT_THEME, ConfiguredDose, MedicationEntry, ParsedDose, UnconfiguredDose
from .rules import AmountParser, MedicationRule, RuleSet, slugify

logger = logging.getLogger(__name__)

UNCONFIGURED_PREFIX = "unconfigured_"


@dataclass(frozen=True, slots=True)
class AmountMatch:
    """Outcome of a parser match; amount is None when the text has none."""

    amount: float | None
    unit: str
    pattern_index: int


def _to_number(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _match_amount(parser: AmountParser, index: int, m: re.Match[str]) -> AmountMatch:
    pattern = parser.patterns[index]
    group = pattern.amount_group if pattern.amount_group is not None else parser.amount_group
    multiplier = pattern.multiplier if pattern.multiplier is not None else parser.multiplier

    amount = _to_number(m.group(group)) if group else None
    if amount is None:
        amount = parser.default_amount
    elif multiplier != 1:
        amount *= multiplier

    unit = parser.unit
    if parser.unit_group is not None:
        captured = m.group(parser.unit_group)
        if captured:
            unit = captured.strip()
    return AmountMatch(amount=amount, unit=unit, pattern_index=index)


def extract_amount(
    parser: AmountParser,
    text: str,
    *,
    alternate: str | None = None,
) -> AmountMatch | None:
    """Apply a parser's patterns in order and return the first match.

    ``alternate`` is a second spelling of the same text (aliases rewritten to
    the canonical name). Both spellings are tried for a pattern before the
    next pattern is considered, so pattern order stays authoritative.
    """
    candidates = (text,) if alternate is None or alternate == text else (text, alternate)
    for index, pattern in enumerate(parser.patterns):
        for candidate in candidates:
            m = pattern.regex.search(candidate)
            if m is not None:
                return _match_amount(parser, index, m)
    return None


def match_rule(rule: MedicationRule, token: str) -> AmountMatch | None:
    """Match a token against one rule, honoring its aliases."""
    return extract_amount(rule.amount_parser, token, alternate=rule.canonicalize(token))


def unconfigured_dose(token: str, timestamp: datetime) -> UnconfiguredDose:
    name = token.strip()
    return UnconfiguredDose(
        medication_id=f"{UNCONFIGURED_PREFIX}{slugify(name)}",
        display_name=name,
        timestamp=timestamp,
        theme=DEFAULT_THEME,
    )


def _cross_doses(
    rule: MedicationRule,
    token: str,
    timestamp: datetime,
    rules: RuleSet,
) -> list[ConfiguredDose]:
    out: list[ConfiguredDose] = []
    for cross in rule.cross_medication_parsers:
        target = rules.lookup(cross.medication_name)
        alternate = target.canonicalize(token) if target is not None else None
        hit = extract_amount(cross.parser, token, alternate=alternate)
        if hit is None:
            continue
        if target is not None:
            out.append(
                ConfiguredDose(
                    medication_id=target.id,
                    display_name=target.display_name,
                    amount=hit.amount,
                    unit=hit.unit,
                    timestamp=timestamp,
                    active_duration_hours=target.active_duration_hours,
                    theme=target.theme,
                )
            )
        else:
            out.append(
                ConfiguredDose(
                    medication_id=slugify(cross.medication_name),
                    display_name=cross.medication_name,
                    amount=hit.amount,
                    unit=hit.unit,
                    timestamp=timestamp,
                    active_duration_hours=rule.active_duration_hours,
                    theme=rule.theme,
                )
            )
    return out


def extract_doses(token: str, timestamp: datetime, rules: RuleSet) -> list[ParsedDose]:
    """Return the doses implied by one mention token.

    The first matching rule yields a primary dose followed by any
    cross-medication doses. With no match, a single UnconfiguredDose carrying
    the token is returned; a token is never dropped.
    """
    for rule in rules.rules:
        hit = match_rule(rule, token)
        if hit is None:
            continue
        primary = ConfiguredDose(
            medication_id=rule.id,
            display_name=rule.display_name,
            amount=hit.amount,
            unit=hit.unit,
            timestamp=timestamp,
            active_duration_hours=rule.active_duration_hours,
            theme=rule.theme,
        )
        return [primary, *_cross_doses(rule, token, timestamp, rules)]

    logger.debug("No rule matched %r", token)
    return [unconfigured_dose(token, timestamp)]


def extract_entry_doses(entry: MedicationEntry, rules: RuleSet) -> list[ParsedDose]:
    """Extract doses for every token of an entry, in token order."""
    return [d for token in entry.mention_tokens for d in extract_doses(token, entry.timestamp, rules)]


def extract_all(entries: Iterable[MedicationEntry], rules: RuleSet) -> list[ParsedDose]:
    """Flatten extraction over entries, preserving input order."""
    doses: list[ParsedDose] = []
    for entry in entries:
        doses.extend(extract_entry_doses(entry, rules))
    return doses


def doses_by_medication(doses: Sequence[ParsedDose]) -> dict[str, list[ParsedDose]]:
    """Group doses by medication id, keeping input order inside each group."""
    grouped: dict[str, list[ParsedDose]] = {}
    for dose in doses:
        grouped.setdefault(dose.medication_id, []).append(dose)
    return grouped
