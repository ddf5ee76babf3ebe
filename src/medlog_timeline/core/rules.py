"""Compiled, read-only medication rules.

These are produced once by :func:`medlog_timeline.core.config.load_config` and
shared by the extraction, constraint and timeline stages.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import tzinfo
from zoneinfo import ZoneInfo

from .models import DEFAULT_THEME

DEFAULT_WIDTH_HOURS = 6.0
DEFAULT_TIMESTAMP_COLUMN = "Timestamp (Calculated)"
DEFAULT_TEXT_COLUMN = "💊💊 Medicine Taken:"
DEFAULT_TIMEZONE = "America/Los_Angeles"  # zone of naive spreadsheet timestamps

_SLUG_RE = re.compile(r"[^a-z0-9]")


def slugify(name: str) -> str:
    """Lowercase and replace anything outside [a-z0-9] with underscores."""
    return _SLUG_RE.sub("_", name.strip().lower())


@dataclass(frozen=True, slots=True)
class DosePattern:
    regex: re.Pattern[str]
    amount_group: int | None = None  # None: use the parser's group; 0: no amount in this pattern
    multiplier: float | None = None  # None: use the parser's multiplier


@dataclass(frozen=True, slots=True)
class AmountParser:
    """Ordered patterns; the first one that matches decides amount and unit."""

    patterns: tuple[DosePattern, ...]
    unit: str
    amount_group: int | None = 1
    unit_group: int | None = None
    multiplier: float = 1.0
    default_amount: float | None = None


@dataclass(frozen=True, slots=True)
class HourlyConstraint:
    window_hours: float
    max_amount: float
    unit: str


@dataclass(frozen=True, slots=True)
class GlobalLimit:
    ingredient_name: str
    max_amount: float
    unit: str
    window_hours: float


@dataclass(frozen=True, slots=True)
class CrossMedicationParser:
    medication_name: str
    parser: AmountParser


@dataclass(frozen=True, slots=True)
class MedicationDuration:
    typical: float
    min: float | None = None
    max: float | None = None
    half_life: float | None = None
    notes: str | None = None
    citations: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Ingredient:
    name: str
    amount_per_unit: float
    unit: str


@dataclass(frozen=True, slots=True)
class StandardDose:
    amount: float
    unit: str
    label: str | None = None


@dataclass(frozen=True, slots=True)
class MedicationRule:
    id: str
    name: str
    display_name: str
    amount_parser: AmountParser
    aliases: tuple[str, ...] = ()
    constraints: tuple[HourlyConstraint, ...] = ()
    cross_medication_parsers: tuple[CrossMedicationParser, ...] = ()
    active_duration: MedicationDuration | None = None
    ingredients: tuple[Ingredient, ...] = ()
    standard_doses: tuple[StandardDose, ...] = ()
    theme: str = DEFAULT_THEME
    alias_re: re.Pattern[str] | None = None  # whole-word alias matcher

    @property
    def active_duration_hours(self) -> float | None:
        return self.active_duration.typical if self.active_duration else None

    def canonicalize(self, text: str) -> str:
        """Rewrite every alias occurrence in text to the canonical name."""
        if self.alias_re is None:
            return text
        return self.alias_re.sub(lambda _m: self.name, text)

    def ingredient(self, name: str) -> Ingredient | None:
        key = name.strip().lower()
        for ing in self.ingredients:
            if ing.name.lower() == key:
                return ing
        return None


def build_alias_re(aliases: Sequence[str]) -> re.Pattern[str] | None:
    """Compile a whole-word, case-insensitive matcher for aliases."""
    names = sorted({a.strip() for a in aliases if a.strip()}, key=len, reverse=True)
    if not names:
        return None
    body = "|".join(re.escape(n) for n in names)
    return re.compile(rf"(?<!\w)(?:{body})(?!\w)", re.IGNORECASE)


def build_ingredient_index(rules: Sequence[MedicationRule]) -> dict[str, frozenset[str]]:
    """Map lowercase ingredient name to the ids of medications containing it."""
    index: dict[str, set[str]] = {}
    for rule in rules:
        for ing in rule.ingredients:
            index.setdefault(ing.name.lower(), set()).add(rule.id)
    return {k: frozenset(v) for k, v in index.items()}


@dataclass(frozen=True, slots=True)
class RuleSet:
    """Compiled configuration for one profile."""

    rules: tuple[MedicationRule, ...]
    global_limits: tuple[GlobalLimit, ...] = ()
    default_width_hours: float = DEFAULT_WIDTH_HOURS
    timestamp_column: str = DEFAULT_TIMESTAMP_COLUMN
    text_column: str = DEFAULT_TEXT_COLUMN
    default_tz: tzinfo = field(default_factory=lambda: ZoneInfo(DEFAULT_TIMEZONE))
    ingredient_index: Mapping[str, frozenset[str]] = field(default_factory=dict)
    _by_key: Mapping[str, MedicationRule] = field(default_factory=dict, repr=False)

    @classmethod
    def build(
        cls,
        rules: Sequence[MedicationRule],
        *,
        global_limits: Sequence[GlobalLimit] = (),
        default_width_hours: float = DEFAULT_WIDTH_HOURS,
        timestamp_column: str = DEFAULT_TIMESTAMP_COLUMN,
        text_column: str = DEFAULT_TEXT_COLUMN,
        default_tz: tzinfo | None = None,
    ) -> RuleSet:
        """Create a rule set and its lookup tables.

        Raises ValueError when two rules share an id, or when a name or alias
        would resolve to more than one rule.
        """
        by_key: dict[str, MedicationRule] = {}
        seen_ids: set[str] = set()
        for rule in rules:
            if rule.id in seen_ids:
                raise ValueError(f"duplicate medication id '{rule.id}'")
            seen_ids.add(rule.id)
            for key in {rule.id, rule.name, rule.display_name, *rule.aliases}:
                k = key.strip().lower()
                other = by_key.get(k)
                if other is not None and other.id != rule.id:
                    raise ValueError(
                        f"name '{key}' is used by both '{other.id}' and '{rule.id}'"
                    )
                by_key[k] = rule

        return cls(
            rules=tuple(rules),
            global_limits=tuple(global_limits),
            default_width_hours=default_width_hours,
            timestamp_column=timestamp_column,
            text_column=text_column,
            default_tz=default_tz if default_tz is not None else ZoneInfo(DEFAULT_TIMEZONE),
            ingredient_index=build_ingredient_index(rules),
            _by_key=by_key,
        )

    def lookup(self, name: str) -> MedicationRule | None:
        """Resolve an id, name, display name or alias (case-insensitive)."""
        return self._by_key.get(name.strip().lower())

    def order_of(self, medication_id: str) -> int | None:
        for i, rule in enumerate(self.rules):
            if rule.id == medication_id:
                return i
        return None

    def medications_with(self, ingredient_name: str) -> frozenset[str]:
        return self.ingredient_index.get(ingredient_name.strip().lower(), frozenset())
