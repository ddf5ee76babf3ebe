"""Medication configuration: schema, validation and compilation.

Configuration is plain data (JSON or a mapping) validated with pydantic and
compiled once into a :class:`~medlog_timeline.core.rules.RuleSet`. Anything
wrong with it, including a regular expression that does not compile, raises
:class:`ConfigError` before a single row is looked at.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping
from datetime import UTC, tzinfo
from importlib import resources
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .models import DEFAULT_THEME
from .rules import (
    DEFAULT_TEXT_COLUMN,
    DEFAULT_TIMESTAMP_COLUMN,
    DEFAULT_TIMEZONE,
    DEFAULT_WIDTH_HOURS,
    AmountParser,
    CrossMedicationParser,
    DosePattern,
    GlobalLimit,
    HourlyConstraint,
    Ingredient,
    MedicationDuration,
    MedicationRule,
    RuleSet,
    StandardDose,
    build_alias_re,
    slugify,
)

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "MEDLOG_CONFIG_PATH"
DEFAULT_TZ_ENV = "MEDLOG_DEFAULT_TZ"
DEFAULT_CONFIG_RESOURCE = "default_medications.json"


class ConfigError(ValueError):
    """Medication configuration is malformed."""


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class DosePatternConfig(_Model):
    regex: str = Field(description="Regular expression tested with re.search.")
    amount_group: int | None = Field(default=None, ge=0)
    multiplier: float | None = Field(default=None, gt=0)
    ignore_case: bool = True

    @field_validator("regex")
    @classmethod
    def _compiles(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"invalid regular expression {v!r}: {exc}") from exc
        return v


class AmountParserConfig(_Model):
    patterns: list[DosePatternConfig] = Field(min_length=1)
    unit: str
    amount_group: int | None = Field(default=1, ge=0)
    unit_group: int | None = Field(default=None, ge=0)
    multiplier: float = Field(default=1.0, gt=0)
    default_amount: float | None = Field(default=None, ge=0)

    @field_validator("patterns", mode="before")
    @classmethod
    def _bare_strings(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [{"regex": p} if isinstance(p, str) else p for p in v]
        return v

    @model_validator(mode="after")
    def _groups_exist(self) -> AmountParserConfig:
        for p in self.patterns:
            groups = re.compile(p.regex).groups
            group = p.amount_group if p.amount_group is not None else self.amount_group
            if group is not None and group > groups:
                raise ValueError(
                    f"amount group {group} out of range for {p.regex!r} ({groups} groups)"
                )
            if self.unit_group is not None and self.unit_group > groups:
                raise ValueError(
                    f"unit group {self.unit_group} out of range for {p.regex!r} ({groups} groups)"
                )
        return self


class MedicationDurationConfig(_Model):
    typical: float = Field(gt=0, description="Hours used for the active window.")
    min: float | None = Field(default=None, ge=0)
    max: float | None = Field(default=None, ge=0)
    half_life: float | None = Field(default=None, ge=0)
    notes: str | None = None
    citations: list[str] = Field(default_factory=list)


class IngredientConfig(_Model):
    name: str = Field(min_length=1)
    amount_per_unit: float = Field(gt=0)
    unit: str


class StandardDoseConfig(_Model):
    amount: float = Field(gt=0)
    unit: str
    label: str | None = None


class HourlyConstraintConfig(_Model):
    window_hours: float = Field(gt=0)
    max_amount: float = Field(ge=0)
    unit: str


class CrossMedicationParserConfig(_Model):
    medication_name: str = Field(min_length=1)
    parser: AmountParserConfig


class MedicationRuleConfig(_Model):
    name: str = Field(min_length=1)
    id: str | None = None
    display_name: str | None = None
    aliases: list[str] = Field(default_factory=list)
    amount_parser: AmountParserConfig
    constraints: list[HourlyConstraintConfig] = Field(default_factory=list)
    cross_medication_parsers: list[CrossMedicationParserConfig] = Field(default_factory=list)
    active_duration: MedicationDurationConfig | None = None
    ingredients: list[IngredientConfig] = Field(default_factory=list)
    standard_doses: list[StandardDoseConfig] = Field(default_factory=list)
    theme: str = DEFAULT_THEME


class GlobalLimitConfig(_Model):
    ingredient_name: str = Field(min_length=1)
    max_amount: float = Field(ge=0)
    unit: str
    window_hours: float = Field(gt=0)


class ProfileConfig(_Model):
    medications: list[MedicationRuleConfig] = Field(default_factory=list)
    global_limits: list[GlobalLimitConfig] = Field(default_factory=list)
    default_width_hours: float = Field(default=DEFAULT_WIDTH_HOURS, gt=0)
    timestamp_column: str = DEFAULT_TIMESTAMP_COLUMN
    text_column: str = DEFAULT_TEXT_COLUMN
    default_tz: str = Field(
        default=DEFAULT_TIMEZONE,
        description="IANA zone used for timestamps written without an offset.",
    )

    @field_validator("default_tz")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        _zone(v)
        return v


class ConfigFile(_Model):
    """Either a single profile or a mapping of user name to profile."""

    users: dict[str, ProfileConfig] | None = None
    profile: ProfileConfig | None = None

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_profile(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "users" not in data and "profile" not in data:
            return {"profile": data}
        return data

    def select(self, user: str | None) -> ProfileConfig:
        if self.users is None:
            if user is not None:
                logger.debug("Config has a single profile; ignoring user=%s", user)
            return self.profile or ProfileConfig()
        if not self.users:
            raise ConfigError("config defines no users")
        if user is None:
            if len(self.users) == 1:
                return next(iter(self.users.values()))
            raise ConfigError(
                f"config defines several users ({', '.join(sorted(self.users))}); pick one"
            )
        try:
            return self.users[user]
        except KeyError as exc:
            raise ConfigError(f"unknown user '{user}'") from exc


def _compile_parser(cfg: AmountParserConfig) -> AmountParser:
    return AmountParser(
        patterns=tuple(
            DosePattern(
                regex=re.compile(p.regex, re.IGNORECASE if p.ignore_case else 0),
                amount_group=p.amount_group,
                multiplier=p.multiplier,
            )
            for p in cfg.patterns
        ),
        unit=cfg.unit,
        amount_group=cfg.amount_group,
        unit_group=cfg.unit_group,
        multiplier=cfg.multiplier,
        default_amount=cfg.default_amount,
    )


def _compile_rule(cfg: MedicationRuleConfig) -> MedicationRule:
    dur = cfg.active_duration
    return MedicationRule(
        id=cfg.id or slugify(cfg.name),
        name=cfg.name,
        display_name=cfg.display_name or cfg.name,
        amount_parser=_compile_parser(cfg.amount_parser),
        aliases=tuple(cfg.aliases),
        constraints=tuple(
            HourlyConstraint(window_hours=c.window_hours, max_amount=c.max_amount, unit=c.unit)
            for c in cfg.constraints
        ),
        cross_medication_parsers=tuple(
            CrossMedicationParser(medication_name=x.medication_name, parser=_compile_parser(x.parser))
            for x in cfg.cross_medication_parsers
        ),
        active_duration=(
            MedicationDuration(
                typical=dur.typical,
                min=dur.min,
                max=dur.max,
                half_life=dur.half_life,
                notes=dur.notes,
                citations=tuple(dur.citations),
            )
            if dur is not None
            else None
        ),
        ingredients=tuple(
            Ingredient(name=i.name, amount_per_unit=i.amount_per_unit, unit=i.unit)
            for i in cfg.ingredients
        ),
        standard_doses=tuple(
            StandardDose(amount=s.amount, unit=s.unit, label=s.label) for s in cfg.standard_doses
        ),
        theme=cfg.theme,
        alias_re=build_alias_re(cfg.aliases),
    )


def compile_profile(profile: ProfileConfig) -> RuleSet:
    """Compile a validated profile into a RuleSet."""
    rules = [_compile_rule(m) for m in profile.medications]
    try:
        ruleset = RuleSet.build(
            rules,
            global_limits=[
                GlobalLimit(
                    ingredient_name=g.ingredient_name,
                    max_amount=g.max_amount,
                    unit=g.unit,
                    window_hours=g.window_hours,
                )
                for g in profile.global_limits
            ],
            default_width_hours=profile.default_width_hours,
            timestamp_column=profile.timestamp_column,
            text_column=profile.text_column,
            default_tz=_zone(profile.default_tz),
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    for limit in ruleset.global_limits:
        if not ruleset.medications_with(limit.ingredient_name):
            logger.warning(
                "Global limit for '%s' matches no configured medication", limit.ingredient_name
            )
    for rule in ruleset.rules:
        for cross in rule.cross_medication_parsers:
            if ruleset.lookup(cross.medication_name) is None:
                logger.warning(
                    "Cross-medication target '%s' of '%s' is not configured",
                    cross.medication_name,
                    rule.id,
                )
    return ruleset


def _read_source(source: str | Path | Mapping[str, Any] | None) -> Mapping[str, Any]:
    if source is None:
        env = os.getenv(CONFIG_PATH_ENV)
        if env:
            source = Path(env)
        else:
            bundled = resources.files("medlog_timeline.data").joinpath(DEFAULT_CONFIG_RESOURCE)
            return json.loads(bundled.read_text(encoding="utf-8"))

    if isinstance(source, Mapping):
        return source

    path = Path(source)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"{path}: top level must be an object")
    return data


def load_config(
    source: str | Path | Mapping[str, Any] | None = None,
    *,
    user: str | None = None,
) -> RuleSet:
    """Load, validate and compile medication rules.

    ``source`` may be a JSON file path, an already-parsed mapping, or None to
    use MEDLOG_CONFIG_PATH (or the bundled default set when unset).
    """
    data = _read_source(source)
    try:
        cfg = ConfigFile.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid medication config: {exc}") from exc
    ruleset = compile_profile(cfg.select(user))
    logger.debug(
        "Loaded %d medication rules, %d global limits",
        len(ruleset.rules),
        len(ruleset.global_limits),
    )
    return ruleset


def config_json_schema() -> dict[str, Any]:
    """Return the JSON schema of the configuration file."""
    return ConfigFile.model_json_schema()


def _zone(name: str) -> tzinfo:
    if name.strip().upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"timezone must be an IANA zone name, got '{name}'") from exc


def resolve_default_tz(name: str | None = None) -> tzinfo | None:
    """Return the zone override for naive timestamps, if any.

    ``name`` wins over MEDLOG_DEFAULT_TZ. None means "use the profile's
    ``default_tz``" (America/Los_Angeles unless the config says otherwise).
    """
    name = name if name is not None else os.getenv(DEFAULT_TZ_ENV)
    if not name:
        return None
    try:
        return _zone(name)
    except ValueError as exc:
        raise ValueError(f"{DEFAULT_TZ_ENV} must be an IANA zone name, got '{name}'") from exc
