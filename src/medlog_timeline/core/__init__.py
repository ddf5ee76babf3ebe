"""Medication log parsing and dose timeline construction.

Stages: normalizer -> events -> extraction -> constraints -> timeline.
"""

from __future__ import annotations

from .config import ConfigError, load_config
from .constraints import evaluate_all, evaluate_global_limit, evaluate_hourly_constraints, evaluate_window
from .events import split_mentions, to_medication_entries
from .extraction import extract_all, extract_amount, extract_doses
from .models import (
    ConfiguredDose,
    ConstraintReport,
    ConstraintViolation,
    MedicationEntry,
    ParsedDose,
    ParsedEvent,
    ProcessedMedicationDose,
    TimelineData,
    TimelineRow,
    UnconfiguredDose,
    UnitMismatch,
    UnitMismatchError,
)
from .normalizer import normalize_rows, parse_timestamp
from .pipeline import PipelineResult, run_pipeline
from .rules import RuleSet
from .timeline import build_timeline, default_window, process_doses

__all__ = [
    "ConfigError",
    "ConfiguredDose",
    "ConstraintReport",
    "ConstraintViolation",
    "MedicationEntry",
    "ParsedDose",
    "ParsedEvent",
    "PipelineResult",
    "ProcessedMedicationDose",
    "RuleSet",
    "TimelineData",
    "TimelineRow",
    "UnconfiguredDose",
    "UnitMismatch",
    "UnitMismatchError",
    "build_timeline",
    "default_window",
    "evaluate_all",
    "evaluate_global_limit",
    "evaluate_hourly_constraints",
    "evaluate_window",
    "extract_all",
    "extract_amount",
    "extract_doses",
    "load_config",
    "normalize_rows",
    "parse_timestamp",
    "process_doses",
    "run_pipeline",
    "split_mentions",
    "to_medication_entries",
]
