from __future__ import annotations

import csv
import json
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from medlog_timeline.core.config import load_config
from medlog_timeline.core.rules import DEFAULT_TEXT_COLUMN, DEFAULT_TIMESTAMP_COLUMN, RuleSet

TS = DEFAULT_TIMESTAMP_COLUMN
TEXT = DEFAULT_TEXT_COLUMN

SCENARIO_CONFIG: dict[str, Any] = {
    "medications": [
        {
            "name": "Ibuprofen",
            "aliases": ["Advil"],
            "amount_parser": {"unit": "mg", "patterns": [r"Ibuprofen\s+(\d+)mg"]},
            "constraints": [{"window_hours": 4, "max_amount": 1200, "unit": "mg"}],
            "active_duration": {"typical": 6},
            "theme": "red",
        },
        {
            "name": "Excedrin",
            "amount_parser": {
                "unit": "tablets",
                "default_amount": 1,
                "patterns": [
                    r"Excedrin.*?\((\d+) tablets?\)",
                    {"regex": "Excedrin", "amount_group": 0},
                ],
            },
            "cross_medication_parsers": [
                {
                    "medication_name": "Acetaminophen",
                    "parser": {
                        "unit": "mg",
                        "multiplier": 250,
                        "default_amount": 250,
                        "patterns": [
                            r"Excedrin.*?\((\d+) tablets?\)",
                            {"regex": "Excedrin", "amount_group": 0},
                        ],
                    },
                }
            ],
            "active_duration": {"typical": 4},
        },
        {
            "name": "Acetaminophen",
            "aliases": ["Tylenol"],
            "amount_parser": {"unit": "mg", "patterns": [r"Acetaminophen\s*(\d+)\s*mg"]},
            "ingredients": [{"name": "acetaminophen", "amount_per_unit": 500, "unit": "mg"}],
            "standard_doses": [{"amount": 500, "unit": "mg"}],
            "active_duration": {"typical": 6},
            "theme": "green",
        },
    ],
    "global_limits": [
        {"ingredient_name": "acetaminophen", "max_amount": 1000, "unit": "mg", "window_hours": 24}
    ],
}


@pytest.fixture
def scenario_config() -> dict[str, Any]:
    return json.loads(json.dumps(SCENARIO_CONFIG))


@pytest.fixture
def rules(scenario_config: dict[str, Any]) -> RuleSet:
    return load_config(scenario_config)


@pytest.fixture
def at() -> Callable[..., datetime]:
    def _at(hour: int, minute: int = 0, *, day: int = 1) -> datetime:
        return datetime(2024, 1, day, hour, minute, tzinfo=UTC)

    return _at


@pytest.fixture
def make_rows() -> Callable[[list[tuple[str, str]]], list[dict[str, str]]]:
    def _make(pairs: list[tuple[str, str]]) -> list[dict[str, str]]:
        return [{TS: ts, TEXT: text, "User": "alex"} for ts, text in pairs]

    return _make


@pytest.fixture
def write_csv() -> Callable[[Path, list[tuple[str, str]]], None]:
    def _write(path: Path, pairs: list[tuple[str, str]]) -> None:
        with path.open("w", encoding="utf-8", newline="") as f:
            w = csv.writer(f)
            w.writerow([TS, TEXT, "User"])
            for ts, text in pairs:
                w.writerow([ts, text, "alex"])

    return _write


@pytest.fixture
def write_config(scenario_config: dict[str, Any]) -> Callable[[Path], Path]:
    def _write(path: Path) -> Path:
        path.write_text(json.dumps(scenario_config), encoding="utf-8")
        return path

    return _write
