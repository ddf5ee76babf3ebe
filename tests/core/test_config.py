from __future__ import annotations

import json
from datetime import UTC
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from medlog_timeline.core.config import (
    ConfigError,
    config_json_schema,
    load_config,
    resolve_default_tz,
)


def _med(name: str, **extra: Any) -> dict[str, Any]:
    return {"name": name, "amount_parser": {"unit": "mg", "patterns": [rf"{name} (\d+)mg"]}, **extra}


def test_scenario_config_compiles(rules) -> None:
    assert [r.id for r in rules.rules] == ["ibuprofen", "excedrin", "acetaminophen"]
    assert rules.lookup("Advil").id == "ibuprofen"
    assert rules.lookup("TYLENOL").id == "acetaminophen"
    assert rules.medications_with("Acetaminophen") == frozenset({"acetaminophen"})
    assert rules.lookup("excedrin").active_duration_hours == 4


def test_bundled_default_config_loads(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MEDLOG_CONFIG_PATH", raising=False)
    rules = load_config()

    assert rules.lookup("ibuprofen") is not None
    assert rules.lookup("Aleve").id == "naproxen"
    assert rules.medications_with("acetaminophen") == frozenset({"acetaminophen_8hr", "percocet_5_325"})
    assert rules.timestamp_column == "Timestamp (Calculated)"


def test_config_path_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, write_config) -> None:
    path = write_config(tmp_path / "meds.json")
    monkeypatch.setenv("MEDLOG_CONFIG_PATH", str(path))
    assert load_config().lookup("excedrin") is not None


def test_invalid_regex_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="regular expression"):
        load_config({"medications": [{"name": "Bad", "amount_parser": {"unit": "mg", "patterns": ["(\\d+"]}}]})


def test_amount_group_out_of_range() -> None:
    cfg = {"medications": [{"name": "X", "amount_parser": {"unit": "mg", "patterns": ["X"]}}]}
    with pytest.raises(ConfigError, match="amount group"):
        load_config(cfg)


def test_unknown_keys_rejected() -> None:
    with pytest.raises(ConfigError):
        load_config({"medications": [_med("A", colour="blue")]})


def test_duplicate_ids_rejected() -> None:
    with pytest.raises(ConfigError, match="duplicate medication id"):
        load_config({"medications": [_med("A"), _med("a")]})


def test_alias_collision_rejected() -> None:
    with pytest.raises(ConfigError, match="used by both"):
        load_config({"medications": [_med("A", aliases=["Shared"]), _med("B", aliases=["shared"])]})


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.json")


def test_bad_json_file(tmp_path: Path) -> None:
    p = tmp_path / "bad.json"
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid JSON"):
        load_config(p)


def test_multi_user_selection(tmp_path: Path) -> None:
    cfg = {"users": {"alex": {"medications": [_med("A")]}, "sam": {"medications": [_med("B")]}}}
    p = tmp_path / "users.json"
    p.write_text(json.dumps(cfg), encoding="utf-8")

    assert [r.id for r in load_config(p, user="sam").rules] == ["b"]
    with pytest.raises(ConfigError, match="several users"):
        load_config(p)
    with pytest.raises(ConfigError, match="unknown user"):
        load_config(p, user="kim")


def test_global_limit_without_members_warns(caplog: pytest.LogCaptureFixture) -> None:
    cfg = {
        "medications": [_med("A")],
        "global_limits": [{"ingredient_name": "caffeine", "max_amount": 400, "unit": "mg", "window_hours": 24}],
    }
    with caplog.at_level("WARNING"):
        rules = load_config(cfg)
    assert len(rules.global_limits) == 1
    assert "caffeine" in caplog.text


def test_json_schema_has_medications() -> None:
    schema = config_json_schema()
    assert "$defs" in schema
    assert "MedicationRuleConfig" in schema["$defs"]


def test_resolve_default_tz(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MEDLOG_DEFAULT_TZ", raising=False)
    assert resolve_default_tz() is None
    assert resolve_default_tz("utc") is UTC

    monkeypatch.setenv("MEDLOG_DEFAULT_TZ", "Europe/Berlin")
    assert resolve_default_tz() == ZoneInfo("Europe/Berlin")
    assert resolve_default_tz("Asia/Tokyo") == ZoneInfo("Asia/Tokyo")

    with pytest.raises(ValueError, match="IANA"):
        resolve_default_tz("Not/AZone")


def test_profile_default_tz_is_los_angeles(rules) -> None:
    assert rules.default_tz == ZoneInfo("America/Los_Angeles")


def test_profile_default_tz_override() -> None:
    assert load_config({"default_tz": "UTC", "medications": [_med("A")]}).default_tz is UTC
    assert load_config({"default_tz": "Europe/Paris"}).default_tz == ZoneInfo("Europe/Paris")
    with pytest.raises(ConfigError, match="IANA"):
        load_config({"default_tz": "Mars/Olympus_Mons"})


def test_empty_users_mapping() -> None:
    with pytest.raises(ConfigError, match="no users"):
        load_config({"users": {}})
