from __future__ import annotations

from pathlib import Path

import pytest

from medlog_timeline.core.config import load_config
from medlog_timeline.resources.registry import SAMPLE_LOG_CSV, medications_summary
from medlog_timeline.tools.timeline import build_timeline_impl, check_limits_impl, parse_mentions_impl

PAIRS = [
    ("2024-01-01T09:00:00Z", "Ibuprofen 400mg, Excedrin (2 tablets)"),
    ("2024-01-01T10:00:00Z", "Ibuprofen 400mg"),
    ("not a time", "Ibuprofen 400mg"),
    ("2024-01-01T11:00:00Z", "Ibuprofen 400mg, Unknown Pill"),
    ("2024-01-01T12:00:00Z", "Ibuprofen 400mg"),
]


@pytest.fixture
def log_and_config(tmp_path: Path, write_csv, write_config) -> tuple[str, str]:
    log = tmp_path / "log.csv"
    write_csv(log, PAIRS)
    cfg = write_config(tmp_path / "meds.json")
    return str(log), str(cfg)


@pytest.mark.asyncio
async def test_build_timeline_impl_rows_and_violations(log_and_config: tuple[str, str]) -> None:
    log, cfg = log_and_config

    out = await build_timeline_impl(log_path=log, config_path=cfg, now="2024-01-01T13:00:00Z")

    assert out["window"] == {"start": "2023-12-29T13:00:00+00:00", "end": "2024-01-02T01:00:00+00:00"}
    assert [r["medication_id"] for r in out["rows"]] == [
        "ibuprofen",
        "excedrin",
        "acetaminophen",
        "unconfigured_unknown_pill",
    ]
    assert out["count"] == 4
    assert out["dropped_rows"] == [2]
    ibu = out["rows"][0]["doses"]
    assert [d["start_time"] for d in ibu][0] == "2024-01-01T09:00:00+00:00"
    assert [d["is_active"] for d in ibu] == [True, True, True, True]
    assert "lanes" not in out["rows"][0]

    (v,) = out["violations"]
    assert v["scope"] == "hourly"
    assert v["subject"] == "ibuprofen"
    assert v["cumulative_amount"] == 1600
    assert v["window_end"] == "2024-01-01T12:00:00+00:00"
    assert out["unit_mismatches"] == []


@pytest.mark.asyncio
async def test_build_timeline_impl_date_selector_lanes_and_limit(log_and_config: tuple[str, str]) -> None:
    log, cfg = log_and_config

    out = await build_timeline_impl(
        log_path=log,
        config_path=cfg,
        now="2024-01-05T00:00:00Z",
        date="2024-01-01",
        include_lanes=True,
        limit=1,
    )

    assert out["count"] == 1
    row = out["rows"][0]
    assert row["medication_id"] == "ibuprofen"
    assert len(row["lanes"]) == 4
    assert not any(d["is_active"] for d in row["doses"])


@pytest.mark.asyncio
async def test_build_timeline_impl_rejects_bad_limit(log_and_config: tuple[str, str]) -> None:
    log, cfg = log_and_config
    with pytest.raises(ValueError, match="limit"):
        await build_timeline_impl(log_path=log, config_path=cfg, limit=0)


@pytest.mark.asyncio
async def test_check_limits_impl(log_and_config: tuple[str, str]) -> None:
    log, cfg = log_and_config

    out = await check_limits_impl(log_path=log, config_path=cfg, now="2024-01-01T13:00:00Z")

    assert out["ok"] is False
    assert out["dose_count"] == 7
    assert [v["subject"] for v in out["violations"]] == ["ibuprofen"]


@pytest.mark.asyncio
async def test_check_limits_impl_missing_log(tmp_path: Path, write_config) -> None:
    cfg = write_config(tmp_path / "meds.json")
    with pytest.raises(FileNotFoundError):
        await check_limits_impl(log_path=str(tmp_path / "missing.csv"), config_path=str(cfg))


def test_parse_mentions_impl(tmp_path: Path, write_config) -> None:
    cfg = write_config(tmp_path / "meds.json")

    out = parse_mentions_impl(
        text="Advil 200mg, Excedrin, Mystery",
        timestamp="2024-01-01T09:00:00Z",
        config_path=str(cfg),
    )

    assert out["tokens"] == ["Advil 200mg", "Excedrin", "Mystery"]
    assert [(d["medication_id"], d["amount"]) for d in out["doses"]] == [
        ("ibuprofen", 200),
        ("excedrin", 1),
        ("acetaminophen", 250),
        ("unconfigured_mystery", None),
    ]
    assert out["doses"][0]["timestamp"] == "2024-01-01T09:00:00+00:00"


def test_medications_summary_lists_global_limit_members(scenario_config) -> None:
    summary = medications_summary(load_config(scenario_config))

    assert [m["id"] for m in summary["medications"]] == ["ibuprofen", "excedrin", "acetaminophen"]
    assert summary["global_limits"][0]["medications"] == ["acetaminophen"]


@pytest.mark.asyncio
async def test_sample_log_parses_with_bundled_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MEDLOG_CONFIG_PATH", raising=False)
    log = tmp_path / "sample.csv"
    log.write_text(SAMPLE_LOG_CSV, encoding="utf-8")

    out = await build_timeline_impl(log_path=str(log), now="2025-08-17T12:00:00Z")

    ids = [r["medication_id"] for r in out["rows"]]
    assert ids == ["percocet_5_325", "oxycodone", "ibuprofen", "famotidine", "unconfigured_migraine_medication"]
    assert out["dropped_rows"] == []
