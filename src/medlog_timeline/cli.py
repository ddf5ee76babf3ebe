from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import UTC, datetime
from pathlib import Path

from medlog_timeline.core.config import ConfigError, load_config, resolve_default_tz
from medlog_timeline.core.pipeline import PipelineResult, run_pipeline
from medlog_timeline.core.sources import load_rows
from medlog_timeline.core.time_window import parse_iso_dt, resolve_time_window
from medlog_timeline.server.timeline_server import configure_logging
from medlog_timeline.tools.timeline import mismatch_to_dict, violation_to_dict


def _fmt_amount(amount: float | None, unit: str) -> str:
    if amount is None:
        return "?"
    return f"{amount:g} {unit}".strip()


def _print_result(result: PipelineResult, *, now: datetime) -> None:
    for row in result.timeline.rows:
        flag = "" if row.doses[0].is_configured else " (unconfigured)"
        print(f"{row.display_name}{flag}")
        for d in row.doses:
            active = " *" if d.is_active_at(now) else ""
            print(
                f"  {d.start_time.isoformat()} -> {d.end_time.isoformat()}  "
                f"{_fmt_amount(d.amount, d.unit)}{active}"
            )

    for v in result.report.violations:
        print(
            f"LIMIT {v.scope} {v.subject}: {v.cumulative_amount:g} {v.unit} > {v.max_amount:g} "
            f"within {v.window_hours:g}h ending {v.window_end.isoformat()}"
        )
    for m in result.report.unit_mismatches:
        print(f"UNIT MISMATCH {m.scope} {m.subject}: expected '{m.expected_unit}', got '{m.actual_unit}'")

    print(
        f"\n{len(result.timeline.rows)} rows, {len(result.doses)} doses, "
        f"{len(result.dropped_rows)} dropped rows."
    )


def main() -> None:
    p = argparse.ArgumentParser(description="Build a medication dose timeline from a log export.")
    p.add_argument("log_path", help="CSV or JSON export of the medication log")
    p.add_argument("--config", default=None, help="Medication rules JSON (default: MEDLOG_CONFIG_PATH or bundled)")
    p.add_argument("--user", default=None, help="Profile name when the config defines several users")
    p.add_argument("--now", default=None, help="ISO8601 reference time (default: current time)")
    p.add_argument(
        "--tz",
        default=None,
        help="IANA zone for timestamps without offset (default: MEDLOG_DEFAULT_TZ, else the profile default_tz)",
    )
    p.add_argument("--json", dest="as_json", action="store_true", help="Print JSON instead of text")

    p.add_argument("--since", default=None, help="ISO8601 start time (assumes UTC if tz missing)")
    p.add_argument("--until", default=None, help="ISO8601 end time (assumes UTC if tz missing)")
    p.add_argument("--date", default=None, help="YYYY-MM-DD (UTC day)")
    p.add_argument("--week", default=None, help="YYYY-Www (ISO week, UTC)")
    p.add_argument("--month", default=None, help="YYYY-MM (UTC month)")

    args = p.parse_args()
    configure_logging()
    path = Path(args.log_path)

    try:
        now = parse_iso_dt(args.now) if args.now else datetime.now(UTC)
        window = resolve_time_window(
            now=now,
            since=args.since,
            until=args.until,
            date_=args.date,
            week=args.week,
            month=args.month,
        )
        rules = load_config(args.config, user=args.user)
        rows = asyncio.run(load_rows(path))
        result = run_pipeline(rows, rules, now=now, window=window, default_tz=resolve_default_tz(args.tz))
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(2)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        raise SystemExit(2)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)

    if args.as_json:
        out = {
            "rows": [
                {
                    "medication_id": r.medication_id,
                    "display_name": r.display_name,
                    "doses": [
                        {
                            "amount": d.amount,
                            "unit": d.unit,
                            "start_time": d.start_time.isoformat(),
                            "end_time": d.end_time.isoformat(),
                            "is_configured": d.is_configured,
                        }
                        for d in r.doses
                    ],
                }
                for r in result.timeline.rows
            ],
            "violations": [violation_to_dict(v) for v in result.report.violations],
            "unit_mismatches": [mismatch_to_dict(m) for m in result.report.unit_mismatches],
            "dropped_rows": list(result.dropped_rows),
        }
        print(json.dumps(out, indent=2, ensure_ascii=False))
        return

    _print_result(result, now=now)


if __name__ == "__main__":
    main()
