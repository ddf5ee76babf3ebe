"""Loading exported log rows from disk.

The pipeline itself never touches files; this is the thin adapter used by
the CLI and the MCP tools.
"""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path

import aiofiles

SUPPORTED_SUFFIXES = (".csv", ".json")


def _rows_from_csv(text: str) -> list[dict[str, str]]:
    reader = csv.DictReader(io.StringIO(text))
    return [
        {str(k): ("" if v is None else str(v)) for k, v in row.items() if k is not None}
        for row in reader
    ]


def _rows_from_json(text: str, path: Path) -> list[dict[str, str]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON: {exc}") from exc
    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        raise ValueError(f"{path}: expected a JSON array of objects")
    return [{str(k): ("" if v is None else str(v)) for k, v in r.items()} for r in data]


async def load_rows(
    path: str | Path,
    *,
    encoding: str = "utf-8-sig",
    decode_errors: str = "replace",
) -> list[dict[str, str]]:
    """Read a CSV (header row) or JSON (array of objects) export."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Log file not found: {p}")
    suffix = p.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Unsupported log file type '{suffix}'. Allowed: {', '.join(SUPPORTED_SUFFIXES)}")

    async with aiofiles.open(p, encoding=encoding, errors=decode_errors, newline="") as f:
        text = await f.read()

    if suffix == ".csv":
        return _rows_from_csv(text)
    return _rows_from_json(text, p)
