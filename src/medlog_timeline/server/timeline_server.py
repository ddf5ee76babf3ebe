"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: build a dose timeline, check dosage limits, preview parsing
- Resources: help text, configured medications, config schema, sample log
- Prompts: review a medication log with the tools above

Run locally (stdio):
    python -m medlog_timeline.server.timeline_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP

from medlog_timeline.prompts.registry import register_prompts
from medlog_timeline.resources.registry import register_resources
from medlog_timeline.tools.timeline import build_timeline_impl, check_limits_impl, parse_mentions_impl

LOGGER = logging.getLogger(__name__)

LOG_LEVEL_ENV = "MEDLOG_LOG_LEVEL"


def configure_logging() -> None:
    """Configure a reasonable default logging setup.

    The MCP client typically captures stderr; keeping logs concise makes them easier to consume.
    """
    level_name = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


mcp = FastMCP("medlog-timeline", json_response=True)

register_resources(mcp)
register_prompts(mcp)


@mcp.tool()
async def build_timeline(
    log_path: str,
    config_path: str | None = None,
    user: str | None = None,
    now: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    week: str | None = None,
    month: str | None = None,
    tz: str | None = None,
    include_lanes: bool = False,
    limit: int | None = None,
) -> dict[str, Any]:
    """Return per-medication active-window rows for a medication log export.

    Parameters
    ----------
    log_path:
        CSV (header row) or JSON (array of objects) export of the log.
    config_path:
        Medication rules JSON. Defaults to MEDLOG_CONFIG_PATH or the bundled set.
    user:
        Profile to use when the config defines several users.
    now:
        ISO-8601 reference instant (default: current time).
    since/until/date/week/month:
        Timeline range. Selectors win over since/until; default is 72h before
        to 12h after `now`.
    tz:
        IANA zone for timestamps without an offset (default MEDLOG_DEFAULT_TZ, else
        the profile's default_tz, America/Los_Angeles unless configured).
    include_lanes:
        Also return non-overlapping sub-rows per medication.

    Returns
    -------
    dict:
        {"count", "rows", "violations", "unit_mismatches", "dropped_rows", ...}
    """
    return await build_timeline_impl(
        log_path=log_path,
        config_path=config_path,
        user=user,
        now=now,
        since=since,
        until=until,
        date=date,
        week=week,
        month=month,
        tz=tz,
        include_lanes=include_lanes,
        limit=limit,
    )


@mcp.tool()
async def check_limits(
    log_path: str,
    config_path: str | None = None,
    user: str | None = None,
    now: str | None = None,
    tz: str | None = None,
) -> dict[str, Any]:
    """Report hourly constraint and shared-ingredient limit violations."""
    return await check_limits_impl(
        log_path=log_path,
        config_path=config_path,
        user=user,
        now=now,
        tz=tz,
    )


@mcp.tool()
def parse_mentions(
    text: str,
    timestamp: str | None = None,
    config_path: str | None = None,
    user: str | None = None,
) -> dict[str, Any]:
    """Show how one 'medicine taken' entry is split and parsed into doses."""
    return parse_mentions_impl(text=text, timestamp=timestamp, config_path=config_path, user=user)


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
