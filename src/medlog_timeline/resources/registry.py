"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from medlog_timeline.core.config import CONFIG_PATH_ENV, config_json_schema, load_config
from medlog_timeline.core.rules import RuleSet

SAMPLE_LOG_CSV = (
    "Timestamp (Calculated),💊💊 Medicine Taken:,User\n"
    "2025-08-17T08:00:00Z,Ibuprofen 400mg,alex\n"
    '2025-08-17T10:00:00Z,"Percocet 5/325 (1 tablet), Famotidine 20mg",alex\n'
    "2025-08-17T11:30:00Z,Migraine medication,alex\n"
)


def medications_summary(rules: RuleSet) -> dict[str, Any]:
    """Describe the configured medications as plain data."""
    return {
        "medications": [
            {
                "id": r.id,
                "name": r.name,
                "display_name": r.display_name,
                "aliases": list(r.aliases),
                "unit": r.amount_parser.unit,
                "active_duration_hours": r.active_duration_hours,
                "constraints": [
                    {"window_hours": c.window_hours, "max_amount": c.max_amount, "unit": c.unit}
                    for c in r.constraints
                ],
                "ingredients": [
                    {"name": i.name, "amount_per_unit": i.amount_per_unit, "unit": i.unit}
                    for i in r.ingredients
                ],
                "theme": r.theme,
            }
            for r in rules.rules
        ],
        "global_limits": [
            {
                "ingredient_name": g.ingredient_name,
                "max_amount": g.max_amount,
                "unit": g.unit,
                "window_hours": g.window_hours,
                "medications": sorted(rules.medications_with(g.ingredient_name)),
            }
            for g in rules.global_limits
        ],
        "default_width_hours": rules.default_width_hours,
        "default_tz": str(rules.default_tz),
    }


def register_resources(mcp: FastMCP) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://medlog-timeline/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        source = os.getenv(CONFIG_PATH_ENV) or "bundled default"
        return (
            "Resources:\n"
            "- app://medlog-timeline/help\n"
            "- app://medlog-timeline/config/medications\n"
            "- app://medlog-timeline/schemas/config\n"
            "- app://medlog-timeline/examples/sample-log\n"
            f"\nConfig source: {source} (set {CONFIG_PATH_ENV} to change)\n"
            f"Working directory: {Path.cwd()}\n"
        )

    @mcp.resource("app://medlog-timeline/examples/sample-log")
    def sample_log() -> str:
        """Return a tiny sample CSV export for demos and tests."""
        return SAMPLE_LOG_CSV

    @mcp.resource("app://medlog-timeline/config/medications")
    def medications() -> dict[str, Any]:
        """Return the active medication rules and global limits."""
        return medications_summary(load_config())

    @mcp.resource("app://medlog-timeline/schemas/config")
    def config_schema() -> dict[str, Any]:
        """Return the JSON schema for medication config files."""
        return config_json_schema()
