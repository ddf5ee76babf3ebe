"""MCP prompt registry.

Prompts are predefined conversation/workflow templates that the client can invoke explicitly.
"""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP


def _window_lines(
    *,
    date: str | None,
    week: str | None,
    month: str | None,
    since: str | None,
    until: str | None,
) -> list[str]:
    """Return the single time window a prompt should pass to build_timeline."""
    if date is not None:
        return [f"- date: {date}"]
    if week is not None:
        return [f"- week: {week}"]
    if month is not None:
        return [f"- month: {month}"]
    lines: list[str] = []
    if since is not None:
        lines.append(f"- since: {since}")
    if until is not None:
        lines.append(f"- until: {until}")
    return lines


def register_prompts(mcp: FastMCP) -> None:
    """Register prompt templates on the MCP server."""

    @mcp.prompt()
    def review_medication_log(
        log_path: str,
        user: str | None = None,
        now: str | None = None,
        since: str | None = None,
        until: str | None = None,
        date: str | None = None,
        week: str | None = None,
        month: str | None = None,
    ) -> list[dict[str, Any]]:
        """Build a prompt that summarizes active medications and limit warnings."""
        call_lines = [f"- log_path: {log_path}"]
        if user is not None:
            call_lines.append(f"- user: {user}")
        if now is not None:
            call_lines.append(f"- now: {now}")
        call_lines.extend(_window_lines(date=date, week=week, month=month, since=since, until=until))
        call_block = "\n".join(call_lines)
        return [
            {
                "role": "system",
                "content": (
                    "You summarize a personal medication log. Report only what the tool "
                    "output shows. Do not give medical advice or suggest dose changes; "
                    "when a limit is exceeded, state the numbers and recommend consulting "
                    "a clinician."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Review the medication log. Follow this workflow:\n"
                    "- Call build_timeline with the parameters below.\n"
                    "- Call check_limits with the same log_path, user and now.\n"
                    "- Unconfigured entries (is_configured=false) have no known amount; "
                    "list them separately instead of guessing.\n"
                    "- If dropped_rows is not empty, mention how many rows were unreadable.\n\n"
                    "Call build_timeline with:\n"
                    f"{call_block}\n\n"
                    "Return this structure:\n"
                    "1) Currently active (medication, amount, active until)\n"
                    "2) Limit violations (scope, subject, cumulative vs max, window)\n"
                    "3) Unit mismatches and unconfigured entries\n"
                ),
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "The configured medications are listed here:"},
                    {"type": "resource", "uri": "app://medlog-timeline/config/medications"},
                ],
            },
        ]
