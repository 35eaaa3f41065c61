# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Human and machine renderings of a ProbeReport."""

from __future__ import annotations

import json
from pathlib import Path

from .models.check import CheckResult
from .models.report import ProbeReport
from .utils import format_duration

_STATUS_ICONS = {"PASS": "✅", "FAIL": "❌", "ERROR": "⚠️"}


def _code(result: CheckResult) -> str:
    return str(result.status_code) if result.status_code is not None else "-"


def render_text(report: ProbeReport) -> str:
    lines = [f"[accessprobe] Target: {report.target}"]
    width = max((len(result.name) for result in report.results), default=4)
    for result in report.results:
        line = (
            f"  {result.status.value:<5} {result.name:<{width}}  {_code(result):>3}  "
            f"{format_duration(result.elapsed):>7}  attempts={result.attempts}"
        )
        if result.reason:
            line += f"  {result.reason}"
        lines.append(line)
    counts = report.counts()
    summary = f"Overall: {report.status.value} ({counts['PASS']}/{len(report.results)} passed)"
    if report.cancelled:
        summary += " [cancelled]"
    lines.append(summary)
    return "\n".join(lines)


def render_json(report: ProbeReport) -> str:
    return json.dumps(report.to_dict(), indent=2, sort_keys=True)


def _md_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def render_markdown(report: ProbeReport) -> str:
    icon = _STATUS_ICONS.get(report.status.value, "")
    lines = [
        f"### {icon} accessprobe: {report.status.value}",
        "",
        f"Target: `{report.target}`" + (" (run cancelled)" if report.cancelled else ""),
        "",
        "| Check | Status | HTTP | Time | Attempts | Reason |",
        "|---|---|---|---|---|---|",
    ]
    for result in report.results:
        lines.append(
            f"| {_md_cell(result.name)} | {result.status.value} | {_code(result)} | "
            f"{format_duration(result.elapsed)} | {result.attempts} | {_md_cell(result.reason)} |"
        )
    return "\n".join(lines) + "\n"


def write_json_report(report: ProbeReport, path: str | Path) -> None:
    Path(path).write_text(render_json(report) + "\n", encoding="utf-8")


def append_step_summary(report: ProbeReport, path: str | Path) -> None:
    """Append the Markdown table to a CI step-summary file (e.g. ``$GITHUB_STEP_SUMMARY``)."""
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(render_markdown(report))


__all__ = [
    "append_step_summary",
    "render_json",
    "render_markdown",
    "render_text",
    "write_json_report",
]
