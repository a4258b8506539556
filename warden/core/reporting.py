"""Render findings as text lines, JSON records, or a SARIF 2.1.0 log."""

from __future__ import annotations

import json
from collections.abc import Iterable
from enum import Enum
from typing import Any

from warden.core.exceptions import RenderError
from warden.core.models import Finding, Severity

SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = (
    "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/"
    "Schemata/sarif-schema-2.1.0.json"
)


class ReportFormat(Enum):
    """Output formats."""

    TEXT = "text"
    JSON = "json"
    SARIF = "sarif"


def sort_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Findings in stable (path, line, column, rule) order."""
    return sorted(findings, key=lambda f: (f.sort_key(), f.message))


def render(
    findings: Iterable[Finding],
    report_format: ReportFormat | str = ReportFormat.TEXT,
    tool_version: str = "0.0.0",
    rule_descriptions: dict[str, str] | None = None,
) -> str:
    """Render findings in the requested format.

    The output depends only on the findings, so identical input renders to
    identical text.

    Raises:
        RenderError: For an unknown format or findings that cannot be serialized.
    """
    try:
        report_format = ReportFormat(report_format)
    except ValueError:
        names = ", ".join(f.value for f in ReportFormat)
        raise RenderError(
            f"Unknown report format '{report_format}' (expected one of: {names})"
        ) from None

    ordered = sort_findings(findings)
    try:
        if report_format == ReportFormat.TEXT:
            return render_text(ordered)
        if report_format == ReportFormat.JSON:
            return render_json(ordered)
        return render_sarif(ordered, tool_version, rule_descriptions or {})
    except (TypeError, ValueError, AttributeError) as e:
        raise RenderError(f"Cannot render findings as {report_format.value}: {e}") from e


def render_text(findings: list[Finding]) -> str:
    return "".join(f"{finding}\n" for finding in findings)


def render_json(findings: list[Finding]) -> str:
    records = [finding.to_dict() for finding in findings]
    return json.dumps(records, indent=2, sort_keys=True) + "\n"


def render_sarif(
    findings: list[Finding], tool_version: str, rule_descriptions: dict[str, str]
) -> str:
    rules: dict[str, dict[str, Any]] = {}
    results: list[dict[str, Any]] = []

    for finding in findings:
        if finding.rule_id not in rules:
            rules[finding.rule_id] = {
                "id": finding.rule_id,
                "shortDescription": {
                    "text": rule_descriptions.get(finding.rule_id, finding.rule_id)
                },
                "defaultConfiguration": {"level": finding.severity.sarif_level},
            }
        span = finding.span
        results.append(
            {
                "ruleId": finding.rule_id,
                "ruleIndex": list(rules).index(finding.rule_id),
                "level": finding.severity.sarif_level,
                "message": {"text": finding.message},
                "locations": [
                    {
                        "physicalLocation": {
                            "artifactLocation": {"uri": finding.path.as_posix()},
                            "region": {
                                "startLine": span.start_line,
                                "startColumn": span.start_column,
                                "endLine": span.end_line,
                                "endColumn": span.end_column,
                            },
                        }
                    }
                ],
            }
        )

    sarif = {
        "$schema": SARIF_SCHEMA,
        "version": SARIF_VERSION,
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "warden",
                        "version": tool_version,
                        "rules": list(rules.values()),
                    }
                },
                "results": results,
            }
        ],
    }
    return json.dumps(sarif, indent=2) + "\n"


def exceeds_threshold(findings: Iterable[Finding], threshold: Severity) -> bool:
    """True if any finding is at or above ``threshold``."""
    return any(f.severity.rank >= threshold.rank for f in findings)
