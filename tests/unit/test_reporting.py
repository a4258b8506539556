"""Unit tests for report rendering."""

import json
from pathlib import Path

import pytest

from warden.core.exceptions import RenderError
from warden.core.models import Finding, Severity, Span
from warden.core.reporting import (
    SARIF_VERSION,
    ReportFormat,
    exceeds_threshold,
    render,
    sort_findings,
)


def make_finding(
    rule_id: str = "generic-exception-handling",
    severity: Severity = Severity.WARNING,
    path: str = "src/Program.cs",
    line: int = 20,
    column: int = 9,
    message: str = "Empty catch clause for Exception silently swallows the exception",
) -> Finding:
    """Create a finding on one line."""
    return Finding(
        rule_id=rule_id,
        severity=severity,
        path=Path(path),
        span=Span(line, column, line, column + 5),
        message=message,
    )


@pytest.fixture
def findings() -> list[Finding]:
    return [
        make_finding("unsafe-shared-map-access", Severity.ERROR, "b.cs", 26, 17, "Map access"),
        make_finding(line=20),
        make_finding("missing-resource-disposal", Severity.INFORMATIONAL, "a.cs", 3, 1, "Leak"),
    ]


class TestText:
    """Tests for the text format."""

    def test_line_format(self) -> None:
        """Test the path:line:col: [rule] message layout."""
        text = render([make_finding()], ReportFormat.TEXT)

        assert text == (
            "src/Program.cs:20:9: [generic-exception-handling] "
            "Empty catch clause for Exception silently swallows the exception\n"
        )

    def test_sorted_by_location(self, findings: list[Finding]) -> None:
        """Test that lines come out in (path, line, column) order."""
        lines = render(findings, "text").splitlines()

        assert [line.split(":")[0] for line in lines] == ["a.cs", "b.cs", "src/Program.cs"]

    def test_empty(self) -> None:
        """Test that no findings render as empty text."""
        assert render([], ReportFormat.TEXT) == ""


class TestJson:
    """Tests for the JSON format."""

    def test_record_keys(self) -> None:
        """Test the fields of each JSON record."""
        records = json.loads(render([make_finding()], ReportFormat.JSON))

        assert records == [
            {
                "rule_id": "generic-exception-handling",
                "severity": "warning",
                "message": "Empty catch clause for Exception silently swallows the exception",
                "file": "src/Program.cs",
                "start_line": 20,
                "start_column": 9,
                "end_line": 20,
                "end_column": 14,
            }
        ]

    def test_deterministic(self, findings: list[Finding]) -> None:
        """Test that input order does not change the output."""
        assert render(findings, "json") == render(list(reversed(findings)), "json")

    def test_empty_list(self) -> None:
        """Test that no findings render as an empty JSON array."""
        assert json.loads(render([], ReportFormat.JSON)) == []


class TestSarif:
    """Tests for the SARIF format."""

    def test_log_structure(self, findings: list[Finding]) -> None:
        """Test version, tool metadata and results."""
        descriptions = {"unsafe-shared-map-access": "Shared map accessed without a lock"}
        log = json.loads(render(findings, ReportFormat.SARIF, "1.2.3", descriptions))

        assert log["version"] == SARIF_VERSION
        run = log["runs"][0]
        driver = run["tool"]["driver"]
        assert driver["name"] == "warden"
        assert driver["version"] == "1.2.3"
        assert [r["id"] for r in driver["rules"]] == [
            "missing-resource-disposal",
            "unsafe-shared-map-access",
            "generic-exception-handling",
        ]
        assert driver["rules"][1]["shortDescription"]["text"] == (
            "Shared map accessed without a lock"
        )
        assert len(run["results"]) == 3

    def test_levels(self, findings: list[Finding]) -> None:
        """Test the mapping of severities to SARIF levels."""
        log = json.loads(render(findings, ReportFormat.SARIF))
        levels = {r["ruleId"]: r["level"] for r in log["runs"][0]["results"]}

        assert levels == {
            "missing-resource-disposal": "note",
            "unsafe-shared-map-access": "error",
            "generic-exception-handling": "warning",
        }

    def test_region(self) -> None:
        """Test that a result carries its file and region."""
        log = json.loads(render([make_finding()], ReportFormat.SARIF))
        result = log["runs"][0]["results"][0]
        location = result["locations"][0]["physicalLocation"]

        assert result["ruleIndex"] == 0
        assert location["artifactLocation"]["uri"] == "src/Program.cs"
        assert location["region"]["startLine"] == 20
        assert location["region"]["endColumn"] == 14


class TestRenderErrors:
    """Tests for render failures."""

    def test_unknown_format(self) -> None:
        """Test that an unknown format raises RenderError."""
        with pytest.raises(RenderError) as exc_info:
            render([make_finding()], "xml")

        assert "xml" in str(exc_info.value)


class TestThreshold:
    """Tests for the exit-status threshold."""

    def test_at_or_above(self, findings: list[Finding]) -> None:
        """Test findings at and above the threshold."""
        assert exceeds_threshold(findings, Severity.ERROR)
        assert exceeds_threshold([make_finding()], Severity.WARNING)

    def test_below(self) -> None:
        """Test findings below the threshold."""
        finding = make_finding(severity=Severity.INFORMATIONAL)

        assert not exceeds_threshold([finding], Severity.WARNING)
        assert not exceeds_threshold([], Severity.INFORMATIONAL)


def test_sort_findings_stable() -> None:
    """Test that two findings on one spot are ordered by rule id."""
    first = make_finding("a-rule")
    second = make_finding("b-rule")

    assert sort_findings([second, first]) == [first, second]
