"""MCP server implementation for Warden."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from warden import __version__
from warden.core.analyzer import Analyzer
from warden.core.config import load_config
from warden.core.exceptions import WardenError
from warden.core.reporting import ReportFormat, render, sort_findings
from warden.rules import DEFINITIONS

logger = logging.getLogger(__name__)

server = Server("warden")


@server.list_tools()  # type: ignore[no-untyped-call, untyped-decorator]
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="warden_check",
            description=(
                "Analyze a file or directory for generic exception handling, "
                "missing resource disposal, and unsafe shared map access. "
                "Returns findings with rule ids, severities, and locations."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "File or directory to analyze",
                    },
                    "format": {
                        "type": "string",
                        "enum": ["json", "text", "sarif"],
                        "description": "Report format (default: json)",
                        "default": "json",
                    },
                },
                "required": ["path"],
            },
        ),
        Tool(
            name="warden_rules",
            description="List the rule set with effective severities and patterns.",
            inputSchema={
                "type": "object",
                "properties": {},
            },
        ),
    ]


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    try:
        if name == "warden_check":
            result = _handle_check(arguments["path"], arguments.get("format", "json"))
        elif name == "warden_rules":
            result = _handle_rules()
        else:
            result = {"error": f"Unknown tool: {name}"}

        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    except WardenError as e:
        return [TextContent(type="text", text=json.dumps({"error": str(e)}))]
    except (KeyError, OSError) as e:
        logger.exception("Tool %s failed", name)
        return [TextContent(type="text", text=json.dumps({"error": str(e)}))]


def _handle_check(path: str, report_format: str = "json") -> dict[str, Any]:
    """Handle warden_check tool."""
    try:
        fmt = ReportFormat(report_format)
    except ValueError:
        return {"error": f"Unknown report format '{report_format}'"}

    target = Path(path).resolve()
    if not target.exists():
        return {"error": f"No such file or directory: {path}"}

    project_root = target if target.is_dir() else target.parent
    analyzer = Analyzer(load_config(project_root=project_root))
    report = analyzer.analyze_paths([target])
    stats = report.stats

    result: dict[str, Any] = {
        "stats": {
            "files": stats.files,
            "findings": stats.findings,
            "suppressed": stats.suppressed,
            "skipped": stats.skipped,
        },
        "errors": stats.errors,
        "diagnostics": stats.diagnostics,
    }
    if fmt == ReportFormat.JSON:
        result["findings"] = [f.to_dict() for f in sort_findings(report.findings)]
    else:
        descriptions = {rule.id: rule.description for rule in analyzer.rules}
        result["report"] = render(report.findings, fmt, __version__, descriptions)
    return result


def _handle_rules() -> dict[str, Any]:
    """Handle warden_rules tool."""
    config = load_config(project_root=Path.cwd())
    return {
        "rules": [
            {
                "id": rule_id,
                "description": DEFINITIONS[rule_id].description,
                "severity": settings.severity.value,
                "enabled": settings.enabled,
                "patterns": {n: sorted(v) for n, v in settings.patterns.items()},
            }
            for rule_id, settings in config.rules.items()
        ]
    }


async def serve() -> None:
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
