"""CLI entry point for Warden."""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table
from rich.tree import Tree

from warden import __version__
from warden.core.analyzer import Analyzer
from warden.core.config import EngineConfig, load_config
from warden.core.exceptions import ConfigurationError, MalformedInputError, RenderError
from warden.core.log import setup_logging
from warden.core.models import Severity
from warden.core.program import Declaration, Node, Variable
from warden.core.reporting import ReportFormat, exceeds_threshold, render
from warden.rules import DEFINITIONS

app = typer.Typer(
    name="warden",
    help="Rule-based static analysis over a language-neutral program model.",
    no_args_is_help=True,
)
console = Console(stderr=True)

logger = logging.getLogger(__name__)

EXIT_FINDINGS = 1
EXIT_CONFIG_ERROR = 2
EXIT_RENDER_ERROR = 3

_MAX_LABEL_DISPLAY = 60

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", envvar="WARDEN_CONFIG", help="Configuration file"),
]


def _load(config_path: Path | None, project_root: Path) -> EngineConfig:
    try:
        return load_config(config_path, project_root)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from None


def _project_root(paths: list[Path]) -> Path:
    first = paths[0].resolve()
    return first if first.is_dir() else first.parent


@app.command()
def check(
    paths: Annotated[
        list[Path] | None, typer.Argument(help="Files or directories to analyze")
    ] = None,
    config_path: ConfigOption = None,
    report_format: Annotated[
        ReportFormat, typer.Option("--format", "-f", help="Output format")
    ] = ReportFormat.TEXT,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write the report to a file")
    ] = None,
    fail_on: Annotated[
        str | None,
        typer.Option("--fail-on", help="Lowest severity that fails the run"),
    ] = None,
    exclude: Annotated[
        list[str] | None, typer.Option("--exclude", "-e", help="Patterns to exclude")
    ] = None,
    jobs: Annotated[int | None, typer.Option("--jobs", "-j", help="Worker threads")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Analyze files and report rule violations."""
    setup_logging("DEBUG" if verbose else "WARNING")
    paths = [path.resolve() for path in (paths or [Path(".")])]

    config = _load(config_path, _project_root(paths))
    try:
        threshold = Severity.parse(fail_on) if fail_on else config.fail_on
        if jobs is not None:
            if jobs < 1:
                raise ConfigurationError("--jobs must be at least 1")
            config.jobs = jobs
        analyzer = Analyzer(config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from None

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Analyzing", total=None)

        def on_progress(file: Path, current: int, total: int) -> None:
            progress.update(task, total=total, completed=current)
            progress.update(task, description=f"[cyan]{file.name}[/]")

        report = analyzer.analyze_paths(
            paths, exclude_patterns=exclude or [], on_progress=on_progress
        )

    descriptions = {rule.id: rule.description for rule in analyzer.rules}
    try:
        rendered = render(report.findings, report_format, __version__, descriptions)
    except RenderError as e:
        console.print(f"[red]Render error:[/red] {e}")
        raise typer.Exit(EXIT_RENDER_ERROR) from None

    if output:
        try:
            output.write_text(rendered, encoding="utf-8")
        except OSError as e:
            console.print(f"[red]Cannot write report:[/red] {escape(str(e))}")
            raise typer.Exit(EXIT_RENDER_ERROR) from None
    else:
        typer.echo(rendered, nl=False)

    stats = report.stats
    console.print(
        f"[green]Done![/green] {stats.files} file(s), {stats.findings} finding(s)"
    )
    if stats.suppressed:
        console.print(f"  [dim]Suppressed: {stats.suppressed}[/]")
    if stats.skipped:
        console.print(f"  [dim]Skipped: {stats.skipped}[/]")
    if stats.diagnostics:
        console.print(f"  [yellow]Diagnostics: {len(stats.diagnostics)}[/yellow]")
        for diagnostic in stats.diagnostics:
            console.print(f"    {escape(diagnostic)}")
    if stats.errors:
        console.print(f"  [red]Errors: {len(stats.errors)}[/red]")
        for error in stats.errors:
            console.print(f"    {escape(error)}")

    if exceeds_threshold(report.findings, threshold):
        raise typer.Exit(EXIT_FINDINGS)


@app.command()
def rules(
    config_path: ConfigOption = None,
    output_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """List the rule set with its effective settings."""
    config = _load(config_path, Path(".").resolve())

    if output_json:
        result = [
            {
                "id": rule_id,
                "description": DEFINITIONS[rule_id].description,
                "severity": settings.severity.value,
                "enabled": settings.enabled,
                "patterns": {name: sorted(values) for name, values in settings.patterns.items()},
            }
            for rule_id, settings in config.rules.items()
        ]
        print(json.dumps(result, indent=2))
        return

    table = Table(title="Rules")
    table.add_column("Rule", style="cyan")
    table.add_column("Severity")
    table.add_column("Enabled")
    table.add_column("Description")
    for rule_id, settings in config.rules.items():
        table.add_row(
            rule_id,
            settings.severity.value,
            "yes" if settings.enabled else "[dim]no[/]",
            DEFINITIONS[rule_id].description,
        )
    Console().print(table)


def _node_label(node: Node) -> str:
    """Format a node as a one-line tree label."""
    kind = type(node).__name__
    details = []
    if isinstance(node, Declaration):
        details.append(f"{node.kind.value} {node.name}")
        if node.modifiers:
            details.append(f"[{', '.join(sorted(node.modifiers))}]")
    else:
        for attr in ("name", "type_name", "operator", "loop_kind"):
            value = getattr(node, attr, None)
            if isinstance(value, str):
                details.append(value)
        variable = getattr(node, "variable", None)
        if isinstance(variable, Variable):
            type_suffix = f": {variable.type_name}" if variable.type_name else ""
            details.append(f"<{variable.kind.value} {variable.name}{type_suffix}>")

    label = " ".join(details)
    if len(label) > _MAX_LABEL_DISPLAY:
        label = label[: _MAX_LABEL_DISPLAY - 3] + "..."
    return f"[bold]{kind}[/] {escape(label)} [dim]{node.line}:{node.column}[/]"


@app.command()
def dump(
    file: Annotated[Path, typer.Argument(help="File to model")],
    config_path: ConfigOption = None,
) -> None:
    """Print the program model tree built for a file."""
    file = file.resolve()
    config = _load(config_path, file.parent)
    analyzer = Analyzer(config)

    parser = analyzer.parser_for(file)
    if parser is None:
        console.print(f"No front end supports '[cyan]{file.name}[/cyan]'")
        raise typer.Exit(1)
    try:
        unit = parser.parse(file)
    except MalformedInputError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    root = Tree(f"[bold cyan]{unit.path.name}[/] ({unit.language})")
    stack: list[tuple[Node, Tree]] = [(child, root) for child in reversed(unit.children())]
    while stack:
        node, branch = stack.pop()
        subtree = branch.add(_node_label(node))
        stack.extend((child, subtree) for child in reversed(node.children()))
    Console().print(root)


if __name__ == "__main__":
    app()
