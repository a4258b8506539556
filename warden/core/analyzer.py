"""Analyzer that coordinates front ends and the rule engine."""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from warden.core.config import EngineConfig
from warden.core.engine import Rule, RuleEngine, RunResult
from warden.core.exceptions import MalformedInputError
from warden.core.models import AnalysisReport, AnalysisStats
from warden.core.program import SourceUnit
from warden.languages import LanguageParser, default_parsers
from warden.rules import build_rules

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Path, int, int], None]

DEFAULT_EXCLUDES = [
    "__pycache__",
    "*.egg-info",
    "node_modules",
    "build",
    "dist",
    "venv",
    ".venv",
    "bin",
    "obj",
]


class Analyzer:
    """Coordinates file parsing and rule evaluation.

    Rules are built from the configuration up front, so an invalid
    configuration fails before any file is read.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        parsers: list[LanguageParser] | None = None,
    ) -> None:
        """Initialize with a configuration and the front ends to use."""
        self._config = config or EngineConfig()
        if parsers is None:
            parsers = default_parsers(self._config.lock_patterns)
        self._parsers = parsers
        self._rules = build_rules(self._config.rules)
        self._engine = RuleEngine(self._config.suppression_phrases)

    @property
    def rules(self) -> list[Rule]:
        return list(self._rules)

    def parser_for(self, file: Path) -> LanguageParser | None:
        """The first front end that supports a file."""
        for parser in self._parsers:
            if parser.supports(file):
                return parser
        return None

    def analyze_unit(self, unit: SourceUnit, jobs: int = 1) -> RunResult:
        """Evaluate every enabled rule against an already built unit."""
        return self._engine.run(unit, self._rules, jobs=jobs)

    def analyze_file(self, file: Path) -> AnalysisReport:
        """Analyze a single file.

        Returns:
            AnalysisReport for this file; a malformed file is reported in
            ``stats.errors`` rather than raised
        """
        return self.analyze_paths([file])

    def analyze_directory(
        self,
        directory: Path,
        exclude_patterns: list[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> AnalysisReport:
        """Analyze all supported files below a directory."""
        return self.analyze_paths([directory], exclude_patterns, on_progress)

    def analyze_paths(
        self,
        paths: Iterable[Path],
        exclude_patterns: list[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> AnalysisReport:
        """Analyze files and directories.

        Files are visited in sorted order and units are independent, so with
        ``jobs > 1`` they are analyzed on a thread pool and the results are
        still collected in file order.

        Args:
            paths: Files and directories to analyze
            exclude_patterns: Additional glob patterns to exclude (e.g., "tests/*")
            on_progress: Optional callback for progress updates (file, current, total)

        Returns:
            AnalysisReport with findings in file order and run statistics
        """
        all_excludes = DEFAULT_EXCLUDES + self._config.exclude + (exclude_patterns or [])
        report = AnalysisReport()
        stats = report.stats

        files = self._discover(paths, all_excludes, stats)
        total_files = len(files)
        jobs = max(1, self._config.jobs)

        if jobs > 1 and total_files > 1:
            with ThreadPoolExecutor(max_workers=jobs) as pool:
                outcomes = pool.map(self._analyze_one, files)
                self._collect(files, outcomes, report, on_progress)
        else:
            outcomes = (self._analyze_one(file, jobs) for file in files)
            self._collect(files, outcomes, report, on_progress)

        stats.findings = len(report.findings)
        logger.debug("Analysis finished: %r", stats)
        return report

    def _analyze_one(self, file: Path, jobs: int = 1) -> RunResult | MalformedInputError:
        parser = self.parser_for(file)
        if parser is None:
            return MalformedInputError(f"{file}: no front end supports this file")
        try:
            unit = parser.parse(file)
        except MalformedInputError as e:
            return e
        return self.analyze_unit(unit, jobs=jobs)

    def _collect(
        self,
        files: list[Path],
        outcomes: Iterable[RunResult | MalformedInputError],
        report: AnalysisReport,
        on_progress: ProgressCallback | None,
    ) -> None:
        stats = report.stats
        total_files = len(files)

        for i, (file, outcome) in enumerate(zip(files, outcomes)):
            if isinstance(outcome, MalformedInputError):
                logger.warning("Skipping %s: %s", file, outcome)
                stats.errors.append(str(outcome))
            else:
                stats.files += 1
                stats.suppressed += outcome.suppressed
                stats.diagnostics.extend(outcome.diagnostics)
                report.findings.extend(outcome.findings)

            if on_progress:
                on_progress(file, i + 1, total_files)

    def _discover(
        self, paths: Iterable[Path], excludes: list[str], stats: AnalysisStats
    ) -> list[Path]:
        files: list[Path] = []
        for path in paths:
            if path.is_file():
                files.append(path)
                continue
            if not path.is_dir():
                message = f"{path}: no such file or directory"
                logger.warning(message)
                stats.errors.append(message)
                continue

            for file in sorted(path.rglob("*")):
                if not file.is_file() or self.parser_for(file) is None:
                    continue
                relative_path = file.relative_to(path).as_posix()
                if self._should_exclude(relative_path, excludes):
                    stats.skipped += 1
                    continue
                files.append(file)
        return files

    def _should_exclude(self, path: str, patterns: list[str]) -> bool:
        """Check if a path matches any exclusion pattern.

        Excludes:
        - Any path component starting with '.' (hidden files/directories)
        - Any path component, or the whole relative path, matching a pattern
        """
        parts = Path(path).parts
        for part in parts:
            if part.startswith("."):
                return True
            for pattern in patterns:
                if fnmatch.fnmatch(part, pattern):
                    return True
        return any(fnmatch.fnmatch(path, pattern) for pattern in patterns)
