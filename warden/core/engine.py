"""Rule engine: evaluate selector/predicate rules against a program model."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from warden.core.exceptions import ConfigurationError, UnresolvedReferenceError
from warden.core.models import Finding, Severity, Span
from warden.core.predicates import is_suppressed_by_comment
from warden.core.program.nodes import Node, SourceUnit

logger = logging.getLogger(__name__)

Selector = Callable[[SourceUnit], Iterable[Node]]
Predicate = Callable[[Node, SourceUnit], bool]
MessageBuilder = Callable[[Node], str]

DEFAULT_SUPPRESSION_PHRASES = ("warden: ignore", "warden-ignore")


@dataclass(frozen=True)
class RuleSettings:
    """Effective configuration of one rule."""

    severity: Severity
    enabled: bool = True
    patterns: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def pattern(self, name: str) -> frozenset[str]:
        """Get a named pattern list."""
        try:
            return self.patterns[name]
        except KeyError:
            raise ConfigurationError(f"Missing pattern list '{name}'") from None


@dataclass(frozen=True)
class RuleDefinition:
    """Static description of a rule and its defaults."""

    id: str
    description: str
    default_severity: Severity
    primary_patterns: str
    default_patterns: Mapping[str, frozenset[str]]

    def default_settings(self) -> RuleSettings:
        return RuleSettings(
            severity=self.default_severity,
            enabled=True,
            patterns=dict(self.default_patterns),
        )


@dataclass(frozen=True)
class Rule:
    """A named selector/predicate pair.

    The selector yields candidate nodes in document order; the predicate
    decides whether a candidate is a violation. Suppression predicates drop
    candidates already known to be safe.
    """

    id: str
    description: str
    severity: Severity
    selector: Selector
    predicate: Predicate
    message: MessageBuilder
    suppressions: tuple[Predicate, ...] = ()


@dataclass
class RunResult:
    """Findings of one or more rules over a single unit."""

    findings: list[Finding] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    suppressed: int = 0

    @classmethod
    def merge(cls, results: Iterable[RunResult]) -> RunResult:
        merged = cls()
        for result in results:
            merged.findings.extend(result.findings)
            merged.diagnostics.extend(result.diagnostics)
            merged.suppressed += result.suppressed
        return merged


class RuleEngine:
    """Evaluates rules against read-only source units.

    Rules never share state, so they may run concurrently on the same unit.
    """

    def __init__(self, suppression_phrases: Iterable[str] = DEFAULT_SUPPRESSION_PHRASES) -> None:
        self._phrases = tuple(suppression_phrases)

    def evaluate(self, rule: Rule, unit: SourceUnit) -> list[Finding]:
        """Evaluate one rule and return its findings in discovery order."""
        return self._evaluate(rule, unit).findings

    def run(self, unit: SourceUnit, rules: Iterable[Rule], jobs: int = 1) -> RunResult:
        """Evaluate several rules; results are merged in rule order."""
        rules = list(rules)
        if jobs > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=min(jobs, len(rules))) as pool:
                partials = list(pool.map(lambda rule: self._evaluate(rule, unit), rules))
        else:
            partials = [self._evaluate(rule, unit) for rule in rules]
        return RunResult.merge(partials)

    def _evaluate(self, rule: Rule, unit: SourceUnit) -> RunResult:
        result = RunResult()
        logger.debug("Evaluating %s on %s", rule.id, unit.path)

        for candidate in rule.selector(unit):
            try:
                if not rule.predicate(candidate, unit):
                    continue
                message = rule.message(candidate)
            except UnresolvedReferenceError as e:
                diagnostic = f"{unit.path}:{candidate.line}: [{rule.id}] candidate skipped: {e}"
                logger.warning(diagnostic)
                result.diagnostics.append(diagnostic)
                continue

            if self._is_suppressed(rule, candidate, unit):
                logger.debug("Suppressed %s at %s:%d", rule.id, unit.path, candidate.line)
                result.suppressed += 1
                continue

            result.findings.append(
                Finding(
                    rule_id=rule.id,
                    severity=rule.severity,
                    path=unit.path,
                    span=node_span(candidate),
                    message=message,
                )
            )

        return result

    def _is_suppressed(self, rule: Rule, candidate: Node, unit: SourceUnit) -> bool:
        if any(suppress(candidate, unit) for suppress in rule.suppressions):
            return True
        return is_suppressed_by_comment(candidate, unit, self._phrases, rule.id)


def node_span(node: Node) -> Span:
    """Location of a node as a Span."""
    line = max(node.line, 1)
    column = max(node.column, 1)
    return Span(
        start_line=line,
        start_column=column,
        end_line=node.end_line if node.end_line is not None else line,
        end_column=node.end_column if node.end_column is not None else column,
    )
