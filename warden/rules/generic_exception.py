"""Generic exception handlers that swallow the exception.

A catch clause for the root exception type (or for everything) is only
acceptable when its body logs the caught exception or rethrows it. An empty
body is always a violation.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import cast

from warden.core.engine import Rule, RuleDefinition, RuleSettings
from warden.core.models import Severity
from warden.core.predicates import (
    is_empty_block,
    is_rethrow,
    name_matches,
    references_variable,
)
from warden.core.program import Catch, MethodCall, Node, SourceUnit, find_all

RULE_ID = "generic-exception-handling"

DEFINITION = RuleDefinition(
    id=RULE_ID,
    description="Generic catch clause neither logs nor rethrows the exception",
    default_severity=Severity.WARNING,
    primary_patterns="logging_methods",
    default_patterns={
        "logging_methods": frozenset(
            {
                "%log%",
                "%write%",
                "%trace%",
                "%print%",
                "%error%",
                "%warn%",
                "%exception%",
                "%critical%",
            }
        ),
        "root_exception_types": frozenset({"Exception", "System.Exception", "BaseException"}),
    },
)


def catches_generic(catch: Catch, root_types: frozenset[str]) -> bool:
    """True if the clause catches everything or the root exception type."""
    if not catch.exception_types:
        return True
    return any(name_matches(t, root_types) for t in catch.exception_types)


def logs_exception(catch: Catch, logging_methods: frozenset[str]) -> bool:
    """True if the body calls a logging-named method that references the caught exception."""
    if catch.variable is None:
        return False
    for call in find_all(catch.body, MethodCall):
        if not name_matches(call.qualified_name, logging_methods):
            continue
        if references_variable(call, catch.variable):
            return True
    return False


def build(settings: RuleSettings) -> Rule:
    """Build the rule from its settings."""
    logging_methods = settings.pattern("logging_methods")
    root_types = settings.pattern("root_exception_types")

    def select(unit: SourceUnit) -> Iterator[Node]:
        return find_all(unit, Catch)

    def is_violation(node: Node, unit: SourceUnit) -> bool:
        if not isinstance(node, Catch) or not catches_generic(node, root_types):
            return False
        if is_empty_block(node.body):
            return True
        return not (logs_exception(node, logging_methods) or is_rethrow(node.body))

    def message(node: Node) -> str:
        catch = cast(Catch, node)
        if is_empty_block(catch.body):
            return f"Empty catch clause for {catch.caught} silently swallows the exception"
        return (
            f"Catch clause for {catch.caught} neither logs the caught exception "
            "nor rethrows it"
        )

    return Rule(
        id=RULE_ID,
        description=DEFINITION.description,
        severity=settings.severity,
        selector=select,
        predicate=is_violation,
        message=message,
    )
