"""Local resources that are never released.

A local initialised by acquiring a known resource type is tracked. It counts
as released when it is the managed resource of a scoped acquisition, has a
release call (``Dispose``/``Close``) on it, is returned, is stored in a field,
or is passed to another method call (ownership presumed transferred).
Anything else at the end of its scope is a leak.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import cast

from warden.core.engine import Rule, RuleDefinition, RuleSettings
from warden.core.models import Severity
from warden.core.predicates import (
    is_acquisition,
    is_direct_reference,
    is_known_resource_type,
    name_matches,
)
from warden.core.program import (
    Assignment,
    Declaration,
    DeclarationKind,
    ElementAccess,
    Expression,
    FieldAccess,
    Lambda,
    MethodCall,
    Node,
    Return,
    SourceUnit,
    Using,
    Variable,
    VariableAccess,
    VariableDeclaration,
    VariableKind,
    ancestors,
    declaring_scope,
    find_all,
    walk,
)

RULE_ID = "missing-resource-disposal"

DEFINITION = RuleDefinition(
    id=RULE_ID,
    description="Disposable local is never disposed, closed, or handed off",
    default_severity=Severity.WARNING,
    primary_patterns="resource_types",
    default_patterns={
        "resource_types": frozenset(
            {
                "FileStream",
                "%Stream",
                "%Reader",
                "%Writer",
                "%Connection",
                "%Command",
                "%Socket",
                "%Client",
                "%File",
                "TextIOWrapper",
                "BufferedReader",
                "BufferedWriter",
                "HTTPResponse",
                "socket",
            }
        ),
        "release_methods": frozenset({"Dispose", "DisposeAsync", "Close", "aclose"}),
    },
)


def _is_field_target(target: Expression) -> bool:
    if isinstance(target, ElementAccess):
        target = target.target
    if isinstance(target, FieldAccess):
        return True
    if isinstance(target, VariableAccess) and target.variable is not None:
        return target.variable.is_field
    return False


def releases(node: Node, variable: Variable, release_methods: frozenset[str]) -> bool:
    """True if ``node`` releases ``variable`` or hands its ownership elsewhere."""
    if isinstance(node, Using):
        return any(is_direct_reference(resource, variable) for resource in node.resources)
    if isinstance(node, MethodCall):
        if is_direct_reference(node.qualifier, variable) and name_matches(
            node.name, release_methods
        ):
            return True
        return any(is_direct_reference(argument, variable) for argument in node.arguments)
    if isinstance(node, Return):
        return is_direct_reference(node.value, variable)
    if isinstance(node, Assignment):
        return is_direct_reference(node.value, variable) and _is_field_target(node.target)
    return False


def release_region(declaration: VariableDeclaration) -> Node:
    """The innermost method or lambda around a local's declaring scope.

    Python locals are function-scoped: a resource opened inside ``try`` may be
    closed in ``finally``.
    """
    scope = declaring_scope(declaration.variable)
    for node in (scope, *ancestors(scope)):
        if isinstance(node, Lambda):
            return node
        if isinstance(node, Declaration) and node.kind == DeclarationKind.METHOD:
            return node
    return scope


def is_released(declaration: VariableDeclaration, release_methods: frozenset[str]) -> bool:
    """True if the declared resource is released anywhere in its function."""
    if isinstance(declaration.parent, Using):
        return True
    variable = declaration.variable
    region = release_region(declaration)
    return any(releases(node, variable, release_methods) for node in walk(region))


def build(settings: RuleSettings) -> Rule:
    """Build the rule from its settings."""
    resource_types = settings.pattern("resource_types")
    release_methods = settings.pattern("release_methods")

    def select(unit: SourceUnit) -> Iterator[Node]:
        for declaration in find_all(unit, VariableDeclaration):
            if declaration.variable.kind == VariableKind.LOCAL:
                yield declaration

    def is_violation(node: Node, unit: SourceUnit) -> bool:
        if not isinstance(node, VariableDeclaration) or not is_acquisition(node.initializer):
            return False
        if not is_known_resource_type(node.variable.type_name, resource_types, unit):
            return False
        return not is_released(node, release_methods)

    def message(node: Node) -> str:
        variable = cast(VariableDeclaration, node).variable
        return (
            f"Resource '{variable.name}' of type '{variable.type_name}' is never disposed "
            "or closed; acquire it in a using/with block or release it explicitly"
        )

    return Rule(
        id=RULE_ID,
        description=DEFINITION.description,
        severity=settings.severity,
        selector=select,
        predicate=is_violation,
        message=message,
    )
