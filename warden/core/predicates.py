"""Reusable predicates over program model nodes.

Every predicate is a pure function of its arguments; none mutates the model.
Matching is heuristic and name-based on purpose: a missed detection is
preferred over a false positive, so nothing here attempts full type
resolution.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache

from warden.core.exceptions import UnresolvedReferenceError
from warden.core.program.nodes import (
    Block,
    Declaration,
    DeclarationKind,
    Expression,
    FieldAccess,
    Lambda,
    MethodCall,
    Node,
    ObjectCreation,
    SourceUnit,
    Throw,
    Variable,
    VariableAccess,
    VariableDeclaration,
)
from warden.core.program.tree import ancestors, find_descendants, walk

_WILDCARDS = {"%": ".*", "*": ".*", "?": "."}
_SUPPRESSION_SCOPE = re.compile(r"\s*\[([^\]]*)\]")
_GENERIC_ARGS = re.compile(r"<.*>$")

# Synthetic method holding the import-time statements of a module
MODULE_BODY = "<module>"


@lru_cache(maxsize=512)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    parts = [_WILDCARDS.get(ch, re.escape(ch)) for ch in pattern]
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def name_matches(identifier: str | None, patterns: Iterable[str]) -> bool:
    """Case-insensitive wildcard match of an identifier against patterns.

    ``%`` and ``*`` match any run of characters, ``?`` one character. A
    pattern without wildcards must match the whole identifier. An absent
    identifier never matches.
    """
    if not identifier:
        return False
    return any(_compile_pattern(p).fullmatch(identifier) for p in patterns)


def base_type_name(type_name: str | None) -> str | None:
    """Strip namespace, generic arguments, and nullable marker from a type name.

    ``System.Collections.Generic.Dictionary<string, int>?`` -> ``Dictionary``
    """
    if not type_name:
        return None
    name = type_name.strip().rstrip("?")
    name = _GENERIC_ARGS.sub("", name)
    if "[" in name:
        name = name.split("[", 1)[0]
    return name.rsplit(".", 1)[-1] or None


def _type_matches(type_name: str | None, patterns: Iterable[str]) -> bool:
    patterns = tuple(patterns)
    if name_matches(type_name, patterns):
        return True
    base = base_type_name(type_name)
    return base != type_name and name_matches(base, patterns)


def is_within_construct(node: Node, construct: type[Node]) -> bool:
    """True if any ancestor of ``node`` is of the given variant."""
    return any(isinstance(a, construct) for a in ancestors(node))


def is_rethrow(statement: Node) -> bool:
    """True if an operand-less Throw occurs among the statement's descendants."""
    return (
        find_descendants(statement, lambda n: isinstance(n, Throw) and n.operand is None).first()
        is not None
    )


def references_variable(subtree: Node, variable: Variable) -> bool:
    """True if any access in the subtree (itself included) resolves to ``variable``."""
    return any(
        isinstance(n, (VariableAccess, FieldAccess)) and n.variable is variable
        for n in walk(subtree)
    )


def is_direct_reference(expr: Node | None, variable: Variable) -> bool:
    """True if ``expr`` itself is an access to ``variable``."""
    return isinstance(expr, (VariableAccess, FieldAccess)) and expr.variable is variable


@lru_cache(maxsize=64)
def declared_disposable_types(unit: SourceUnit | None) -> frozenset[str]:
    """Type names the unit declares or knows to implement the disposable capability.

    Units are read-only once linked, so the result is cached per unit.
    """
    if unit is None:
        return frozenset()
    names = set(unit.disposable_types)
    for node in walk(unit):
        if (
            isinstance(node, Declaration)
            and node.kind == DeclarationKind.TYPE
            and node.is_disposable
        ):
            names.add(node.name)
    return frozenset(names)


def is_known_resource_type(
    type_name: str | None,
    patterns: Iterable[str],
    unit: SourceUnit | None = None,
) -> bool:
    """Membership test against resource type patterns or the disposable flag.

    Suffix matches are written as patterns (``%Stream``); exact names as plain
    names (``FileStream``).
    """
    if not type_name:
        return False
    if _type_matches(type_name, patterns):
        return True
    base = base_type_name(type_name)
    disposable = declared_disposable_types(unit)
    return type_name in disposable or base in disposable


def is_shared_field(variable: Variable | None, patterns: Iterable[str]) -> bool:
    """True for a field marked static or whose name matches the shared-state patterns."""
    if variable is None or not variable.is_field:
        return False
    return variable.is_static or name_matches(variable.name, patterns)


def is_map_type(
    type_name: str | None,
    map_patterns: Iterable[str],
    concurrent_patterns: Iterable[str] = (),
) -> bool:
    """True for map-like types that are not concurrency-safe maps."""
    if not type_name:
        return False
    if _type_matches(type_name, concurrent_patterns):
        return False
    return _type_matches(type_name, map_patterns)


def is_acquisition(expr: Expression | None) -> bool:
    """True if an initializer acquires something (creation or call result)."""
    return isinstance(expr, (ObjectCreation, MethodCall))


def enclosing_method(node: Node) -> Declaration | None:
    """The innermost method declaration around a node."""
    for ancestor in ancestors(node):
        if isinstance(ancestor, Declaration) and ancestor.kind == DeclarationKind.METHOD:
            return ancestor
    return None


def enclosing_type(node: Node) -> Declaration | None:
    """The innermost type declaration around a node."""
    for ancestor in ancestors(node):
        if isinstance(ancestor, Declaration) and ancestor.kind == DeclarationKind.TYPE:
            return ancestor
    return None


def is_constructor(method: Declaration | None) -> bool:
    """True for constructors, instance initializers and module import-time code."""
    if method is None:
        return False
    if method.name in ("__init__", "__new__", ".ctor", ".cctor", MODULE_BODY):
        return True
    owner = enclosing_type(method)
    return owner is not None and owner.name == method.name


def is_concurrency_launch(node: Node | None, patterns: Iterable[str]) -> bool:
    """True for calls or creations that start concurrent work (tasks, threads)."""
    if isinstance(node, MethodCall):
        return name_matches(node.qualified_name, patterns) or name_matches(node.name, patterns)
    if isinstance(node, ObjectCreation):
        return _type_matches(node.type_name, patterns)
    return False


def launched_names(unit: SourceUnit, patterns: Iterable[str]) -> frozenset[str]:
    """Names passed by reference (method groups, local functions) to launching calls."""
    return _launched_names(unit, frozenset(patterns))


@lru_cache(maxsize=64)
def _launched_names(unit: SourceUnit, patterns: frozenset[str]) -> frozenset[str]:
    names: set[str] = set()
    for node in walk(unit):
        if not is_concurrency_launch(node, patterns):
            continue
        for argument in node.arguments:  # type: ignore[attr-defined]
            if isinstance(argument, (VariableAccess, FieldAccess)):
                names.add(argument.name)
    return frozenset(names)


def is_in_concurrent_context(
    node: Node, unit: SourceUnit | None, patterns: Iterable[str]
) -> bool:
    """True if ``node`` may run concurrently with its caller.

    That is the case inside a lambda handed to a launching call, inside a
    local function or method handed to one by name, or inside an async method.
    """
    patterns = tuple(patterns)
    launched: frozenset[str] | None = None

    for ancestor in ancestors(node):
        if isinstance(ancestor, Lambda):
            owner = ancestor.parent
            if is_concurrency_launch(owner, patterns):
                return True
            if isinstance(owner, VariableDeclaration) and unit is not None:
                if launched is None:
                    launched = launched_names(unit, patterns)
                if owner.variable.name in launched:
                    return True
        elif isinstance(ancestor, Declaration) and ancestor.kind == DeclarationKind.METHOD:
            if ancestor.is_async:
                return True
            if unit is not None:
                if launched is None:
                    launched = launched_names(unit, patterns)
                if ancestor.name in launched:
                    return True
    return False


def resolve_access_target(expr: Expression | None) -> Variable | None:
    """Resolve the variable an access targets.

    Returns None for values that are not variables (calls, literals) or members
    of other objects. Raises UnresolvedReferenceError for an own-member access
    (no qualifier) that does not resolve.
    """
    if isinstance(expr, VariableAccess):
        return expr.variable
    if isinstance(expr, FieldAccess):
        if expr.qualifier is not None:
            return expr.variable
        if expr.variable is None:
            raise UnresolvedReferenceError(
                f"Cannot resolve member '{expr.name}' at line {expr.line}"
            )
        return expr.variable
    return None


def is_empty_block(block: Block | None) -> bool:
    return block is None or not block.statements


def comment_suppresses(comment: str, phrases: Iterable[str], rule_id: str) -> bool:
    """True if a comment carries a suppression phrase covering ``rule_id``.

    ``warden: ignore`` covers every rule; ``warden: ignore[rule-a, rule-b]``
    only the listed ones.
    """
    lowered = comment.lower()
    for phrase in phrases:
        index = lowered.find(phrase.lower())
        if index < 0:
            continue
        scope = _SUPPRESSION_SCOPE.match(comment, index + len(phrase))
        if scope is None:
            return True
        ids = {part.strip() for part in scope.group(1).split(",")}
        if rule_id in ids:
            return True
    return False


def is_suppressed_by_comment(
    node: Node,
    unit: SourceUnit | None,
    phrases: Iterable[str],
    rule_id: str,
) -> bool:
    """True if a comment on the node's line or the line above suppresses it."""
    if unit is None or not unit.comments:
        return False
    phrases = tuple(phrases)
    for line in (node.line, node.line - 1):
        comment = unit.comments.get(line)
        if comment and comment_suppresses(comment, phrases, rule_id):
            return True
    return False


__all__ = [
    "MODULE_BODY",
    "base_type_name",
    "comment_suppresses",
    "declared_disposable_types",
    "enclosing_method",
    "enclosing_type",
    "is_acquisition",
    "is_concurrency_launch",
    "is_constructor",
    "is_direct_reference",
    "is_empty_block",
    "is_in_concurrent_context",
    "is_known_resource_type",
    "is_map_type",
    "is_rethrow",
    "is_shared_field",
    "is_suppressed_by_comment",
    "is_within_construct",
    "launched_names",
    "name_matches",
    "references_variable",
    "resolve_access_target",
]
