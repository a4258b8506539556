"""Traversal and relationship queries over the program model."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TypeVar

from warden.core.exceptions import UnresolvedReferenceError
from warden.core.program.nodes import Node, SourceUnit, Variable

N = TypeVar("N", bound=Node)

NodePredicate = Callable[[Node], bool]


class NodeSequence:
    """A lazy node sequence that restarts on every iteration."""

    __slots__ = ("_factory",)

    def __init__(self, factory: Callable[[], Iterator[Node]]) -> None:
        self._factory = factory

    def __iter__(self) -> Iterator[Node]:
        return self._factory()

    def first(self) -> Node | None:
        return next(iter(self), None)


def children(node: Node) -> list[Node]:
    """Direct children in document order."""
    return node.children()


def ancestors(node: Node) -> NodeSequence:
    """Ancestors of a node, innermost first."""

    def generate() -> Iterator[Node]:
        current = node.parent
        while current is not None:
            yield current
            current = current.parent

    return NodeSequence(generate)


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal including ``node`` itself."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children()))


def find_descendants(node: Node, predicate: NodePredicate | None = None) -> NodeSequence:
    """Descendants of a node matching ``predicate``, in pre-order."""

    def generate() -> Iterator[Node]:
        it = walk(node)
        next(it)  # skip the node itself
        for descendant in it:
            if predicate is None or predicate(descendant):
                yield descendant

    return NodeSequence(generate)


def find_all(node: Node, node_type: type[N]) -> Iterator[N]:
    """Descendants of a given node type, in pre-order."""
    for descendant in find_descendants(node, lambda n: isinstance(n, node_type)):
        yield descendant  # type: ignore[misc]


def enclosing(node: Node, node_type: type[N]) -> N | None:
    """Innermost ancestor of the given type, or None."""
    for ancestor in ancestors(node):
        if isinstance(ancestor, node_type):
            return ancestor
    return None


def source_unit_of(node: Node) -> SourceUnit | None:
    """The SourceUnit at the root of a node's tree."""
    if isinstance(node, SourceUnit):
        return node
    return enclosing(node, SourceUnit)


def declaring_scope(variable: Variable) -> Node:
    """The node owning a variable (block, method, lambda, catch, or type).

    Raises:
        UnresolvedReferenceError: If the variable was never linked into a unit.
    """
    if variable.scope is None:
        raise UnresolvedReferenceError(f"Variable '{variable.name}' has no declaring scope")
    return variable.scope
