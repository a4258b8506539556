"""Link a front end's node tree into a validated SourceUnit."""

from __future__ import annotations

from warden.core.exceptions import MalformedInputError
from warden.core.program.nodes import (
    Catch,
    Declaration,
    FieldAccess,
    Lambda,
    Node,
    SourceUnit,
    Variable,
    VariableAccess,
    VariableDeclaration,
)


def link_unit(unit: SourceUnit) -> SourceUnit:
    """Set parent references and check the model invariants.

    Every node must be reachable exactly once, every variable must be declared
    exactly once, and every VariableAccess must resolve to a variable declared
    in this unit. FieldAccess nodes may stay unresolved (external members), but
    a resolved one must point into this unit.

    Raises:
        MalformedInputError: If any invariant is violated.
    """
    seen: set[Node] = set()
    declared: dict[Variable, Node] = {}
    references: list[VariableAccess | FieldAccess] = []

    stack: list[tuple[Node, Node | None]] = [(unit, None)]
    while stack:
        node, parent = stack.pop()
        if node in seen:
            raise MalformedInputError(
                f"{unit.path}:{node.line}: {node.kind_name} has more than one parent"
            )
        seen.add(node)

        if node.parent is not None and node.parent is not parent:
            raise MalformedInputError(
                f"{unit.path}:{node.line}: {node.kind_name} is already owned by another node"
            )
        node.parent = parent

        for variable in _declared_variables(node):
            if variable in declared:
                raise MalformedInputError(
                    f"{unit.path}:{node.line}: variable '{variable.name}' is declared twice"
                )
            declared[variable] = node
            variable.scope = _declaring_scope_of(node, variable)

        if isinstance(node, (VariableAccess, FieldAccess)):
            references.append(node)

        for child in reversed(node.children()):
            stack.append((child, node))

    for ref in references:
        if isinstance(ref, VariableAccess):
            if ref.variable is None or ref.variable not in declared:
                raise MalformedInputError(
                    f"{unit.path}:{ref.line}: reference to '{ref.name}' has no declaration"
                )
        elif ref.variable is not None and ref.variable not in declared:
            raise MalformedInputError(
                f"{unit.path}:{ref.line}: member '{ref.name}' resolves outside this unit"
            )

    return unit


def _declared_variables(node: Node) -> list[Variable]:
    """Variables introduced by a node."""
    if isinstance(node, VariableDeclaration):
        return [node.variable]
    if isinstance(node, Declaration):
        variables = list(node.parameters)
        if node.variable is not None:
            variables.append(node.variable)
        return variables
    if isinstance(node, Catch):
        return [node.variable] if node.variable is not None else []
    if isinstance(node, Lambda):
        return list(node.parameters)
    return []


def _declaring_scope_of(node: Node, variable: Variable) -> Node:
    """The node that owns a variable declared by ``node``."""
    if isinstance(node, VariableDeclaration):
        # Locals belong to the block (or method, lambda, loop, using) holding them.
        return node.parent if node.parent is not None else node
    if isinstance(node, Declaration) and node.variable is variable:
        return node.parent if node.parent is not None else node
    return node
