"""Program model nodes: declarations, statements, and expressions of a source unit.

Nodes form a tree. Each node has exactly one owner; ``parent`` is a
non-owning back-reference filled in by ``link_unit`` and only used for
upward queries. Nodes compare by identity so they can be used as dict keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class DeclarationKind(Enum):
    """Kinds of declarations."""

    TYPE = "type"
    METHOD = "method"
    FIELD = "field"


class VariableKind(Enum):
    """Kinds of variables."""

    LOCAL = "local"
    PARAMETER = "parameter"
    FIELD = "field"


@dataclass(eq=False)
class Variable:
    """A named, typed slot declared exactly once in a source unit."""

    name: str
    type_name: str | None = None
    kind: VariableKind = VariableKind.LOCAL
    is_static: bool = False
    scope: Node | None = field(default=None, repr=False)

    @property
    def is_field(self) -> bool:
        return self.kind == VariableKind.FIELD


@dataclass(eq=False, kw_only=True)
class Node:
    """Base class for every node in the program model."""

    line: int = 0
    column: int = 0
    end_line: int | None = None
    end_column: int | None = None
    parent: Node | None = field(default=None, repr=False)

    # Attribute names holding child nodes, in document order.
    _child_fields = ()

    def children(self) -> list[Node]:
        """Direct children in document order."""
        result: list[Node] = []
        for name in self._child_fields:
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, list):
                result.extend(value)
            else:
                result.append(value)
        return result

    @property
    def kind_name(self) -> str:
        return type(self).__name__


@dataclass(eq=False, kw_only=True)
class SourceUnit(Node):
    """One parsed file."""

    path: Path
    language: str = "unknown"
    declarations: list[Declaration] = field(default_factory=list)
    comments: dict[int, str] = field(default_factory=dict)
    disposable_types: frozenset[str] = frozenset()

    _child_fields = ("declarations",)


@dataclass(eq=False, kw_only=True)
class Declaration(Node):
    """A type, method, or field."""

    name: str
    kind: DeclarationKind
    qualified_name: str = ""
    modifiers: frozenset[str] = frozenset()
    parameters: list[Variable] = field(default_factory=list)
    members: list[Declaration] = field(default_factory=list)
    body: list[Statement] = field(default_factory=list)
    variable: Variable | None = None
    initializer: Expression | None = None
    is_disposable: bool = False

    _child_fields = ("members", "initializer", "body")

    @property
    def is_async(self) -> bool:
        return "async" in self.modifiers

    @property
    def is_static(self) -> bool:
        return "static" in self.modifiers


# Statements


@dataclass(eq=False, kw_only=True)
class Statement(Node):
    """Base class for statements."""


@dataclass(eq=False, kw_only=True)
class Block(Statement):
    statements: list[Statement] = field(default_factory=list)

    _child_fields = ("statements",)


@dataclass(eq=False, kw_only=True)
class Catch(Statement):
    """A catch clause. An empty ``exception_types`` list catches everything."""

    body: Block
    exception_types: list[str] = field(default_factory=list)
    variable: Variable | None = None

    _child_fields = ("body",)

    @property
    def caught(self) -> str:
        return ", ".join(self.exception_types) if self.exception_types else "all exceptions"


@dataclass(eq=False, kw_only=True)
class Try(Statement):
    body: Block
    catches: list[Catch] = field(default_factory=list)
    finally_block: Block | None = None

    _child_fields = ("body", "catches", "finally_block")


@dataclass(eq=False, kw_only=True)
class Throw(Statement):
    """A throw. No operand means the current exception is rethrown."""

    operand: Expression | None = None

    _child_fields = ("operand",)


@dataclass(eq=False, kw_only=True)
class Return(Statement):
    value: Expression | None = None

    _child_fields = ("value",)


@dataclass(eq=False, kw_only=True)
class VariableDeclaration(Statement):
    variable: Variable
    initializer: Expression | None = None

    _child_fields = ("initializer",)


@dataclass(eq=False, kw_only=True)
class Lock(Statement):
    """A mutual-exclusion region guarded by ``target``."""

    target: Expression
    body: Block

    _child_fields = ("target", "body")


@dataclass(eq=False, kw_only=True)
class Using(Statement):
    """A scoped acquisition construct.

    ``resources`` holds VariableDeclarations or Expressions. Without a body the
    resources live until the end of the enclosing block.
    """

    resources: list[Node] = field(default_factory=list)
    body: Block | None = None

    _child_fields = ("resources", "body")


@dataclass(eq=False, kw_only=True)
class ExpressionStatement(Statement):
    expression: Expression

    _child_fields = ("expression",)


@dataclass(eq=False, kw_only=True)
class If(Statement):
    condition: Expression
    then_branch: Block
    else_branch: Statement | None = None

    _child_fields = ("condition", "then_branch", "else_branch")


@dataclass(eq=False, kw_only=True)
class Loop(Statement):
    body: Block
    loop_kind: str = "while"
    header: list[Expression] = field(default_factory=list)
    declarations: list[VariableDeclaration] = field(default_factory=list)

    _child_fields = ("declarations", "header", "body")


# Expressions


@dataclass(eq=False, kw_only=True)
class Expression(Node):
    """Base class for expressions."""


@dataclass(eq=False, kw_only=True)
class VariableAccess(Expression):
    name: str
    variable: Variable | None = None


@dataclass(eq=False, kw_only=True)
class FieldAccess(Expression):
    """A member access. Without a qualifier it refers to the enclosing type."""

    name: str
    qualifier: Expression | None = None
    variable: Variable | None = None

    _child_fields = ("qualifier",)


@dataclass(eq=False, kw_only=True)
class MethodCall(Expression):
    name: str
    declaring_type: str | None = None
    qualifier: Expression | None = None
    arguments: list[Expression] = field(default_factory=list)

    _child_fields = ("qualifier", "arguments")

    @property
    def qualified_name(self) -> str:
        """Dotted call name, e.g. ``Task.Run`` or ``self.logger.error``."""
        if self.declaring_type:
            return f"{self.declaring_type}.{self.name}"
        prefix = dotted_name(self.qualifier) if self.qualifier is not None else None
        return f"{prefix}.{self.name}" if prefix else self.name


@dataclass(eq=False, kw_only=True)
class ObjectCreation(Expression):
    type_name: str
    arguments: list[Expression] = field(default_factory=list)

    _child_fields = ("arguments",)


@dataclass(eq=False, kw_only=True)
class Literal(Expression):
    value: object = None


@dataclass(eq=False, kw_only=True)
class Assignment(Expression):
    target: Expression
    value: Expression
    operator: str = "="

    _child_fields = ("target", "value")


@dataclass(eq=False, kw_only=True)
class ElementAccess(Expression):
    """An indexer read or write, e.g. ``cache[key]``."""

    target: Expression
    index: Expression | None = None

    _child_fields = ("target", "index")


@dataclass(eq=False, kw_only=True)
class Lambda(Expression):
    """An anonymous function owning its parameters and body."""

    parameters: list[Variable] = field(default_factory=list)
    body: list[Statement] = field(default_factory=list)
    is_async: bool = False

    _child_fields = ("body",)


@dataclass(eq=False, kw_only=True)
class CompoundExpression(Expression):
    """Any other operator applied to sub-expressions."""

    operator: str
    operands: list[Expression] = field(default_factory=list)

    _child_fields = ("operands",)


def dotted_name(expr: Expression | None) -> str | None:
    """Render a variable/member chain as a dotted name, or None."""
    if isinstance(expr, VariableAccess):
        return expr.name
    if isinstance(expr, FieldAccess):
        if expr.qualifier is None:
            return expr.name
        prefix = dotted_name(expr.qualifier)
        return f"{prefix}.{expr.name}" if prefix else None
    if isinstance(expr, MethodCall):
        return expr.qualified_name
    return None
