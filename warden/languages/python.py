"""Python front end: build the program model from Python source."""

from __future__ import annotations

import ast
import builtins
import io
import tokenize
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from warden.core.config import DEFAULT_LOCK_PATTERNS
from warden.core.exceptions import ParseError
from warden.core.predicates import MODULE_BODY, name_matches
from warden.core.program import (
    Assignment,
    Block,
    Catch,
    CompoundExpression,
    Declaration,
    DeclarationKind,
    ElementAccess,
    Expression,
    ExpressionStatement,
    FieldAccess,
    If,
    Lambda,
    Literal,
    Lock,
    Loop,
    MethodCall,
    ObjectCreation,
    Return,
    SourceUnit,
    Statement,
    Throw,
    Try,
    Using,
    Variable,
    VariableAccess,
    VariableDeclaration,
    VariableKind,
    link_unit,
)

# Result types of well-known resource factories
_FACTORY_TYPES = {
    "open": "TextIOWrapper",
    "io.open": "TextIOWrapper",
    "os.fdopen": "TextIOWrapper",
    "codecs.open": "StreamReaderWriter",
    "gzip.open": "GzipFile",
    "bz2.open": "BZ2File",
    "lzma.open": "LZMAFile",
    "tarfile.open": "TarFile",
    "socket": "socket",
    "socket.socket": "socket",
    "socket.create_connection": "socket",
    "sqlite3.connect": "Connection",
    "psycopg2.connect": "Connection",
    "pymysql.connect": "Connection",
    "urlopen": "HTTPResponse",
    "request.urlopen": "HTTPResponse",
    "urllib.request.urlopen": "HTTPResponse",
}

_COLLECTION_FACTORIES = {"dict", "list", "set", "frozenset", "tuple", "defaultdict", "deque"}

# Methods that make a class a disposable resource
_RELEASE_PROTOCOL = {"__exit__", "__aexit__", "close"}

_OPERATORS = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.MatMult: "@",
    ast.Div: "/",
    ast.FloorDiv: "//",
    ast.Mod: "%",
    ast.Pow: "**",
    ast.LShift: "<<",
    ast.RShift: ">>",
    ast.BitOr: "|",
    ast.BitXor: "^",
    ast.BitAnd: "&",
    ast.And: "and",
    ast.Or: "or",
    ast.Not: "not",
    ast.Invert: "~",
    ast.UAdd: "+",
    ast.USub: "-",
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
    ast.Is: "is",
    ast.IsNot: "is not",
    ast.In: "in",
    ast.NotIn: "not in",
}


class PythonParser:
    """Front end for Python source files using the ast module."""

    def __init__(self, lock_patterns: Iterable[str] = DEFAULT_LOCK_PATTERNS) -> None:
        self._lock_patterns = frozenset(lock_patterns)

    def supports(self, file: Path) -> bool:
        """Check if this parser supports the given file."""
        return file.suffix == ".py"

    def parse(self, file: Path) -> SourceUnit:
        """Parse a Python file into a linked SourceUnit."""
        try:
            source = file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(f"Cannot read {file}: {e}") from e
        return self.parse_source(source, file)

    def parse_source(self, source: str, path: Path) -> SourceUnit:
        """Parse Python source text; ``path`` is recorded on the unit."""
        try:
            tree = ast.parse(source, filename=str(path))
        except SyntaxError as e:
            raise ParseError(f"Syntax error in {path}: {e}") from e

        unit = _UnitBuilder(path, self._lock_patterns).build(tree)
        unit.comments = extract_comments(source, path)
        return link_unit(unit)


def extract_comments(source: str, path: Path) -> dict[int, str]:
    """Map each line number to the comment on that line."""
    comments: dict[int, str] = {}
    try:
        for token in tokenize.generate_tokens(io.StringIO(source).readline):
            if token.type == tokenize.COMMENT:
                comments[token.start[0]] = token.string
    except (tokenize.TokenError, SyntaxError) as e:
        raise ParseError(f"Cannot tokenize {path}: {e}") from e
    return comments


@dataclass
class _Frame:
    """Names bound in one function, lambda, or comprehension."""

    names: dict[str, Variable] = field(default_factory=dict)
    globals: set[str] = field(default_factory=set)
    nonlocals: set[str] = field(default_factory=set)
    module_level: bool = False


@dataclass
class _ClassContext:
    """Resolves ``self.x`` inside the methods of one class."""

    fields: dict[str, Variable]
    self_name: str | None = None


def _loc(node: ast.AST) -> dict[str, Any]:
    end_column = getattr(node, "end_col_offset", None)
    return {
        "line": getattr(node, "lineno", 0),
        "column": getattr(node, "col_offset", 0) + 1,
        "end_line": getattr(node, "end_lineno", None),
        "end_column": end_column + 1 if end_column is not None else None,
    }


def _dotted(node: ast.AST | None) -> str | None:
    """Dotted name of a Name/Attribute chain, or None."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        prefix = _dotted(node.value)
        return f"{prefix}.{node.attr}" if prefix else None
    return None


def _target_names(node: ast.AST) -> list[str]:
    if isinstance(node, ast.Name):
        return [node.id]
    if isinstance(node, (ast.Tuple, ast.List)):
        return [name for elt in node.elts for name in _target_names(elt)]
    if isinstance(node, ast.Starred):
        return _target_names(node.value)
    return []


def _annotation_name(node: ast.expr | None) -> str | None:
    """Type name of an annotation, unwrapping Optional, Annotated and ``X | None``."""
    if node is None:
        return None
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value
    if isinstance(node, ast.Subscript):
        base = _dotted(node.value)
        if base and base.rsplit(".", 1)[-1] in ("Optional", "Annotated", "ClassVar", "Final"):
            inner = node.slice
            if isinstance(inner, ast.Tuple) and inner.elts:
                inner = inner.elts[0]
            return _annotation_name(inner)
        return base
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        left = _annotation_name(node.left)
        if left and left != "None":
            return left
        return _annotation_name(node.right)
    return _dotted(node)


def _infer_type(node: ast.expr | None) -> str | None:
    """Best-effort static type of a value expression."""
    if isinstance(node, (ast.Dict, ast.DictComp)):
        return "dict"
    if isinstance(node, (ast.List, ast.ListComp)):
        return "list"
    if isinstance(node, (ast.Set, ast.SetComp)):
        return "set"
    if isinstance(node, ast.Await):
        return _infer_type(node.value)
    if not isinstance(node, ast.Call):
        return None
    name = _dotted(node.func)
    if name is None:
        return None
    if name in _FACTORY_TYPES:
        return _FACTORY_TYPES[name]
    last = name.rsplit(".", 1)[-1]
    if last[:1].isupper():
        return name
    if last in _COLLECTION_FACTORIES:
        return last
    return None


def _exception_types(node: ast.expr | None) -> list[str]:
    if node is None:
        return []
    elts = node.elts if isinstance(node, ast.Tuple) else [node]
    return [_dotted(e) or ast.unparse(e) for e in elts]


def _nested_bodies(stmt: ast.stmt) -> Iterator[list[ast.stmt]]:
    """Statement lists a compound statement runs in its own scope."""
    for attr in ("body", "orelse", "finalbody"):
        yield getattr(stmt, attr, None) or []
    for clause in (*getattr(stmt, "handlers", ()), *getattr(stmt, "cases", ())):
        yield clause.body


def _decorator_names(node: ast.FunctionDef | ast.AsyncFunctionDef) -> set[str]:
    names = set()
    for decorator in node.decorator_list:
        name = _dotted(decorator.func if isinstance(decorator, ast.Call) else decorator)
        if name:
            names.add(name.rsplit(".", 1)[-1])
    return names


class _UnitBuilder:
    """Converts one module's AST into an unlinked SourceUnit.

    Python scoping is function-level: the first assignment of a name inside a
    function becomes its VariableDeclaration, later ones are Assignments.
    Module-level names and class attributes become static fields; ``self.x``
    attributes assigned in methods become instance fields.
    """

    def __init__(self, path: Path, lock_patterns: frozenset[str]) -> None:
        self.path = path
        self.lock_patterns = lock_patterns

        self._module_fields: dict[str, Variable] = {}
        self._class_fields: dict[str, dict[str, Variable]] = {}
        self._frames: list[_Frame] = []
        self._classes: list[_ClassContext] = []
        self._qualifiers: list[str] = []

        # Declarations emitted while converting expressions (walrus, tuple targets)
        self._pending: list[Statement] = []

        # Classes defined inside functions and fields created by ``global``
        self._hoisted: list[Declaration] = []

        # Module fields first bound inside if/try/with/for blocks
        self._nested_fields: dict[str, ast.stmt] = {}

    def build(self, tree: ast.Module) -> SourceUnit:
        module_name = self.path.stem
        self._qualifiers.append(module_name)
        self._declare_module_fields(tree.body)

        members: list[Declaration] = []
        module_body: list[Statement] = []
        module_frame = _Frame(module_level=True)
        emitted: set[str] = set()

        for stmt in tree.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                members.append(self._method(stmt))
            elif isinstance(stmt, ast.ClassDef):
                members.append(self._class(stmt))
            elif isinstance(stmt, (ast.Import, ast.ImportFrom)):
                for name in self._import_names(stmt):
                    if name not in emitted:
                        emitted.add(name)
                        members.append(
                            self._field_declaration(
                                self._module_fields[name], stmt, modifiers={"static", "import"}
                            )
                        )
            else:
                self._frames.append(module_frame)
                if isinstance(stmt, (ast.Assign, ast.AnnAssign)):
                    module_body.extend(self._module_assignment(stmt, emitted, members))
                else:
                    module_body.extend(self._statement(stmt))
                self._frames.pop()

        for name, stmt in self._nested_fields.items():
            if name not in emitted:
                emitted.add(name)
                is_import = isinstance(stmt, (ast.Import, ast.ImportFrom))
                members.append(
                    self._field_declaration(
                        self._module_fields[name],
                        stmt,
                        modifiers={"static", "import"} if is_import else (),
                    )
                )

        if module_body:
            members.append(
                Declaration(
                    name=MODULE_BODY,
                    kind=DeclarationKind.METHOD,
                    qualified_name=f"{module_name}.{MODULE_BODY}",
                    body=module_body,
                    line=module_body[0].line,
                    column=module_body[0].column,
                )
            )
        members.extend(self._hoisted)

        module = Declaration(
            name=module_name,
            kind=DeclarationKind.TYPE,
            qualified_name=module_name,
            members=members,
            line=1,
            column=1,
        )
        return SourceUnit(
            path=self.path, language="python", declarations=[module], line=1, column=1
        )

    # Declarations

    def _declare_module_fields(self, body: list[ast.stmt], nested: bool = False) -> None:
        for stmt in body:
            type_name = None
            if isinstance(stmt, (ast.Import, ast.ImportFrom)):
                names = self._import_names(stmt)
            elif isinstance(stmt, ast.Assign):
                names = [n for t in stmt.targets for n in _target_names(t)]
                if len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name):
                    type_name = _infer_type(stmt.value)
            elif isinstance(stmt, ast.AnnAssign):
                names = _target_names(stmt.target)
                type_name = _annotation_name(stmt.annotation) or _infer_type(stmt.value)
            elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                continue
            else:
                for block in _nested_bodies(stmt):
                    self._declare_module_fields(block, nested=True)
                continue

            for name in names:
                existing = self._module_fields.get(name)
                if existing is None:
                    self._module_fields[name] = Variable(
                        name, type_name=type_name, kind=VariableKind.FIELD, is_static=True
                    )
                    if nested:
                        self._nested_fields[name] = stmt
                elif existing.type_name is None:
                    existing.type_name = type_name

    def _import_names(self, stmt: ast.Import | ast.ImportFrom) -> list[str]:
        return [
            alias.asname or alias.name.split(".")[0] for alias in stmt.names if alias.name != "*"
        ]

    def _field_declaration(
        self,
        variable: Variable,
        node: ast.AST,
        initializer: Expression | None = None,
        modifiers: Iterable[str] = (),
    ) -> Declaration:
        modifiers = set(modifiers)
        if variable.is_static:
            modifiers.add("static")
        return Declaration(
            name=variable.name,
            kind=DeclarationKind.FIELD,
            qualified_name=".".join([*self._qualifiers, variable.name]),
            modifiers=frozenset(modifiers),
            variable=variable,
            initializer=initializer,
            **_loc(node),
        )

    def _module_assignment(
        self, stmt: ast.Assign | ast.AnnAssign, emitted: set[str], members: list[Declaration]
    ) -> list[Statement]:
        targets = stmt.targets if isinstance(stmt, ast.Assign) else [stmt.target]
        names = [n for t in targets for n in _target_names(t)]

        if len(targets) == 1 and isinstance(targets[0], ast.Name) and names[0] not in emitted:
            emitted.add(names[0])
            initializer = self._expr(stmt.value) if stmt.value is not None else None
            members.append(
                self._field_declaration(self._module_fields[names[0]], stmt, initializer)
            )
            pending, self._pending = self._pending, []
            return pending

        for name in names:
            if name not in emitted:
                emitted.add(name)
                members.append(self._field_declaration(self._module_fields[name], stmt))
        return self._statement(stmt)

    def _class(self, node: ast.ClassDef) -> Declaration:
        fields: dict[str, Variable] = {}
        first_seen: dict[str, ast.AST] = {}

        for stmt in node.body:
            if isinstance(stmt, ast.Assign):
                single = len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name)
                for target in stmt.targets:
                    for name in _target_names(target):
                        type_name = _infer_type(stmt.value) if single else None
                        self._add_field(fields, first_seen, name, stmt, type_name, static=True)
            elif isinstance(stmt, ast.AnnAssign):
                type_name = _annotation_name(stmt.annotation) or _infer_type(stmt.value)
                for name in _target_names(stmt.target):
                    self._add_field(fields, first_seen, name, stmt, type_name, static=True)
        self._collect_instance_fields(node, fields, first_seen)

        own_fields = dict(fields)
        for base in node.bases:
            base_fields = self._class_fields.get(_dotted(base) or "")
            for name, variable in (base_fields or {}).items():
                fields.setdefault(name, variable)
        self._class_fields[node.name] = fields

        context = _ClassContext(fields=fields)
        self._qualifiers.append(node.name)
        members: list[Declaration] = []
        emitted: set[str] = set()

        for stmt in node.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                members.append(self._method(stmt, owner=context))
            elif isinstance(stmt, ast.ClassDef):
                members.append(self._class(stmt))
            elif isinstance(stmt, (ast.Assign, ast.AnnAssign)):
                targets = stmt.targets if isinstance(stmt, ast.Assign) else [stmt.target]
                single = len(targets) == 1 and isinstance(targets[0], ast.Name)
                for name in [n for t in targets for n in _target_names(t)]:
                    if name in emitted:
                        continue
                    emitted.add(name)
                    initializer = None
                    if single and stmt.value is not None:
                        initializer = self._expr(stmt.value)
                    members.append(self._field_declaration(own_fields[name], stmt, initializer))

        for name, variable in own_fields.items():
            if name not in emitted:
                members.append(self._field_declaration(variable, first_seen[name]))

        self._qualifiers.pop()
        method_names = {
            s.name for s in node.body if isinstance(s, (ast.FunctionDef, ast.AsyncFunctionDef))
        }
        return Declaration(
            name=node.name,
            kind=DeclarationKind.TYPE,
            qualified_name=".".join([*self._qualifiers, node.name]),
            members=members,
            is_disposable=bool(method_names & _RELEASE_PROTOCOL),
            **_loc(node),
        )

    def _add_field(
        self,
        fields: dict[str, Variable],
        first_seen: dict[str, ast.AST],
        name: str,
        node: ast.AST,
        type_name: str | None,
        static: bool,
    ) -> None:
        existing = fields.get(name)
        if existing is None:
            fields[name] = Variable(
                name, type_name=type_name, kind=VariableKind.FIELD, is_static=static
            )
            first_seen[name] = node
        elif existing.type_name is None:
            existing.type_name = type_name

    def _collect_instance_fields(
        self,
        node: ast.ClassDef,
        fields: dict[str, Variable],
        first_seen: dict[str, ast.AST],
    ) -> None:
        """Declare ``self.x`` attributes assigned anywhere in the class's methods."""
        for method in node.body:
            if not isinstance(method, (ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            if "staticmethod" in _decorator_names(method):
                continue
            arguments = [*method.args.posonlyargs, *method.args.args]
            if not arguments:
                continue
            self_name = arguments[0].arg

            for child in ast.walk(method):
                if isinstance(child, ast.Assign):
                    pairs = [(t, child.value, None) for t in child.targets]
                elif isinstance(child, ast.AnnAssign):
                    pairs = [(child.target, child.value, child.annotation)]
                elif isinstance(child, ast.AugAssign):
                    pairs = [(child.target, None, None)]
                else:
                    continue
                for target, value, annotation in pairs:
                    if (
                        isinstance(target, ast.Attribute)
                        and isinstance(target.value, ast.Name)
                        and target.value.id == self_name
                    ):
                        type_name = _annotation_name(annotation) or _infer_type(value)
                        self._add_field(
                            fields, first_seen, target.attr, child, type_name, static=False
                        )

    def _method(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef,
        owner: _ClassContext | None = None,
    ) -> Declaration:
        decorators = _decorator_names(node)
        parameters = self._parameters(node.args)

        modifiers = set()
        if isinstance(node, ast.AsyncFunctionDef):
            modifiers.add("async")
        if decorators & {"staticmethod", "classmethod"}:
            modifiers.add("static")

        if owner is not None:
            self_name = None
            if "staticmethod" not in decorators and parameters:
                self_name = parameters[0].name
            self._classes.append(_ClassContext(fields=owner.fields, self_name=self_name))

        self._qualifiers.append(node.name)
        self._frames.append(_Frame(names={p.name: p for p in parameters}))
        body = self._statements(node.body)
        self._frames.pop()
        qualified_name = ".".join(self._qualifiers)
        self._qualifiers.pop()

        if owner is not None:
            self._classes.pop()

        return Declaration(
            name=node.name,
            kind=DeclarationKind.METHOD,
            qualified_name=qualified_name,
            modifiers=frozenset(modifiers),
            parameters=parameters,
            body=body,
            **_loc(node),
        )

    def _parameters(self, args: ast.arguments) -> list[Variable]:
        nodes = [*args.posonlyargs, *args.args]
        if args.vararg:
            nodes.append(args.vararg)
        nodes.extend(args.kwonlyargs)
        if args.kwarg:
            nodes.append(args.kwarg)
        return [
            Variable(a.arg, type_name=_annotation_name(a.annotation), kind=VariableKind.PARAMETER)
            for a in nodes
        ]

    # Name binding

    def _lookup(self, name: str) -> Variable | None:
        """The variable a read of ``name`` refers to."""
        for frame in reversed(self._frames):
            if name in frame.names:
                return frame.names[name]
        return self._module_fields.get(name)

    def _binding(self, name: str) -> Variable | None:
        """The variable an assignment to ``name`` rebinds, if already bound."""
        if not self._frames:
            return self._module_fields.get(name)
        frame = self._frames[-1]
        if name in frame.names:
            return frame.names[name]
        if name in frame.globals:
            return self._global_field(name)
        if frame.module_level:
            return self._module_fields.get(name)
        if name in frame.nonlocals:
            for outer in reversed(self._frames[:-1]):
                if name in outer.names:
                    return outer.names[name]
        return None

    def _global_field(self, name: str, modifiers: Iterable[str] = ("static",)) -> Variable:
        """The module field for ``name``, declared on first use."""
        variable = self._module_fields.get(name)
        if variable is None:
            variable = Variable(name, kind=VariableKind.FIELD, is_static=True)
            self._module_fields[name] = variable
            declaration = Declaration(
                name=name,
                kind=DeclarationKind.FIELD,
                qualified_name=f"{self._qualifiers[0]}.{name}",
                modifiers=frozenset(modifiers),
                variable=variable,
            )
            self._hoisted.append(declaration)
        return variable

    def _bind(self, variable: Variable) -> None:
        self._frames[-1].names[variable.name] = variable

    def _is_self(self, node: ast.AST) -> bool:
        if not self._classes or self._classes[-1].self_name is None:
            return False
        return isinstance(node, ast.Name) and node.id == self._classes[-1].self_name

    # Statements

    def _statements(self, stmts: list[ast.stmt]) -> list[Statement]:
        result: list[Statement] = []
        for stmt in stmts:
            result.extend(self._statement(stmt))
        return result

    def _block(self, stmts: list[ast.stmt], owner: ast.AST) -> Block:
        return Block(statements=self._statements(stmts), **_loc(stmts[0] if stmts else owner))

    def _statement(self, stmt: ast.stmt) -> list[Statement]:
        saved, self._pending = self._pending, []
        convert = getattr(self, f"_stmt_{type(stmt).__name__}", self._generic_statement)
        converted = convert(stmt)
        pending, self._pending = self._pending, saved
        return pending + converted

    def _generic_statement(self, stmt: ast.stmt) -> list[Statement]:
        operands = [self._expr(c) for c in ast.iter_child_nodes(stmt) if isinstance(c, ast.expr)]
        statements: list[Statement] = []
        if operands:
            expression = CompoundExpression(
                operator=type(stmt).__name__.lower(), operands=operands, **_loc(stmt)
            )
            statements.append(ExpressionStatement(expression=expression, **_loc(stmt)))
        for child in ast.iter_child_nodes(stmt):
            if isinstance(child, ast.stmt):
                statements.extend(self._statement(child))
            elif isinstance(child, ast.match_case):
                statements.append(self._block(child.body, stmt))
        return statements

    def _stmt_FunctionDef(self, stmt: ast.FunctionDef | ast.AsyncFunctionDef) -> list[Statement]:
        variable = Variable(stmt.name, type_name="function")
        self._bind(variable)
        is_async = isinstance(stmt, ast.AsyncFunctionDef)
        function = self._function(stmt.args, stmt.body, is_async, stmt)
        return [VariableDeclaration(variable=variable, initializer=function, **_loc(stmt))]

    _stmt_AsyncFunctionDef = _stmt_FunctionDef

    def _stmt_ClassDef(self, stmt: ast.ClassDef) -> list[Statement]:
        self._hoisted.append(self._class(stmt))
        variable = Variable(stmt.name, type_name="type")
        self._bind(variable)
        return [VariableDeclaration(variable=variable, **_loc(stmt))]

    def _stmt_Return(self, stmt: ast.Return) -> list[Statement]:
        value = self._expr(stmt.value) if stmt.value is not None else None
        return [Return(value=value, **_loc(stmt))]

    def _stmt_Raise(self, stmt: ast.Raise) -> list[Statement]:
        if stmt.exc is None:
            return [Throw(**_loc(stmt))]
        operand = self._expr(stmt.exc)
        if stmt.cause is not None:
            operand = CompoundExpression(
                operator="from", operands=[operand, self._expr(stmt.cause)], **_loc(stmt)
            )
        return [Throw(operand=operand, **_loc(stmt))]

    def _stmt_Assign(self, stmt: ast.Assign) -> list[Statement]:
        value = self._expr(stmt.value)
        if len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name):
            return [self._assign_name(stmt.targets[0], value, _infer_type(stmt.value), stmt)]

        targets = [self._target(t) for t in stmt.targets]
        target = targets[0]
        if len(targets) > 1:
            target = CompoundExpression(operator="targets", operands=targets, **_loc(stmt))
        assignment = Assignment(target=target, value=value, **_loc(stmt))
        return [ExpressionStatement(expression=assignment, **_loc(stmt))]

    def _stmt_AnnAssign(self, stmt: ast.AnnAssign) -> list[Statement]:
        if isinstance(stmt.target, ast.Name):
            type_name = _annotation_name(stmt.annotation) or _infer_type(stmt.value)
            if stmt.value is None:
                if self._binding(stmt.target.id) is not None:
                    return []
                variable = Variable(stmt.target.id, type_name=type_name)
                self._bind(variable)
                return [VariableDeclaration(variable=variable, **_loc(stmt))]
            value = self._expr(stmt.value)
            return [self._assign_name(stmt.target, value, type_name, stmt)]

        if stmt.value is None:
            return []
        value = self._expr(stmt.value)
        assignment = Assignment(target=self._expr(stmt.target), value=value, **_loc(stmt))
        return [ExpressionStatement(expression=assignment, **_loc(stmt))]

    def _stmt_AugAssign(self, stmt: ast.AugAssign) -> list[Statement]:
        assignment = Assignment(
            target=self._expr(stmt.target),
            value=self._expr(stmt.value),
            operator=_OPERATORS.get(type(stmt.op), "?") + "=",
            **_loc(stmt),
        )
        return [ExpressionStatement(expression=assignment, **_loc(stmt))]

    def _assign_name(
        self, target: ast.Name, value: Expression, type_name: str | None, stmt: ast.stmt
    ) -> Statement:
        existing = self._binding(target.id)
        if existing is not None:
            access = VariableAccess(name=target.id, variable=existing, **_loc(target))
            assignment = Assignment(target=access, value=value, **_loc(stmt))
            return ExpressionStatement(expression=assignment, **_loc(stmt))

        variable = Variable(target.id, type_name=type_name)
        self._bind(variable)
        return VariableDeclaration(variable=variable, initializer=value, **_loc(stmt))

    def _target(self, node: ast.expr) -> Expression:
        """Convert an assignment target, declaring names bound for the first time."""
        if isinstance(node, ast.Name):
            variable = self._binding(node.id)
            if variable is None:
                variable = Variable(node.id)
                self._bind(variable)
                self._pending.append(VariableDeclaration(variable=variable, **_loc(node)))
            return VariableAccess(name=node.id, variable=variable, **_loc(node))
        if isinstance(node, (ast.Tuple, ast.List)):
            operands = [self._target(elt) for elt in node.elts]
            return CompoundExpression(operator="tuple", operands=operands, **_loc(node))
        if isinstance(node, ast.Starred):
            return self._target(node.value)
        return self._expr(node)

    def _stmt_Expr(self, stmt: ast.Expr) -> list[Statement]:
        if isinstance(stmt.value, ast.Constant) and isinstance(stmt.value.value, str):
            return []  # docstring
        return [ExpressionStatement(expression=self._expr(stmt.value), **_loc(stmt))]

    def _stmt_If(self, stmt: ast.If) -> list[Statement]:
        condition = self._expr(stmt.test)
        then_branch = self._block(stmt.body, stmt)
        else_branch = self._block(stmt.orelse, stmt) if stmt.orelse else None
        return [
            If(condition=condition, then_branch=then_branch, else_branch=else_branch, **_loc(stmt))
        ]

    def _stmt_For(self, stmt: ast.For | ast.AsyncFor) -> list[Statement]:
        iterable = self._expr(stmt.iter)
        saved, self._pending = self._pending, []
        target = self._target(stmt.target)
        declarations, self._pending = self._pending, saved

        loop = Loop(
            body=self._block(stmt.body, stmt),
            loop_kind="async for" if isinstance(stmt, ast.AsyncFor) else "for",
            header=[target, iterable],
            declarations=[d for d in declarations if isinstance(d, VariableDeclaration)],
            **_loc(stmt),
        )
        return [loop, *self._statements(stmt.orelse)]

    _stmt_AsyncFor = _stmt_For

    def _stmt_While(self, stmt: ast.While) -> list[Statement]:
        loop = Loop(
            body=self._block(stmt.body, stmt),
            loop_kind="while",
            header=[self._expr(stmt.test)],
            **_loc(stmt),
        )
        return [loop, *self._statements(stmt.orelse)]

    def _stmt_Try(self, stmt: ast.Try) -> list[Statement]:
        body = self._block(stmt.body, stmt)
        catches = [self._catch(handler) for handler in stmt.handlers]
        finally_block = self._block(stmt.finalbody, stmt) if stmt.finalbody else None
        node = Try(body=body, catches=catches, finally_block=finally_block, **_loc(stmt))
        return [node, *self._statements(stmt.orelse)]

    _stmt_TryStar = _stmt_Try

    def _catch(self, handler: ast.ExceptHandler) -> Catch:
        types = _exception_types(handler.type)
        frame = self._frames[-1]
        variable = None
        previous = None

        if handler.name:
            type_name = types[0] if len(types) == 1 else None
            variable = Variable(handler.name, type_name=type_name or "BaseException")
            previous = frame.names.get(handler.name)
            frame.names[handler.name] = variable

        body = self._block(handler.body, handler)

        if handler.name:
            if previous is not None:
                frame.names[handler.name] = previous
            else:
                del frame.names[handler.name]

        return Catch(body=body, exception_types=types, variable=variable, **_loc(handler))

    def _stmt_With(self, stmt: ast.With | ast.AsyncWith) -> list[Statement]:
        entries: list[tuple[str, Any]] = []
        for item in stmt.items:
            resource = self._expr(item.context_expr)
            optional = item.optional_vars
            if optional is None:
                kind = "lock" if self._is_lock(item.context_expr, resource) else "using"
                entries.append((kind, resource))
            elif isinstance(optional, ast.Name) and self._binding(optional.id) is None:
                variable = Variable(optional.id, type_name=_infer_type(item.context_expr))
                self._bind(variable)
                declaration = VariableDeclaration(
                    variable=variable, initializer=resource, **_loc(item.context_expr)
                )
                entries.append(("using", declaration))
            else:
                assignment = Assignment(
                    target=self._target(optional), value=resource, **_loc(item.context_expr)
                )
                entries.append(("using", assignment))

        inner: Statement = self._block(stmt.body, stmt)
        for kind, node in reversed(entries):
            body = inner if isinstance(inner, Block) else Block(statements=[inner], **_loc(stmt))
            if kind == "lock":
                inner = Lock(target=node, body=body, **_loc(stmt))
            else:
                inner = Using(resources=[node], body=body, **_loc(stmt))
        return [inner]

    _stmt_AsyncWith = _stmt_With

    def _is_lock(self, node: ast.expr, converted: Expression) -> bool:
        name = _dotted(node.func if isinstance(node, ast.Call) else node)
        if name and name_matches(name.rsplit(".", 1)[-1], self.lock_patterns):
            return True
        variable = getattr(converted, "variable", None)
        return variable is not None and name_matches(variable.type_name, self.lock_patterns)

    def _stmt_Import(self, stmt: ast.Import | ast.ImportFrom) -> list[Statement]:
        statements: list[Statement] = []
        for name in self._import_names(stmt):
            if self._binding(name) is None:
                variable = Variable(name)
                self._bind(variable)
                statements.append(VariableDeclaration(variable=variable, **_loc(stmt)))
        return statements

    _stmt_ImportFrom = _stmt_Import

    def _stmt_Global(self, stmt: ast.Global) -> list[Statement]:
        self._frames[-1].globals.update(stmt.names)
        return []

    def _stmt_Nonlocal(self, stmt: ast.Nonlocal) -> list[Statement]:
        self._frames[-1].nonlocals.update(stmt.names)
        return []

    # Expressions

    def _expr(self, node: ast.expr) -> Expression:
        convert = getattr(self, f"_expr_{type(node).__name__}", self._generic_expr)
        return convert(node)

    def _generic_expr(self, node: ast.expr) -> Expression:
        operands = [self._expr(c) for c in ast.iter_child_nodes(node) if isinstance(c, ast.expr)]
        return CompoundExpression(
            operator=type(node).__name__.lower(), operands=operands, **_loc(node)
        )

    def _expr_Name(self, node: ast.Name) -> Expression:
        variable = self._lookup(node.id)
        if variable is not None:
            return VariableAccess(name=node.id, variable=variable, **_loc(node))
        if hasattr(builtins, node.id):
            variable = self._global_field(node.id, modifiers=("static", "builtin"))
            return VariableAccess(name=node.id, variable=variable, **_loc(node))
        return FieldAccess(name=node.id, **_loc(node))

    def _expr_Attribute(self, node: ast.Attribute) -> Expression:
        if self._is_self(node.value):
            variable = self._classes[-1].fields.get(node.attr)
            return FieldAccess(name=node.attr, variable=variable, **_loc(node))
        return FieldAccess(name=node.attr, qualifier=self._expr(node.value), **_loc(node))

    def _expr_Call(self, node: ast.Call) -> Expression:
        func = node.func

        if isinstance(func, ast.Attribute):
            name = _dotted(func)
            if name and func.attr[:1].isupper() and not self._is_self(func.value):
                return ObjectCreation(type_name=name, arguments=self._arguments(node), **_loc(node))
            qualifier = None if self._is_self(func.value) else self._expr(func.value)
            return MethodCall(
                name=func.attr, qualifier=qualifier, arguments=self._arguments(node), **_loc(node)
            )

        if isinstance(func, ast.Name):
            if func.id[:1].isupper():
                return ObjectCreation(
                    type_name=func.id, arguments=self._arguments(node), **_loc(node)
                )
            return MethodCall(name=func.id, arguments=self._arguments(node), **_loc(node))

        qualifier = self._expr(func)
        return MethodCall(
            name="__call__", qualifier=qualifier, arguments=self._arguments(node), **_loc(node)
        )

    def _arguments(self, node: ast.Call) -> list[Expression]:
        arguments = [self._expr(a) for a in node.args]
        arguments.extend(self._expr(k.value) for k in node.keywords)
        return arguments

    def _expr_Subscript(self, node: ast.Subscript) -> Expression:
        return ElementAccess(
            target=self._expr(node.value), index=self._expr(node.slice), **_loc(node)
        )

    def _expr_Constant(self, node: ast.Constant) -> Expression:
        return Literal(value=node.value, **_loc(node))

    def _expr_BinOp(self, node: ast.BinOp) -> Expression:
        return CompoundExpression(
            operator=_OPERATORS.get(type(node.op), "?"),
            operands=[self._expr(node.left), self._expr(node.right)],
            **_loc(node),
        )

    def _expr_BoolOp(self, node: ast.BoolOp) -> Expression:
        return CompoundExpression(
            operator=_OPERATORS[type(node.op)],
            operands=[self._expr(v) for v in node.values],
            **_loc(node),
        )

    def _expr_UnaryOp(self, node: ast.UnaryOp) -> Expression:
        return CompoundExpression(
            operator=_OPERATORS.get(type(node.op), "?"),
            operands=[self._expr(node.operand)],
            **_loc(node),
        )

    def _expr_Compare(self, node: ast.Compare) -> Expression:
        return CompoundExpression(
            operator=" ".join(_OPERATORS.get(type(op), "?") for op in node.ops),
            operands=[self._expr(node.left), *(self._expr(c) for c in node.comparators)],
            **_loc(node),
        )

    def _expr_Dict(self, node: ast.Dict) -> Expression:
        operands = [self._expr(k) for k in node.keys if k is not None]
        operands.extend(self._expr(v) for v in node.values)
        return CompoundExpression(operator="dict", operands=operands, **_loc(node))

    def _expr_NamedExpr(self, node: ast.NamedExpr) -> Expression:
        value = self._expr(node.value)
        return Assignment(target=self._target(node.target), value=value, **_loc(node))

    def _expr_Lambda(self, node: ast.Lambda) -> Expression:
        return self._function(node.args, node.body, False, node)

    def _function(
        self,
        args: ast.arguments,
        body: list[ast.stmt] | ast.expr,
        is_async: bool,
        node: ast.AST,
    ) -> Lambda:
        parameters = self._parameters(args)
        self._frames.append(_Frame(names={p.name: p for p in parameters}))
        if isinstance(body, list):
            statements = self._statements(body)
        else:
            value = self._expr(body)
            statements = [Return(value=value, **_loc(body))]
        self._frames.pop()
        return Lambda(parameters=parameters, body=statements, is_async=is_async, **_loc(node))

    def _expr_ListComp(self, node: ast.ListComp | ast.SetComp | ast.GeneratorExp) -> Expression:
        return self._comprehension(node, [node.elt])

    _expr_SetComp = _expr_ListComp
    _expr_GeneratorExp = _expr_ListComp

    def _expr_DictComp(self, node: ast.DictComp) -> Expression:
        return self._comprehension(node, [node.key, node.value])

    def _comprehension(self, node: ast.expr, elements: list[ast.expr]) -> Expression:
        """A comprehension is modelled as a lambda over its loop variables.

        The first iterable is evaluated in the enclosing scope, like Python does.
        """
        first = self._expr(node.generators[0].iter)
        parameters: list[Variable] = []
        frame = _Frame()
        self._frames.append(frame)

        operands: list[Expression] = []
        for index, generator in enumerate(node.generators):
            if index > 0:
                operands.append(self._expr(generator.iter))
            for name in _target_names(generator.target):
                variable = Variable(name)
                frame.names[name] = variable
                parameters.append(variable)
            operands.append(self._expr(generator.target))
            operands.extend(self._expr(condition) for condition in generator.ifs)
        operands.extend(self._expr(element) for element in elements)

        self._frames.pop()
        body = ExpressionStatement(
            expression=CompoundExpression(operator="yield", operands=operands, **_loc(node)),
            **_loc(node),
        )
        function = Lambda(parameters=parameters, body=[body], **_loc(node))
        return CompoundExpression(
            operator=type(node).__name__.lower(), operands=[first, function], **_loc(node)
        )
