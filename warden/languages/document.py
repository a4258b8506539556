"""Model documents: program models exported by an external front end.

A model document is a JSON or YAML mapping describing one source file of any
language. Every node is a mapping with a ``kind`` key and optional ``line``,
``column``, ``end_line`` and ``end_column`` keys; a node without a location
inherits its parent's. Example::

    path: src/Program.cs
    language: csharp
    comments: {12: "// warden: ignore"}
    declarations:
      - kind: class
        name: Program
        members:
          - kind: method
            name: Main
            line: 5
            body:
              - kind: try
                body: [{kind: expr, expression: {kind: call, name: Run}}]
                catches:
                  - {kind: catch, type: Exception, body: []}

Declarations: ``class`` (``members``, ``disposable``), ``method`` /
``constructor`` (``parameters``, ``body``), ``field`` (``type``,
``initializer``). Statements: ``block``, ``try``, ``catch``, ``throw``,
``return``, ``local``, ``local_function``, ``lock``, ``using``, ``expr``,
``if``, ``loop``. Expressions: ``call``, ``new``, ``var``, ``field``,
``literal``, ``assign``, ``index``, ``lambda``, ``compound``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from warden.core.exceptions import MalformedInputError, ParseError
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
    Node,
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

DOCUMENT_SUFFIXES = (".model.json", ".model.yaml", ".model.yml")

_TYPE_KINDS = {"class", "type", "struct", "interface", "record", "module"}
_METHOD_KINDS = {"method", "constructor", "function"}
_FIELD_KINDS = {"field", "property"}
_LOOP_KINDS = {"loop", "for", "foreach", "while", "do"}

_LOCATION_KEYS = ("line", "column", "end_line", "end_column")


class DocumentParser:
    """Front end for model documents (``*.model.json``, ``*.model.yaml``)."""

    def supports(self, file: Path) -> bool:
        """Check if this parser supports the given file."""
        return file.name.endswith(DOCUMENT_SUFFIXES)

    def parse(self, file: Path) -> SourceUnit:
        """Load a model document into a linked SourceUnit."""
        try:
            text = file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(f"Cannot read {file}: {e}") from e

        try:
            if file.name.endswith(".json"):
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ParseError(f"Invalid model document {file}: {e}") from e

        return load_document(data, file)


def load_document(data: Any, path: Path | None = None) -> SourceUnit:
    """Build a linked SourceUnit from an in-memory model document.

    The document's own ``path`` key, when present, names the source file the
    findings refer to; otherwise ``path`` is used.

    Raises:
        MalformedInputError: If the document is structurally invalid or a
            variable reference cannot be resolved.
    """
    if not isinstance(data, Mapping):
        raise MalformedInputError(f"{path}: model document must be a mapping")

    unit_path = data.get("path")
    if unit_path is None and path is None:
        raise MalformedInputError("Model document has no 'path'")
    if unit_path is not None and not isinstance(unit_path, str):
        raise MalformedInputError(f"{path}: 'path' must be a string")
    unit_path = Path(unit_path) if unit_path is not None else path

    builder = _DocumentBuilder(unit_path)
    try:
        unit = builder.unit(data)
    except (TypeError, ValueError, RecursionError) as e:
        raise MalformedInputError(f"{unit_path}: invalid model document: {e}") from e
    return link_unit(unit)


class _DocumentBuilder:
    """Converts document mappings into nodes, resolving names lexically."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._scopes: list[dict[str, Variable]] = []
        self._fields: list[dict[str, Variable]] = []
        self._types: list[str] = []

    def _error(self, data: Any, message: str) -> MalformedInputError:
        line = data.get("line") if isinstance(data, Mapping) else None
        where = f"{self.path}:{line}" if line else str(self.path)
        return MalformedInputError(f"{where}: {message}")

    def _mapping(self, data: Any, what: str) -> Mapping[str, Any]:
        if not isinstance(data, Mapping):
            raise self._error(data, f"{what} must be a mapping, got {type(data).__name__}")
        return data

    def _list(self, data: Mapping[str, Any], key: str) -> list[Any]:
        value = data.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise self._error(data, f"'{key}' must be a list")
        return value

    def _kind(self, data: Mapping[str, Any]) -> str | None:
        kind = data.get("kind")
        if kind is not None and not isinstance(kind, str):
            raise self._error(data, f"'kind' must be a string, got {type(kind).__name__}")
        return kind

    def _text(self, data: Mapping[str, Any], key: str) -> str | None:
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise self._error(data, f"'{key}' must be a string")
        return value

    def _require(self, data: Mapping[str, Any], key: str) -> Any:
        if data.get(key) is None:
            raise self._error(data, f"{data.get('kind', 'node')} requires '{key}'")
        return data[key]

    def _location(self, data: Mapping[str, Any], parent: dict[str, Any]) -> dict[str, Any]:
        location = dict(parent)
        for key in _LOCATION_KEYS:
            value = data.get(key)
            if value is not None:
                if not isinstance(value, int) or isinstance(value, bool):
                    raise self._error(data, f"'{key}' must be an integer")
                location[key] = value
        if "line" in data and "end_line" not in data:
            location["end_line"] = None
            location["end_column"] = None
        return location

    # Unit and declarations

    def unit(self, data: Mapping[str, Any]) -> SourceUnit:
        comments: dict[int, str] = {}
        raw_comments = data.get("comments") or {}
        if not isinstance(raw_comments, Mapping):
            raise self._error(data, "'comments' must map line numbers to text")
        for line, text in raw_comments.items():
            try:
                comments[int(line)] = str(text)
            except (TypeError, ValueError):
                raise self._error(data, f"invalid comment line '{line}'") from None

        disposable = data.get("disposable_types") or []
        if not isinstance(disposable, list):
            raise self._error(data, "'disposable_types' must be a list")

        location = {"line": 1, "column": 1, "end_line": None, "end_column": None}
        declarations = [
            self.declaration(self._mapping(d, "declaration"), location)
            for d in self._list(data, "declarations")
        ]
        return SourceUnit(
            path=self.path,
            language=str(data.get("language", "unknown")),
            declarations=declarations,
            comments=comments,
            disposable_types=frozenset(str(t) for t in disposable),
            **location,
        )

    def declaration(self, data: Mapping[str, Any], parent: dict[str, Any]) -> Declaration:
        kind = self._kind(data)
        location = self._location(data, parent)
        if kind in _TYPE_KINDS:
            return self._type(data, location)
        if kind in _METHOD_KINDS:
            return self._method(data, location)
        if kind in _FIELD_KINDS:
            raise self._error(data, f"{kind} '{data.get('name')}' declared outside a type")
        raise self._error(data, f"unknown declaration kind '{kind}'")

    def _qualified(self, name: str) -> str:
        return ".".join([*self._types, name])

    def _modifiers(self, data: Mapping[str, Any]) -> frozenset[str]:
        modifiers = data.get("modifiers") or []
        if isinstance(modifiers, str):
            modifiers = modifiers.split()
        if not isinstance(modifiers, list):
            raise self._error(data, "'modifiers' must be a list or a string")
        return frozenset(str(m) for m in modifiers)

    def _type(self, data: Mapping[str, Any], location: dict[str, Any]) -> Declaration:
        name = str(self._require(data, "name"))
        members_data = [self._mapping(m, "member") for m in self._list(data, "members")]

        fields: dict[str, Variable] = {}
        for member in members_data:
            if self._kind(member) in _FIELD_KINDS:
                field_name = str(self._require(member, "name"))
                if field_name in fields:
                    raise self._error(member, f"field '{field_name}' is declared twice")
                modifiers = self._modifiers(member)
                fields[field_name] = Variable(
                    field_name,
                    type_name=self._text(member, "type"),
                    kind=VariableKind.FIELD,
                    is_static="static" in modifiers or "const" in modifiers,
                )

        self._types.append(name)
        self._fields.append(fields)
        members = []
        for member in members_data:
            member_location = self._location(member, location)
            if self._kind(member) in _FIELD_KINDS:
                members.append(self._field(member, fields[str(member["name"])], member_location))
            else:
                members.append(self.declaration(member, location))
        self._fields.pop()
        qualified_name = ".".join(self._types)
        self._types.pop()

        return Declaration(
            name=name,
            kind=DeclarationKind.TYPE,
            qualified_name=qualified_name,
            modifiers=self._modifiers(data),
            members=members,
            is_disposable=bool(data.get("disposable", False)),
            **location,
        )

    def _field(
        self, data: Mapping[str, Any], variable: Variable, location: dict[str, Any]
    ) -> Declaration:
        initializer = data.get("initializer", data.get("value"))
        return Declaration(
            name=variable.name,
            kind=DeclarationKind.FIELD,
            qualified_name=self._qualified(variable.name),
            modifiers=self._modifiers(data),
            variable=variable,
            initializer=self.expression(initializer, location) if initializer is not None else None,
            **location,
        )

    def _parameters(self, data: Mapping[str, Any]) -> list[Variable]:
        parameters = []
        for raw in self._list(data, "parameters"):
            if isinstance(raw, str):
                raw = {"name": raw}
            raw = self._mapping(raw, "parameter")
            parameters.append(
                Variable(
                    str(self._require(raw, "name")),
                    type_name=self._text(raw, "type"),
                    kind=VariableKind.PARAMETER,
                )
            )
        return parameters

    def _method(self, data: Mapping[str, Any], location: dict[str, Any]) -> Declaration:
        default_name = None
        if data.get("kind") == "constructor" and self._types:
            default_name = self._types[-1]
        name = str(data.get("name") or default_name or self._require(data, "name"))
        parameters = self._parameters(data)

        body = self._scoped_statements(data, "body", location, parameters)
        return Declaration(
            name=name,
            kind=DeclarationKind.METHOD,
            qualified_name=self._qualified(name),
            modifiers=self._modifiers(data),
            parameters=parameters,
            body=body,
            **location,
        )

    # Statements

    def _scoped_statements(
        self,
        data: Mapping[str, Any],
        key: str,
        location: dict[str, Any],
        variables: list[Variable] | None = None,
    ) -> list[Statement]:
        scope = {v.name: v for v in variables or []}
        self._scopes.append(scope)
        statements = [self.statement(s, location) for s in self._list(data, key)]
        self._scopes.pop()
        return statements

    def _block(self, data: Mapping[str, Any], key: str, location: dict[str, Any]) -> Block:
        return Block(statements=self._scoped_statements(data, key, location), **location)

    def _declare(self, variable: Variable, data: Mapping[str, Any]) -> None:
        scope = self._scopes[-1]
        if variable.name in scope:
            raise self._error(data, f"variable '{variable.name}' is already declared in this scope")
        scope[variable.name] = variable

    def statement(self, data: Any, parent: dict[str, Any]) -> Statement:
        data = self._mapping(data, "statement")
        kind = self._kind(data)
        location = self._location(data, parent)
        convert = getattr(self, f"_stmt_{kind}", None)
        if kind in _LOOP_KINDS:
            convert = self._loop
        if convert is None:
            raise self._error(data, f"unknown statement kind '{kind}'")
        return convert(data, location)

    def _stmt_block(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        return self._block(data, "statements", location)

    def _stmt_try(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        body = self._block(data, "body", location)
        catches = [
            self._catch(self._mapping(c, "catch"), location) for c in self._list(data, "catches")
        ]
        finally_block = None
        if data.get("finally") is not None:
            finally_block = self._block(data, "finally", location)
        return Try(body=body, catches=catches, finally_block=finally_block, **location)

    def _catch(self, data: Mapping[str, Any], parent: dict[str, Any]) -> Catch:
        location = self._location(data, parent)
        types = data.get("types")
        if types is None:
            types = [data["type"]] if data.get("type") else []
        if not isinstance(types, list):
            raise self._error(data, "'types' must be a list")
        types = [str(t) for t in types]

        variable = None
        variables = []
        if data.get("variable"):
            variable = Variable(str(data["variable"]), type_name=types[0] if types else None)
            variables.append(variable)

        statements = self._scoped_statements(data, "body", location, variables)
        return Catch(
            body=Block(statements=statements, **location),
            exception_types=types,
            variable=variable,
            **location,
        )

    def _stmt_catch(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        raise self._error(data, "catch clauses belong in a try statement's 'catches'")

    def _stmt_throw(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        operand = self._optional_expression(data, "value", location)
        return Throw(operand=operand, **location)

    def _stmt_return(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        return Return(value=self._optional_expression(data, "value", location), **location)

    def _stmt_local(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        return self._local(data, location)

    def _local(self, data: Mapping[str, Any], location: dict[str, Any]) -> VariableDeclaration:
        variable = Variable(str(self._require(data, "name")), type_name=self._text(data, "type"))
        initializer = self._optional_expression(data, "value", location)
        self._declare(variable, data)
        return VariableDeclaration(variable=variable, initializer=initializer, **location)

    def _stmt_local_function(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        variable = Variable(str(self._require(data, "name")), type_name="function")
        self._declare(variable, data)
        function = self._lambda(data, location)
        return VariableDeclaration(variable=variable, initializer=function, **location)

    def _stmt_lock(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        target = self.expression(self._require(data, "target"), location)
        return Lock(target=target, body=self._block(data, "body", location), **location)

    def _stmt_using(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        has_body = data.get("body") is not None
        if has_body:
            self._scopes.append({})

        resources: list[Node] = []
        for raw in self._list(data, "resources"):
            raw = self._mapping(raw, "resource")
            if raw.get("kind") == "local":
                resources.append(self._local(raw, self._location(raw, location)))
            else:
                resources.append(self.expression(raw, location))

        body = self._block(data, "body", location) if has_body else None
        if has_body:
            self._scopes.pop()
        return Using(resources=resources, body=body, **location)

    def _stmt_expr(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        expression = self.expression(self._require(data, "expression"), location)
        return ExpressionStatement(expression=expression, **location)

    def _stmt_if(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        condition = self.expression(self._require(data, "condition"), location)
        then_branch = self._block(data, "then", location)
        else_branch = self._block(data, "else", location) if data.get("else") is not None else None
        return If(condition=condition, then_branch=then_branch, else_branch=else_branch, **location)

    def _loop(self, data: Mapping[str, Any], location: dict[str, Any]) -> Statement:
        kind = data["kind"]
        loop_kind = str(data.get("loop", "while" if kind == "loop" else kind))

        self._scopes.append({})
        declarations = [
            self._local(raw, self._location(raw, location))
            for raw in (self._mapping(r, "loop variable") for r in self._list(data, "declare"))
        ]
        header = [self.expression(e, location) for e in self._list(data, "header")]
        body = self._block(data, "body", location)
        self._scopes.pop()

        return Loop(
            body=body, loop_kind=loop_kind, header=header, declarations=declarations, **location
        )

    # Expressions

    def _optional_expression(
        self, data: Mapping[str, Any], key: str, location: dict[str, Any]
    ) -> Expression | None:
        value = data.get(key)
        return self.expression(value, location) if value is not None else None

    def _arguments(self, data: Mapping[str, Any], location: dict[str, Any]) -> list[Expression]:
        return [self.expression(a, location) for a in self._list(data, "args")]

    def expression(self, data: Any, parent: dict[str, Any]) -> Expression:
        if not isinstance(data, Mapping):
            # Scalars are literals
            return Literal(value=data, **parent)
        kind = self._kind(data)
        location = self._location(data, parent)
        convert = getattr(self, f"_expr_{kind}", None)
        if convert is None:
            raise self._error(data, f"unknown expression kind '{kind}'")
        return convert(data, location)

    def _lookup(self, name: str) -> Variable | None:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        for fields in reversed(self._fields):
            if name in fields:
                return fields[name]
        return None

    def _expr_var(self, data: Mapping[str, Any], location: dict[str, Any]) -> Expression:
        name = str(self._require(data, "name"))
        variable = self._lookup(name)
        if variable is None:
            raise self._error(data, f"reference to undeclared variable '{name}'")
        return VariableAccess(name=name, variable=variable, **location)

    def _expr_field(self, data: Mapping[str, Any], location: dict[str, Any]) -> Expression:
        name = str(self._require(data, "name"))
        if data.get("target") is not None:
            qualifier = self.expression(data["target"], location)
            return FieldAccess(name=name, qualifier=qualifier, **location)
        variable = self._fields[-1].get(name) if self._fields else None
        return FieldAccess(name=name, variable=variable, **location)

    def _expr_call(self, data: Mapping[str, Any], location: dict[str, Any]) -> Expression:
        qualifier = self._optional_expression(data, "target", location)
        return MethodCall(
            name=str(self._require(data, "name")),
            declaring_type=self._text(data, "type"),
            qualifier=qualifier,
            arguments=self._arguments(data, location),
            **location,
        )

    def _expr_new(self, data: Mapping[str, Any], location: dict[str, Any]) -> Expression:
        return ObjectCreation(
            type_name=str(self._require(data, "type")),
            arguments=self._arguments(data, location),
            **location,
        )

    def _expr_literal(self, data: Mapping[str, Any], location: dict[str, Any]) -> Expression:
        return Literal(value=data.get("value"), **location)

    def _expr_assign(self, data: Mapping[str, Any], location: dict[str, Any]) -> Expression:
        return Assignment(
            target=self.expression(self._require(data, "target"), location),
            value=self.expression(self._require(data, "value"), location),
            operator=str(data.get("op", "=")),
            **location,
        )

    def _expr_index(self, data: Mapping[str, Any], location: dict[str, Any]) -> Expression:
        return ElementAccess(
            target=self.expression(self._require(data, "target"), location),
            index=self._optional_expression(data, "index", location),
            **location,
        )

    def _expr_lambda(self, data: Mapping[str, Any], location: dict[str, Any]) -> Expression:
        return self._lambda(data, location)

    def _lambda(self, data: Mapping[str, Any], location: dict[str, Any]) -> Lambda:
        parameters = self._parameters(data)
        if data.get("value") is not None:
            self._scopes.append({p.name: p for p in parameters})
            value = self.expression(data["value"], location)
            self._scopes.pop()
            body: list[Statement] = [Return(value=value, **location)]
        else:
            body = self._scoped_statements(data, "body", location, parameters)
        modifiers = self._modifiers(data)
        return Lambda(
            parameters=parameters,
            body=body,
            is_async=bool(data.get("async", False)) or "async" in modifiers,
            **location,
        )

    def _expr_compound(self, data: Mapping[str, Any], location: dict[str, Any]) -> Expression:
        return CompoundExpression(
            operator=str(data.get("op", "?")),
            operands=[self.expression(o, location) for o in self._list(data, "operands")],
            **location,
        )
