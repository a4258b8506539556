"""Unit tests for the predicate library."""

from pathlib import Path

import pytest

from warden.core.exceptions import UnresolvedReferenceError
from warden.core.predicates import (
    MODULE_BODY,
    base_type_name,
    comment_suppresses,
    declared_disposable_types,
    is_acquisition,
    is_concurrency_launch,
    is_constructor,
    is_in_concurrent_context,
    is_known_resource_type,
    is_map_type,
    is_rethrow,
    is_shared_field,
    launched_names,
    name_matches,
    references_variable,
    resolve_access_target,
)
from warden.core.program import (
    Block,
    Declaration,
    DeclarationKind,
    FieldAccess,
    If,
    Literal,
    MethodCall,
    ObjectCreation,
    SourceUnit,
    Throw,
    Variable,
    VariableKind,
    find_all,
)
from warden.languages import load_document

LAUNCH_CALLS = ("Task.Run", "%.submit", "%.Thread")


def method_unit(body: list, modifiers: list[str] | None = None) -> SourceUnit:
    """Build a unit with one class holding a ``_sharedItems`` map and one method."""
    return load_document(
        {
            "path": "Jobs.cs",
            "declarations": [
                {
                    "kind": "class",
                    "name": "Jobs",
                    "line": 1,
                    "members": [
                        {
                            "kind": "field",
                            "name": "_sharedItems",
                            "type": "Dictionary<string, int>",
                            "line": 2,
                        },
                        {
                            "kind": "method",
                            "name": "Schedule",
                            "modifiers": modifiers or [],
                            "line": 4,
                            "body": body,
                        },
                    ],
                }
            ],
        }
    )


def add_call(line: int = 6) -> dict:
    """An ``_sharedItems.Add("k", 1)`` statement."""
    return {
        "kind": "expr",
        "line": line,
        "expression": {
            "kind": "call",
            "target": {"kind": "field", "name": "_sharedItems"},
            "name": "Add",
            "args": ["k", 1],
        },
    }


def find_call(unit: SourceUnit, name: str) -> MethodCall:
    return next(c for c in find_all(unit, MethodCall) if c.name == name)


class TestNameMatching:
    """Tests for wildcard name patterns."""

    @pytest.mark.parametrize(
        "identifier, pattern",
        [
            ("FileStream", "%Stream"),
            ("filestream", "%STREAM"),
            ("_sharedCache", "%cache%"),
            ("LogError", "*log*"),
            ("Lock", "L?ck"),
            ("Task.Run", "Task.Run"),
        ],
    )
    def test_matches(self, identifier: str, pattern: str) -> None:
        """Test identifiers that match a pattern."""
        assert name_matches(identifier, [pattern])

    @pytest.mark.parametrize(
        "identifier, pattern",
        [
            ("FileStreamFactory", "%Stream"),
            ("Streamer", "Stream"),
            ("TaskXRun", "Task.Run"),
            ("Lock", "L?"),
        ],
    )
    def test_anchored(self, identifier: str, pattern: str) -> None:
        """Test that patterns must match the whole identifier."""
        assert not name_matches(identifier, [pattern])

    def test_absent_identifier(self) -> None:
        """Test that a missing identifier never matches."""
        assert not name_matches(None, ["%"])
        assert not name_matches("", ["%"])


class TestTypeNames:
    """Tests for type-name helpers."""

    def test_base_type_name(self) -> None:
        """Test stripping namespaces, generics and nullable markers."""
        assert base_type_name("System.Collections.Generic.Dictionary<string, int>") == "Dictionary"
        assert base_type_name("FileStream?") == "FileStream"
        assert base_type_name("dict[str, int]") == "dict"
        assert base_type_name(None) is None

    def test_known_resource_type(self) -> None:
        """Test resource detection by pattern and by the disposable flag."""
        patterns = ["FileStream", "%Reader"]
        unit = load_document(
            {
                "path": "Lease.cs",
                "declarations": [{"kind": "class", "name": "Lease", "disposable": True}],
            }
        )

        assert is_known_resource_type("System.IO.FileStream", patterns)
        assert is_known_resource_type("SqlDataReader", patterns)
        assert is_known_resource_type("Lease", patterns, unit)
        assert not is_known_resource_type("Lease", patterns)
        assert not is_known_resource_type(None, patterns)

    def test_map_type_excludes_concurrent(self) -> None:
        """Test that concurrency-safe maps are not map types."""
        assert is_map_type("Dictionary<string, int>", ["Dictionary"], ["Concurrent%"])
        assert is_map_type("dict", ["dict"])
        concurrent = "ConcurrentDictionary<string, int>"
        assert not is_map_type(concurrent, ["%Dictionary"], ["Concurrent%"])
        assert not is_map_type(None, ["dict"])

    def test_shared_field(self) -> None:
        """Test static and name-matched fields count as shared."""
        patterns = ["%shared%"]

        assert is_shared_field(Variable("cache", kind=VariableKind.FIELD, is_static=True), patterns)
        assert is_shared_field(Variable("_sharedItems", kind=VariableKind.FIELD), patterns)
        assert not is_shared_field(Variable("_items", kind=VariableKind.FIELD), patterns)
        assert not is_shared_field(Variable("_sharedItems"), patterns)


class TestStructure:
    """Tests for structural predicates."""

    def test_rethrow_nested(self) -> None:
        """Test that a bare throw nested in an if counts as a rethrow."""
        nested = If(
            condition=Literal(value=True),
            then_branch=Block(statements=[Throw()]),
        )

        assert is_rethrow(Block(statements=[nested]))

    def test_throw_with_operand_is_not_rethrow(self) -> None:
        """Test that throwing a new exception is not a rethrow."""
        assert not is_rethrow(Block(statements=[Throw(operand=ObjectCreation(type_name="E"))]))

    def test_acquisition(self) -> None:
        """Test which initializers acquire a resource."""
        assert is_acquisition(ObjectCreation(type_name="FileStream"))
        assert is_acquisition(MethodCall(name="ExecuteReader"))
        assert not is_acquisition(Literal(value=None))
        assert not is_acquisition(None)

    def test_references_variable(self) -> None:
        """Test identity-based variable references."""
        unit = method_unit([add_call()])
        call = find_call(unit, "Add")
        field = call.qualifier
        assert isinstance(field, FieldAccess)

        assert references_variable(call, field.variable)
        assert not references_variable(call, Variable("_sharedItems"))

    def test_constructor(self) -> None:
        """Test constructor recognition by name."""
        owner = Declaration(name="Jobs", kind=DeclarationKind.TYPE)
        ctor = Declaration(name="Jobs", kind=DeclarationKind.METHOD, parent=owner)
        init = Declaration(name="__init__", kind=DeclarationKind.METHOD)
        other = Declaration(name="Run", kind=DeclarationKind.METHOD, parent=owner)
        module_body = Declaration(name=MODULE_BODY, kind=DeclarationKind.METHOD)

        assert is_constructor(ctor)
        assert is_constructor(init)
        assert is_constructor(module_body)
        assert not is_constructor(other)
        assert not is_constructor(None)


class TestConcurrency:
    """Tests for concurrent-context detection."""

    def test_launch_call_and_creation(self) -> None:
        """Test launching calls by qualified name and launching object creations."""
        assert is_concurrency_launch(MethodCall(name="Run", declaring_type="Task"), LAUNCH_CALLS)
        assert is_concurrency_launch(ObjectCreation(type_name="threading.Thread"), LAUNCH_CALLS)
        assert not is_concurrency_launch(MethodCall(name="Run"), LAUNCH_CALLS)

    def test_lambda_passed_to_launch(self) -> None:
        """Test that code inside a lambda handed to Task.Run is concurrent."""
        unit = method_unit(
            [
                {
                    "kind": "expr",
                    "line": 5,
                    "expression": {
                        "kind": "call",
                        "type": "Task",
                        "name": "Run",
                        "args": [{"kind": "lambda", "body": [add_call()]}],
                    },
                }
            ]
        )

        assert is_in_concurrent_context(find_call(unit, "Add"), unit, LAUNCH_CALLS)

    def test_async_method(self) -> None:
        """Test that an async method body is concurrent."""
        unit = method_unit([add_call()], modifiers=["async"])

        assert is_in_concurrent_context(find_call(unit, "Add"), unit, LAUNCH_CALLS)

    def test_local_function_launched_by_name(self) -> None:
        """Test a local function passed to a launching call by name."""
        unit = method_unit(
            [
                {"kind": "local_function", "name": "work", "line": 5, "body": [add_call()]},
                {
                    "kind": "expr",
                    "line": 8,
                    "expression": {
                        "kind": "call",
                        "target": {"kind": "var", "name": "work"},
                        "name": "submit",
                        "args": [{"kind": "var", "name": "work"}],
                    },
                },
            ]
        )

        assert is_in_concurrent_context(find_call(unit, "Add"), unit, LAUNCH_CALLS)

    def test_plain_method(self) -> None:
        """Test that ordinary synchronous code is not concurrent."""
        unit = method_unit([add_call()])

        assert not is_in_concurrent_context(find_call(unit, "Add"), unit, LAUNCH_CALLS)

    def test_unit_scans_computed_once(self) -> None:
        """Test that whole-unit scans are reused for every candidate of a unit."""
        unit = method_unit(
            [
                {"kind": "local_function", "name": "work", "line": 5, "body": [add_call()]},
                {
                    "kind": "expr",
                    "line": 8,
                    "expression": {
                        "kind": "call",
                        "target": {"kind": "var", "name": "work"},
                        "name": "submit",
                        "args": [{"kind": "var", "name": "work"}],
                    },
                },
            ]
        )

        launched = launched_names(unit, LAUNCH_CALLS)
        assert launched == {"work"}
        assert launched_names(unit, list(LAUNCH_CALLS)) is launched

        declared_disposable_types(unit)
        hits = declared_disposable_types.cache_info().hits
        declared_disposable_types(unit)
        assert declared_disposable_types.cache_info().hits == hits + 1


class TestResolution:
    """Tests for access target resolution."""

    def test_unresolved_own_member(self) -> None:
        """Test that an own member missing from the type raises."""
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            resolve_access_target(FieldAccess(name="_missing", line=7))

        assert "_missing" in str(exc_info.value)

    def test_member_of_other_object(self) -> None:
        """Test that a member of another object resolves to nothing."""
        access = FieldAccess(name="Items", qualifier=MethodCall(name="Load"))

        assert resolve_access_target(access) is None
        assert resolve_access_target(Literal(value=1)) is None


class TestSuppressionComments:
    """Tests for suppression comment parsing."""

    PHRASES = ("warden: ignore", "warden-ignore")

    def test_bare_phrase_covers_all_rules(self) -> None:
        """Test that a phrase without a list suppresses every rule."""
        assert comment_suppresses("# warden: ignore", self.PHRASES, "any-rule")
        assert comment_suppresses("// WARDEN-IGNORE because", self.PHRASES, "any-rule")

    def test_rule_list(self) -> None:
        """Test that a rule list restricts the suppression."""
        comment = "# warden: ignore[generic-exception-handling, unsafe-shared-map-access]"

        assert comment_suppresses(comment, self.PHRASES, "unsafe-shared-map-access")
        assert not comment_suppresses(comment, self.PHRASES, "missing-resource-disposal")

    def test_unrelated_comment(self) -> None:
        """Test that ordinary comments suppress nothing."""
        assert not comment_suppresses("# TODO: ignore this later", self.PHRASES, "rule")


def test_source_unit_path_kept() -> None:
    """Test that a document's own path is used for the unit."""
    unit = method_unit([])

    assert unit.path == Path("Jobs.cs")
