"""Unit tests for model documents."""

import json
import tempfile
from pathlib import Path

import pytest

from warden.core.exceptions import MalformedInputError, ParseError
from warden.core.program import (
    Catch,
    Declaration,
    DeclarationKind,
    Lambda,
    Return,
    Using,
    VariableDeclaration,
    find_all,
)
from warden.languages import DocumentParser, load_document


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def document(*body: dict, **extra) -> dict:
    """A document with one class and one method holding ``body``."""
    return {
        "path": "Sample.cs",
        "declarations": [
            {
                "kind": "class",
                "name": "Sample",
                "line": 1,
                "members": [{"kind": "method", "name": "Run", "line": 2, "body": list(body)}],
            }
        ],
        **extra,
    }


class TestLoadDocument:
    """Tests for building units from document mappings."""

    def test_location_inherited(self) -> None:
        """Test that nodes without a line take their parent's."""
        unit = load_document(
            document(
                {
                    "kind": "using",
                    "line": 4,
                    "resources": [
                        {
                            "kind": "local",
                            "name": "s",
                            "type": "Stream",
                            "value": {"kind": "new", "type": "Stream"},
                        }
                    ],
                    "body": [],
                }
            )
        )

        declaration = next(find_all(unit, VariableDeclaration))
        assert declaration.line == 4
        assert isinstance(declaration.parent, Using)

    def test_qualified_names(self) -> None:
        """Test qualified names of nested declarations."""
        unit = load_document(document())

        method = next(
            d for d in find_all(unit, Declaration) if d.kind == DeclarationKind.METHOD
        )
        assert method.qualified_name == "Sample.Run"

    def test_catch_variable_scoped(self) -> None:
        """Test that a catch variable is visible only inside its clause."""
        catch = {
            "kind": "catch",
            "type": "Exception",
            "variable": "ex",
            "body": [{"kind": "throw", "value": {"kind": "var", "name": "ex"}}],
        }
        unit = load_document(
            document({"kind": "try", "line": 3, "body": [], "catches": [catch]})
        )

        clause = next(find_all(unit, Catch))
        assert clause.variable is not None
        assert clause.variable.type_name == "Exception"

    def test_expression_lambda(self) -> None:
        """Test that an expression-bodied lambda returns its value."""
        lam = {"kind": "lambda", "parameters": ["x"], "value": {"kind": "var", "name": "x"}}
        unit = load_document(document({"kind": "expr", "line": 3, "expression": lam}))

        function = next(find_all(unit, Lambda))
        assert isinstance(function.body[0], Return)
        assert function.parameters[0].name == "x"

    def test_comments_keys_are_lines(self) -> None:
        """Test that comment keys given as strings become line numbers."""
        unit = load_document(document(comments={"7": "// warden: ignore"}))

        assert unit.comments == {7: "// warden: ignore"}

    def test_path_argument_used_when_missing(self) -> None:
        """Test that the file path is used when the document names none."""
        data = document()
        del data["path"]

        unit = load_document(data, Path("exported/Sample.model.json"))

        assert unit.path == Path("exported/Sample.model.json")


class TestMalformedDocuments:
    """Tests for documents that violate the model."""

    @pytest.mark.parametrize(
        "body, message",
        [
            (
                [{"kind": "expr", "line": 3, "expression": {"kind": "var", "name": "ghost"}}],
                "undeclared variable 'ghost'",
            ),
            ([{"kind": "catch", "line": 3, "body": []}], "catch clauses belong"),
            (
                [
                    {"kind": "local", "name": "a", "line": 3},
                    {"kind": "local", "name": "a", "line": 4},
                ],
                "already declared",
            ),
            ([{"kind": "goto", "line": 3}], "unknown statement kind 'goto'"),
            ([{"kind": "expr", "line": 3, "expression": {"kind": "spread"}}], "spread"),
            ([{"kind": "lock", "line": 3, "body": []}], "requires 'target'"),
            ([{"kind": "expr", "line": "three", "expression": 1}], "must be an integer"),
            ([{"kind": ["a"], "line": 3}], "'kind' must be a string, got list"),
            ([{"kind": "local", "name": "a", "type": 5, "line": 3}], "'type' must be a string"),
        ],
    )
    def test_invalid_body(self, body: list, message: str) -> None:
        """Test that invalid statements raise MalformedInputError."""
        with pytest.raises(MalformedInputError) as exc_info:
            load_document(document(*body))

        assert message in str(exc_info.value)

    @pytest.mark.parametrize(
        "data, message",
        [
            (
                {"path": "A.cs", "declarations": [{"kind": {"x": 1}, "name": "A"}]},
                "'kind' must be a string, got dict",
            ),
            (
                {"path": "A.cs", "declarations": [{"kind": "class", "name": "A", "modifiers": 5}]},
                "'modifiers' must be a list or a string",
            ),
            ({"path": 5, "declarations": []}, "'path' must be a string"),
        ],
    )
    def test_invalid_values(self, data: dict, message: str) -> None:
        """Test that values of the wrong type raise MalformedInputError."""
        with pytest.raises(MalformedInputError) as exc_info:
            load_document(data, Path("A.model.yaml"))

        assert message in str(exc_info.value)

    def test_not_a_mapping(self) -> None:
        """Test that a document must be a mapping."""
        with pytest.raises(MalformedInputError):
            load_document(["not", "a", "mapping"], Path("x.model.json"))

    def test_no_path(self) -> None:
        """Test that a document needs a path from somewhere."""
        data = document()
        del data["path"]

        with pytest.raises(MalformedInputError):
            load_document(data)

    def test_field_outside_type(self) -> None:
        """Test that fields must belong to a type."""
        data = {"path": "A.cs", "declarations": [{"kind": "field", "name": "x"}]}

        with pytest.raises(MalformedInputError) as exc_info:
            load_document(data)

        assert "outside a type" in str(exc_info.value)


class TestDocumentParser:
    """Tests for reading document files."""

    def test_supports(self) -> None:
        """Test model document suffixes."""
        parser = DocumentParser()

        assert parser.supports(Path("Program.model.yaml"))
        assert parser.supports(Path("Program.model.json"))
        assert not parser.supports(Path("Program.cs"))
        assert not parser.supports(Path("config.yaml"))

    def test_json_document(self, temp_dir: Path) -> None:
        """Test loading a JSON document."""
        path = temp_dir / "Sample.model.json"
        path.write_text(json.dumps(document()))

        unit = DocumentParser().parse(path)

        assert unit.path == Path("Sample.cs")
        assert unit.declarations[0].name == "Sample"

    def test_invalid_yaml(self, temp_dir: Path) -> None:
        """Test that unparseable YAML raises ParseError."""
        path = temp_dir / "Broken.model.yaml"
        path.write_text("declarations: [unclosed\n")

        with pytest.raises(ParseError):
            DocumentParser().parse(path)

    def test_missing_file(self, temp_dir: Path) -> None:
        """Test that an unreadable file raises ParseError."""
        with pytest.raises(ParseError):
            DocumentParser().parse(temp_dir / "Missing.model.yaml")
