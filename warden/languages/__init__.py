"""
Front ends: build the program model from source files.

Front ends are collaborators of the core. Each turns one file into a linked
SourceUnit; the rule engine never reads files itself.

Components:
    - LanguageParser: Protocol defining the front end interface
    - PythonParser: ast-based front end for Python files
    - DocumentParser: loads model documents (``*.model.json``/``*.model.yaml``)
      exported by a front end for another language, e.g. C#

Adding a new language:
    1. Create a class implementing the LanguageParser protocol
    2. Implement parse() to return a linked SourceUnit (see link_unit)
    3. Implement supports() to check file names
"""

from collections.abc import Iterable

from warden.languages.base import LanguageParser
from warden.languages.document import DOCUMENT_SUFFIXES, DocumentParser, load_document
from warden.languages.python import PythonParser


def default_parsers(lock_patterns: Iterable[str] | None = None) -> list[LanguageParser]:
    """The built-in front ends, in lookup order."""
    python = PythonParser(lock_patterns) if lock_patterns is not None else PythonParser()
    return [python, DocumentParser()]


__all__ = [
    "DOCUMENT_SUFFIXES",
    "DocumentParser",
    "LanguageParser",
    "PythonParser",
    "default_parsers",
    "load_document",
]
