"""Protocol for language front ends."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from warden.core.program import SourceUnit


class LanguageParser(Protocol):
    """Protocol for front ends that build a program model from a file."""

    def parse(self, file: Path) -> SourceUnit:
        """Parse a file into a linked SourceUnit."""
        ...

    def supports(self, file: Path) -> bool:
        """Check if this parser supports the given file."""
        ...
