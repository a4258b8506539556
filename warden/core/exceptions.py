"""Warden custom exceptions."""


class WardenError(Exception):
    """Base exception for Warden errors."""


class MalformedInputError(WardenError):
    """A source unit violates the program model invariants.

    The unit is excluded from the run; the run itself continues.
    """


class ParseError(MalformedInputError):
    """Error parsing a source file."""


class UnresolvedReferenceError(WardenError):
    """A rule candidate refers to something the model cannot resolve."""


class ConfigurationError(WardenError):
    """Invalid or missing rule configuration."""


class RenderError(WardenError):
    """Findings could not be rendered in the requested format."""
