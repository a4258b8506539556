"""
Core module: program model, rule engine, and findings.

Models (models.py):
    - Finding: A reported rule violation with its location
    - Severity: informational, warning, error
    - AnalysisStats/AnalysisReport: Results of a run

Exceptions (exceptions.py):
    - WardenError: Base exception for all warden errors
    - MalformedInputError/ParseError: A source unit cannot be modelled
    - UnresolvedReferenceError: A rule candidate cannot be resolved
    - ConfigurationError: Invalid rule configuration
    - RenderError: Findings cannot be rendered

Program model (program/), predicates (predicates.py), rule engine
(engine.py), run coordination (analyzer.py), configuration (config.py) and
reporting (reporting.py) live in their own modules.
"""

from warden.core.exceptions import (
    ConfigurationError,
    MalformedInputError,
    ParseError,
    RenderError,
    UnresolvedReferenceError,
    WardenError,
)
from warden.core.models import AnalysisReport, AnalysisStats, Finding, Severity, Span

__all__ = [
    # Models
    "AnalysisReport",
    "AnalysisStats",
    "Finding",
    "Severity",
    "Span",
    # Exceptions
    "WardenError",
    "MalformedInputError",
    "ParseError",
    "UnresolvedReferenceError",
    "ConfigurationError",
    "RenderError",
]
