"""
Warden: structural code-pattern analysis over a language-neutral program model.

Warden builds an in-memory tree of a source file and evaluates rules against
it, reporting:
- Generic exception handlers that swallow errors
- Disposable resources that are never released
- Shared maps accessed concurrently without a lock

Usage:
    from warden.core.analyzer import Analyzer
    from warden.core.config import load_config

    analyzer = Analyzer(load_config())
    report = analyzer.analyze_directory(Path("."))
"""

__version__ = "0.1.0"
