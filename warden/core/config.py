"""Engine and rule configuration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from warden.core.engine import DEFAULT_SUPPRESSION_PHRASES, RuleDefinition, RuleSettings
from warden.core.exceptions import ConfigurationError
from warden.core.models import Severity
from warden.rules import DEFINITIONS

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".warden.yml"

DEFAULT_LOCK_PATTERNS = frozenset({"%lock%", "%mutex%", "%semaphore%", "%condition%"})

_TOP_LEVEL_OPTIONS = {"rules", "suppression_phrases", "lock_patterns", "exclude", "jobs", "fail_on"}
_RULE_OPTIONS = {"severity", "enabled", "patterns"}


def default_rule_settings() -> dict[str, RuleSettings]:
    """Default settings for every registered rule."""
    return {rule_id: d.default_settings() for rule_id, d in DEFINITIONS.items()}


@dataclass
class EngineConfig:
    """Analysis run configuration."""

    rules: dict[str, RuleSettings] = field(default_factory=default_rule_settings)

    # Inline comment phrases that suppress a finding
    suppression_phrases: tuple[str, ...] = DEFAULT_SUPPRESSION_PHRASES

    # Names recognised as locks by front ends (``with self._lock:``)
    lock_patterns: frozenset[str] = DEFAULT_LOCK_PATTERNS

    exclude: list[str] = field(default_factory=list)
    jobs: int = 1

    # Exit status threshold for the CLI
    fail_on: Severity = Severity.WARNING

    @classmethod
    def from_yaml(cls, file_path: Path) -> EngineConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is missing, unreadable, or invalid.
        """
        try:
            with open(file_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read config {file_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e

        logger.debug("Loaded configuration from %s", file_path)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> EngineConfig:
        """Build configuration from a parsed mapping."""
        if not isinstance(data, Mapping):
            raise ConfigurationError("Configuration must be a mapping")

        unknown = sorted(set(data) - _TOP_LEVEL_OPTIONS)
        if unknown:
            raise ConfigurationError(f"Unknown configuration option(s): {', '.join(unknown)}")

        config = cls()

        rules = data.get("rules") or {}
        if not isinstance(rules, Mapping):
            raise ConfigurationError("'rules' must be a mapping of rule id to settings")
        for rule_id, rule_data in rules.items():
            definition = DEFINITIONS.get(rule_id)
            if definition is None:
                raise ConfigurationError(f"Unknown rule id '{rule_id}'")
            config.rules[rule_id] = _parse_rule(definition, rule_data)

        if "suppression_phrases" in data:
            config.suppression_phrases = tuple(
                sorted(_pattern_set(data["suppression_phrases"], "suppression_phrases"))
            )
        if "lock_patterns" in data:
            config.lock_patterns = _pattern_set(data["lock_patterns"], "lock_patterns")
        if "exclude" in data:
            exclude = data["exclude"] or []
            if not isinstance(exclude, list) or not all(isinstance(p, str) for p in exclude):
                raise ConfigurationError("'exclude' must be a list of glob patterns")
            config.exclude = list(exclude)
        if "jobs" in data:
            jobs = data["jobs"]
            if not isinstance(jobs, int) or isinstance(jobs, bool) or jobs < 1:
                raise ConfigurationError("'jobs' must be a positive integer")
            config.jobs = jobs
        if "fail_on" in data:
            config.fail_on = Severity.parse(data["fail_on"])

        return config

    def enabled_rules(self) -> list[str]:
        return [rule_id for rule_id, s in self.rules.items() if s.enabled]


def _parse_rule(definition: RuleDefinition, data: Any) -> RuleSettings:
    where = f"rules.{definition.id}"
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{where}: expected a mapping")

    unknown = sorted(set(data) - _RULE_OPTIONS)
    if unknown:
        raise ConfigurationError(f"{where}: unknown option(s): {', '.join(unknown)}")

    try:
        severity = Severity.parse(data.get("severity", definition.default_severity))
    except ConfigurationError as e:
        raise ConfigurationError(f"{where}: {e}") from e

    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigurationError(f"{where}: 'enabled' must be true or false")

    patterns = dict(definition.default_patterns)
    raw = data.get("patterns")
    if raw is None:
        pass
    elif isinstance(raw, (list, tuple, set, frozenset)):
        patterns[definition.primary_patterns] = _pattern_set(raw, f"{where}.patterns")
    elif isinstance(raw, Mapping):
        for name, values in raw.items():
            if name not in definition.default_patterns:
                known = ", ".join(sorted(definition.default_patterns))
                raise ConfigurationError(
                    f"{where}: unknown pattern list '{name}' (expected one of: {known})"
                )
            patterns[name] = _pattern_set(values, f"{where}.patterns.{name}")
    else:
        raise ConfigurationError(f"{where}: 'patterns' must be a list or a mapping of lists")

    return RuleSettings(severity=severity, enabled=enabled, patterns=patterns)


def _pattern_set(values: Any, where: str) -> frozenset[str]:
    if isinstance(values, str) or not isinstance(values, (list, tuple, set, frozenset)):
        raise ConfigurationError(f"{where}: expected a list of strings")
    if not values:
        raise ConfigurationError(f"{where}: pattern list is empty")
    if not all(isinstance(v, str) and v.strip() for v in values):
        raise ConfigurationError(f"{where}: patterns must be non-empty strings")
    return frozenset(v.strip() for v in values)


def get_default_config_path(project_root: Path) -> Path:
    """Get the default configuration path for a project."""
    return project_root / CONFIG_FILENAME


def load_config(path: Path | None = None, project_root: Path | None = None) -> EngineConfig:
    """Load configuration from ``path``, the project default, or built-in defaults.

    An explicit ``path`` must exist; the project default is optional.
    """
    if path is not None:
        return EngineConfig.from_yaml(path)
    if project_root is not None:
        default_path = get_default_config_path(project_root)
        if default_path.is_file():
            return EngineConfig.from_yaml(default_path)
    return EngineConfig()
