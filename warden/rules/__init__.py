"""
Rule set: the concrete rules evaluated by the engine.

Rules:
    - generic-exception-handling: catch-all handlers that swallow exceptions
    - missing-resource-disposal: disposable locals that are never released
    - unsafe-shared-map-access: shared maps touched concurrently without a lock

Each rule module exposes a ``DEFINITION`` (id, description, defaults) and a
``build(settings)`` factory returning an engine ``Rule``.

Adding a rule:
    1. Create a module with DEFINITION and build()
    2. Register it in RULE_MODULES below
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from warden.core.engine import Rule, RuleDefinition, RuleSettings
from warden.core.exceptions import ConfigurationError
from warden.rules import generic_exception, resource_disposal, shared_map

RuleFactory = Callable[[RuleSettings], Rule]

RULE_MODULES = (generic_exception, resource_disposal, shared_map)

DEFINITIONS: dict[str, RuleDefinition] = {m.DEFINITION.id: m.DEFINITION for m in RULE_MODULES}

FACTORIES: dict[str, RuleFactory] = {m.DEFINITION.id: m.build for m in RULE_MODULES}


def build_rules(settings: Mapping[str, RuleSettings] | None = None) -> list[Rule]:
    """Build every enabled rule, in registry order.

    Rules missing from ``settings`` use their defaults.
    """
    settings = settings or {}
    unknown = sorted(set(settings) - set(DEFINITIONS))
    if unknown:
        raise ConfigurationError(f"Unknown rule id(s): {', '.join(unknown)}")

    rules = []
    for rule_id, definition in DEFINITIONS.items():
        rule_settings = settings.get(rule_id) or definition.default_settings()
        if rule_settings.enabled:
            rules.append(FACTORIES[rule_id](rule_settings))
    return rules


__all__ = [
    "DEFINITIONS",
    "FACTORIES",
    "RULE_MODULES",
    "build_rules",
]
