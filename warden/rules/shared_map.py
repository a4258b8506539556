"""Unguarded access to a shared mutable map.

Calls and indexer accesses on a map-typed value outside any lock are reported
when they run in a concurrent context (a lambda handed to a task or thread
launcher, a launched method, an async method) or target a shared field.
Plain local access in single-threaded code is never reported, and
concurrency-safe map types are exempt. Constructors and module import-time
code count as single-threaded initialisation unless they launch the access.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import cast

from warden.core.engine import Rule, RuleDefinition, RuleSettings
from warden.core.models import Severity
from warden.core.predicates import (
    enclosing_method,
    is_constructor,
    is_in_concurrent_context,
    is_map_type,
    is_shared_field,
    is_within_construct,
    resolve_access_target,
)
from warden.core.program import (
    ElementAccess,
    Expression,
    FieldAccess,
    Lock,
    MethodCall,
    Node,
    SourceUnit,
    Variable,
    VariableAccess,
    source_unit_of,
    walk,
)

RULE_ID = "unsafe-shared-map-access"

DEFINITION = RuleDefinition(
    id=RULE_ID,
    description="Shared mutable map accessed concurrently without a lock",
    default_severity=Severity.ERROR,
    primary_patterns="shared_fields",
    default_patterns={
        "shared_fields": frozenset({"%shared%", "%global%", "%cache%"}),
        "map_types": frozenset(
            {
                "Dictionary",
                "IDictionary",
                "SortedDictionary",
                "Hashtable",
                "dict",
                "Dict",
                "defaultdict",
                "OrderedDict",
                "Counter",
            }
        ),
        "concurrent_map_types": frozenset({"Concurrent%"}),
        "launch_calls": frozenset(
            {
                "Task.Run",
                "%.StartNew",
                "ThreadPool.%",
                "Parallel.%",
                "Thread",
                "%.Thread",
                "Timer",
                "%.Timer",
                "%.submit",
                "%.create_task",
                "%.ensure_future",
                "%.run_in_executor",
                "%.to_thread",
                "%.start_new_thread",
            }
        ),
    },
)


def access_target(node: Node) -> Expression | None:
    """The map-candidate value an access operates on."""
    if isinstance(node, MethodCall):
        return node.qualifier
    if isinstance(node, ElementAccess):
        return node.target
    return None


def build(settings: RuleSettings) -> Rule:
    """Build the rule from its settings."""
    shared_fields = settings.pattern("shared_fields")
    map_types = settings.pattern("map_types")
    concurrent_map_types = settings.pattern("concurrent_map_types")
    launch_calls = settings.pattern("launch_calls")

    def select(unit: SourceUnit) -> Iterator[Node]:
        for node in walk(unit):
            if isinstance(access_target(node), (VariableAccess, FieldAccess)):
                yield node

    def is_violation(node: Node, unit: SourceUnit) -> bool:
        variable = resolve_access_target(access_target(node))
        if variable is None:
            return False
        if not is_map_type(variable.type_name, map_types, concurrent_map_types):
            return False
        if is_within_construct(node, Lock):
            return False
        return is_in_concurrent_context(node, unit, launch_calls) or is_shared_field(
            variable, shared_fields
        )

    def in_initializer(node: Node, unit: SourceUnit) -> bool:
        if not is_constructor(enclosing_method(node)):
            return False
        return not is_in_concurrent_context(node, unit, launch_calls)

    def message(node: Node) -> str:
        variable = cast(Variable, resolve_access_target(access_target(node)))
        unit = source_unit_of(node)
        if is_in_concurrent_context(node, unit, launch_calls):
            reason = "inside a concurrently executing context"
        else:
            reason = "on a field shared across threads"
        operation = f"'{node.name}'" if isinstance(node, MethodCall) else "indexer"
        return (
            f"Map '{variable.name}' ({variable.type_name}) is accessed via {operation} "
            f"{reason} without holding a lock"
        )

    return Rule(
        id=RULE_ID,
        description=DEFINITION.description,
        severity=settings.severity,
        selector=select,
        predicate=is_violation,
        message=message,
        suppressions=(in_initializer,),
    )
