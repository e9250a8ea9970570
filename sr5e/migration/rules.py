"""Field transform rules and the registry that entity migrators draw from.

Every rule inspects a single document and returns a :class:`Patch` describing
the fields that must change, or an empty patch when the document already has
the current shape.  Rules never mutate their input and must stay idempotent:
running a rule on its own output yields an empty patch.

Additional rules are registered with :func:`rule`::

    @rule(EntityKind.ITEM, name="rating")
    def add_rating(item):
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Callable

from ..constants import DEFAULT_ACTION, SKILL_GROUP_PATHS, SPEC_SEPARATORS
from ..errors import RuleError
from ..models.entities import EntityKind, ItemType
from .patch import Patch, get_field

log = logging.getLogger(__name__)

RuleFunc = Callable[[Mapping[str, Any]], Patch]

_MISSING = object()


@dataclass(frozen=True, slots=True)
class MigrationRule:
    name: str
    kind: EntityKind
    apply: RuleFunc
    description: str = ""


class RuleRegistry:
    """Ordered collection of rules keyed by the entity kind they handle."""

    def __init__(self) -> None:
        self._rules: dict[EntityKind, list[MigrationRule]] = {kind: [] for kind in EntityKind}

    def add(self, migration_rule: MigrationRule) -> MigrationRule:
        existing = self._rules[migration_rule.kind]
        if any(item.name == migration_rule.name for item in existing):
            raise ValueError(
                f"Rule {migration_rule.name!r} already registered for {migration_rule.kind.value}"
            )
        existing.append(migration_rule)
        return migration_rule

    def register(
        self, kind: EntityKind, *, name: str | None = None
    ) -> Callable[[RuleFunc], RuleFunc]:
        def decorator(func: RuleFunc) -> RuleFunc:
            doc = (func.__doc__ or "").strip().splitlines()
            self.add(
                MigrationRule(
                    name=name or func.__name__,
                    kind=kind,
                    apply=func,
                    description=doc[0] if doc else "",
                )
            )
            return func

        return decorator

    def rules_for(self, kind: EntityKind) -> tuple[MigrationRule, ...]:
        return tuple(self._rules[kind])

    def run(self, kind: EntityKind, document: Mapping[str, Any]) -> Patch:
        """Apply every rule registered for ``kind`` and merge the results."""

        patch = Patch()
        for migration_rule in self._rules[kind]:
            result = migration_rule.apply(document)
            if result:
                log.debug("Rule %s produced %s", migration_rule.name, result)
                patch = patch.merge(result)
        return patch

    def copy(self) -> "RuleRegistry":
        clone = RuleRegistry()
        for kind, rules in self._rules.items():
            clone._rules[kind] = list(rules)
        return clone


DEFAULT_RULES = RuleRegistry()
rule = DEFAULT_RULES.register


# ---------------------------------------------------------------------------
# Actor rules
# ---------------------------------------------------------------------------


@rule(EntityKind.ACTOR, name="overflow")
def normalize_overflow(actor: Mapping[str, Any]) -> Patch:
    """Expand a bare zero physical overflow into a value/max pair."""

    overflow = get_field(actor, "data.track.physical.overflow", _MISSING)
    if isinstance(overflow, bool) or not isinstance(overflow, (int, float)):
        return Patch()
    if overflow != 0:
        return Patch()
    return Patch(
        {
            "data.track.physical.overflow.value": 0,
            "data.track.physical.overflow.max": 0,
        }
    )


def split_specs(value: str) -> list[str]:
    """Split a legacy specialization string into trimmed, non-empty names."""

    tokens = (token.strip() for token in SPEC_SEPARATORS.split(value))
    return [token for token in tokens if token]


def _migrate_skill_group(group_path: str, group: Any) -> dict[str, Any]:
    if not isinstance(group, Mapping):
        raise RuleError(
            "skill-specs", f"{group_path} is {type(group).__name__}, expected a mapping"
        )
    changed: dict[str, Any] = {}
    for key, entry in group.items():
        if not isinstance(entry, Mapping) or "specs" not in entry:
            raise RuleError("skill-specs", f"{group_path}.{key} has no specs field")
        specs = entry["specs"]
        if isinstance(specs, str):
            changed[str(key)] = {"specs": split_specs(specs)}
        elif isinstance(specs, Sequence) and not isinstance(specs, bytes):
            continue
        else:
            raise RuleError(
                "skill-specs",
                f"{group_path}.{key}.specs is {type(specs).__name__}, "
                "expected a string or a list",
            )
    return changed


@rule(EntityKind.ACTOR, name="skill-specs")
def split_skill_specs(actor: Mapping[str, Any]) -> Patch:
    """Convert delimiter-separated skill specializations into lists."""

    patch = Patch()
    for group_path in SKILL_GROUP_PATHS:
        group = get_field(actor, group_path, _MISSING)
        if group is _MISSING:
            continue
        changed = _migrate_skill_group(group_path, group)
        if changed:
            patch.set(group_path, changed)
    return patch


# ---------------------------------------------------------------------------
# Item rules
# ---------------------------------------------------------------------------

ACTION_ITEM_TYPES = frozenset({ItemType.QUALITY, ItemType.CYBERWARE})
CAPACITY_ITEM_TYPES = frozenset({ItemType.CYBERWARE})


def _item_data(item: Mapping[str, Any]) -> Mapping[str, Any]:
    data = item.get("data", {})
    if not isinstance(data, Mapping):
        raise RuleError("item-data", f"data is {type(data).__name__}, expected a mapping")
    return data


@rule(EntityKind.ITEM, name="action")
def add_action_block(item: Mapping[str, Any]) -> Patch:
    """Give qualities and cyberware a default action sub-document."""

    if ItemType.of(item) not in ACTION_ITEM_TYPES:
        return Patch()
    if "action" in _item_data(item):
        return Patch()
    return Patch({"data.action": deepcopy(dict(DEFAULT_ACTION))})


@rule(EntityKind.ITEM, name="capacity")
def add_capacity(item: Mapping[str, Any]) -> Patch:
    """Give cyberware a zero capacity field."""

    if ItemType.of(item) not in CAPACITY_ITEM_TYPES:
        return Patch()
    if "capacity" in _item_data(item):
        return Patch()
    return Patch({"data.capacity": 0})


__all__ = [
    "ACTION_ITEM_TYPES",
    "CAPACITY_ITEM_TYPES",
    "DEFAULT_RULES",
    "MigrationRule",
    "RuleRegistry",
    "add_action_block",
    "add_capacity",
    "normalize_overflow",
    "rule",
    "split_skill_specs",
    "split_specs",
]
