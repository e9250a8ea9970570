"""Per-kind migrators combining rule patches with nested documents."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from copy import deepcopy
from typing import Any, Callable

from ..models.entities import EntityKind
from .patch import Patch
from .rules import DEFAULT_RULES, RuleRegistry

log = logging.getLogger(__name__)

ActorResolver = Callable[[Mapping[str, Any]], Any]


def migrate_item_data(
    item: Mapping[str, Any], *, rules: RuleRegistry = DEFAULT_RULES
) -> Patch:
    """Return the patch upgrading a single Item document."""

    return rules.run(EntityKind.ITEM, item)


def migrate_actor_data(
    actor: Mapping[str, Any], *, rules: RuleRegistry = DEFAULT_RULES
) -> Patch:
    """Return the patch upgrading an Actor document and the Items it owns.

    Owned Items are replaced as a whole list, so when any of them changes the
    patch carries every Item (untouched ones included) in their stored order.
    """

    patch = rules.run(EntityKind.ACTOR, actor)

    owned = actor.get("items")
    if not owned:
        return patch

    changed = False
    items: list[dict[str, Any]] = []
    for item in owned:
        item_patch = migrate_item_data(item, rules=rules)
        if item_patch:
            changed = True
            items.append(item_patch.apply_to(item))
        else:
            items.append(deepcopy(dict(item)))

    if changed:
        patch = patch.merge(Patch({"items": items}))
    return patch


def _has_override(token: Mapping[str, Any]) -> bool:
    override = token.get("actorData")
    if not isinstance(override, Mapping):
        return False
    data = override.get("data")
    # An empty data mapping is still an override.
    return isinstance(data, Mapping) or bool(data)


def _migrate_token(
    token: Mapping[str, Any], resolve_actor: ActorResolver, rules: RuleRegistry
) -> dict[str, Any]:
    migrated = deepcopy(dict(token))
    if not migrated.get("actorId") or migrated.get("actorLink") or not _has_override(migrated):
        migrated["actorData"] = {}
        return migrated

    if resolve_actor(migrated) is None:
        log.info("Token %s references missing actor %s", migrated.get("name", "?"), migrated["actorId"])
        migrated["actorId"] = None
        migrated["actorData"] = {}
        return migrated

    override = migrated["actorData"]
    actor_patch = migrate_actor_data(override, rules=rules)
    if actor_patch:
        migrated["actorData"] = actor_patch.apply_to(override)
    return migrated


def migrate_scene_data(
    scene: Mapping[str, Any],
    resolve_actor: ActorResolver,
    *,
    rules: RuleRegistry = DEFAULT_RULES,
) -> Patch:
    """Return the patch upgrading the actor overrides carried by a Scene's tokens.

    ``resolve_actor`` receives a token and returns its backing actor or
    ``None``.  The token list is replaced wholesale, and only when at least one
    token differs from the stored one.
    """

    stored = list(scene.get("tokens") or [])
    tokens = [_migrate_token(token, resolve_actor, rules) for token in stored]
    if tokens == stored:
        return Patch()
    return Patch({"tokens": tokens})


def migrate_document(
    kind: EntityKind,
    document: Mapping[str, Any],
    resolve_actor: ActorResolver,
    *,
    rules: RuleRegistry = DEFAULT_RULES,
) -> Patch:
    """Dispatch ``document`` to the migrator for ``kind``."""

    if kind is EntityKind.SCENE:
        return migrate_scene_data(document, resolve_actor, rules=rules)
    if kind is EntityKind.ACTOR:
        return migrate_actor_data(document, rules=rules)
    return migrate_item_data(document, rules=rules)


__all__ = [
    "ActorResolver",
    "migrate_actor_data",
    "migrate_document",
    "migrate_item_data",
    "migrate_scene_data",
]
