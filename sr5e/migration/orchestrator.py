"""World-wide migration runner.

The runner walks world Actors, Items and Scenes, then every compendium pack
owned by the world, computing a patch for each document and handing non-empty
patches to the host.  Documents are processed one at a time; a failure while
migrating one document is logged and recorded in the :class:`MigrationReport`
without interrupting the rest of the batch.  Only a failure to list documents
or packs aborts the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from packaging.version import InvalidVersion, Version

from ..constants import WORLD_PACKAGE
from ..models.entities import MIGRATABLE_KINDS, Entity, EntityKind
from .host import CompendiumPack, MigrationHost, Notifier, UnreadableRecord
from .migrators import ActorResolver, migrate_document
from .rules import DEFAULT_RULES, RuleRegistry

log = logging.getLogger(__name__)

WORLD_PHASES: tuple[EntityKind, ...] = (EntityKind.ACTOR, EntityKind.ITEM, EntityKind.SCENE)


@dataclass(frozen=True, slots=True)
class SchemaState:
    """Schema version recorded for a world; ``None`` when never migrated."""

    version: str | None = None


@dataclass(frozen=True, slots=True)
class EntityFailure:
    kind: EntityKind | None
    entity_id: str | None
    name: str
    pack: str | None
    error: str

    def describe(self) -> str:
        kind = self.kind.value if self.kind else "Compendium"
        where = f" in Compendium {self.pack}" if self.pack else ""
        return f"{kind} {self.name!r}{where}: {self.error}"


@dataclass(slots=True)
class MigrationReport:
    target_version: str | None = None
    state: SchemaState = field(default_factory=SchemaState)
    updated: int = 0
    failures: list[EntityFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record_failure(
        self, entity: Entity | None, error: BaseException, *, pack: str | None = None
    ) -> None:
        self.failures.append(
            EntityFailure(
                kind=entity.kind if entity else None,
                entity_id=entity.id if entity else None,
                name=entity.name if entity else (pack or ""),
                pack=pack,
                error=f"{type(error).__name__}: {error}",
            )
        )

    def record_unreadable(self, record: UnreadableRecord, *, pack: str | None = None) -> None:
        self.failures.append(
            EntityFailure(
                kind=record.kind,
                entity_id=record.entity_id,
                name=record.entity_id,
                pack=pack,
                error=f"{type(record.error).__name__}: {record.error}",
            )
        )


def needs_migration(
    state: SchemaState, target_version: str, *, minimum_compatible: str | None = None
) -> bool:
    """Return whether a world at ``state`` must be migrated to ``target_version``."""

    if state.version is None:
        return True
    try:
        current = Version(state.version)
        target = Version(target_version)
    except InvalidVersion:
        log.warning(
            "Cannot compare schema versions %r and %r; assuming migration is required",
            state.version,
            target_version,
        )
        return True
    try:
        minimum = Version(minimum_compatible) if minimum_compatible is not None else None
    except InvalidVersion:
        log.warning("Ignoring invalid minimum compatible version %r", minimum_compatible)
        minimum = None
    if minimum is not None and current < minimum:
        log.warning(
            "World data version %s is older than %s and may not migrate cleanly",
            current,
            minimum_compatible,
        )
    return current < target


async def _notify(notifier: Notifier | None, message: str, *, persistent: bool) -> None:
    if notifier is None:
        return
    try:
        await notifier.notify(message, persistent=persistent)
    except Exception:
        log.warning("Failed to deliver notification %r", message, exc_info=True)


async def _migrate_world_entity(
    host: MigrationHost,
    entity: Entity | UnreadableRecord,
    report: MigrationReport,
    rules: RuleRegistry,
) -> None:
    if isinstance(entity, UnreadableRecord):
        log.error("Cannot migrate %s: %s", entity, entity.error)
        report.record_unreadable(entity)
        return
    try:
        patch = migrate_document(entity.kind, entity.document, host.resolve_token_actor, rules=rules)
        if not patch:
            return
        log.info("Migrating %s entity %s", entity.kind.value, entity.name)
        await host.apply_patch(entity, patch)
        report.updated += 1
    except Exception as exc:
        log.exception("Failed to migrate %s", entity)
        report.record_failure(entity, exc)


async def migrate_compendium(
    pack: CompendiumPack,
    resolve_actor: ActorResolver,
    *,
    report: MigrationReport | None = None,
    rules: RuleRegistry = DEFAULT_RULES,
) -> MigrationReport:
    """Apply the migration rules to every document inside a single pack."""

    if report is None:
        report = MigrationReport()
    metadata = pack.metadata
    kind = metadata.kind
    if kind not in MIGRATABLE_KINDS:
        return report

    try:
        await pack.migrate_schema()
        content = await pack.load_entities()
    except Exception as exc:
        log.exception("Failed to load Compendium %s", metadata.collection)
        report.record_failure(None, exc, pack=metadata.collection)
        return report

    for entity in content:
        if isinstance(entity, UnreadableRecord):
            log.error(
                "Cannot migrate %s in Compendium %s: %s", entity, metadata.collection, entity.error
            )
            report.record_unreadable(entity, pack=metadata.collection)
            continue
        try:
            patch = migrate_document(kind, entity.document, resolve_actor, rules=rules)
            if not patch:
                continue
            update = patch.expand()
            update["_id"] = entity.id
            await pack.apply_patch(entity.id, update)
            report.updated += 1
            log.info(
                "Migrated %s entity %s in Compendium %s",
                kind.value,
                entity.name,
                metadata.collection,
            )
        except Exception as exc:
            log.exception(
                "Failed to migrate %s in Compendium %s", entity, metadata.collection
            )
            report.record_failure(entity, exc, pack=metadata.collection)

    log.info("Migrated all %s entities from Compendium %s", kind.value, metadata.collection)
    return report


async def migrate_world(
    host: MigrationHost,
    state: SchemaState,
    target_version: str,
    *,
    notifier: Notifier | None = None,
    rules: RuleRegistry = DEFAULT_RULES,
) -> MigrationReport:
    """Migrate every world document and world-owned pack to ``target_version``.

    Returns a report whose ``state`` holds the newly recorded schema version.
    """

    report = MigrationReport(target_version=target_version, state=state)
    log.info("Starting system migration from %s to %s", state.version or "unversioned", target_version)
    await _notify(
        notifier,
        f"Applying Shadowrun 5e System Migration for version {target_version}. "
        "Please be patient and do not close your game or shut down your server.",
        persistent=True,
    )

    for kind in WORLD_PHASES:
        for entity in await host.list_entities(kind):
            await _migrate_world_entity(host, entity, report, rules)

    packs = [
        pack
        for pack in await host.list_packs()
        if pack.metadata.package == WORLD_PACKAGE and pack.metadata.kind in MIGRATABLE_KINDS
    ]
    for pack in packs:
        await migrate_compendium(pack, host.resolve_token_actor, report=report, rules=rules)

    await host.record_schema_version(target_version)
    report.state = SchemaState(version=target_version)

    message = f"Shadowrun5e System Migration to version {target_version} completed!"
    if report.failures:
        message += f" {len(report.failures)} document(s) could not be migrated; check the log."
        for failure in report.failures:
            log.error("Migration failure: %s", failure.describe())
    log.info(message)
    await _notify(notifier, message, persistent=True)
    return report


__all__ = [
    "EntityFailure",
    "MigrationReport",
    "SchemaState",
    "migrate_compendium",
    "migrate_world",
    "needs_migration",
]
