"""Collaborator contracts consumed by the migration orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence

from ..models.entities import Entity, EntityKind
from .patch import Patch


@dataclass(frozen=True, slots=True)
class PackMetadata:
    collection: str
    package: str
    kind: EntityKind | None
    label: str = ""


@dataclass(frozen=True, slots=True)
class UnreadableRecord:
    """A stored record that exists but cannot be loaded as an entity."""

    kind: EntityKind
    entity_id: str
    source: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.kind.value} record {self.entity_id!r} ({self.source})"


class CompendiumPack(Protocol):
    metadata: PackMetadata

    async def migrate_schema(self) -> None: ...

    async def load_entities(self) -> Sequence[Entity | UnreadableRecord]: ...

    async def apply_patch(self, entity_id: str, update: Mapping[str, Any]) -> None: ...


class MigrationHost(Protocol):
    async def list_entities(self, kind: EntityKind) -> Sequence[Entity | UnreadableRecord]: ...

    async def apply_patch(self, entity: Entity, patch: Patch) -> None: ...

    async def list_packs(self) -> Sequence[CompendiumPack]: ...

    def resolve_token_actor(self, token: Mapping[str, Any]) -> Optional[Entity]:
        """Return the backing Actor, or ``None`` when no such Actor exists.

        A stored Actor that cannot be loaded raises instead, so the token keeps
        its link.
        """
        ...

    async def record_schema_version(self, version: str) -> None: ...


class Notifier(Protocol):
    async def notify(self, message: str, *, persistent: bool = False) -> None: ...


__all__ = ["CompendiumPack", "MigrationHost", "Notifier", "PackMetadata", "UnreadableRecord"]
