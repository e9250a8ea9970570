"""Entity documents handled by the system migration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from ._validation import EntityRecordValidator


class EntityKind(str, Enum):
    ACTOR = "Actor"
    ITEM = "Item"
    SCENE = "Scene"

    @property
    def collection(self) -> str:
        return f"{self.value.lower()}s"


MIGRATABLE_KINDS: frozenset[EntityKind] = frozenset(EntityKind)


class ItemType(str, Enum):
    """Item subtypes defined by the Shadowrun 5e system."""

    ACTION = "action"
    ADEPT_POWER = "adept_power"
    AMMO = "ammo"
    ARMOR = "armor"
    COMPLEX_FORM = "complex_form"
    CRITTER_POWER = "critter_power"
    CYBERWARE = "cyberware"
    DEVICE = "device"
    EQUIPMENT = "equipment"
    LIFESTYLE = "lifestyle"
    MODIFICATION = "modification"
    PROGRAM = "program"
    QUALITY = "quality"
    SIN = "sin"
    SPELL = "spell"
    WEAPON = "weapon"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> "ItemType":
        return cls.UNKNOWN

    @classmethod
    def of(cls, document: Mapping[str, Any]) -> "ItemType":
        return cls(str(document.get("type", "")))


@dataclass(slots=True)
class Entity:
    """A stored document together with the kind of collection it lives in."""

    kind: EntityKind
    document: dict[str, Any] = field(repr=False)

    @classmethod
    def from_record(cls, kind: EntityKind, payload: Mapping[str, Any]) -> "Entity":
        return cls(kind=kind, document=EntityRecordValidator.validate(payload))

    @property
    def id(self) -> str:
        return str(self.document["_id"])

    @property
    def name(self) -> str:
        return str(self.document.get("name", ""))

    @property
    def type(self) -> str:
        return str(self.document.get("type", ""))

    def __str__(self) -> str:
        return f"{self.kind.value} {self.name!r} ({self.id})"


__all__ = ["Entity", "EntityKind", "ItemType", "MIGRATABLE_KINDS"]
