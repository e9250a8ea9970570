"""Validation helpers for stored entity records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Sequence


class EntityValidationError(ValueError):
    """Raised when a stored record does not look like an entity document."""

    def __init__(self, label: str, errors: Sequence[str]) -> None:
        self.label = label
        self.errors = list(errors)
        message = ", ".join(self.errors) if self.errors else "invalid payload"
        super().__init__(f"{label} validation failed: {message}")


@dataclass(frozen=True)
class FieldSpec:
    expected: Any
    description: str
    required: bool = True


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def is_mapping_sequence(value: Any) -> bool:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return False
    return all(isinstance(item, Mapping) for item in value)


def _matches(value: Any, expected: Any) -> bool:
    if isinstance(expected, type):
        return isinstance(value, expected)
    return bool(expected(value))


class RecordValidator:
    """Base class for record validators."""

    label: ClassVar[str]
    fields: ClassVar[Mapping[str, FieldSpec]]

    @classmethod
    def validate(cls, data: Any) -> dict[str, Any]:
        if not isinstance(data, Mapping):
            raise EntityValidationError(cls.label, ["Payload must be a mapping"])

        errors: list[str] = []
        for name, spec in cls.fields.items():
            if name not in data:
                if spec.required:
                    errors.append(f"Missing required field '{name}' ({spec.description})")
                continue
            value = data[name]
            if not _matches(value, spec.expected):
                errors.append(
                    f"Field '{name}' expected {spec.description}, "
                    f"received {type(value).__name__}"
                )

        if errors:
            raise EntityValidationError(cls.label, errors)
        return dict(data)


class EntityRecordValidator(RecordValidator):
    label = "Entity"
    fields = {
        "_id": FieldSpec(is_non_empty_str, "non-empty identifier"),
        "name": FieldSpec(str, "display name"),
        "type": FieldSpec(str, "subtype discriminator", required=False),
        "data": FieldSpec(is_mapping, "data mapping", required=False),
        "items": FieldSpec(is_mapping_sequence, "list of owned items", required=False),
        "tokens": FieldSpec(is_mapping_sequence, "list of tokens", required=False),
    }


class PackMetadataValidator(RecordValidator):
    label = "Compendium metadata"
    fields = {
        "entity": FieldSpec(is_non_empty_str, "entity kind"),
        "package": FieldSpec(is_non_empty_str, "owning package"),
        "label": FieldSpec(str, "display label", required=False),
    }


__all__ = [
    "EntityRecordValidator",
    "EntityValidationError",
    "FieldSpec",
    "PackMetadataValidator",
    "RecordValidator",
    "is_non_empty_str",
]
