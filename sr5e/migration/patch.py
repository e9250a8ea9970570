"""Sparse field patches produced by the migration rules.

A :class:`Patch` records replacement values keyed by field path
(``"data.track.physical.overflow.value"``).  Paths inside one patch never
overlap: writing the same path twice, or a path nested below another one, is
rejected with :class:`~sr5e.errors.PatchConflictError`.  Applying a patch never
touches the source document; a new snapshot is returned instead.  Scalar
fields along a path are replaced by mappings the way the host's permissive
update does; paths running through a list are rejected.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, MutableMapping
from copy import deepcopy
from typing import Any

from ..errors import PatchConflictError, PatchError

FieldPath = tuple[str, ...]


def split_path(path: str | FieldPath) -> FieldPath:
    if isinstance(path, tuple):
        segments = path
    else:
        segments = tuple(str(path).split("."))
    if not segments or any(not segment for segment in segments):
        raise PatchError(f"Invalid field path: {path!r}")
    return segments


def _join(path: FieldPath) -> str:
    return ".".join(path)


def _overlaps(left: FieldPath, right: FieldPath) -> bool:
    size = min(len(left), len(right))
    return left[:size] == right[:size]


def merge_document(target: MutableMapping[str, Any], update: Mapping[str, Any]) -> None:
    """Deep-merge ``update`` into ``target`` in place.

    Nested mappings are merged key by key, every other value (sequences
    included) replaces the stored one wholesale.
    """

    for key, value in update.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, MutableMapping):
            merge_document(current, value)
        elif isinstance(value, Mapping):
            target[key] = {str(k): deepcopy(v) for k, v in value.items()}
        else:
            target[key] = deepcopy(value)


def get_field(document: Mapping[str, Any], path: str | FieldPath, default: Any = None) -> Any:
    """Return the value stored at ``path`` or ``default`` when any segment is missing."""

    node: Any = document
    for segment in split_path(path):
        if not isinstance(node, Mapping) or segment not in node:
            return default
        node = node[segment]
    return node


class Patch:
    """Immutable-by-convention set of field replacements."""

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, Any] | None = None) -> None:
        self._fields: dict[FieldPath, Any] = {}
        for path, value in (fields or {}).items():
            self._store(split_path(path), value)

    def _store(self, path: FieldPath, value: Any) -> None:
        for existing in self._fields:
            if _overlaps(existing, path):
                raise PatchConflictError(_join(existing), _join(path))
        self._fields[path] = value

    def set(self, path: str | FieldPath, value: Any) -> "Patch":
        """Record ``value`` at ``path`` and return the patch for chaining."""

        self._store(split_path(path), value)
        return self

    def merge(self, other: "Patch") -> "Patch":
        """Return a new patch holding the fields of both patches."""

        merged = Patch()
        for path, value in self._fields.items():
            merged._store(path, value)
        for path, value in other._fields.items():
            merged._store(path, value)
        return merged

    def expand(self) -> dict[str, Any]:
        """Return the patch as a nested mapping suitable for an update call."""

        expanded: dict[str, Any] = {}
        for path, value in self._fields.items():
            node = expanded
            for segment in path[:-1]:
                node = node.setdefault(segment, {})
            node[path[-1]] = deepcopy(value)
        return expanded

    def apply_to(self, document: Mapping[str, Any]) -> dict[str, Any]:
        """Return a copy of ``document`` with the patch merged in."""

        result = deepcopy(dict(document))
        for path, value in self._fields.items():
            node: MutableMapping[str, Any] = result
            for depth, segment in enumerate(path[:-1]):
                child = node.get(segment)
                if child is None or isinstance(child, (str, int, float, bool)):
                    child = {}
                    node[segment] = child
                elif not isinstance(child, MutableMapping):
                    blocked = _join(path[: depth + 1])
                    raise PatchError(
                        f"Cannot apply {_join(path)!r}: {blocked!r} holds "
                        f"{type(child).__name__}, not a mapping"
                    )
                node = child
            merge_document(node, {path[-1]: value})
        return result

    def dotted(self) -> dict[str, Any]:
        return {_join(path): value for path, value in self._fields.items()}

    def get(self, path: str | FieldPath, default: Any = None) -> Any:
        return self._fields.get(split_path(path), default)

    def __getitem__(self, path: str | FieldPath) -> Any:
        return self._fields[split_path(path)]

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, tuple)):
            return False
        try:
            return split_path(path) in self._fields
        except PatchError:
            return False

    def __iter__(self) -> Iterator[str]:
        return (_join(path) for path in self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __bool__(self) -> bool:
        return bool(self._fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Patch):
            return self._fields == other._fields
        if isinstance(other, Mapping):
            return self.dotted() == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"Patch({self.dotted()!r})"


__all__ = ["FieldPath", "Patch", "get_field", "merge_document", "split_path"]
