"""TOML-backed host for world documents and compendium packs.

Every document is stored as its own TOML file::

    worlds/<world>/actors/<id>.toml
    worlds/<world>/items/<id>.toml
    worlds/<world>/scenes/<id>.toml
    worlds/<world>/packs/<name>/pack.toml
    worlds/<world>/packs/<name>/entries/<id>.toml
    modules/<module>/packs/<name>/...

The world's system migration version lives in
``worlds/<world>/schema_version.toml``.  Each pack tracks its own storage
format version next to its ``pack.toml`` and is upgraded by the scripts in
``migrations/packs/`` before its content is read.
"""

from __future__ import annotations

import asyncio
import importlib.util
import logging
import math
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, MutableMapping, Optional
from urllib.parse import quote, unquote

import tomllib

from .errors import MissingMigrationError
from .migration.host import PackMetadata, UnreadableRecord
from .migration.orchestrator import SchemaState
from .migration.patch import Patch, merge_document
from .models._validation import EntityValidationError, PackMetadataValidator
from .models.entities import Entity, EntityKind

log = logging.getLogger(__name__)

# Storage format version of compendium packs written by this release.
PACK_FORMAT_VERSION = 2

VERSION_FILE = "schema_version.toml"


def _is_site_packages(path: Path) -> bool:
    normalized = {part.lower() for part in path.parts}
    return "site-packages" in normalized or "dist-packages" in normalized


def resolve_storage_root(package_root: Path) -> Path:
    """Determine where world data is read from.

    ``SR5E_DATA_ROOT`` wins when set.  An installed package falls back to the
    current working directory, a source checkout keeps data next to the code.
    """

    override = os.getenv("SR5E_DATA_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    if _is_site_packages(package_root) or not os.access(package_root, os.W_OK):
        return Path.cwd().resolve()

    return package_root


# ---------------------------------------------------------------------------
# TOML serialisation
# ---------------------------------------------------------------------------

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def _normalize_for_toml(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            str(key): _normalize_for_toml(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_normalize_for_toml(item) for item in value if item is not None]
    if isinstance(value, Enum):
        return _normalize_for_toml(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, float) and not math.isfinite(value):
        return 0.0
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf8", "replace")
    return str(value)


def _quote_string(value: str) -> str:
    escaped: list[str] = []
    for char in value:
        if char in '"\\':
            escaped.append("\\" + char)
        elif char == "\n":
            escaped.append("\\n")
        elif char == "\t":
            escaped.append("\\t")
        elif char == "\r":
            escaped.append("\\r")
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            escaped.append(f"\\u{ord(char):04x}")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


def _format_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else _quote_string(key)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return _quote_string(value)
    if isinstance(value, Mapping):
        inner = ", ".join(f"{_format_key(k)} = {_format_value(v)}" for k, v in value.items())
        return "{ " + inner + " }" if inner else "{}"
    if isinstance(value, list):
        return "[" + ", ".join(_format_value(item) for item in value) + "]"
    return _quote_string(str(value))


def _is_table_array(value: Any) -> bool:
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(item, Mapping) for item in value)
    )


def _emit_table(table: Mapping[str, Any], parent: tuple[str, ...], output: list[str]) -> None:
    nested = [(key, value) for key, value in table.items() if isinstance(value, Mapping)]
    arrays = [(key, value) for key, value in table.items() if _is_table_array(value)]
    for key, value in table.items():
        if not isinstance(value, Mapping) and not _is_table_array(value):
            output.append(f"{_format_key(key)} = {_format_value(value)}")

    for key, value in nested:
        path = (*parent, key)
        if output:
            output.append("")
        output.append("[" + ".".join(_format_key(part) for part in path) + "]")
        _emit_table(value, path, output)

    for key, items in arrays:
        path = (*parent, key)
        for item in items:
            if output:
                output.append("")
            output.append("[[" + ".".join(_format_key(part) for part in path) + "]]")
            _emit_table(item, path, output)


def _toml_dumps(data: Mapping[str, Any]) -> str:
    normalized = _normalize_for_toml(data)
    if not isinstance(normalized, Mapping):
        raise TypeError("Top level TOML document must be a mapping")
    output: list[str] = []
    _emit_table(normalized, (), output)
    return "\n".join(output) + "\n"


def _read_toml(path: Path) -> Any:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        return None
    except (tomllib.TOMLDecodeError, OSError):
        log.warning("Unreadable TOML file %s", path, exc_info=True)
        return None


def _write_toml(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    data = _toml_dumps(payload)
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf8", dir=path.parent, delete=False
        ) as handle:
            temp_path = Path(handle.name)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path is not None:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass


def encode_key(key: str) -> str:
    return quote(str(key), safe="")


def decode_key(filename: str) -> str:
    return unquote(filename)


def _load_record(path: Path, kind: EntityKind) -> Entity:
    """Load an existing record, raising ``EntityValidationError`` when unusable."""

    payload = _read_toml(path)
    if not isinstance(payload, MutableMapping):
        raise EntityValidationError(
            f"{kind.value} record {path.name}", ["File is not a readable TOML table"]
        )
    return Entity.from_record(kind, payload)


def _load_records(directory: Path, kind: EntityKind) -> list[Entity | UnreadableRecord]:
    if not directory.is_dir():
        return []
    records: list[Entity | UnreadableRecord] = []
    for path in sorted(directory.glob("*.toml")):
        try:
            records.append(_load_record(path, kind))
        except EntityValidationError as exc:
            log.warning("Malformed %s record %s: %s", kind.value, path, exc)
            records.append(UnreadableRecord(kind, decode_key(path.stem), str(path), exc))
    return records


# ---------------------------------------------------------------------------
# Pack format migrations
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class MigrationModule:
    from_version: int
    to_version: int
    apply: Callable[["MigrationContext"], None]
    description: str


@dataclass(slots=True)
class MigrationContext:
    directory: Path
    metadata: PackMetadata

    @property
    def entries_dir(self) -> Path:
        return self.directory / "entries"

    def log(self, message: str) -> None:
        log.info("[pack-migration:%s] %s", self.metadata.collection, message)


class VersionManager:
    """Step a pack directory through the format migration scripts."""

    def __init__(self, migrations_base: Path, *, collection: str = "packs") -> None:
        self._directory = migrations_base / collection
        self._collection = collection
        self._modules: list[MigrationModule] | None = None

    def read_version(self, directory: Path) -> int:
        payload = _read_toml(directory / VERSION_FILE)
        if not isinstance(payload, Mapping):
            return 0
        try:
            return int(payload.get("version", 0))
        except (TypeError, ValueError):
            return 0

    def ensure(self, directory: Path, metadata: PackMetadata, target: int = PACK_FORMAT_VERSION) -> int:
        current = self.read_version(directory)
        if current >= target:
            return current

        migrations = self._load_migrations()
        plan: list[MigrationModule] = []
        version = current
        while version < target:
            step = next((m for m in migrations if m.from_version == version), None)
            if step is None:
                raise MissingMigrationError(
                    f"Missing pack migration for {metadata.collection!r}: {version} -> {target}"
                )
            plan.append(step)
            version = step.to_version

        context = MigrationContext(directory=directory, metadata=metadata)
        for step in plan:
            log.debug("Applying %s to %s", step.description, metadata.collection)
            step.apply(context)
            _write_toml(directory / VERSION_FILE, {"version": step.to_version})
        return version

    def _load_migrations(self) -> list[MigrationModule]:
        if self._modules is not None:
            return self._modules
        modules: list[MigrationModule] = []
        if self._directory.is_dir():
            for path in sorted(self._directory.glob("*.py")):
                if path.name.startswith("__"):
                    continue
                spec = importlib.util.spec_from_file_location(
                    f"migrations.{self._collection}.{path.stem}", path
                )
                if spec is None or spec.loader is None:
                    continue
                module = importlib.util.module_from_spec(spec)
                spec.loader.exec_module(module)
                from_version = getattr(module, "FROM_VERSION", None)
                to_version = getattr(module, "TO_VERSION", None)
                apply = getattr(module, "apply", None)
                if not isinstance(from_version, int) or not isinstance(to_version, int):
                    continue
                if not callable(apply):
                    continue
                modules.append(
                    MigrationModule(
                        from_version=from_version,
                        to_version=to_version,
                        apply=apply,
                        description=str(getattr(module, "DESCRIPTION", path.stem)),
                    )
                )
        modules.sort(key=lambda module: module.from_version)
        self._modules = modules
        return modules


# ---------------------------------------------------------------------------
# Host implementation
# ---------------------------------------------------------------------------


def _parse_kind(value: Any) -> EntityKind | None:
    try:
        return EntityKind(str(value))
    except ValueError:
        return None


class TomlCompendiumPack:
    """A compendium pack stored as one TOML file per entry."""

    def __init__(
        self,
        directory: Path,
        metadata: PackMetadata,
        *,
        versions: VersionManager,
        lock: asyncio.Lock,
    ) -> None:
        self.directory = directory
        self.metadata = metadata
        self._versions = versions
        self._lock = lock

    @property
    def entries_dir(self) -> Path:
        return self.directory / "entries"

    def _entry_path(self, entity_id: str) -> Path:
        return self.entries_dir / f"{encode_key(entity_id)}.toml"

    async def migrate_schema(self) -> None:
        async with self._lock:
            self._versions.ensure(self.directory, self.metadata)

    async def load_entities(self) -> list[Entity | UnreadableRecord]:
        if self.metadata.kind is None:
            return []
        async with self._lock:
            return _load_records(self.entries_dir, self.metadata.kind)

    async def apply_patch(self, entity_id: str, update: Mapping[str, Any]) -> None:
        if update.get("_id") != entity_id:
            raise ValueError(
                f"Update for {entity_id!r} in {self.metadata.collection} must carry its _id"
            )
        async with self._lock:
            path = self._entry_path(entity_id)
            record = _read_toml(path)
            if not isinstance(record, MutableMapping):
                raise KeyError(f"Unknown entry {entity_id!r} in {self.metadata.collection}")
            merge_document(record, update)
            _write_toml(path, record)

    def __repr__(self) -> str:
        return f"TomlCompendiumPack({self.metadata.collection!r})"


class TomlWorldStore:
    """Migration host reading and patching a world stored on disk."""

    def __init__(self, root: Path, world: str, *, migrations_base: Path | None = None) -> None:
        self.root = root
        self.world = world
        self._lock = asyncio.Lock()
        package_root = Path(__file__).resolve().parent.parent
        self._versions = VersionManager(migrations_base or package_root / "migrations")

    @property
    def world_dir(self) -> Path:
        return self.root / "worlds" / self.world

    def _collection_dir(self, kind: EntityKind) -> Path:
        return self.world_dir / kind.collection

    def _record_path(self, kind: EntityKind, entity_id: str) -> Path:
        return self._collection_dir(kind) / f"{encode_key(entity_id)}.toml"

    async def list_entities(self, kind: EntityKind) -> list[Entity | UnreadableRecord]:
        async with self._lock:
            return _load_records(self._collection_dir(kind), kind)

    async def apply_patch(self, entity: Entity, patch: Patch) -> None:
        async with self._lock:
            path = self._record_path(entity.kind, entity.id)
            record = _read_toml(path)
            if not isinstance(record, MutableMapping):
                raise KeyError(f"Unknown {entity.kind.value} {entity.id!r}")
            _write_toml(path, patch.apply_to(record))

    def _pack_directories(self) -> list[Path]:
        directories = [self.world_dir / "packs"]
        modules_dir = self.root / "modules"
        if modules_dir.is_dir():
            directories.extend(sorted(path / "packs" for path in modules_dir.iterdir()))
        return directories

    async def list_packs(self) -> list[TomlCompendiumPack]:
        packs: list[TomlCompendiumPack] = []
        async with self._lock:
            for directory in self._pack_directories():
                if not directory.is_dir():
                    continue
                for pack_dir in sorted(directory.iterdir()):
                    payload = _read_toml(pack_dir / "pack.toml")
                    if payload is None:
                        continue
                    try:
                        meta = PackMetadataValidator.validate(payload)
                    except EntityValidationError as exc:
                        log.warning("Ignoring pack %s: %s", pack_dir, exc)
                        continue
                    metadata = PackMetadata(
                        collection=f"{meta['package']}.{pack_dir.name}",
                        package=str(meta["package"]),
                        kind=_parse_kind(meta["entity"]),
                        label=str(meta.get("label", pack_dir.name)),
                    )
                    packs.append(
                        TomlCompendiumPack(
                            pack_dir, metadata, versions=self._versions, lock=self._lock
                        )
                    )
        return packs

    def resolve_token_actor(self, token: Mapping[str, Any]) -> Optional[Entity]:
        actor_id = token.get("actorId")
        if not actor_id:
            return None
        path = self._record_path(EntityKind.ACTOR, str(actor_id))
        if not path.is_file():
            return None
        return _load_record(path, EntityKind.ACTOR)

    def read_schema_state(self) -> SchemaState:
        payload = _read_toml(self.world_dir / VERSION_FILE)
        if not isinstance(payload, Mapping):
            return SchemaState()
        version = payload.get("system_migration_version")
        return SchemaState(version=str(version) if version else None)

    async def record_schema_version(self, version: str) -> None:
        async with self._lock:
            _write_toml(
                self.world_dir / VERSION_FILE,
                {
                    "system_migration_version": version,
                    "migrated_at": datetime.now(timezone.utc),
                },
            )


__all__ = [
    "PACK_FORMAT_VERSION",
    "TomlCompendiumPack",
    "TomlWorldStore",
    "VersionManager",
    "resolve_storage_root",
]
