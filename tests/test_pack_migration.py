import sys
from pathlib import Path
import importlib

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

import pytest
import tomllib

from sr5e.errors import MissingMigrationError
from sr5e.migration.host import PackMetadata
from sr5e.models.entities import EntityKind
from sr5e.storage import MigrationContext, VersionManager, _write_toml


def make_context(directory: Path) -> MigrationContext:
    return MigrationContext(
        directory=directory,
        metadata=PackMetadata(collection="world.gear", package="world", kind=EntityKind.ITEM),
    )


def test_split_entries_writes_one_record_per_entry(tmp_path: Path) -> None:
    migration = importlib.import_module("migrations.packs.0001_split_entries")
    _write_toml(
        tmp_path / "entries.toml",
        {
            "entries": [
                {"_id": "a", "name": "Alpha", "type": "cyberware", "data": {}},
                {"name": "Beta", "type": "quality", "data": {"karma": 2}},
            ]
        },
    )

    migration.apply(make_context(tmp_path))

    assert not (tmp_path / "entries.toml").exists()
    alpha = tomllib.load((tmp_path / "entries" / "a.toml").open("rb"))
    beta = tomllib.load((tmp_path / "entries" / "entry0001.toml").open("rb"))
    assert alpha["name"] == "Alpha"
    assert beta == {"_id": "entry0001", "name": "Beta", "type": "quality", "data": {"karma": 2}}


def test_split_entries_without_legacy_file_creates_directory(tmp_path: Path) -> None:
    migration = importlib.import_module("migrations.packs.0001_split_entries")

    migration.apply(make_context(tmp_path))

    assert (tmp_path / "entries").is_dir()


def test_entry_ids_backfilled_from_file_names(tmp_path: Path) -> None:
    migration = importlib.import_module("migrations.packs.0002_entry_ids")
    entries = tmp_path / "entries"
    _write_toml(entries / "Item%2Fabc.toml", {"type": "quality", "data": {}})
    _write_toml(entries / "ok.toml", {"_id": "ok", "name": "Fine", "data": {}})

    migration.apply(make_context(tmp_path))

    patched = tomllib.load((entries / "Item%2Fabc.toml").open("rb"))
    assert patched["_id"] == "Item/abc"
    assert patched["name"] == "Item/abc"
    untouched = tomllib.load((entries / "ok.toml").open("rb"))
    assert untouched == {"_id": "ok", "name": "Fine", "data": {}}


def test_version_manager_steps_through_chain(tmp_path: Path) -> None:
    manager = VersionManager(PROJECT_BASE / "migrations")
    pack_dir = tmp_path / "gear"
    pack_dir.mkdir()
    context = make_context(pack_dir)

    assert manager.read_version(pack_dir) == 0
    assert manager.ensure(pack_dir, context.metadata) == 2
    assert manager.read_version(pack_dir) == 2
    assert manager.ensure(pack_dir, context.metadata) == 2


def test_version_manager_reports_gaps(tmp_path: Path) -> None:
    migrations_base = tmp_path / "migrations"
    (migrations_base / "packs").mkdir(parents=True)
    (migrations_base / "packs" / "0002_later.py").write_text(
        "FROM_VERSION = 1\nTO_VERSION = 2\n\ndef apply(context):\n    pass\n",
        encoding="utf8",
    )
    manager = VersionManager(migrations_base)
    pack_dir = tmp_path / "gear"
    pack_dir.mkdir()

    with pytest.raises(MissingMigrationError):
        manager.ensure(pack_dir, make_context(pack_dir).metadata)
