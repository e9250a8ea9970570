"""Split single-file compendium packs into one record per entry."""

from __future__ import annotations

from collections.abc import Mapping

from sr5e.storage import _read_toml, _write_toml, encode_key

FROM_VERSION = 0
TO_VERSION = 1
DESCRIPTION = "Move [[entries]] from entries.toml into entries/<id>.toml"


def apply(context) -> None:  # type: ignore[override]
    legacy_path = context.directory / "entries.toml"
    payload = _read_toml(legacy_path)
    if not isinstance(payload, Mapping):
        context.entries_dir.mkdir(parents=True, exist_ok=True)
        return

    entries = payload.get("entries")
    if not isinstance(entries, list):
        entries = []

    written = 0
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            continue
        entry_id = str(entry.get("_id") or f"entry{index:04d}")
        record = dict(entry)
        record["_id"] = entry_id
        _write_toml(context.entries_dir / f"{encode_key(entry_id)}.toml", record)
        written += 1

    context.entries_dir.mkdir(parents=True, exist_ok=True)
    legacy_path.unlink()
    context.log(f"split {written} entr{'y' if written == 1 else 'ies'} into separate records")
