"""Backfill entry identifiers from their record file names."""

from __future__ import annotations

from collections.abc import MutableMapping

from sr5e.storage import _read_toml, _write_toml, decode_key

FROM_VERSION = 1
TO_VERSION = 2
DESCRIPTION = "Ensure every pack entry stores its _id and name"


def apply(context) -> None:  # type: ignore[override]
    directory = context.entries_dir
    if not directory.exists():
        return

    updated = 0
    for path in sorted(directory.glob("*.toml")):
        payload = _read_toml(path)
        if not isinstance(payload, MutableMapping):
            continue
        changed = False
        entry_id = decode_key(path.stem)
        if not payload.get("_id"):
            payload["_id"] = entry_id
            changed = True
        if not isinstance(payload.get("name"), str):
            payload["name"] = entry_id
            changed = True
        if changed:
            _write_toml(path, payload)
            updated += 1

    if updated:
        context.log(f"backfilled identifiers in {updated} entr{'y' if updated == 1 else 'ies'}")
