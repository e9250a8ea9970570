"""Migration runtime configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# Schema version written by this release of the system data model.
SYSTEM_VERSION = "0.5.3"
# Oldest recorded version the rules are known to upgrade cleanly.
MINIMUM_COMPATIBLE_VERSION = "0.5.0"


def env(name: str, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


@dataclass(slots=True)
class MigrationConfig:
    world: str
    data_root: Path | None = None
    system_version: str = SYSTEM_VERSION
    minimum_compatible_version: str = MINIMUM_COMPATIBLE_VERSION
    log_level: str = "INFO"
    webhook_url: str | None = None
    transient_seconds: float = 15.0

    @classmethod
    def from_env(cls) -> "MigrationConfig":
        world = env("SR5E_WORLD", "world").strip()
        if not world:
            raise RuntimeError("SR5E_WORLD must not be empty")
        data_root = os.getenv("SR5E_DATA_ROOT")
        log_level = os.getenv("SR5E_LOG_LEVEL", "INFO").strip().upper() or "INFO"
        webhook_url = os.getenv("SR5E_NOTIFY_WEBHOOK") or None
        transient_seconds = float(os.getenv("SR5E_TRANSIENT_SECONDS", "15"))
        transient_seconds = max(0.0, transient_seconds)

        return cls(
            world=world,
            data_root=Path(data_root).expanduser() if data_root else None,
            system_version=os.getenv("SR5E_SYSTEM_VERSION", SYSTEM_VERSION),
            minimum_compatible_version=os.getenv(
                "SR5E_MINIMUM_COMPATIBLE_VERSION", MINIMUM_COMPATIBLE_VERSION
            ),
            log_level=log_level,
            webhook_url=webhook_url,
            transient_seconds=transient_seconds,
        )


__all__ = ["MINIMUM_COMPATIBLE_VERSION", "MigrationConfig", "SYSTEM_VERSION", "env"]
