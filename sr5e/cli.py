"""Command line entry point for running the system migration against a world."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from .config import MigrationConfig
from .migration.orchestrator import MigrationReport, migrate_world, needs_migration
from .migration.rules import DEFAULT_RULES
from .models.entities import EntityKind
from .notifications import DiscordWebhookNotifier, LoggingNotifier
from .storage import TomlWorldStore, resolve_storage_root

log = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sr5e-migrate", description=__doc__)
    parser.add_argument("--data-root", type=Path, help="Directory holding worlds/ and modules/.")
    parser.add_argument("--world", help="World directory name under worlds/.")
    parser.add_argument("--target-version", help="Schema version to migrate to.")
    parser.add_argument("--log-level", help="Logging level, e.g. DEBUG or INFO.")
    commands = parser.add_subparsers(dest="command", required=True)

    migrate = commands.add_parser("migrate", help="Migrate the world if its data is outdated.")
    migrate.add_argument(
        "--force",
        action="store_true",
        help="Run even when the recorded version is already current.",
    )
    commands.add_parser("status", help="Show the recorded and target schema versions.")
    commands.add_parser("rules", help="List the registered transform rules.")
    return parser


def apply_overrides(config: MigrationConfig, args: argparse.Namespace) -> MigrationConfig:
    changes: dict[str, object] = {}
    if args.data_root is not None:
        changes["data_root"] = args.data_root
    if args.world:
        changes["world"] = args.world
    if args.target_version:
        changes["system_version"] = args.target_version
    if args.log_level:
        changes["log_level"] = args.log_level.upper()
    return replace(config, **changes) if changes else config


def open_store(config: MigrationConfig) -> TomlWorldStore:
    if config.data_root is not None:
        root = config.data_root.expanduser().resolve()
    else:
        root = resolve_storage_root(PACKAGE_ROOT)
    return TomlWorldStore(root, config.world)


async def run_migration(config: MigrationConfig, *, force: bool = False) -> MigrationReport | None:
    store = open_store(config)
    state = store.read_schema_state()
    if not force and not needs_migration(
        state,
        config.system_version,
        minimum_compatible=config.minimum_compatible_version,
    ):
        log.info("World %s is already at schema version %s", config.world, state.version)
        return None

    if config.webhook_url:
        async with DiscordWebhookNotifier(
            config.webhook_url, transient_seconds=config.transient_seconds
        ) as notifier:
            return await migrate_world(store, state, config.system_version, notifier=notifier)
    return await migrate_world(store, state, config.system_version, notifier=LoggingNotifier())


def _print_status(config: MigrationConfig) -> None:
    store = open_store(config)
    state = store.read_schema_state()
    outdated = needs_migration(
        state,
        config.system_version,
        minimum_compatible=config.minimum_compatible_version,
    )
    print(f"world:    {config.world} ({store.world_dir})")
    print(f"recorded: {state.version or 'none'}")
    print(f"target:   {config.system_version}")
    print(f"status:   {'migration required' if outdated else 'up to date'}")


def _print_rules() -> None:
    for kind in EntityKind:
        for migration_rule in DEFAULT_RULES.rules_for(kind):
            print(f"{kind.value:<6} {migration_rule.name:<12} {migration_rule.description}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = apply_overrides(MigrationConfig.from_env(), args)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "status":
        _print_status(config)
        return 0
    if args.command == "rules":
        _print_rules()
        return 0

    report = asyncio.run(run_migration(config, force=args.force))
    if report is None:
        return 0
    return 0 if report.ok else 1


__all__ = ["apply_overrides", "build_parser", "main", "run_migration"]
