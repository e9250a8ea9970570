from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from sr5e.cli import main
from sr5e.config import SYSTEM_VERSION, MigrationConfig
from sr5e.storage import _read_toml, _write_toml


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SR5E_WORLD",
        "SR5E_DATA_ROOT",
        "SR5E_SYSTEM_VERSION",
        "SR5E_MINIMUM_COMPATIBLE_VERSION",
        "SR5E_LOG_LEVEL",
        "SR5E_NOTIFY_WEBHOOK",
        "SR5E_TRANSIENT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_config_defaults() -> None:
    config = MigrationConfig.from_env()
    assert config.world == "world"
    assert config.data_root is None
    assert config.system_version == SYSTEM_VERSION
    assert config.webhook_url is None


def test_config_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SR5E_WORLD", "seattle")
    monkeypatch.setenv("SR5E_DATA_ROOT", str(tmp_path))
    monkeypatch.setenv("SR5E_LOG_LEVEL", "debug")
    monkeypatch.setenv("SR5E_TRANSIENT_SECONDS", "-4")
    monkeypatch.setenv("SR5E_NOTIFY_WEBHOOK", "https://discord.test/api/webhooks/1/x")

    config = MigrationConfig.from_env()

    assert config.world == "seattle"
    assert config.data_root == tmp_path
    assert config.log_level == "DEBUG"
    assert config.transient_seconds == 0.0
    assert config.webhook_url.endswith("/x")


def test_config_rejects_blank_world(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SR5E_WORLD", "  ")
    with pytest.raises(RuntimeError):
        MigrationConfig.from_env()


def seed(tmp_path: Path) -> Path:
    world = tmp_path / "worlds" / "seattle"
    _write_toml(
        world / "items" / "c1.toml",
        {"_id": "c1", "name": "Cybereyes", "type": "cyberware", "data": {}},
    )
    return world


def test_migrate_command_runs_once(tmp_path: Path) -> None:
    world = seed(tmp_path)
    argv = ["--data-root", str(tmp_path), "--world", "seattle", "--target-version", "0.5.3"]

    assert main([*argv, "migrate"]) == 0
    assert _read_toml(world / "items" / "c1.toml")["data"]["capacity"] == 0
    assert _read_toml(world / "schema_version.toml")["system_migration_version"] == "0.5.3"

    _write_toml(
        world / "items" / "c2.toml",
        {"_id": "c2", "name": "Cyberears", "type": "cyberware", "data": {}},
    )
    assert main([*argv, "migrate"]) == 0
    assert "capacity" not in _read_toml(world / "items" / "c2.toml")["data"]

    assert main([*argv, "migrate", "--force"]) == 0
    assert _read_toml(world / "items" / "c2.toml")["data"]["capacity"] == 0


def test_migrate_command_reports_failures(tmp_path: Path) -> None:
    world = seed(tmp_path)
    _write_toml(
        world / "actors" / "a1.toml",
        {
            "_id": "a1",
            "name": "Broken",
            "type": "character",
            "data": {"skills": {"active": {"pistols": {"value": 1}}}},
        },
    )

    exit_code = main(["--data-root", str(tmp_path), "--world", "seattle", "migrate"])

    assert exit_code == 1
    assert _read_toml(world / "items" / "c1.toml")["data"]["capacity"] == 0


def test_status_and_rules_commands(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    seed(tmp_path)

    assert main(["--data-root", str(tmp_path), "--world", "seattle", "status"]) == 0
    status = capsys.readouterr().out
    assert "recorded: none" in status
    assert "migration required" in status

    assert main(["rules"]) == 0
    rules = capsys.readouterr().out
    assert "skill-specs" in rules
    assert "capacity" in rules
