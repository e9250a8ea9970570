from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

import discord

from sr5e.notifications import DiscordWebhookNotifier, LoggingNotifier


class FakeMessage:
    def __init__(self, content: str) -> None:
        self.id = 1
        self.content = content
        self.deleted = False

    async def delete(self) -> None:
        self.deleted = True


class FakeWebhook:
    def __init__(self) -> None:
        self.sent: list[FakeMessage] = []
        self.kwargs: list[dict[str, Any]] = []

    async def send(self, content: str, **kwargs: Any) -> FakeMessage:
        message = FakeMessage(content)
        self.sent.append(message)
        self.kwargs.append(kwargs)
        return message


@pytest.fixture
def webhook(monkeypatch: pytest.MonkeyPatch) -> FakeWebhook:
    fake = FakeWebhook()
    urls: list[str] = []

    def _from_url(url: str, *, session: Any) -> FakeWebhook:
        urls.append(url)
        return fake

    monkeypatch.setattr(discord.Webhook, "from_url", _from_url)
    fake.urls = urls  # type: ignore[attr-defined]
    return fake


def test_logging_notifier_levels(caplog: pytest.LogCaptureFixture) -> None:
    notifier = LoggingNotifier()
    with caplog.at_level(logging.INFO, logger="sr5e.notifications"):
        asyncio.run(notifier.notify("started", persistent=True))
        asyncio.run(notifier.notify("progress"))

    levels = [(record.getMessage(), record.levelno) for record in caplog.records]
    assert ("started", logging.WARNING) in levels
    assert ("progress", logging.INFO) in levels


def test_webhook_keeps_persistent_and_expires_transient(webhook: FakeWebhook) -> None:
    async def scenario() -> None:
        async with DiscordWebhookNotifier(
            "https://discord.test/api/webhooks/1/token",
            transient_seconds=0,
            session=object(),  # type: ignore[arg-type]
        ) as notifier:
            await notifier.notify("Migration started", persistent=True)
            await notifier.notify("Migrating Actor Razor")

    asyncio.run(scenario())

    persistent, transient = webhook.sent
    assert persistent.content == "Migration started"
    assert not persistent.deleted
    assert transient.deleted
    assert all(kwargs["wait"] is True for kwargs in webhook.kwargs)
    assert webhook.urls == ["https://discord.test/api/webhooks/1/token"] * 2  # type: ignore[attr-defined]
