"""User-facing notifications emitted while a migration runs."""

from __future__ import annotations

import asyncio
import logging

import aiohttp
import discord

log = logging.getLogger(__name__)


class LoggingNotifier:
    """Write notifications to the migration log."""

    async def notify(self, message: str, *, persistent: bool = False) -> None:
        log.log(logging.WARNING if persistent else logging.INFO, "%s", message)


class DiscordWebhookNotifier:
    """Post notifications to a Discord channel through a webhook.

    Persistent notifications stay in the channel; transient ones are removed
    after ``transient_seconds``.  Use as an async context manager so pending
    removals finish before the HTTP session closes.
    """

    def __init__(
        self,
        url: str,
        *,
        transient_seconds: float = 15.0,
        username: str = "Shadowrun5e Migration",
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = url
        self._transient_seconds = max(0.0, transient_seconds)
        self._username = username
        self._session = session
        self._owns_session = session is None
        self._pending: set[asyncio.Task[None]] = set()

    async def __aenter__(self) -> "DiscordWebhookNotifier":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _webhook(self) -> discord.Webhook:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return discord.Webhook.from_url(self._url, session=self._session)

    async def notify(self, message: str, *, persistent: bool = False) -> None:
        sent = await self._webhook().send(message, username=self._username, wait=True)
        if persistent:
            return
        task = asyncio.create_task(self._expire(sent))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _expire(self, sent: discord.WebhookMessage) -> None:
        await asyncio.sleep(self._transient_seconds)
        try:
            await sent.delete()
        except discord.HTTPException:
            log.warning("Could not remove transient notification %s", sent.id, exc_info=True)

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None


__all__ = ["DiscordWebhookNotifier", "LoggingNotifier"]
