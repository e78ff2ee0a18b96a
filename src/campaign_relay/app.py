"""Application bootstrap for the relay bot."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import aiohttp

from .archiver import ArchivalScheduler
from .campaign import CampaignPageFetcher
from .config import Settings
from .discord import DiscordClient
from .poller import MessagePoller
from .relay import MessageRelay

logger = logging.getLogger(__name__)


class RelayBotApp:
    """High level coordinator running the relay poller and the archival loop."""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        settings = self._settings
        async with aiohttp.ClientSession() as session:
            discord_client = DiscordClient(session, settings.token)
            tasks: list[asyncio.Task[None]] = []

            if settings.relay_enabled:
                fetcher = CampaignPageFetcher(session, timeout=settings.fetch_timeout)
                relay = MessageRelay(discord_client, fetcher, settings.postable_channels)
                poller = MessagePoller(
                    discord_client,
                    relay,
                    guild_id=settings.guild_id,
                    watch_channels=settings.watch_channels,
                    interval=settings.relay_interval,
                    rate_per_second=settings.rate_per_second,
                )
                tasks.append(
                    asyncio.create_task(
                        self._supervise("message-relay", lambda: poller.run(self._stop_event)),
                        name="message-relay-supervisor",
                    )
                )

            archive = settings.archive
            if archive is not None:
                scheduler = ArchivalScheduler(
                    discord_client,
                    guild_id=archive.guild_id,
                    source_category_id=archive.source_category_id,
                    destination_category_id=archive.destination_category_id,
                    threshold=archive.threshold,
                    interval=archive.interval,
                    archive_empty=archive.archive_empty,
                )
                tasks.append(
                    asyncio.create_task(
                        self._supervise(
                            "thread-archiver", lambda: scheduler.run(self._stop_event)
                        ),
                        name="thread-archiver-supervisor",
                    )
                )

            if not tasks:
                logger.warning("Relay and archival are both disabled, nothing to do")
                return

            logger.info(
                "Bot started: relay %s, archival %s",
                "on" if settings.relay_enabled else "off",
                "on" if archive is not None else "off",
            )
            await asyncio.gather(*tasks)

    async def _supervise(
        self,
        name: str,
        factory: Callable[[], Awaitable[None]],
        *,
        retry_delay: float = 5.0,
    ) -> None:
        while not self._stop_event.is_set():
            try:
                await factory()
            except asyncio.CancelledError:
                logger.info("Task %s stopped", name)
                raise
            except Exception:
                logger.exception("Task %s failed", name)
            else:
                if self._stop_event.is_set():
                    break
                logger.warning("Task %s exited unexpectedly, restarting", name)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=retry_delay)
            except asyncio.TimeoutError:
                pass
