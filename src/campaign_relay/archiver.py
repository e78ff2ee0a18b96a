"""Periodic archival of inactive thread channels."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from .discord import ChatTransport, DiscordAPIError
from .models import GuildChannel
from .utils import snowflake_to_datetime, utcnow

DEFAULT_INTERVAL = 300.0

logger = logging.getLogger(__name__)


def last_activity(channel: GuildChannel) -> datetime:
    """Return when the channel last saw a message, or its creation time."""

    if channel.last_message_id is not None:
        return snowflake_to_datetime(channel.last_message_id)
    return channel.created_at


def is_archivable(
    channel: GuildChannel,
    *,
    source_category_id: int,
    threshold: timedelta,
    now: datetime,
    archive_empty: bool = True,
) -> bool:
    if channel.category_id is None or channel.category_id != source_category_id:
        return False
    if channel.last_message_id is None and not archive_empty:
        return False
    return now - last_activity(channel) > threshold


class ArchivalScheduler:
    """Move channels that went quiet from the thread category to the archive."""

    def __init__(
        self,
        transport: ChatTransport,
        *,
        guild_id: int,
        source_category_id: int,
        destination_category_id: int,
        threshold: timedelta,
        interval: float = DEFAULT_INTERVAL,
        archive_empty: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._transport = transport
        self._guild_id = guild_id
        self._source_category_id = source_category_id
        self._destination_category_id = destination_category_id
        self._threshold = threshold
        self._interval = interval
        self._archive_empty = archive_empty
        self._clock = clock
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Run cycles every ``interval`` seconds until stopped."""

        if stop is not None:
            self._stop = stop
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                await self.run_cycle()

    async def run_cycle(self) -> list[GuildChannel]:
        try:
            channels = await self._transport.list_channels(self._guild_id)
        except DiscordAPIError as exc:
            logger.warning("Skipping archival cycle, channel list unavailable: %s", exc)
            return []

        now = self._clock()
        archived: list[GuildChannel] = []
        for channel in channels:
            if not is_archivable(
                channel,
                source_category_id=self._source_category_id,
                threshold=self._threshold,
                now=now,
                archive_empty=self._archive_empty,
            ):
                continue
            logger.info("Archiving channel %s (%s)", channel.name, channel.id)
            try:
                await self._transport.edit_channel_category(
                    channel.id, self._destination_category_id
                )
            except DiscordAPIError as exc:
                logger.warning("Could not archive channel %s: %s", channel.id, exc)
                continue
            archived.append(channel)
        return archived
