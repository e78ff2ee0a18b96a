"""Polling source of inbound Discord messages for the relay."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import AbstractSet, Protocol

from .discord import DiscordAPIError
from .models import GuildChannel, InboundMessage, RelayOutcome
from .utils import RateLimiter, snowflake_from_datetime, utcnow

_TEXT_CHANNEL_TYPES: set[int] = {0, 5}

logger = logging.getLogger(__name__)


class MessageSource(Protocol):
    async def list_channels(self, guild_id: int) -> list[GuildChannel]: ...

    async def fetch_messages(
        self,
        channel_id: int,
        *,
        limit: int = 50,
        after: int | None = None,
    ) -> list[InboundMessage]: ...


class MessageHandler(Protocol):
    async def handle(self, message: InboundMessage) -> RelayOutcome: ...


def _sort_key(message: InboundMessage) -> tuple[int, str]:
    return (int(message.id), message.id) if message.id.isdigit() else (0, message.id)


class MessagePoller:
    """Feed every new user message in the watched channels to a handler.

    Messages posted before the poller was created are never dispatched. Each
    message is handled in its own task.
    """

    def __init__(
        self,
        source: MessageSource,
        handler: MessageHandler,
        *,
        guild_id: int | None = None,
        watch_channels: AbstractSet[int] = frozenset(),
        interval: float = 2.0,
        rate_per_second: float = 4.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._source = source
        self._handler = handler
        self._guild_id = guild_id
        self._watch_channels = frozenset(watch_channels)
        self._interval = interval
        self._rate = RateLimiter(rate_per_second)
        self._baseline = snowflake_from_datetime(clock()) or 0
        self._last_seen: dict[int, int] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def run(self, stop: asyncio.Event | None = None) -> None:
        if stop is not None:
            self._stop = stop
        try:
            while not self._stop.is_set():
                await self.poll_once()
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.drain()

    async def poll_once(self) -> int:
        """Fetch new messages from every watched channel and dispatch them."""

        dispatched = 0
        for channel_id in await self._resolve_channels():
            if self._stop.is_set():
                break
            await self._rate.wait()
            after = self._last_seen.get(channel_id, self._baseline)
            messages = await self._source.fetch_messages(channel_id, after=after)
            for message in sorted(messages, key=_sort_key):
                if message.id.isdigit():
                    numeric_id = int(message.id)
                    if numeric_id <= after:
                        continue
                    self._last_seen[channel_id] = max(
                        numeric_id, self._last_seen.get(channel_id, after)
                    )
                if message.author_is_bot:
                    continue
                self._spawn(message)
                dispatched += 1
        return dispatched

    async def drain(self) -> None:
        """Wait for dispatched messages that are still being handled."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _resolve_channels(self) -> list[int]:
        if self._watch_channels:
            return sorted(self._watch_channels)
        if self._guild_id is None:
            return []
        try:
            channels = await self._source.list_channels(self._guild_id)
        except DiscordAPIError as exc:
            logger.warning("Could not list channels to watch: %s", exc)
            return []
        return [channel.id for channel in channels if channel.type in _TEXT_CHANNEL_TYPES]

    def _spawn(self, message: InboundMessage) -> None:
        task = asyncio.create_task(
            self._dispatch(message), name=f"relay-message-{message.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, message: InboundMessage) -> None:
        try:
            await self._handler.handle(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Missed relay for message %s in channel %s",
                message.id,
                message.channel_id,
            )
