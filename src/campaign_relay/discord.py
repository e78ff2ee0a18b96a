"""Discord API client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Protocol, Sequence

import aiohttp

from .models import CampaignMetadata, GuildChannel, InboundMessage
from .utils import parse_u64

_API_BASE = "https://discord.com/api/v10"
_DEFAULT_USER_AGENT = "DiscordBot (https://github.com, 1.0)"
_REQUEST_TIMEOUT = 15.0


logger = logging.getLogger(__name__)


class DiscordAPIError(Exception):
    """Raised when a Discord REST call fails."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ChatTransport(Protocol):
    async def list_channels(self, guild_id: int) -> list[GuildChannel]: ...

    async def edit_channel_category(self, channel_id: int, category_id: int) -> None: ...

    async def send_message(
        self,
        channel_id: int,
        content: str,
        *,
        preview: CampaignMetadata | None = None,
    ) -> None: ...


class DiscordClient:
    """Thin asynchronous wrapper around the Discord REST API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        token: str,
        *,
        user_agent: str | None = None,
    ):
        self._session = session
        self._token = normalize_token(token)
        self._user_agent = user_agent or _DEFAULT_USER_AGENT

    async def list_channels(self, guild_id: int) -> list[GuildChannel]:
        url = f"{_API_BASE}/guilds/{guild_id}/channels"
        data = await self._request("GET", url, action=f"list channels of guild {guild_id}")
        if not isinstance(data, Sequence):
            raise DiscordAPIError(f"Unexpected channel list payload for guild {guild_id}")
        channels: list[GuildChannel] = []
        for entry in data:
            if not isinstance(entry, Mapping):
                continue
            channel = _parse_channel(entry)
            if channel is not None:
                channels.append(channel)
        return channels

    async def edit_channel_category(self, channel_id: int, category_id: int) -> None:
        url = f"{_API_BASE}/channels/{channel_id}"
        await self._request(
            "PATCH",
            url,
            json={"parent_id": str(category_id)},
            action=f"move channel {channel_id}",
        )

    async def send_message(
        self,
        channel_id: int,
        content: str,
        *,
        preview: CampaignMetadata | None = None,
    ) -> None:
        url = f"{_API_BASE}/channels/{channel_id}/messages"
        payload: dict[str, Any] = {"content": content}
        embed = build_embed(preview) if preview is not None else None
        if embed:
            payload["embeds"] = [embed]
        await self._request(
            "POST",
            url,
            json=payload,
            action=f"send message to channel {channel_id}",
        )

    async def fetch_messages(
        self,
        channel_id: int,
        *,
        limit: int = 50,
        after: int | None = None,
    ) -> list[InboundMessage]:
        params = {"limit": str(max(1, min(limit, 100)))}
        if after:
            params["after"] = str(after)

        url = f"{_API_BASE}/channels/{channel_id}/messages"
        try:
            timeout_cfg = aiohttp.ClientTimeout(total=_REQUEST_TIMEOUT)
            async with self._session.get(
                url,
                headers=self._headers(),
                params=params,
                timeout=timeout_cfg,
            ) as resp:
                if resp.status >= 400:
                    logger.warning(
                        "Discord returned status %s while fetching messages of channel %s",
                        resp.status,
                        channel_id,
                    )
                    await resp.read()
                    return []
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Could not fetch messages of Discord channel %s: %s",
                channel_id,
                exc,
            )
            return []
        if not isinstance(data, Sequence):
            return []
        return [
            _parse_message(payload, channel_id)
            for payload in data
            if isinstance(payload, Mapping)
        ]

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": self._token,
            "User-Agent": self._user_agent,
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        url: str,
        *,
        action: str,
        json: Mapping[str, Any] | None = None,
    ) -> Any:
        try:
            timeout_cfg = aiohttp.ClientTimeout(total=_REQUEST_TIMEOUT)
            async with self._session.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                timeout=timeout_cfg,
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise DiscordAPIError(
                        f"Discord returned status {resp.status} on {action}: {body[:200]}",
                        status=resp.status,
                    )
                if resp.status == 204:
                    return None
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DiscordAPIError(f"Could not {action}: {exc or type(exc).__name__}") from exc


def normalize_token(token: str) -> str:
    candidate = (token or "").strip()
    lowered = candidate.lower()
    if lowered.startswith("bot ") or lowered.startswith("bearer "):
        return candidate
    return f"Bot {candidate}"


def build_embed(preview: CampaignMetadata) -> dict[str, Any]:
    """Render metadata as a Discord embed, leaving out empty fields."""

    embed: dict[str, Any] = {}
    if preview.title:
        embed["title"] = preview.title[:256]
    if preview.description:
        embed["description"] = preview.description[:4096]
    if preview.url:
        embed["url"] = preview.url
    if preview.image:
        embed["image"] = {"url": preview.image}
    return embed


def _parse_channel(payload: Mapping[str, Any]) -> GuildChannel | None:
    channel_id = parse_u64(payload.get("id"))
    if channel_id is None:
        return None
    channel_type_raw = payload.get("type")
    try:
        channel_type = int(str(channel_type_raw))
    except (TypeError, ValueError):
        channel_type = 0
    return GuildChannel(
        id=channel_id,
        name=str(payload.get("name") or ""),
        category_id=parse_u64(payload.get("parent_id")),
        last_message_id=parse_u64(payload.get("last_message_id")),
        type=channel_type,
    )


def _parse_message(payload: Mapping[str, Any], channel_id: int) -> InboundMessage:
    author = payload.get("author") or {}
    return InboundMessage(
        id=str(payload.get("id") or "0"),
        channel_id=str(payload.get("channel_id") or channel_id),
        author_id=str(author.get("id") or "0"),
        content=str(payload.get("content") or ""),
        author_is_bot=bool(author.get("bot")),
        timestamp=payload.get("timestamp"),
    )
