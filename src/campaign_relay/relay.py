"""Relay of campaign links into the channels they mention."""

from __future__ import annotations

import logging
from typing import AbstractSet, Protocol

from .campaign import FetchError
from .discord import ChatTransport
from .models import CampaignMetadata, InboundMessage, RelayOutcome
from .scanner import scan_message

logger = logging.getLogger(__name__)


class MetadataFetcher(Protocol):
    async def fetch(self, url: str) -> CampaignMetadata: ...


class MessageRelay:
    """Post links found in messages into the channel each message mentions."""

    def __init__(
        self,
        transport: ChatTransport,
        fetcher: MetadataFetcher,
        postable_channels: AbstractSet[int],
    ):
        self._transport = transport
        self._fetcher = fetcher
        self._postable_channels = frozenset(postable_channels)

    async def handle(self, message: InboundMessage) -> RelayOutcome:
        """Relay ``message`` if it names a postable channel and holds a link.

        Exactly one message is sent for a qualifying input. Errors from the
        final send propagate as ``DiscordAPIError``.
        """

        result = scan_message(message.content)
        if result is None:
            return RelayOutcome.IGNORED
        if result.channel_id not in self._postable_channels:
            logger.debug(
                "Ignoring link from message %s: channel %s is not postable",
                message.id,
                result.channel_id,
            )
            return RelayOutcome.IGNORED

        try:
            metadata = await self._fetcher.fetch(result.link)
        except FetchError as exc:
            logger.debug("No preview for %s: %s", result.link, exc)
            metadata = None

        if metadata is None or metadata.is_empty():
            await self._transport.send_message(result.channel_id, result.link)
            outcome = RelayOutcome.PLAIN
        else:
            await self._transport.send_message(
                result.channel_id, result.link, preview=metadata
            )
            outcome = RelayOutcome.ENRICHED

        logger.info(
            "Relayed link from message %s to channel %s (%s)",
            message.id,
            result.channel_id,
            outcome.value,
        )
        return outcome
