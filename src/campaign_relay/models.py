"""Data models used across the relay bot."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from .utils import snowflake_to_datetime


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Destination channel and link found in a message."""

    channel_id: int
    link: str


@dataclass(slots=True)
class CampaignMetadata:
    """OpenGraph fields scraped from a campaign page."""

    title: str = ""
    description: str = ""
    url: str = ""
    image: str = ""

    def is_empty(self) -> bool:
        return not (self.title or self.description or self.url or self.image)


@dataclass(slots=True)
class GuildChannel:
    """Snapshot of a guild channel as returned by the Discord API."""

    id: int
    name: str
    category_id: int | None = None
    last_message_id: int | None = None
    type: int = 0

    @property
    def created_at(self) -> datetime:
        return snowflake_to_datetime(self.id)


@dataclass(slots=True)
class InboundMessage:
    """Subset of the Discord message payload used by the relay."""

    id: str
    channel_id: str
    author_id: str
    content: str
    author_is_bot: bool = False
    timestamp: str | None = None


class RelayOutcome(enum.Enum):
    """What the relay did with a single inbound message."""

    IGNORED = "ignored"
    PLAIN = "plain"
    ENRICHED = "enriched"
