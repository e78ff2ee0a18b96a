"""Settings loaded once from the environment at startup."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping

from .utils import parse_bool, parse_id_list, parse_seconds, parse_u64


class ConfigError(Exception):
    """Raised when required settings are missing or malformed."""


@dataclass(frozen=True, slots=True)
class ArchiveSettings:
    """Inputs of the archival loop."""

    guild_id: int
    source_category_id: int
    destination_category_id: int
    threshold: timedelta
    interval: float = 300.0
    archive_empty: bool = True


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable bot configuration shared by every component."""

    token: str
    postable_channels: frozenset[int]
    guild_id: int | None = None
    archive: ArchiveSettings | None = None
    relay_enabled: bool = True
    watch_channels: frozenset[int] = frozenset()
    relay_interval: float = 2.0
    fetch_timeout: float = 15.0
    rate_per_second: float = 4.0


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from ``env`` (defaults to ``os.environ``)."""

    source = os.environ if env is None else env

    token = (source.get("DISCORD_TOKEN") or "").strip()
    if not token:
        raise ConfigError("Please set DISCORD_TOKEN")

    raw_postable = source.get("DISCORD_POSTABLE_CHANNELS")
    if raw_postable is None:
        raise ConfigError("Please set DISCORD_POSTABLE_CHANNELS")
    postable = _id_list("DISCORD_POSTABLE_CHANNELS", raw_postable)
    watch = _id_list("RELAY_WATCH_CHANNELS", source.get("RELAY_WATCH_CHANNELS"))

    guild_id = _optional_id(source, "DISCORD_GUILD")
    relay_enabled = parse_bool(source.get("RELAY_ENABLED"), True)
    if relay_enabled and not watch and guild_id is None:
        raise ConfigError("Set DISCORD_GUILD or RELAY_WATCH_CHANNELS to receive messages")

    archive: ArchiveSettings | None = None
    if parse_bool(source.get("ARCHIVE_ENABLED"), True):
        archive = _load_archive(source, guild_id)

    return Settings(
        token=token,
        postable_channels=postable,
        guild_id=guild_id,
        archive=archive,
        relay_enabled=relay_enabled,
        watch_channels=watch,
        relay_interval=parse_seconds(source.get("RELAY_POLL_SECONDS"), 2.0),
        fetch_timeout=parse_seconds(source.get("CAMPAIGN_FETCH_TIMEOUT"), 15.0),
        rate_per_second=parse_seconds(source.get("DISCORD_RATE"), 4.0),
    )


def _load_archive(source: Mapping[str, str], guild_id: int | None) -> ArchiveSettings:
    if guild_id is None:
        raise ConfigError("Please set DISCORD_GUILD")
    source_category = _optional_id(source, "DISCORD_THREAD_CATEGORY")
    if source_category is None:
        raise ConfigError("Please set DISCORD_THREAD_CATEGORY")
    destination_category = _optional_id(source, "DISCORD_ARCHIVE_CATEGORY")
    if destination_category is None:
        raise ConfigError("Please set DISCORD_ARCHIVE_CATEGORY")

    raw_weeks = (source.get("THREAD_DURATION_IN_WEEKS") or "").strip()
    if not raw_weeks:
        raise ConfigError("Please set THREAD_DURATION_IN_WEEKS")
    try:
        weeks = int(raw_weeks)
    except ValueError as exc:
        raise ConfigError("THREAD_DURATION_IN_WEEKS must be a whole number") from exc

    return ArchiveSettings(
        guild_id=guild_id,
        source_category_id=source_category,
        destination_category_id=destination_category,
        threshold=timedelta(weeks=weeks),
        interval=parse_seconds(source.get("ARCHIVE_POLL_SECONDS"), 300.0),
        archive_empty=parse_bool(source.get("ARCHIVE_EMPTY_CHANNELS"), True),
    )


def _optional_id(source: Mapping[str, str], key: str) -> int | None:
    raw = (source.get(key) or "").strip()
    if not raw:
        return None
    parsed = parse_u64(raw)
    if parsed is None:
        raise ConfigError(f"{key} must be a Discord id")
    return parsed


def _id_list(key: str, value: str | None) -> frozenset[int]:
    try:
        return parse_id_list(value)
    except ValueError as exc:
        raise ConfigError(f"{key}: {exc}") from exc
