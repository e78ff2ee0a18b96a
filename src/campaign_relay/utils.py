"""Miscellaneous helpers."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone

DISCORD_EPOCH = datetime(2015, 1, 1, tzinfo=timezone.utc)
_MAX_U64 = 2**64 - 1


class RateLimiter:
    """Simple rate limiter using sleep between events."""

    def __init__(self, rate_per_second: float):
        self._interval = 0.0 if rate_per_second <= 0 else 1.0 / rate_per_second
        self._lock = asyncio.Lock()
        self._next_time = 0.0

    async def wait(self) -> None:
        async with self._lock:
            if self._interval <= 0:
                return
            now = time.perf_counter()
            if now < self._next_time:
                await asyncio.sleep(self._next_time - now)
            self._next_time = time.perf_counter() + self._interval


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def snowflake_to_datetime(snowflake: int) -> datetime:
    """Return the creation moment encoded in a Discord snowflake."""

    return DISCORD_EPOCH + timedelta(milliseconds=int(snowflake) >> 22)


def snowflake_from_datetime(moment: datetime | None) -> int | None:
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = moment - DISCORD_EPOCH
    milliseconds = delta // timedelta(milliseconds=1)
    if milliseconds < 0:
        return 0
    return milliseconds << 22


def parse_u64(value: str | int | None) -> int | None:
    """Parse an unsigned 64-bit id, returning ``None`` for anything else."""

    if value is None:
        return None
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()):
        return None
    parsed = int(text)
    if parsed > _MAX_U64:
        return None
    return parsed


def parse_id_list(value: str | None) -> frozenset[int]:
    """Parse a comma-separated list of ids.

    Blank entries are ignored. Raises ``ValueError`` naming the first entry
    that is not an unsigned 64-bit integer.
    """

    if value is None:
        return frozenset()
    ids: set[int] = set()
    for chunk in value.split(","):
        item = chunk.strip()
        if not item:
            continue
        parsed = parse_u64(item)
        if parsed is None:
            raise ValueError(f"invalid id: {item!r}")
        ids.add(parsed)
    return frozenset(ids)


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse textual boolean configuration values.

    Supported truthy values: ``on``, ``true``, ``yes``, ``1`` (case-insensitive).
    Supported falsy values: ``off``, ``false``, ``no``, ``0``.
    Any other value returns ``default``.
    """

    if value is None:
        return default
    normalized = value.strip().lower()
    if not normalized:
        return default
    if normalized in {"on", "true", "yes", "1"}:
        return True
    if normalized in {"off", "false", "no", "0"}:
        return False
    return default


def parse_seconds(value: str | None, default: float) -> float:
    if value is None:
        return default
    stripped = value.strip()
    if not stripped:
        return default
    try:
        parsed = float(stripped)
    except ValueError:
        return default
    return parsed if parsed > 0 else default
