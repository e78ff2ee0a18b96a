from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from campaign_relay.discord import DiscordAPIError
from campaign_relay.models import GuildChannel, InboundMessage, RelayOutcome
from campaign_relay.poller import MessagePoller
from campaign_relay.utils import snowflake_from_datetime

START = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _id_at(moment: datetime) -> str:
    return str(snowflake_from_datetime(moment))


def make_message(
    moment: datetime, content: str = "hello", *, channel_id: str = "10", bot: bool = False
) -> InboundMessage:
    return InboundMessage(
        id=_id_at(moment),
        channel_id=channel_id,
        author_id="42",
        content=content,
        author_is_bot=bot,
    )


class FakeSource:
    def __init__(
        self,
        messages: dict[int, list[InboundMessage]],
        *,
        channels: list[GuildChannel] | None = None,
        list_error: bool = False,
    ) -> None:
        self.messages = messages
        self.channels = channels or []
        self.list_error = list_error
        self.fetch_calls: list[tuple[int, int | None]] = []

    async def list_channels(self, guild_id: int) -> list[GuildChannel]:
        if self.list_error:
            raise DiscordAPIError("Discord returned status 500", status=500)
        return self.channels

    async def fetch_messages(
        self,
        channel_id: int,
        *,
        limit: int = 50,
        after: int | None = None,
    ) -> list[InboundMessage]:
        self.fetch_calls.append((channel_id, after))
        # Discord returns newest first
        return list(reversed(self.messages.get(channel_id, [])))


class RecordingHandler:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.handled: list[str] = []

    async def handle(self, message: InboundMessage) -> RelayOutcome:
        self.handled.append(message.content)
        if self.fail:
            raise DiscordAPIError("Missing Access", status=403)
        return RelayOutcome.PLAIN


def test_poller_dispatches_only_new_user_messages() -> None:
    old = make_message(START - timedelta(minutes=5), "before start")
    first = make_message(START + timedelta(seconds=1), "first")
    from_bot = make_message(START + timedelta(seconds=2), "bot echo", bot=True)
    second = make_message(START + timedelta(seconds=3), "second")
    source = FakeSource({10: [old, first, from_bot, second]})
    handler = RecordingHandler()

    async def runner() -> tuple[int, int]:
        poller = MessagePoller(
            source,
            handler,
            watch_channels={10},
            rate_per_second=0,
            clock=lambda: START,
        )
        dispatched = await poller.poll_once()
        again = await poller.poll_once()
        await poller.drain()
        return dispatched, again

    dispatched, again = asyncio.run(runner())

    assert dispatched == 2
    assert again == 0
    assert handler.handled == ["first", "second"]
    assert source.fetch_calls[0] == (10, snowflake_from_datetime(START))
    assert source.fetch_calls[1] == (10, int(second.id))


def test_poller_watches_guild_text_channels() -> None:
    message = make_message(START + timedelta(seconds=1), "news", channel_id="11")
    channels = [
        GuildChannel(id=11, name="general", type=0),
        GuildChannel(id=12, name="Threads", type=4),
        GuildChannel(id=13, name="voice", type=2),
    ]
    source = FakeSource({11: [message]}, channels=channels)
    handler = RecordingHandler()

    async def runner() -> None:
        poller = MessagePoller(
            source, handler, guild_id=1, rate_per_second=0, clock=lambda: START
        )
        await poller.poll_once()
        await poller.drain()

    asyncio.run(runner())

    assert [channel for channel, _ in source.fetch_calls] == [11]
    assert handler.handled == ["news"]


def test_poller_survives_channel_list_failure() -> None:
    source = FakeSource({}, list_error=True)

    async def runner() -> int:
        poller = MessagePoller(
            source, RecordingHandler(), guild_id=1, rate_per_second=0, clock=lambda: START
        )
        return await poller.poll_once()

    assert asyncio.run(runner()) == 0
    assert source.fetch_calls == []


def test_poller_logs_failed_relays_and_keeps_going() -> None:
    messages = [
        make_message(START + timedelta(seconds=1), "one"),
        make_message(START + timedelta(seconds=2), "two"),
    ]
    source = FakeSource({10: messages})
    handler = RecordingHandler(fail=True)

    async def runner() -> int:
        poller = MessagePoller(
            source, handler, watch_channels={10}, rate_per_second=0, clock=lambda: START
        )
        dispatched = await poller.poll_once()
        await poller.drain()
        return dispatched

    assert asyncio.run(runner()) == 2
    assert handler.handled == ["one", "two"]


def test_slow_handler_does_not_block_other_messages() -> None:
    messages = [
        make_message(START + timedelta(seconds=1), "slow"),
        make_message(START + timedelta(seconds=2), "fast"),
    ]
    source = FakeSource({10: messages})
    finished: list[str] = []

    class SlowHandler:
        def __init__(self) -> None:
            self.release = asyncio.Event()

        async def handle(self, message: InboundMessage) -> RelayOutcome:
            if message.content == "slow":
                await self.release.wait()
            finished.append(message.content)
            return RelayOutcome.PLAIN

    async def runner() -> None:
        handler = SlowHandler()
        poller = MessagePoller(
            source, handler, watch_channels={10}, rate_per_second=0, clock=lambda: START
        )
        await poller.poll_once()
        await asyncio.sleep(0.05)
        assert finished == ["fast"]
        handler.release.set()
        await poller.drain()

    asyncio.run(runner())

    assert finished == ["fast", "slow"]


def test_run_stops_on_event() -> None:
    source = FakeSource({10: []})

    async def runner() -> None:
        stop = asyncio.Event()
        poller = MessagePoller(
            source,
            RecordingHandler(),
            watch_channels={10},
            interval=0.02,
            rate_per_second=0,
            clock=lambda: START,
        )
        task = asyncio.create_task(poller.run(stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

    asyncio.run(runner())

    assert len(source.fetch_calls) >= 2
