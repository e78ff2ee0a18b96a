from __future__ import annotations

import asyncio

import pytest

from campaign_relay.campaign import EmptyMetadata, FetchError, NotSupportedPlatform, TransportError
from campaign_relay.discord import DiscordAPIError
from campaign_relay.models import CampaignMetadata, GuildChannel, InboundMessage, RelayOutcome
from campaign_relay.relay import MessageRelay

CAMPAIGN_URL = "https://www.kickstarter.com/projects/someone/great-game"
METADATA = CampaignMetadata(
    title="Great Game",
    description="A great game",
    url=CAMPAIGN_URL,
    image="https://img.example/cover.jpg",
)


class RecordingTransport:
    def __init__(self, *, fail_send: bool = False) -> None:
        self.fail_send = fail_send
        self.sent: list[tuple[int, str, CampaignMetadata | None]] = []

    async def list_channels(self, guild_id: int) -> list[GuildChannel]:
        return []

    async def edit_channel_category(self, channel_id: int, category_id: int) -> None:
        return None

    async def send_message(
        self,
        channel_id: int,
        content: str,
        *,
        preview: CampaignMetadata | None = None,
    ) -> None:
        if self.fail_send:
            raise DiscordAPIError("Missing Permissions", status=403)
        self.sent.append((channel_id, content, preview))


class StubFetcher:
    def __init__(
        self,
        result: CampaignMetadata | None = None,
        error: FetchError | None = None,
    ) -> None:
        self.result = result
        self.error = error
        self.urls: list[str] = []

    async def fetch(self, url: str) -> CampaignMetadata:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


def make_message(content: str) -> InboundMessage:
    return InboundMessage(id="1001", channel_id="500", author_id="42", content=content)


def _relay(
    transport: RecordingTransport, fetcher: StubFetcher, postable: set[int] | None = None
) -> MessageRelay:
    return MessageRelay(transport, fetcher, postable if postable is not None else {123})


def test_relay_sends_enriched_preview() -> None:
    transport = RecordingTransport()
    fetcher = StubFetcher(result=METADATA)
    relay = _relay(transport, fetcher)

    outcome = asyncio.run(relay.handle(make_message(f"Back this {CAMPAIGN_URL} <#123>")))

    assert outcome is RelayOutcome.ENRICHED
    assert transport.sent == [(123, CAMPAIGN_URL, METADATA)]
    assert fetcher.urls == [CAMPAIGN_URL]


@pytest.mark.parametrize(
    "error",
    [
        NotSupportedPlatform("https://gamefound.com/projects/x"),
        EmptyMetadata(CAMPAIGN_URL),
        TransportError(CAMPAIGN_URL, "timeout"),
    ],
)
def test_relay_falls_back_to_plain_link(error: FetchError) -> None:
    transport = RecordingTransport()
    relay = _relay(transport, StubFetcher(error=error))

    outcome = asyncio.run(relay.handle(make_message(f"<#123> {CAMPAIGN_URL}")))

    assert outcome is RelayOutcome.PLAIN
    assert transport.sent == [(123, CAMPAIGN_URL, None)]


def test_relay_ignores_unauthorised_channel() -> None:
    transport = RecordingTransport()
    fetcher = StubFetcher(result=METADATA)
    relay = _relay(transport, fetcher, postable={999})

    outcome = asyncio.run(relay.handle(make_message(f"{CAMPAIGN_URL} <#123>")))

    assert outcome is RelayOutcome.IGNORED
    assert transport.sent == []
    assert fetcher.urls == []


def test_relay_ignores_messages_without_scan_result() -> None:
    transport = RecordingTransport()
    fetcher = StubFetcher(result=METADATA)
    relay = _relay(transport, fetcher)

    async def runner() -> list[RelayOutcome]:
        return [
            await relay.handle(make_message("no link here <#123>")),
            await relay.handle(make_message(f"no channel {CAMPAIGN_URL}")),
        ]

    assert asyncio.run(runner()) == [RelayOutcome.IGNORED, RelayOutcome.IGNORED]
    assert transport.sent == []
    assert fetcher.urls == []


def test_relay_propagates_send_failure() -> None:
    transport = RecordingTransport(fail_send=True)
    relay = _relay(transport, StubFetcher(result=METADATA))

    with pytest.raises(DiscordAPIError):
        asyncio.run(relay.handle(make_message(f"{CAMPAIGN_URL} <#123>")))
