"""Kickstarter page scraping for rich link previews."""

from __future__ import annotations

import asyncio
import logging

import aiohttp
from bs4 import BeautifulSoup

from .models import CampaignMetadata

CAMPAIGN_ORIGIN = "https://www.kickstarter.com"

# Kickstarter serves a challenge page to clients that look like automation.
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 6.3; WOW64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/59.0.3071.115 Safari/537.36"
)

_DEFAULT_TIMEOUT = 15.0

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Base class for campaign preview failures."""


class NotSupportedPlatform(FetchError):
    """The link does not point at the supported campaign platform."""

    def __init__(self, url: str):
        super().__init__(f"Not a Kickstarter link: {url}")
        self.url = url


class EmptyMetadata(FetchError):
    """The page was fetched but carried no usable OpenGraph tags."""

    def __init__(self, url: str):
        super().__init__(f"No preview metadata found at {url}")
        self.url = url


class TransportError(FetchError):
    """Network, HTTP or parsing failure while fetching the page."""

    def __init__(self, url: str, reason: str, status: int | None = None):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.status = status


def is_campaign_link(url: str) -> bool:
    return url.startswith(CAMPAIGN_ORIGIN)


class CampaignPageFetcher:
    """Fetch a campaign page and turn its OpenGraph tags into metadata."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        user_agent: str = BROWSER_USER_AGENT,
    ):
        self._session = session
        self._timeout = timeout
        self._user_agent = user_agent

    async def fetch(self, url: str) -> CampaignMetadata:
        """Return preview metadata for ``url``.

        Raises ``NotSupportedPlatform`` without touching the network when the
        link is not a Kickstarter page, ``EmptyMetadata`` when none of the
        tags were present and ``TransportError`` for request failures.
        """

        if not is_campaign_link(url):
            raise NotSupportedPlatform(url)

        headers = {
            "User-Agent": self._user_agent,
            "Accept": "text/html,application/xhtml+xml",
        }
        try:
            timeout_cfg = aiohttp.ClientTimeout(total=self._timeout)
            async with self._session.get(
                url,
                headers=headers,
                timeout=timeout_cfg,
            ) as resp:
                if resp.status >= 400:
                    await resp.read()
                    raise TransportError(url, f"HTTP {resp.status}", status=resp.status)
                body = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(url, str(exc) or type(exc).__name__) from exc

        try:
            metadata = parse_campaign_page(body)
        except Exception as exc:
            raise TransportError(url, f"unparseable page: {exc}") from exc

        if metadata.is_empty():
            raise EmptyMetadata(url)
        logger.debug("Scraped preview for %s: %s", url, metadata.title)
        return metadata


def parse_campaign_page(html: str | bytes) -> CampaignMetadata:
    return extract_metadata(BeautifulSoup(html, "html.parser"))


def extract_metadata(document: BeautifulSoup) -> CampaignMetadata:
    return CampaignMetadata(
        title=find_property(document, "og:title"),
        description=find_property(document, "og:description"),
        url=find_property(document, "og:url"),
        image=find_property(document, "og:image"),
    )


def find_property(document: BeautifulSoup, name: str) -> str:
    tag = document.find("meta", attrs={"property": name, "content": True})
    if tag is None:
        return ""
    content = tag.get("content")
    return str(content) if content else ""
