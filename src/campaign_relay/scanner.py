"""Extraction of relay targets from free-form message text."""

from __future__ import annotations

import re

from .models import ScanResult
from .utils import parse_u64

_URL_RE = re.compile(
    r"(?<![a-z0-9+.-])[a-z][a-z0-9+.-]*://[^\s/?#<>\"'`]+[^\s<>\"'`]*",
    re.IGNORECASE,
)
_CHANNEL_MENTION_RE = re.compile(r"<#([0-9]+)>")
_TRAILING_PUNCTUATION = ".,;:!?'\""
_BRACKETS = {")": "(", "]": "[", "}": "{"}


def scan_message(text: str) -> ScanResult | None:
    """Return the mentioned channel and the first link in ``text``.

    Nothing is returned unless the text holds both a URL and a ``<#id>``
    channel mention. The mention is only looked at once a link was found.
    """

    links = find_links(text)
    if not links:
        return None

    channel_id = find_channel_mention(text)
    if channel_id is None:
        return None
    return ScanResult(channel_id=channel_id, link=links[0])


def find_links(text: str) -> list[str]:
    """Return URL-shaped tokens in the order they appear."""

    links: list[str] = []
    for match in _URL_RE.finditer(text or ""):
        link = _trim_link(match.group(0))
        if link:
            links.append(link)
    return links


def find_channel_mention(text: str) -> int | None:
    match = _CHANNEL_MENTION_RE.search(text or "")
    if match is None:
        return None
    return parse_u64(match.group(1))


def _trim_link(candidate: str) -> str:
    link = candidate
    while link:
        last = link[-1]
        if last in _TRAILING_PUNCTUATION:
            link = link[:-1]
            continue
        opener = _BRACKETS.get(last)
        if opener is not None and link.count(opener) < link.count(last):
            link = link[:-1]
            continue
        break
    if "://" not in link or link.endswith("://"):
        return ""
    return link
