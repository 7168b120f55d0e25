"""
YouTube Data API v3 queries: channel search, channel lookup, latest upload.
No Telegram-specific code and no state lives here — only request/response.
"""
from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

API_URL = "https://www.googleapis.com/youtube/v3"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


# ── Errors ─────────────────────────────────────────────────────────────────────

class ApiKeyMissingError(Exception):
    """No YouTube API key is configured."""

    def __init__(self) -> None:
        super().__init__("YouTube API key is missing — set YOUTUBE_API_KEY in .env")


class TransportError(Exception):
    """A YouTube API call failed: non-2xx status, network error or timeout."""

    def __init__(self, status_code: Optional[int], message: str) -> None:
        self.status_code = status_code
        self.message = message
        prefix = f"HTTP {status_code}" if status_code is not None else "Network error"
        super().__init__(f"{prefix}: {message}")


class InvalidSource(Exception):
    """The given channel id does not resolve to a YouTube channel."""

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        super().__init__(f"No YouTube channel found with id {channel_id}")


# ── Results ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ChannelMatch:
    channel_id: str
    name: str
    description: str


@dataclass(frozen=True)
class ChannelInfo:
    name: str
    thumbnail_url: str


@dataclass(frozen=True)
class Upload:
    video_id: str
    title: str
    channel_title: str
    published_at: datetime
    url: str
    thumbnail_url: str


def _parse_time(raw: str) -> datetime:
    # The API returns RFC 3339 timestamps with a trailing "Z"
    published = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    return published


def _thumbnail(snippet: dict, *sizes: str) -> str:
    thumbs = snippet.get("thumbnails") or {}
    for size in sizes:
        url = (thumbs.get(size) or {}).get("url")
        if url:
            return url
    return ""


def parse_upload(item: dict) -> Optional[Upload]:
    """Turn one `search` result item into an Upload; None if it is not a video."""
    video_id = (item.get("id") or {}).get("videoId")
    snippet = item.get("snippet") or {}
    raw_time = snippet.get("publishTime") or snippet.get("publishedAt")
    if not video_id or not raw_time:
        return None
    return Upload(
        video_id=video_id,
        # search results come back HTML-entity encoded (&amp;, &#39;, …)
        title=html.unescape(snippet.get("title", "")),
        channel_title=html.unescape(snippet.get("channelTitle", "")),
        published_at=_parse_time(raw_time),
        url=WATCH_URL.format(video_id=video_id),
        thumbnail_url=_thumbnail(snippet, "high", "medium", "default"),
    )


# ── Client ─────────────────────────────────────────────────────────────────────

class YouTubeClient:
    """
    Thin async wrapper over the three YouTube API call shapes the bot needs.

    Every call is bounded by `timeout` seconds. Callers must tell "no data"
    (None / empty list) apart from "call failed" (TransportError).
    """

    def __init__(self, api_key: str, base_url: str = API_URL, timeout: float = 15) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    async def _get_json(self, endpoint: str, params: dict) -> dict:
        if not self.api_key:
            raise ApiKeyMissingError()

        url = f"{self.base_url}/{endpoint}"
        query = {**params, "key": self.api_key}
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(url, params=query) as resp:
                    if resp.status != 200:
                        raise TransportError(resp.status, resp.reason or "request failed")
                    return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(None, str(exc) or type(exc).__name__) from exc

    async def search_channels(self, query: str, limit: int = 5) -> list[ChannelMatch]:
        """Free-text channel search. A leading '@' (handle) is stripped."""
        text = query.strip()
        if text.startswith("@"):
            text = text[1:]
        data = await self._get_json(
            "search",
            {"part": "snippet", "q": text, "type": "channel", "maxResults": limit},
        )
        matches: list[ChannelMatch] = []
        for item in data.get("items") or []:
            snippet = item.get("snippet") or {}
            channel_id = snippet.get("channelId") or (item.get("id") or {}).get("channelId")
            if not channel_id:
                continue
            matches.append(
                ChannelMatch(
                    channel_id=channel_id,
                    name=html.unescape(snippet.get("title", "")),
                    description=html.unescape(snippet.get("description", "")),
                )
            )
        return matches

    async def lookup_channel(self, channel_id: str) -> Optional[ChannelInfo]:
        """Resolve a channel's display metadata; None if the id is unknown."""
        data = await self._get_json("channels", {"part": "snippet", "id": channel_id})
        items = data.get("items") or []
        if not items:
            return None
        snippet = items[0].get("snippet") or {}
        return ChannelInfo(
            name=snippet.get("title", ""),
            thumbnail_url=_thumbnail(snippet, "default", "medium", "high"),
        )

    async def resolve_channel(self, channel_id: str) -> ChannelInfo:
        info = await self.lookup_channel(channel_id)
        if info is None:
            raise InvalidSource(channel_id)
        return info

    async def latest_upload(self, channel_id: str) -> Optional[Upload]:
        """Most recent video of a channel by publish date; None if it has none."""
        data = await self._get_json(
            "search",
            {
                "part": "snippet",
                "channelId": channel_id,
                "maxResults": 1,
                "order": "date",
                "type": "video",
            },
        )
        for item in data.get("items") or []:
            upload = parse_upload(item)
            if upload is not None:
                return upload
        return None

    async def ping(self) -> None:
        """Cheapest call that proves the key and the network both work."""
        await self._get_json(
            "search", {"part": "snippet", "q": "test", "maxResults": 1, "type": "video"}
        )
