"""
Shared pytest fixtures: a temp-file ConfigStore, a scripted YouTube client
and a recording notification sink.
"""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

# config.py reads these at import time
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:TEST-TOKEN")
os.environ.setdefault("ALLOWED_USER_ID", "42")

from poller import DeliveryError, Notification  # noqa: E402
from storage import ConfigStore  # noqa: E402
from youtube import ApiKeyMissingError, ChannelInfo, InvalidSource, TransportError, Upload  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_upload(video_id: str = "v1", minutes_ago: float = 3, channel_title: str = "Channel One") -> Upload:
    return Upload(
        video_id=video_id,
        title=f"Video {video_id}",
        channel_title=channel_title,
        published_at=NOW - timedelta(minutes=minutes_ago),
        url=f"https://www.youtube.com/watch?v={video_id}",
        thumbnail_url=f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
    )


class FakeYouTubeClient:
    """Answers from dicts; a value that is an exception instance is raised."""

    def __init__(self, uploads: Optional[dict] = None, channels: Optional[dict] = None, api_key: str = "KEY"):
        self.uploads = uploads or {}
        self.channels = channels or {}
        self.api_key = api_key
        self.upload_calls: list[str] = []
        self.pinged = False

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    async def latest_upload(self, channel_id: str) -> Optional[Upload]:
        if not self.api_key:
            raise ApiKeyMissingError()
        self.upload_calls.append(channel_id)
        result = self.uploads.get(channel_id)
        if isinstance(result, Exception):
            raise result
        return result

    async def lookup_channel(self, channel_id: str) -> Optional[ChannelInfo]:
        if not self.api_key:
            raise ApiKeyMissingError()
        result = self.channels.get(channel_id)
        if isinstance(result, Exception):
            raise result
        return result

    async def resolve_channel(self, channel_id: str) -> ChannelInfo:
        info = await self.lookup_channel(channel_id)
        if info is None:
            raise InvalidSource(channel_id)
        return info

    async def ping(self) -> None:
        self.pinged = True
        if not self.api_key:
            raise ApiKeyMissingError()


class RecordingSink:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.delivered: list[tuple[str, Notification]] = []
        self.test_messages: list[str] = []

    async def deliver(self, chat_id: str, notification: Notification) -> None:
        self.delivered.append((chat_id, notification))
        if self.fail:
            raise DeliveryError("chat unavailable")

    async def send_test_message(self, chat_id: str) -> None:
        self.test_messages.append(chat_id)
        if self.fail:
            raise DeliveryError("chat unavailable")


@pytest.fixture
def store(tmp_path):
    s = ConfigStore(str(tmp_path / "config.json"))
    s.load()
    return s


@pytest.fixture
def ready_store(store):
    """Store with a destination chat and one followed channel C1."""
    store.set_notification_channel("-100123")
    store.add_source("C1", "Channel One")
    store.set_check_interval(10)
    return store


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def transport_error():
    return TransportError(500, "Internal Server Error")
