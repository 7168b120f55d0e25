"""Tests for the platform-independent command logic."""

import pytest

import commands
from commands import ResultKind
from conftest import FakeYouTubeClient, RecordingSink, make_upload
from poller import PollingEngine
from storage import StoreIOError
from youtube import ChannelInfo, ChannelMatch


class _FakeScheduler:
    def __init__(self):
        self.rescheduled = []

    def reschedule(self, minutes):
        self.rescheduled.append(minutes)


class TestChannelCommands:
    @pytest.mark.asyncio
    async def test_add_resolves_and_stores_name(self, store):
        client = FakeYouTubeClient(channels={"UC1": ChannelInfo("One", "https://t/1.jpg")})

        result = await commands.add_channel(store, client, "UC1")

        assert result.kind is ResultKind.SUCCESS
        assert "One" in result.text
        assert store.config.followed_channels == ["UC1"]
        assert store.display_name("UC1") == "One"
        assert store.config.last_video_ids == {"UC1": ""}

    @pytest.mark.asyncio
    async def test_add_invalid_channel_stores_nothing(self, store):
        result = await commands.add_channel(store, FakeYouTubeClient(), "bogus")

        assert result.kind is ResultKind.ERROR
        assert store.config.followed_channels == []

    @pytest.mark.asyncio
    async def test_add_duplicate_is_warning(self, store):
        store.add_source("UC1", "One")

        result = await commands.add_channel(store, FakeYouTubeClient(), "UC1")

        assert result.kind is ResultKind.WARNING
        assert len(store.config.followed_channels) == 1

    @pytest.mark.asyncio
    async def test_add_transport_error_rendered(self, store, transport_error):
        client = FakeYouTubeClient(channels={"UC1": transport_error})

        result = await commands.add_channel(store, client, "UC1")

        assert result.kind is ResultKind.ERROR
        assert "HTTP 500" in result.text

    @pytest.mark.asyncio
    async def test_add_without_api_key(self, store):
        result = await commands.add_channel(store, FakeYouTubeClient(api_key=""), "UC1")

        assert result.kind is ResultKind.ERROR
        assert "API key" in result.text
        assert store.config.followed_channels == []

    @pytest.mark.asyncio
    async def test_add_store_failure_rendered(self, store, monkeypatch):
        def fail(*args, **kwargs):
            raise StoreIOError("disk full")

        monkeypatch.setattr(store, "save", fail)
        client = FakeYouTubeClient(channels={"UC1": ChannelInfo("One", "")})

        result = await commands.add_channel(store, client, "UC1")

        assert result.kind is ResultKind.ERROR
        assert store.config.followed_channels == []

    def test_remove(self, store):
        store.add_source("UC1", "One")

        result = commands.remove_channel(store, "UC1")

        assert result.kind is ResultKind.SUCCESS
        assert "One" in result.text
        assert commands.remove_channel(store, "UC1").kind is ResultKind.WARNING

    def test_list(self, store):
        assert commands.list_channels(store).kind is ResultKind.WARNING

        store.add_source("UC2", "Two")
        store.add_source("UC1")
        text = commands.list_channels(store).text

        assert text.splitlines() == ["1. Two (UC2)", "2. Unknown Channel (UC1)"]

    @pytest.mark.asyncio
    async def test_search(self):
        class SearchClient(FakeYouTubeClient):
            async def search_channels(self, query, limit=5):
                return [ChannelMatch("UC1", "One", "about one")] if query == "one" else []

        found = await commands.search_channels(SearchClient(), "one")
        missing = await commands.search_channels(SearchClient(), "zzz")

        assert found.kind is ResultKind.INFO
        assert "UC1" in found.text
        assert missing.kind is ResultKind.WARNING


class TestSettingCommands:
    def test_destination(self, store):
        assert commands.set_destination(store, "-100").kind is ResultKind.SUCCESS
        assert commands.set_destination(store, "-100").kind is ResultKind.WARNING
        assert commands.clear_destination(store).kind is ResultKind.SUCCESS
        assert commands.clear_destination(store).kind is ResultKind.WARNING

    def test_template(self, store):
        result = commands.set_template(store, "Hi {title}")

        assert result.kind is ResultKind.SUCCESS
        assert store.config.message_template == "Hi {title}"
        assert commands.set_template(store, "").kind is ResultKind.ERROR

    def test_interval_reschedules(self, store):
        scheduler = _FakeScheduler()

        result = commands.set_interval(store, scheduler, 5)

        assert result.kind is ResultKind.SUCCESS
        assert scheduler.rescheduled == [5]
        assert store.config.check_interval_minutes == 5

    def test_invalid_interval_does_not_reschedule(self, store):
        scheduler = _FakeScheduler()

        result = commands.set_interval(store, scheduler, 0)

        assert result.kind is ResultKind.ERROR
        assert scheduler.rescheduled == []


class TestDiagnostics:
    @pytest.mark.asyncio
    async def test_destination_check(self, store, sink):
        assert (await commands.run_test(store, FakeYouTubeClient(), sink, "channel")).kind is ResultKind.ERROR

        store.set_notification_channel("-100")
        result = await commands.run_test(store, FakeYouTubeClient(), sink, "channel")

        assert result.kind is ResultKind.SUCCESS
        assert sink.test_messages == ["-100"]

    @pytest.mark.asyncio
    async def test_destination_unreachable(self, store):
        store.set_notification_channel("-100")

        result = await commands.run_test(store, FakeYouTubeClient(), RecordingSink(fail=True), "channel")

        assert result.kind is ResultKind.ERROR

    @pytest.mark.asyncio
    async def test_api_check(self, store, sink):
        ok = await commands.run_test(store, FakeYouTubeClient(), sink, "api")
        missing = await commands.run_test(store, FakeYouTubeClient(api_key=""), sink, "api")

        assert ok.kind is ResultKind.SUCCESS
        assert missing.kind is ResultKind.ERROR
        assert "API key" in missing.text

    @pytest.mark.asyncio
    async def test_message_check_renders_sample(self, store, sink):
        store.set_message_template("New: {title} {url}")

        result = await commands.run_test(store, FakeYouTubeClient(), sink, "message")

        assert result.text == f"New: {commands.SAMPLE_TITLE} {commands.SAMPLE_URL}"

    @pytest.mark.asyncio
    async def test_channel_test(self, store, sink):
        client = FakeYouTubeClient(
            channels={"UC1": ChannelInfo("One", "https://t/1.jpg"), "UC2": ChannelInfo("Two", "")},
            uploads={"UC1": make_upload("v1")},
        )

        ok = await commands.run_test(store, client, sink, "channel_test", "UC1")
        empty = await commands.run_test(store, client, sink, "channel_test", "UC2")
        missing_id = await commands.run_test(store, client, sink, "channel_test")

        assert ok.kind is ResultKind.SUCCESS
        assert "Video v1" in ok.text
        assert ok.image_url.endswith("hqdefault.jpg")
        assert empty.kind is ResultKind.WARNING
        assert missing_id.kind is ResultKind.ERROR

    @pytest.mark.asyncio
    async def test_all(self, store, sink):
        store.add_source("UC1", "One")

        result = await commands.run_test(store, FakeYouTubeClient(), sink, "all")

        assert "❌ Notification channel not set" in result.text
        assert "✅ YouTube API connection working" in result.text
        assert "📌 Channels: One" in result.text

    @pytest.mark.asyncio
    async def test_unknown_type(self, store, sink):
        result = await commands.run_test(store, FakeYouTubeClient(), sink, "bogus")
        assert result.kind is ResultKind.ERROR


class TestEngineCommands:
    @pytest.mark.asyncio
    async def test_check_now_and_status(self, ready_store, sink):
        client = FakeYouTubeClient(uploads={"C1": make_upload("v1")})
        engine = PollingEngine(ready_store, client, sink)

        before = commands.status(ready_store, engine)
        result = await commands.check_now(engine)
        after = commands.status(ready_store, engine)

        assert "none yet" in before.text
        assert result.kind is ResultKind.SUCCESS
        assert "Checked: 1" in result.text
        assert "1 checked" in after.text

    @pytest.mark.asyncio
    async def test_check_now_skipped(self, store, sink):
        engine = PollingEngine(store, FakeYouTubeClient(), sink)

        result = await commands.check_now(engine)

        assert result.kind is ResultKind.WARNING
