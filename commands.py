"""
Command logic, independent of Telegram. Every function takes its
collaborators explicitly and returns a CommandResult (kind + plain text) that
the bot layer renders; nothing here raises for user-facing failures.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from poller import DeliveryError, PollingEngine, Scheduler, expand_template
from storage import ConfigError, ConfigStore, Outcome
from youtube import ApiKeyMissingError, InvalidSource, TransportError, YouTubeClient

logger = logging.getLogger(__name__)

SAMPLE_TITLE = "Test Video Title"
SAMPLE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"

TEST_TYPES = ("channel", "api", "message", "all", "channel_test")


class ResultKind(Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR   = "error"
    INFO    = "info"


@dataclass(frozen=True)
class CommandResult:
    kind: ResultKind
    text: str
    title: str = ""
    image_url: str = ""


def _ok(title: str, text: str, image_url: str = "") -> CommandResult:
    return CommandResult(ResultKind.SUCCESS, text, title, image_url)


def _warn(title: str, text: str) -> CommandResult:
    return CommandResult(ResultKind.WARNING, text, title)


def _err(text: str) -> CommandResult:
    return CommandResult(ResultKind.ERROR, text, "Error")


def _info(title: str, text: str) -> CommandResult:
    return CommandResult(ResultKind.INFO, text, title)


def _failure(action: str, exc: Exception) -> CommandResult:
    """Map the error taxonomy to a user-facing message."""
    if isinstance(exc, ApiKeyMissingError):
        return _err("YouTube API key not found! Please check the .env file.")
    if isinstance(exc, InvalidSource):
        return _err("Invalid YouTube channel ID. Please make sure you entered a valid channel ID.")
    if isinstance(exc, TransportError):
        return _err(f"YouTube API error while {action}: {exc}")
    if isinstance(exc, ConfigError):
        return _err(f"Could not save the configuration while {action}: {exc}")
    return _err(f"Error while {action}: {exc}")


# ── Followed channels ──────────────────────────────────────────────────────────

async def add_channel(store: ConfigStore, client: YouTubeClient, channel_id: str) -> CommandResult:
    channel_id = channel_id.strip()
    if not channel_id:
        return _err("Please give a YouTube channel ID.")
    if store.is_followed(channel_id):
        return _warn("Warning", "This channel is already in the following list.")
    try:
        info = await client.resolve_channel(channel_id)
        outcome = store.add_source(channel_id, info.name)
    except (ApiKeyMissingError, InvalidSource, TransportError, ConfigError) as exc:
        logger.warning("Adding channel %s failed: %s", channel_id, exc)
        return _failure("adding the channel", exc)

    if outcome is Outcome.ALREADY_FOLLOWED:
        return _warn("Warning", "This channel is already in the following list.")
    logger.info("Now following %s (%s)", info.name, channel_id)
    return _ok("YouTube Channel Added", f"Channel: {info.name}\nID: {channel_id}", info.thumbnail_url)


def remove_channel(store: ConfigStore, channel_id: str) -> CommandResult:
    channel_id = channel_id.strip()
    name = store.display_name(channel_id)
    try:
        outcome = store.remove_source(channel_id)
    except ConfigError as exc:
        return _failure("removing the channel", exc)

    if outcome is Outcome.NOT_FOLLOWED:
        return _warn("Warning", "This channel is not in the following list.")
    logger.info("Stopped following %s (%s)", name, channel_id)
    return _ok("YouTube Channel Removed", f"Channel: {name}\nID: {channel_id}")


def list_channels(store: ConfigStore) -> CommandResult:
    cfg = store.config
    if not cfg.followed_channels:
        return _warn("Following Channels", "No channels are being followed.")
    lines = [
        f"{i}. {store.display_name(cid)} ({cid})"
        for i, cid in enumerate(cfg.followed_channels, 1)
    ]
    return _ok(f"Following Channels ({len(lines)})", "\n".join(lines))


async def search_channels(client: YouTubeClient, query: str) -> CommandResult:
    if not query.strip():
        return _err("Please give a channel name or @handle to search for.")
    try:
        matches = await client.search_channels(query)
    except (ApiKeyMissingError, TransportError) as exc:
        return _failure("searching", exc)
    if not matches:
        return _warn("No Results", "No channels found with that name. Try a different query.")

    parts = []
    for i, m in enumerate(matches, 1):
        desc = m.description if len(m.description) <= 120 else m.description[:117] + "…"
        parts.append(f"{i}. {m.name}\n   ID: {m.channel_id}" + (f"\n   {desc}" if desc else ""))
    parts.append("Use /add <CHANNEL_ID> to follow one of them.")
    return _info("Potential matching channels", "\n\n".join(parts))


# ── Settings ───────────────────────────────────────────────────────────────────

def set_destination(store: ConfigStore, chat_id: str) -> CommandResult:
    try:
        outcome = store.set_notification_channel(chat_id)
    except (ValueError, ConfigError) as exc:
        return _failure("setting the notification chat", exc)
    if outcome is Outcome.ALREADY_SET:
        return _warn("Warning", f"Notifications already go to chat {chat_id}.")
    return _ok("Notification Channel Set", f"Notifications will now be sent to chat {chat_id}.")


def clear_destination(store: ConfigStore) -> CommandResult:
    old = store.config.notification_chat_id
    try:
        outcome = store.clear_notification_channel()
    except ConfigError as exc:
        return _failure("removing the notification chat", exc)
    if outcome is Outcome.NOT_SET:
        return _warn("Warning", "Notification channel not set yet.")
    return _ok("Notification Channel Removed", f"Chat {old} will no longer receive notifications.")


def set_template(store: ConfigStore, template: str) -> CommandResult:
    try:
        outcome = store.set_message_template(template)
    except (ValueError, ConfigError) as exc:
        return _failure("setting the message", exc)
    if outcome is Outcome.ALREADY_SET:
        return _warn("Warning", "That is already the notification message.")
    return _ok("Notification Message Set", f"New message template:\n{template}")


def set_interval(store: ConfigStore, scheduler: Optional[Scheduler], minutes: int) -> CommandResult:
    try:
        outcome = store.set_check_interval(minutes)
    except (ValueError, ConfigError) as exc:
        return _failure("setting the interval", exc)
    if outcome is Outcome.ALREADY_SET:
        return _warn("Warning", f"Check interval is already {minutes} minute(s).")
    if scheduler is not None:
        scheduler.reschedule(minutes)
    return _ok("Check Interval Updated", f"New check interval: {minutes} minute(s)")


# ── Diagnostics ────────────────────────────────────────────────────────────────

async def check_destination(store: ConfigStore, sink) -> CommandResult:
    chat_id = store.config.notification_chat_id
    if not chat_id:
        return _err("Notification channel not set! Use /setchannel to set one.")
    try:
        await sink.send_test_message(chat_id)
    except DeliveryError as exc:
        logger.warning("Test message to %s failed: %s", chat_id, exc)
        return _err(
            "Test message not sent! Please make sure the bot can post in the notification chat."
        )
    return _ok("Success", "Notification channel test successful!")


async def check_api(client: YouTubeClient) -> CommandResult:
    try:
        await client.ping()
    except (ApiKeyMissingError, TransportError) as exc:
        return _failure("contacting YouTube", exc)
    return _ok("Success", "YouTube API connection successful!")


def check_template(store: ConfigStore) -> CommandResult:
    template = store.config.message_template
    if not template:
        return _err("Notification message not set!")
    return _info("Test Notification Message", expand_template(template, SAMPLE_TITLE, SAMPLE_URL))


async def check_channel(store: ConfigStore, client: YouTubeClient, channel_id: Optional[str]) -> CommandResult:
    if not channel_id:
        return _err("YouTube channel ID not specified. Usage: /test channel_test <channel_id>")
    try:
        info = await client.resolve_channel(channel_id)
        upload = await client.latest_upload(channel_id)
    except (ApiKeyMissingError, InvalidSource, TransportError) as exc:
        return _failure("testing the channel", exc)

    if upload is None:
        return CommandResult(
            ResultKind.WARNING, f"{info.name} has no published video.", "Result Not Found",
            info.thumbnail_url,
        )
    message = expand_template(store.config.message_template, upload.title, upload.url)
    text = (
        f"Channel {info.name} test successful.\n\n"
        f"Latest video: {upload.title}\n"
        f"Published: {upload.published_at:%Y-%m-%d %H:%M} UTC\n"
        f"URL: {upload.url}\n\n"
        f"Notification message:\n{message}"
    )
    return _ok("YouTube Channel Test Successful", text, upload.thumbnail_url)


async def check_all(store: ConfigStore, client: YouTubeClient, sink) -> CommandResult:
    lines = []

    dest = await check_destination(store, sink)
    if dest.kind is ResultKind.SUCCESS:
        lines.append("✅ Notification channel working")
    elif not store.config.notification_chat_id:
        lines.append("❌ Notification channel not set")
    else:
        lines.append("❌ Notification channel message not sent")

    api = await check_api(client)
    if api.kind is ResultKind.SUCCESS:
        lines.append("✅ YouTube API connection working")
    else:
        lines.append(f"❌ {api.text}")

    cfg = store.config
    lines.append("✅ Notification message set" if cfg.message_template else "❌ Notification message not set")

    if cfg.followed_channels:
        lines.append(f"📊 Following channel count: {len(cfg.followed_channels)}")
        names = ", ".join(store.display_name(cid) for cid in cfg.followed_channels)
        lines.append(f"📌 Channels: {names}")
    else:
        lines.append("📊 No following channels yet")
    lines.append(f"⏱️ Check interval: {cfg.check_interval_minutes} minutes")

    return _info("All Settings Test Results", "\n".join(lines))


async def run_test(
    store: ConfigStore,
    client: YouTubeClient,
    sink,
    test_type: str,
    channel_id: Optional[str] = None,
) -> CommandResult:
    if test_type == "channel":
        return await check_destination(store, sink)
    if test_type == "api":
        return await check_api(client)
    if test_type == "message":
        return check_template(store)
    if test_type == "channel_test":
        return await check_channel(store, client, channel_id)
    if test_type == "all":
        return await check_all(store, client, sink)
    return _err(f"Unknown test type. Choose one of: {', '.join(TEST_TYPES)}")


# ── Engine ─────────────────────────────────────────────────────────────────────

async def check_now(engine: PollingEngine) -> CommandResult:
    report = await engine.run_cycle()
    if report.skipped:
        return _warn(
            "Check Skipped",
            "Nothing to check: make sure a notification chat is set, at least one "
            "channel is followed and the YouTube API key is configured "
            "(or a check is already running).",
        )
    text = (
        f"Checked: {report.checked}\n"
        f"New videos: {len(report.notified)}\n"
        f"Failed channels: {len(report.failed)}"
    )
    if report.delivery_failures:
        text += f"\nUndelivered notifications: {report.delivery_failures}"
    return _ok("Check Completed", text)


def status(store: ConfigStore, engine: PollingEngine) -> CommandResult:
    cfg = store.config
    dest = cfg.notification_chat_id or "not set"
    lines = [
        f"📢 Notification chat: {dest}",
        f"📊 Followed channels: {len(cfg.followed_channels)}",
        f"⏱ Check interval: {cfg.check_interval_minutes} minute(s)",
        f"🔑 YouTube API key: {'set' if engine.client.has_api_key else 'missing'}",
    ]
    report = engine.last_report
    if report is None:
        lines.append("🔄 Last check: none yet")
    elif report.skipped:
        lines.append(f"🔄 Last check: {report.started_at:%Y-%m-%d %H:%M} UTC (skipped)")
    else:
        lines.append(
            f"🔄 Last check: {report.started_at:%Y-%m-%d %H:%M} UTC — "
            f"{report.checked} checked, {len(report.notified)} new, {len(report.failed)} failed"
        )
    return _info("Bot Status", "\n".join(lines))
