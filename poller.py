"""
Polling engine: one cycle fetches the latest upload of every followed channel,
decides whether it is new, moves the watermark and hands a Notification to
the sink. Also holds the JobQueue-backed scheduler that drives the cycles.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Protocol

from storage import ConfigStore
from youtube import TransportError, Upload, YouTubeClient

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{(title|url)\}")


def expand_template(template: str, title: str, url: str) -> str:
    """
    Replace every `{title}` and `{url}` literally, in a single pass over the
    template: text inserted for one placeholder is never expanded again. Any
    other braces are left untouched, so templates may contain arbitrary text.
    """
    values = {"title": title, "url": url}
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Notification sink ──────────────────────────────────────────────────────────

class DeliveryError(Exception):
    """Sending a notification to the destination chat failed."""


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    channel_title: str
    published_at: datetime
    thumbnail_url: str
    url: str


class NotificationSink(Protocol):
    async def deliver(self, chat_id: str, notification: Notification) -> None:
        """Send one notification. Raises DeliveryError; callers do not retry."""
        ...


# ── Engine ─────────────────────────────────────────────────────────────────────

@dataclass
class CycleReport:
    started_at: datetime
    checked: int = 0
    notified: list[str] = field(default_factory=list)  # video ids announced
    failed: list[str] = field(default_factory=list)    # channel ids whose fetch failed
    delivery_failures: int = 0
    skipped: bool = False


class PollingEngine:
    def __init__(
        self,
        store: ConfigStore,
        client: YouTubeClient,
        sink: NotificationSink,
        recency_multiplier: int = 2,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.client = client
        self.sink = sink
        self.recency_multiplier = recency_multiplier
        self.clock = clock
        self.last_report: Optional[CycleReport] = None
        self._running = asyncio.Lock()

    def recency_window(self, interval_minutes: int) -> timedelta:
        return timedelta(minutes=interval_minutes * self.recency_multiplier)

    async def run_cycle(self) -> CycleReport:
        """
        Check every followed channel once.

        Fetches run concurrently; the results are then applied one channel at
        a time, in follow order, so store writes never interleave. The
        watermark is persisted before delivery: a failed send is never
        retried and never announced twice.
        """
        report = CycleReport(started_at=self.clock())
        if self._running.locked():
            logger.warning("Previous check still running — skipping this cycle")
            report.skipped = True
            return report

        async with self._running:
            await self._run(report)
        self.last_report = report
        return report

    async def _run(self, report: CycleReport) -> None:
        cfg = self.store.config
        if not cfg.notification_chat_id:
            logger.info("Notification chat not set — use /setchannel. Skipping check.")
            report.skipped = True
            return
        if not cfg.followed_channels:
            logger.info("No YouTube channels followed — use /add. Skipping check.")
            report.skipped = True
            return
        if not self.client.has_api_key:
            logger.error("YouTube API key is missing — skipping check")
            report.skipped = True
            return

        channels = list(cfg.followed_channels)
        logger.info("Checking %d YouTube channel(s)…", len(channels))

        results = await asyncio.gather(
            *(self.client.latest_upload(cid) for cid in channels),
            return_exceptions=True,
        )

        window = self.recency_window(cfg.check_interval_minutes)
        for channel_id, result in zip(channels, results):
            report.checked += 1
            if isinstance(result, TransportError):
                logger.error(
                    "Fetching latest video failed for %s (%s): %s",
                    self.store.display_name(channel_id), channel_id, result,
                )
                report.failed.append(channel_id)
                continue
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error checking %s", channel_id, exc_info=result
                )
                report.failed.append(channel_id)
                continue
            try:
                await self._process(channel_id, result, window, cfg.message_template, report)
            except Exception:
                logger.exception("Unexpected error processing %s", channel_id)
                report.failed.append(channel_id)

        logger.info(
            "Check completed — %d checked, %d new, %d failed. Next check in %d minute(s).",
            report.checked, len(report.notified), len(report.failed),
            cfg.check_interval_minutes,
        )

    async def _process(
        self,
        channel_id: str,
        upload: Optional[Upload],
        window: timedelta,
        template: str,
        report: CycleReport,
    ) -> None:
        if upload is None:
            logger.info("No videos found for %s", channel_id)
            return

        if upload.channel_title and self.store.update_name(channel_id, upload.channel_title):
            logger.info("Channel name updated: %s (%s)", upload.channel_title, channel_id)

        age = self.clock() - upload.published_at
        if age >= window:
            logger.debug(
                "%s: latest video %s is %d min old — not new",
                channel_id, upload.video_id, age.total_seconds() // 60,
            )
            return
        if self.store.last_seen(channel_id) == upload.video_id:
            logger.debug("%s: already notified for %s", channel_id, upload.video_id)
            return

        # Commit the watermark first; a concurrent /remove wins over this cycle
        if not self.store.record_seen(channel_id, upload.video_id):
            logger.info("%s was unfollowed during the check — not notifying", channel_id)
            return

        # The destination may have changed while the fetches were in flight
        chat_id = self.store.config.notification_chat_id
        if not chat_id:
            logger.warning("Notification chat was removed during the check — not sending %s", upload.video_id)
            return

        logger.info("🔔 New video on %s: %r (%s)", upload.channel_title, upload.title, upload.video_id)
        report.notified.append(upload.video_id)
        notification = Notification(
            title=upload.title,
            body=expand_template(template, upload.title, upload.url),
            channel_title=upload.channel_title or self.store.display_name(channel_id),
            published_at=upload.published_at,
            thumbnail_url=upload.thumbnail_url,
            url=upload.url,
        )
        try:
            await self.sink.deliver(chat_id, notification)
        except DeliveryError as exc:
            report.delivery_failures += 1
            logger.error("Failed to send notification for %s: %s", upload.video_id, exc)

    async def reconcile_names(self) -> int:
        """
        Fill in display names for followed channels that have none cached.
        Safe to run any time; returns how many names were added.
        """
        updated = 0
        for channel_id in self.store.config.followed_channels:
            if channel_id in self.store.config.channel_names:
                continue
            try:
                info = await self.client.lookup_channel(channel_id)
            except TransportError as exc:
                logger.error("Channel lookup failed for %s: %s", channel_id, exc)
                continue
            if info is None:
                logger.warning("Channel not found: %s", channel_id)
                continue
            if self.store.update_name(channel_id, info.name):
                logger.info("Channel information received: %s (%s)", info.name, channel_id)
                updated += 1
        return updated


# ── Scheduler ──────────────────────────────────────────────────────────────────

class Scheduler:
    """
    Owns the single repeating check job on a python-telegram-bot JobQueue.
    Changing the interval removes the old job and starts a fresh one.
    """

    JOB_NAME = "youtube_check"

    def __init__(
        self,
        job_queue,
        callback: Callable[..., Awaitable[None]],
        first: float = 2,
    ) -> None:
        self.job_queue = job_queue
        self.callback = callback
        self.first = first  # seconds before the first run of a (re)started job
        self.job = None
        self.interval_minutes: Optional[int] = None

    def start(self, minutes: int, first: Optional[float] = None) -> None:
        self.stop()
        self.job = self.job_queue.run_repeating(
            self.callback,
            interval=minutes * 60,
            first=self.first if first is None else first,
            name=self.JOB_NAME,
            job_kwargs={"max_instances": 1, "coalesce": True},
        )
        self.interval_minutes = minutes
        logger.info("YouTube check scheduled every %d minute(s)", minutes)

    def reschedule(self, minutes: int, first: Optional[float] = None) -> None:
        self.start(minutes, first=first)

    def stop(self) -> None:
        if self.job is not None:
            self.job.schedule_removal()
            self.job = None
