"""
Persistent bot configuration: followed channels, destination chat, message
template, check interval and the per-channel "last notified video" watermark.

The whole record lives in one JSON document that is rewritten atomically on
every mutation (temp file + os.replace), so a reader never sees a torn write.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

UNKNOWN_CHANNEL = "Unknown Channel"

DEFAULT_CHECK_INTERVAL = 10
DEFAULT_TEMPLATE = "🎥 New video published: {title}\n{url}"

# Keys written by the original Node.js bot's config.json
_LEGACY_KEYS: dict[str, str] = {
    "notification_chat_id":   "channelId",
    "followed_channels":      "youtubeChannelIds",
    "channel_names":          "youtubeChannels",
    "check_interval_minutes": "checkInterval",
    "message_template":       "notificationMessage",
    "last_video_ids":         "lastVideoIds",
}


# ── Errors ─────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """The configuration store could not be read or written."""


class StoreCorruptError(ConfigError):
    """The store exists but does not hold a valid configuration document."""


class StoreIOError(ConfigError):
    """Writing the store to disk failed."""


class Outcome(Enum):
    ADDED            = "added"
    ALREADY_FOLLOWED = "already_followed"
    REMOVED          = "removed"
    NOT_FOLLOWED     = "not_followed"
    UPDATED          = "updated"
    ALREADY_SET      = "already_set"
    CLEARED          = "cleared"
    NOT_SET          = "not_set"


# ── Document ───────────────────────────────────────────────────────────────────

@dataclass
class Configuration:
    notification_chat_id: str = ""
    followed_channels: list[str] = field(default_factory=list)
    channel_names: dict[str, str] = field(default_factory=dict)
    check_interval_minutes: int = DEFAULT_CHECK_INTERVAL
    message_template: str = DEFAULT_TEMPLATE
    last_video_ids: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict, defaults: Optional[Configuration] = None) -> Configuration:
        """
        Build a Configuration from a parsed document.

        Unknown keys are ignored and missing keys fall back to `defaults`.
        Documents written by the original bot (camelCase keys) are accepted.
        Raises StoreCorruptError when a known field has the wrong shape.
        """
        base = defaults or cls()

        def pick(key: str, fallback):
            if key in data:
                return data[key]
            legacy = _LEGACY_KEYS[key]
            if legacy in data:
                return data[legacy]
            return copy.deepcopy(fallback)

        chat_id   = pick("notification_chat_id", base.notification_chat_id)
        followed  = pick("followed_channels", base.followed_channels)
        names     = pick("channel_names", base.channel_names)
        interval  = pick("check_interval_minutes", base.check_interval_minutes)
        template  = pick("message_template", base.message_template)
        last_seen = pick("last_video_ids", base.last_video_ids)

        if not isinstance(followed, list) or not all(isinstance(c, str) for c in followed):
            raise StoreCorruptError("followed_channels must be a list of strings")
        if not isinstance(names, dict) or not isinstance(last_seen, dict):
            raise StoreCorruptError("channel_names and last_video_ids must be objects")
        if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
            raise StoreCorruptError(f"check_interval_minutes must be an integer >= 1, got {interval!r}")
        if not isinstance(template, str):
            raise StoreCorruptError("message_template must be a string")

        # Drop duplicates while keeping the first occurrence's position
        unique = list(dict.fromkeys(followed))

        return cls(
            notification_chat_id=str(chat_id or ""),
            followed_channels=unique,
            channel_names={str(k): str(v) for k, v in names.items() if v},
            check_interval_minutes=interval,
            message_template=template,
            last_video_ids={str(k): str(v or "") for k, v in last_seen.items()},
        )


# ── Store ──────────────────────────────────────────────────────────────────────

class ConfigStore:
    """
    Owner of the single in-memory Configuration for the process.

    Each mutation works on a copy, persists it, and only then replaces the
    live record: if the write fails, StoreIOError propagates and the
    in-memory state is left as it was.
    """

    def __init__(
        self,
        path: str,
        default_interval: int = DEFAULT_CHECK_INTERVAL,
        default_template: str = DEFAULT_TEMPLATE,
    ) -> None:
        self.path = Path(path)
        self._defaults = Configuration(
            check_interval_minutes=default_interval,
            message_template=default_template,
        )
        self._config = copy.deepcopy(self._defaults)
        self._lock = threading.Lock()

    @property
    def config(self) -> Configuration:
        """A snapshot of the current configuration; mutate via the store methods."""
        return copy.deepcopy(self._config)

    # ── Load / save ──

    def load(self) -> Configuration:
        if not self.path.exists():
            logger.info("No configuration at %s — creating one with defaults", self.path)
            config = copy.deepcopy(self._defaults)
            self.save(config)
            self._config = config
            return self.config

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreCorruptError(f"Cannot read {self.path}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise StoreCorruptError(f"{self.path} is not valid UTF-8: {exc}") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreCorruptError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreCorruptError(f"{self.path} must contain a JSON object")

        self._config = Configuration.from_dict(data, self._defaults)
        logger.info(
            "Configuration loaded from %s — %d followed channel(s)",
            self.path, len(self._config.followed_channels),
        )
        return self.config

    def save(self, config: Configuration) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StoreIOError(f"Cannot write {self.path}: {exc}") from exc
        logger.debug("Configuration saved to %s", self.path)

    def _commit(self, mutate: Callable[[Configuration], Outcome]) -> Outcome:
        with self._lock:
            draft = copy.deepcopy(self._config)
            outcome = mutate(draft)
            if outcome in (Outcome.ALREADY_FOLLOWED, Outcome.NOT_FOLLOWED,
                           Outcome.ALREADY_SET, Outcome.NOT_SET):
                return outcome
            self.save(draft)
            self._config = draft
            return outcome

    # ── Followed channels ──

    def is_followed(self, channel_id: str) -> bool:
        return channel_id in self._config.followed_channels

    def display_name(self, channel_id: str) -> str:
        return self._config.channel_names.get(channel_id) or UNKNOWN_CHANNEL

    def add_source(self, channel_id: str, name: Optional[str] = None) -> Outcome:
        def mutate(cfg: Configuration) -> Outcome:
            if channel_id in cfg.followed_channels:
                return Outcome.ALREADY_FOLLOWED
            cfg.followed_channels.append(channel_id)
            cfg.last_video_ids[channel_id] = ""
            if name:
                cfg.channel_names[channel_id] = name
            return Outcome.ADDED

        return self._commit(mutate)

    def remove_source(self, channel_id: str) -> Outcome:
        def mutate(cfg: Configuration) -> Outcome:
            if channel_id not in cfg.followed_channels:
                return Outcome.NOT_FOLLOWED
            cfg.followed_channels.remove(channel_id)
            cfg.channel_names.pop(channel_id, None)
            cfg.last_video_ids.pop(channel_id, None)
            return Outcome.REMOVED

        return self._commit(mutate)

    def update_name(self, channel_id: str, name: str) -> bool:
        """Cache a channel's display name. Returns True if the cache changed."""
        def mutate(cfg: Configuration) -> Outcome:
            if channel_id not in cfg.followed_channels:
                return Outcome.NOT_FOLLOWED
            if not name or cfg.channel_names.get(channel_id) == name:
                return Outcome.ALREADY_SET
            cfg.channel_names[channel_id] = name
            return Outcome.UPDATED

        return self._commit(mutate) is Outcome.UPDATED

    # ── Watermarks ──

    def last_seen(self, channel_id: str) -> str:
        return self._config.last_video_ids.get(channel_id, "")

    def record_seen(self, channel_id: str, video_id: str) -> bool:
        """
        Set the watermark for a followed channel.
        Returns False (and writes nothing) if the channel is no longer followed.
        """
        def mutate(cfg: Configuration) -> Outcome:
            if channel_id not in cfg.followed_channels:
                return Outcome.NOT_FOLLOWED
            if cfg.last_video_ids.get(channel_id) == video_id:
                return Outcome.ALREADY_SET
            cfg.last_video_ids[channel_id] = video_id
            return Outcome.UPDATED

        return self._commit(mutate) is not Outcome.NOT_FOLLOWED

    # ── Settings ──

    def set_notification_channel(self, chat_id: str) -> Outcome:
        chat_id = str(chat_id).strip()
        if not chat_id:
            raise ValueError("Notification chat id must not be empty")

        def mutate(cfg: Configuration) -> Outcome:
            if cfg.notification_chat_id == chat_id:
                return Outcome.ALREADY_SET
            cfg.notification_chat_id = chat_id
            return Outcome.UPDATED

        return self._commit(mutate)

    def clear_notification_channel(self) -> Outcome:
        def mutate(cfg: Configuration) -> Outcome:
            if not cfg.notification_chat_id:
                return Outcome.NOT_SET
            cfg.notification_chat_id = ""
            return Outcome.CLEARED

        return self._commit(mutate)

    def set_message_template(self, template: str) -> Outcome:
        if not template or not template.strip():
            raise ValueError("Message template must not be empty")

        def mutate(cfg: Configuration) -> Outcome:
            if cfg.message_template == template:
                return Outcome.ALREADY_SET
            cfg.message_template = template
            return Outcome.UPDATED

        return self._commit(mutate)

    def set_check_interval(self, minutes: int) -> Outcome:
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 1:
            raise ValueError(f"Check interval must be a whole number of minutes >= 1, got {minutes!r}")

        def mutate(cfg: Configuration) -> Outcome:
            if cfg.check_interval_minutes == minutes:
                return Outcome.ALREADY_SET
            cfg.check_interval_minutes = minutes
            return Outcome.UPDATED

        return self._commit(mutate)
