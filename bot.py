"""
Telegram bot: command handlers, the notification sink and the recurring
YouTube-check job. Handlers only parse arguments and render results; the
logic lives in `commands` and `poller`.
"""
from __future__ import annotations

import html
import logging

from telegram import Update
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import ContextTypes

import commands
import config
from commands import CommandResult, ResultKind
from poller import DeliveryError, Notification

logger = logging.getLogger(__name__)

# Telegram limits photo captions to 1024 characters
CAPTION_LIMIT = 1024

_ICONS = {
    ResultKind.SUCCESS: "✅",
    ResultKind.WARNING: "⚠️",
    ResultKind.ERROR:   "❌",
    ResultKind.INFO:    "ℹ️",
}


# ── Helpers ────────────────────────────────────────────────────────────────────

def _esc(text: str) -> str:
    """Escape text for safe inclusion in HTML parse-mode messages."""
    return html.escape(str(text))


def _authorized(update: Update) -> bool:
    return update.effective_user is not None and update.effective_user.id == config.ALLOWED_USER_ID


def render_result(result: CommandResult) -> str:
    icon = _ICONS[result.kind]
    title = result.title or result.kind.value.title()
    return f"{icon} <b>{_esc(title)}</b>\n\n{_esc(result.text)}"


async def _reply(update: Update, result: CommandResult) -> None:
    await update.message.reply_text(
        render_result(result),
        parse_mode=ParseMode.HTML,
        disable_web_page_preview=True,
    )


def _deps(context: ContextTypes.DEFAULT_TYPE):
    data = context.bot_data
    return data["store"], data["client"], data["sink"], data["engine"], data.get("scheduler")


# ── Notification sink ──────────────────────────────────────────────────────────

def build_notification(notification: Notification) -> str:
    published = notification.published_at.strftime("%Y-%m-%d %H:%M UTC")
    return (
        f"🎥 <b>New Video Published!</b>\n\n"
        f"{_esc(notification.body)}\n\n"
        f"📌 <b>{_esc(notification.title)}</b>\n"
        f"📺 {_esc(notification.channel_title)}\n"
        f"📅 {published}\n"
        f"🔗 <a href=\"{_esc(notification.url)}\">Watch on YouTube</a>"
    )


class TelegramSink:
    """Delivers notifications to a Telegram chat. No retries."""

    def __init__(self, bot) -> None:
        self.bot = bot

    async def deliver(self, chat_id: str, notification: Notification) -> None:
        text = build_notification(notification)
        if notification.thumbnail_url and len(text) <= CAPTION_LIMIT:
            try:
                await self.bot.send_photo(
                    chat_id=chat_id,
                    photo=notification.thumbnail_url,
                    caption=text,
                    parse_mode=ParseMode.HTML,
                )
                logger.info("Notification sent to %s: %s", chat_id, notification.title)
                return
            except TelegramError as exc:
                # Usually Telegram failing to fetch the thumbnail; send as text instead
                logger.warning("Photo notification to %s failed (%s), sending text", chat_id, exc)
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
            )
        except TelegramError as exc:
            raise DeliveryError(f"Telegram rejected message to {chat_id}: {exc}") from exc
        logger.info("Notification sent to %s: %s", chat_id, notification.title)

    async def send_test_message(self, chat_id: str) -> None:
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text="🔄 <b>Test Message</b>\n\nNotification channel set successfully!",
                parse_mode=ParseMode.HTML,
            )
        except TelegramError as exc:
            raise DeliveryError(str(exc)) from exc


# ── Command handlers ───────────────────────────────────────────────────────────

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    await update.message.reply_text(
        "👋 <b>YouTube Notification Bot</b>\n\n"
        "<b>Commands:</b>\n"
        "/add <code>&lt;channel_id&gt;</code>  — follow a YouTube channel\n"
        "/remove <code>&lt;channel_id&gt;</code>  — unfollow a channel\n"
        "/list  — list followed channels\n"
        "/search <code>&lt;name or @handle&gt;</code>  — find a channel ID\n"
        "/setchannel <i>[chat_id]</i>  — send notifications here (or to chat_id)\n"
        "/removechannel  — stop sending notifications\n"
        "/setmessage <code>&lt;text&gt;</code>  — message template\n"
        "/interval <code>&lt;minutes&gt;</code>  — check frequency (min 1)\n"
        "/test <code>channel|api|message|all</code>  — diagnostics\n"
        "/test channel_test <code>&lt;channel_id&gt;</code>  — test one YouTube channel\n"
        "/check  — check for new videos now\n"
        "/status  — bot status\n\n"
        "💡 <i>Use {title} and {url} in /setmessage, e.g.</i>\n"
        "<code>/setmessage New video: {title} {url}</code>",
        parse_mode=ParseMode.HTML,
    )


async def cmd_add(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    if not context.args:
        await update.message.reply_text(
            "Usage: /add <code>&lt;channel_id&gt;</code>\n"
            "Find an ID with /search <code>&lt;name&gt;</code>.",
            parse_mode=ParseMode.HTML,
        )
        return
    store, client, _, _, _ = _deps(context)
    await _reply(update, await commands.add_channel(store, client, context.args[0]))


async def cmd_remove(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    if not context.args:
        await update.message.reply_text(
            "Usage: /remove <code>&lt;channel_id&gt;</code>", parse_mode=ParseMode.HTML
        )
        return
    store, _, _, _, _ = _deps(context)
    await _reply(update, commands.remove_channel(store, context.args[0]))


async def cmd_list(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    store, _, _, _, _ = _deps(context)
    await _reply(update, commands.list_channels(store))


async def cmd_search(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    _, client, _, _, _ = _deps(context)
    await _reply(update, await commands.search_channels(client, " ".join(context.args or [])))


async def cmd_setchannel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    store, _, _, _, _ = _deps(context)
    chat_id = context.args[0] if context.args else str(update.effective_chat.id)
    await _reply(update, commands.set_destination(store, chat_id))


async def cmd_removechannel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    store, _, _, _, _ = _deps(context)
    await _reply(update, commands.clear_destination(store))


async def cmd_setmessage(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    # Keep the user's own line breaks and spacing: take the raw text after the command
    text = update.message.text or ""
    _, _, template = text.partition(" ")
    if not template.strip():
        await update.message.reply_text(
            "Usage: /setmessage <code>&lt;text&gt;</code>\n"
            "Placeholders: <code>{title}</code>, <code>{url}</code>",
            parse_mode=ParseMode.HTML,
        )
        return
    store, _, _, _, _ = _deps(context)
    await _reply(update, commands.set_template(store, template.strip()))


async def cmd_interval(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    try:
        minutes = int(context.args[0]) if context.args else 0
    except ValueError:
        minutes = 0
    if minutes < 1:
        await update.message.reply_text(
            "Usage: /interval <code>&lt;minutes&gt;</code> (minimum 1)",
            parse_mode=ParseMode.HTML,
        )
        return
    store, _, _, _, scheduler = _deps(context)
    await _reply(update, commands.set_interval(store, scheduler, minutes))


async def cmd_test(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    if not context.args:
        await update.message.reply_text(
            "Usage: /test <code>channel|api|message|all</code>\n"
            "       /test channel_test <code>&lt;channel_id&gt;</code>",
            parse_mode=ParseMode.HTML,
        )
        return
    store, client, sink, _, _ = _deps(context)
    test_type = context.args[0].lower()
    channel_id = context.args[1] if len(context.args) > 1 else None
    result = await commands.run_test(store, client, sink, test_type, channel_id)

    if result.image_url and result.kind is not ResultKind.ERROR:
        try:
            await update.message.reply_photo(
                photo=result.image_url,
                caption=render_result(result)[:CAPTION_LIMIT],
                parse_mode=ParseMode.HTML,
            )
            return
        except TelegramError as exc:
            logger.warning("Could not attach thumbnail to test result: %s", exc)
    await _reply(update, result)


async def cmd_check(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    _, _, _, engine, _ = _deps(context)
    await update.message.reply_text("🔍 Checking YouTube channels…")
    await _reply(update, await commands.check_now(engine))


async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not _authorized(update):
        return
    store, _, _, engine, _ = _deps(context)
    await _reply(update, commands.status(store, engine))


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Unhandled error while processing an update", exc_info=context.error)


# ── YouTube check job (runs on bot's event loop via JobQueue) ─────────────────

async def check_youtube(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Called every check interval by PTB's JobQueue."""
    engine = context.bot_data["engine"]
    await engine.run_cycle()
