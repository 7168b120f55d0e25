"""
Entry point. Loads the persisted configuration, wires the YouTube client,
polling engine and Telegram Application together, schedules the recurring
check job, then starts long-polling.
"""
import logging
import sys

from telegram import BotCommand
from telegram.ext import Application, CommandHandler

import bot
import config
from poller import PollingEngine, Scheduler
from storage import ConfigError, ConfigStore
from youtube import YouTubeClient

log = logging.getLogger(__name__)

BOT_COMMANDS = [
    BotCommand("add",           "Follow a YouTube channel"),
    BotCommand("remove",        "Unfollow a YouTube channel"),
    BotCommand("list",          "List followed channels"),
    BotCommand("search",        "Find a YouTube channel ID"),
    BotCommand("setchannel",    "Send notifications to this chat"),
    BotCommand("removechannel", "Stop sending notifications"),
    BotCommand("setmessage",    "Set the notification message template"),
    BotCommand("interval",      "Set the check frequency in minutes"),
    BotCommand("test",          "Test bot features"),
    BotCommand("check",         "Check for new videos now"),
    BotCommand("status",        "Show bot status"),
]


def _setup_logging() -> None:
    logging.basicConfig(
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        level=logging.INFO,
    )
    # Silence noisy third-party loggers
    for name in ("httpx", "httpcore", "apscheduler"):
        logging.getLogger(name).setLevel(logging.WARNING)


async def _post_init(app: Application) -> None:
    store = app.bot_data["store"]
    engine = app.bot_data["engine"]
    scheduler = app.bot_data["scheduler"]

    await app.bot.set_my_commands(BOT_COMMANDS)

    if engine.client.has_api_key and store.config.followed_channels:
        log.info("Updating channel information…")
        await engine.reconcile_names()

    scheduler.start(store.config.check_interval_minutes)


async def _post_shutdown(app: Application) -> None:
    app.bot_data["scheduler"].stop()
    log.info("Bot stopped")


def main() -> None:
    _setup_logging()

    store = ConfigStore(
        config.CONFIG_PATH,
        default_interval=config.DEFAULT_CHECK_INTERVAL,
        default_template=config.DEFAULT_NOTIFICATION_MESSAGE,
    )
    try:
        cfg = store.load()
    except ConfigError as exc:
        # A corrupt store is never replaced by defaults
        log.critical("Cannot load configuration: %s", exc)
        sys.exit(1)

    if cfg.notification_chat_id:
        log.info("Notification chat: %s", cfg.notification_chat_id)
    for channel_id in cfg.followed_channels:
        log.info("  • %s (%s)", store.display_name(channel_id), channel_id)
    if not config.YOUTUBE_API_KEY:
        log.warning("YOUTUBE_API_KEY is not set — checks will be skipped until it is")

    app = (
        Application.builder()
        .token(config.TELEGRAM_BOT_TOKEN)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )

    client = YouTubeClient(config.YOUTUBE_API_KEY, config.YOUTUBE_API_URL, timeout=config.HTTP_TIMEOUT)
    sink = bot.TelegramSink(app.bot)
    engine = PollingEngine(store, client, sink, recency_multiplier=config.RECENCY_WINDOW_MULTIPLIER)

    app.bot_data.update(
        store=store,
        client=client,
        sink=sink,
        engine=engine,
        scheduler=Scheduler(app.job_queue, bot.check_youtube, first=config.FIRST_CHECK_DELAY),
    )

    # Register command handlers
    app.add_handler(CommandHandler(["start", "help"], bot.cmd_start))
    app.add_handler(CommandHandler("add",           bot.cmd_add))
    app.add_handler(CommandHandler("remove",        bot.cmd_remove))
    app.add_handler(CommandHandler("list",          bot.cmd_list))
    app.add_handler(CommandHandler("search",        bot.cmd_search))
    app.add_handler(CommandHandler("setchannel",    bot.cmd_setchannel))
    app.add_handler(CommandHandler("removechannel", bot.cmd_removechannel))
    app.add_handler(CommandHandler("setmessage",    bot.cmd_setmessage))
    app.add_handler(CommandHandler("interval",      bot.cmd_interval))
    app.add_handler(CommandHandler("test",          bot.cmd_test))
    app.add_handler(CommandHandler("check",         bot.cmd_check))
    app.add_handler(CommandHandler("status",        bot.cmd_status))
    app.add_error_handler(bot.on_error)

    log.info(
        "Bot started — user_id=%d  check_interval=%dmin  followed=%d",
        config.ALLOWED_USER_ID,
        cfg.check_interval_minutes,
        len(cfg.followed_channels),
    )
    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
