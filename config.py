import os
from dotenv import load_dotenv

load_dotenv()

TELEGRAM_BOT_TOKEN: str = os.environ["TELEGRAM_BOT_TOKEN"]
ALLOWED_USER_ID: int = int(os.environ["ALLOWED_USER_ID"])

# YouTube Data API v3 key; commands and polling report a clear error when unset
YOUTUBE_API_KEY: str = os.getenv("YOUTUBE_API_KEY", "")
YOUTUBE_API_URL: str = os.getenv("YOUTUBE_API_URL", "https://www.googleapis.com/youtube/v3")

# Persisted bot configuration (followed channels, destination chat, watermarks)
CONFIG_PATH: str = os.getenv("CONFIG_PATH", "data/config.json")

# Defaults used only when the config document does not exist yet
DEFAULT_CHECK_INTERVAL: int = int(os.getenv("YOUTUBE_CHECK_INTERVAL", "10"))
DEFAULT_NOTIFICATION_MESSAGE: str = os.getenv(
    "NOTIFICATION_MESSAGE", "🎥 New video published: {title}\n{url}"
)

# An upload counts as new only if it is younger than this many check intervals
RECENCY_WINDOW_MULTIPLIER: int = int(os.getenv("RECENCY_WINDOW_MULTIPLIER", "2"))

# Upper bound for each YouTube API request, in seconds
HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "15"))

# Delay before the first check after startup or an interval change, in seconds
FIRST_CHECK_DELAY: int = int(os.getenv("FIRST_CHECK_DELAY", "2"))
