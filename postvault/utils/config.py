"""Configuration management for PostVault."""

from pathlib import Path
from typing import Dict, List

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Database configuration
DB_PATH = PROJECT_ROOT / "postvault.db"
DB_URL = f"sqlite+aiosqlite:///{DB_PATH}"

# Download configuration
DOWNLOAD_DIR = PROJECT_ROOT / "downloads"
MEDIA_SUBFOLDER = "media"
COMMENTS_SUBFOLDER = "comments"
DOWNLOAD_HISTORY_LIMIT = 10000  # Most recent shortcodes kept for skip checks

# Logs configuration
LOG_DIR = PROJECT_ROOT / "logs"
LOG_FILE = LOG_DIR / "postvault.log"

# Browser session (Playwright storage state written by scripts/login.py)
SESSION_DIR = PROJECT_ROOT / ".sessions"
STORAGE_STATE_FILE = SESSION_DIR / "storage_state.json"

# Rate limiting configuration, per request class.
# min/max are seconds, backoff is the multiplier applied on each throttle.
RATE_LIMITS: Dict[str, Dict[str, float]] = {
    "primary_query": {"min": 0.8, "max": 1.2, "backoff": 1.5},
    "comment_listing": {"min": 1.5, "max": 2.5, "backoff": 2.0},
    "reply_listing": {"min": 0.8, "max": 1.2, "backoff": 1.5},
    "reply_pagination": {"min": 0.4, "max": 0.6, "backoff": 1.5},
}
MAX_BACKOFF_MULTIPLIER = 4.0

# Retry configuration
MAX_RETRIES = 3  # Total attempts per request
RETRY_BACKOFF_BASE = 1.5  # Seconds
RETRY_BACKOFF_MULTIPLIER = 2.0  # Waits 3s, 6s, ...

# HTTP configuration
FETCH_TIMEOUT = 30.0  # Absolute bound per request, seconds
CONNECT_TIMEOUT = 30.0  # Seconds
READ_TIMEOUT = 300.0  # Seconds (media downloads)
DOWNLOAD_CHUNK_SIZE = 8192  # Bytes
MAX_CONCURRENT_DOWNLOADS = 3

# Pagination limits
COMMENTS_PER_PAGE = 50
MAX_API_REQUESTS = 50  # Comment pages per post
MAX_GRAPHQL_REQUESTS = 50
MAX_CHILD_COMMENT_REQUESTS = 20  # Reply pages per parent comment
EMPTY_PAGE_LIMIT = 3  # Consecutive malformed pages before giving up
EMPTY_PAGE_DELAY = 1.5  # Seconds

# Batch processing
PAGE_LOAD_DELAY = 2.0  # Settle time after navigating to a post
BATCH_DELAY_MIN = 3.0
BATCH_DELAY_MAX = 5.0
MAX_BATCH_SIZE = 100

# Profile collection
PROFILE_SCROLL_DELAY = 1.0
PROFILE_STALL_LIMIT = 5
PROFILE_PATH_EXCLUDES = ["p", "reel", "reels", "explore", "direct", "accounts", "stories"]

# User agent pool for rotation
USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

# Instagram endpoints
INSTAGRAM_BASE_URL = "https://www.instagram.com"
INSTAGRAM_GRAPHQL_URL = f"{INSTAGRAM_BASE_URL}/graphql/query/"
COMMENTS_URL = INSTAGRAM_BASE_URL + "/api/v1/media/{media_id}/comments/"
CHILD_COMMENTS_URL = INSTAGRAM_BASE_URL + "/api/v1/media/{media_id}/comments/{comment_id}/child_comments/"
GRAPHQL_QUERY_HASH = "f0986789a5c5d17c2400faebf16efd0d"

API_HEADERS: Dict[str, str] = {
    "X-IG-App-ID": "936619743392459",
    "X-ASBD-ID": "198387",
    "X-Requested-With": "XMLHttpRequest",
}

# App information
APP_NAME = "PostVault"
APP_VERSION = "0.2.0"
