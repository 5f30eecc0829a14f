# src/config/settings.py

"""Central configuration for the pricewatch pipeline."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Read an integer override from the environment."""
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    """Read a float override from the environment."""
    return float(os.getenv(name, str(default)))


class Settings:
    """Central configuration for the pricewatch pipeline."""

    # --- Fetching ---
    REQUEST_TIMEOUT: int = _env_int(
        "PRICEWATCH_REQUEST_TIMEOUT", 30
    )                                   # Hard per-attempt timeout (secs)
    RENDER_HEADLESS: bool = (
        os.getenv("PRICEWATCH_RENDER_HEADLESS", "1") != "0"
    )

    # --- Retries ---
    MAX_RETRIES: int = _env_int("PRICEWATCH_MAX_RETRIES", 3)
    RETRY_BACKOFF: float = _env_float(
        "PRICEWATCH_RETRY_BACKOFF", 2.0
    )                                   # First backoff, doubled per attempt
    MAX_BACKOFF: float = _env_float("PRICEWATCH_MAX_BACKOFF", 30.0)

    # --- Scheduling ---
    SCHEDULE_WINDOW_MINUTES: int = _env_int(
        "PRICEWATCH_SCHEDULE_WINDOW_MINUTES", 30
    )                                   # ± tolerance around check time
    MAX_CONCURRENCY: int = _env_int("PRICEWATCH_MAX_CONCURRENCY", 5)
    BATCH_SIZE: int = _env_int("PRICEWATCH_BATCH_SIZE", 50)
    CHECK_LOCK_TTL: int = _env_int(
        "PRICEWATCH_CHECK_LOCK_TTL", 300
    )                                   # Stale per-item claim expiry (secs)

    # --- Bot detection ---
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]
    CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    USER_AGENTS: list[str] = [
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (X11; Linux x86_64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/130.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_6) "
            "AppleWebKit/605.1.15 (KHTML, like Gecko) "
            "Version/17.6 Safari/605.1.15"
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:132.0) "
            "Gecko/20100101 Firefox/132.0"
        ),
    ]
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-GB,en;q=0.9",
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DB_PATH: Path = Path(
        os.getenv(
            "PRICEWATCH_DB_PATH",
            str(BASE_DIR / "data" / "pricewatch.db"),
        )
    )
    LOGS_DIR: Path = Path(
        os.getenv("PRICEWATCH_LOGS_DIR", str(BASE_DIR / "logs"))
    )
