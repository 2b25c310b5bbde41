# src/config/settings.py

"""Central configuration for the price tracker engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, falling back to *default*."""
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    """Read an int from the environment, falling back to *default*."""
    raw = os.getenv(name)
    return int(raw) if raw else default


class Settings:
    """Central configuration for the price tracker engine."""

    # --- Price history ---
    RETENTION_DAYS: int = _env_int("TRACKER_RETENTION_DAYS", 30)
    TIMEZONE: str = os.getenv("TRACKER_TIMEZONE", "Europe/Warsaw")

    # --- Deals ---
    DEAL_DROP_THRESHOLD: float = _env_float("TRACKER_DEAL_THRESHOLD", 5.0)
    DEAL_LIMIT: int = 5

    # --- Recheck scheduler ---
    RECHECK_INTERVAL_SECONDS: float = _env_float(
        "TRACKER_RECHECK_INTERVAL", 7200.0
    )
    ITEM_DELAY_SECONDS: float = _env_float("TRACKER_ITEM_DELAY", 2.0)
    FETCH_TIMEOUT: float = _env_float("TRACKER_FETCH_TIMEOUT", 10.0)
    NOTIFY_TIMEOUT: float = _env_float("TRACKER_NOTIFY_TIMEOUT", 10.0)
    # Transport-side budgets end before the scheduler stops waiting
    SCRAPE_BUDGET: float = max(FETCH_TIMEOUT - 1.0, 0.5)
    NOTIFY_HTTP_TIMEOUT: float = max(NOTIFY_TIMEOUT - 2.0, 0.5)

    # --- Scraping ---
    REQUEST_DELAY: float = 2.0          # Base backoff between retries
    REQUEST_TIMEOUT: int = 10           # Seconds before a request times out
    MAX_RETRIES: int = 3                # Retry count on transient failures
    SEARCH_RESULT_LIMIT: int = 5

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 300.0
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/webp,*/*;q=0.8"
        ),
        "Accept-Language": "pl-PL,pl;q=0.9,en;q=0.8",
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Empik ---
    EMPIK_HOST: str = "empik.com"
    EMPIK_HOMEPAGE: str = "https://www.empik.com/"
    EMPIK_SEARCH_URL: str = "https://www.empik.com/szukaj/produkt?q={query}"
    DEFAULT_CURRENCY: str = "PLN"

    # --- Notifications ---
    DISCORD_TOKEN: str = os.getenv("DISCORD_TOKEN", "")
    DISCORD_API_BASE: str = "https://discord.com/api/v10"
    DEFAULT_OWNER_ID: str = os.getenv("TRACKER_OWNER_ID", "local")
    DEFAULT_CHANNEL_ID: str = os.getenv("TRACKER_CHANNEL_ID", "console")

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "src" / "config" / "selectors.json"
    DATA_DIR: Path = BASE_DIR / "data"
    DB_PATH: Path = Path(
        os.getenv("TRACKER_DB_PATH", str(DATA_DIR / "price_tracker.db"))
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
