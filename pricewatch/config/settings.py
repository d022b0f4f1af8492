# pricewatch/config/settings.py

"""Central configuration for the pricewatch engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the pricewatch engine."""

    # --- Fetching ---
    REQUEST_TIMEOUT: int = int(
        os.getenv("PRICEWATCH_REQUEST_TIMEOUT", "15")
    )                                   # Total seconds per page fetch
    MAX_REDIRECTS: int = 5              # Redirect hops before giving up
    BLOCKED_STATUS_CODES: tuple[int, ...] = (403, 429, 503)
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
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Extraction ---
    DEFAULT_CURRENCY: str = "USD"
    MAX_NAME_LENGTH: int = 500          # Longer "names" are page garbage
    MAX_BARE_INTEGER_DIGITS: int = 7    # SKUs, phone numbers, etc.

    # --- Scheduling ---
    TICK_INTERVAL: float = float(
        os.getenv("PRICEWATCH_TICK_INTERVAL", "60")
    )
    PACING_DELAY: float = float(
        os.getenv("PRICEWATCH_PACING_DELAY", "2.0")
    )                                   # Seconds between item fetches
    DEFAULT_REFRESH_INTERVAL: int = int(
        os.getenv("PRICEWATCH_DEFAULT_REFRESH_INTERVAL", "3600")
    )

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = (
        BASE_DIR / "pricewatch" / "config" / "selectors.json"
    )
    DATA_DIR: Path = BASE_DIR / "data"
    PRICE_DB_PATH: Path = Path(
        os.getenv(
            "PRICEWATCH_DB_PATH",
            str(DATA_DIR / "pricewatch.db"),
        )
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
