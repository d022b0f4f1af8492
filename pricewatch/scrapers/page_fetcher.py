# pricewatch/scrapers/page_fetcher.py

"""Retrieve raw product page HTML with browser impersonation."""

import logging
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from pricewatch.config.settings import Settings


class FetchError(Exception):
    """The page could not be retrieved at all.

    Covers timeouts, connection errors, redirect loops, and HTTP
    responses that are neither a success nor a recoverable block.
    """

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class PageFetcher:
    """Fetch pages through curl_cffi, falling back to cloudscraper."""

    # Cloudflare challenge page markers (checked before keyword scan)
    _CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    def __init__(self, settings: Settings | None = None) -> None:
        self.logger = logging.getLogger("pricewatch.fetcher")
        self.settings = settings or Settings()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )

    def _is_challenge(self, text: str) -> bool:
        """Check for Cloudflare challenge pages and CAPTCHA indicators."""
        lower = text.lower()

        for marker in self._CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "Cloudflare challenge detected (marker: '%s')",
                    marker,
                )
                return True

        # Real product pages can mention "captcha" in scripts, so the
        # keyword scan only applies to short bodies
        has_body_content = "<body" in lower and len(text) > 5000
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "CAPTCHA keyword '%s' detected", keyword,
                    )
                    return True
        return False

    def _fetch_with_cloudscraper(
        self, url: str, headers: dict[str, str],
    ) -> str:
        """Second attempt through cloudscraper's JS challenge solver."""
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            scraper.max_redirects = self.settings.MAX_REDIRECTS
            resp: Any = scraper.get(
                url,
                headers=headers,
                timeout=self.settings.REQUEST_TIMEOUT,
            )
        except Exception as exc:
            self.logger.error(
                "cloudscraper fallback failed for %s: %s",
                url,
                exc,
                exc_info=True,
            )
            raise FetchError(url, str(exc)) from exc

        text = str(resp.text)
        if resp.status_code != 200 or self._is_challenge(text):
            raise FetchError(
                url, f"blocked (HTTP {resp.status_code})"
            )
        return text

    def fetch(self, url: str) -> str:
        """Return the HTML body of *url*.

        Raises:
            FetchError: the page is unreachable, timed out, redirected
                too many times, or stayed blocked after the fallback.
        """
        headers: dict[str, str] = dict(self.settings.DEFAULT_HEADERS)
        try:
            resp = self.session.get(
                url,
                headers=headers,
                timeout=self.settings.REQUEST_TIMEOUT,
                allow_redirects=True,
                max_redirects=self.settings.MAX_REDIRECTS,
            )
        except Exception as exc:
            self.logger.warning(
                "Request error for %s: %s", url, exc, exc_info=True,
            )
            raise FetchError(url, str(exc)) from exc

        if resp.status_code == 200 and not self._is_challenge(resp.text):
            return resp.text

        if (
            resp.status_code == 200
            or resp.status_code in self.settings.BLOCKED_STATUS_CODES
        ):
            self.logger.info(
                "Blocked on %s (HTTP %d), falling back to cloudscraper",
                url,
                resp.status_code,
            )
            return self._fetch_with_cloudscraper(url, headers)

        self.logger.warning(
            "HTTP %d for %s", resp.status_code, url,
        )
        raise FetchError(url, f"HTTP {resp.status_code}")
