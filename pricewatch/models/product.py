# pricewatch/models/product.py

"""Tracked item and extraction result models for inter-module data flow."""

from dataclasses import dataclass
from datetime import datetime

from pricewatch.models.parsed_price import ParsedPrice


@dataclass
class TrackedItem:
    """A product page monitored for price changes."""

    id: int
    url: str
    refresh_interval: int
    name: str | None = None
    image_url: str | None = None
    last_checked: datetime | None = None
    created_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        """True if never checked or the refresh interval has elapsed."""
        if self.last_checked is None:
            return True
        elapsed = (now - self.last_checked).total_seconds()
        return elapsed >= self.refresh_interval


@dataclass
class ExtractionResult:
    """Best-effort product snapshot scraped from a single page fetch."""

    url: str
    name: str | None = None
    price: ParsedPrice | None = None
    image_url: str | None = None

    @property
    def has_price(self) -> bool:
        """Whether a usable price was found on the page."""
        return self.price is not None
