# pricewatch/models/price_reading.py

"""Temporal price reading model for price history tracking."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from pricewatch.models.parsed_price import ParsedPrice


@dataclass(frozen=True)
class PriceReading:
    """A single persisted price observation for an item."""

    id: int
    item_id: int
    amount: Decimal
    currency: str
    captured_at: datetime

    @property
    def price(self) -> ParsedPrice:
        """The reading's value, comparable with freshly parsed prices."""
        return ParsedPrice(amount=self.amount, currency=self.currency)


@dataclass(frozen=True)
class PriceChange:
    """A newly appended reading together with the one it replaced."""

    reading: PriceReading
    previous: PriceReading | None = None

    @property
    def is_first(self) -> bool:
        return self.previous is None

    @property
    def delta(self) -> Decimal | None:
        """Amount difference, or None across currencies / first reading."""
        if (
            self.previous is None
            or self.previous.currency != self.reading.currency
        ):
            return None
        return self.reading.amount - self.previous.amount

    @property
    def is_drop(self) -> bool:
        delta = self.delta
        return delta is not None and delta < 0
