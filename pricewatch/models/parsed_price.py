# pricewatch/models/parsed_price.py

"""Normalised monetary value types produced by the price parser."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ParsedPrice:
    """An amount in a given ISO currency, compared by value."""

    amount: Decimal
    currency: str = "USD"

    def __str__(self) -> str:
        return f"{self.currency} {self.amount}"


@dataclass(frozen=True)
class PriceCandidate:
    """A parsed price plus where on the page it was found.

    Lower ``priority`` numbers come from more reliable selector
    categories (schema markup before class names before catch-alls).
    """

    price: ParsedPrice
    priority: int = 0
    selector: str = ""
