# pricewatch/pricing/price_parser.py

"""Turn free-text price fragments into normalised ParsedPrice values."""

import logging
import re
from decimal import Decimal, InvalidOperation

from pricewatch.config.settings import Settings
from pricewatch.models.parsed_price import ParsedPrice

logger = logging.getLogger("pricewatch.pricing")

# Checked in order; longer prefixes first so "US$" is not read as "S$"
_PREFIXED_SYMBOLS: list[tuple[str, str]] = [
    ("US$", "USD"),
    ("CA$", "CAD"),
    ("AU$", "AUD"),
    ("NZ$", "NZD"),
    ("HK$", "HKD"),
    ("R$", "BRL"),
    ("C$", "CAD"),
    ("A$", "AUD"),
    ("S$", "SGD"),
]

_SYMBOLS: dict[str, str] = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "₩": "KRW",
}

_ISO_CODES: frozenset[str] = frozenset({
    "AED", "ARS", "AUD", "BDT", "BGN", "BHD", "BRL", "CAD", "CHF",
    "CLP", "CNY", "COP", "CZK", "DKK", "EGP", "EUR", "GBP", "HKD",
    "HUF", "IDR", "ILS", "INR", "JPY", "KES", "KRW", "KWD", "MXN",
    "MYR", "NGN", "NOK", "NZD", "OMR", "PEN", "PHP", "PKR", "PLN",
    "QAR", "RON", "RUB", "SAR", "SEK", "SGD", "THB", "TRY", "TWD",
    "UAH", "USD", "VND", "ZAR",
})

# Digit groups joined by "," or "." (e.g. 1,234.56 / 1.234,56 / 19.99)
_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)*")

# Non-breaking / thin spaces and apostrophes used as grouping: 1 234,56
_GROUP_SPACE_RE = re.compile(
    r"(?<=\d)[\u00a0\u202f\u2009'](?=\d{3}(?!\d))"
)

# Uppercase only, so the word "try" is not read as Turkish lira
_ISO_BEFORE_RE = re.compile(r"\b([A-Z]{3})\s*$")
_ISO_AFTER_RE = re.compile(r"^\s*([A-Z]{3})\b")


def _detect_symbol_currency(text: str) -> str | None:
    """Return the ISO code for the first currency symbol in *text*."""
    for symbol, code in _PREFIXED_SYMBOLS:
        if symbol in text:
            return code

    found: list[tuple[int, str]] = [
        (text.index(symbol), code)
        for symbol, code in _SYMBOLS.items()
        if symbol in text
    ]
    if not found:
        return None
    return min(found)[1]


def _adjacent_iso_code(text: str, start: int, end: int) -> str | None:
    """Return an ISO code written directly before or after a number."""
    before = _ISO_BEFORE_RE.search(text[:start])
    if before and before.group(1) in _ISO_CODES:
        return before.group(1)
    after = _ISO_AFTER_RE.match(text[end:])
    if after and after.group(1) in _ISO_CODES:
        return after.group(1)
    return None


def _normalise_number(token: str) -> Decimal | None:
    """Convert a grouped number token into a Decimal.

    The separator appearing last is the decimal point when it is
    followed by exactly one or two digits; every other separator is
    a thousands separator.
    """
    last_sep = max(token.rfind(","), token.rfind("."))
    if last_sep == -1:
        if len(token) > Settings.MAX_BARE_INTEGER_DIGITS:
            return None
        digits = token
    else:
        decimals = token[last_sep + 1:]
        integer_part = re.sub(r"[.,]", "", token[:last_sep])
        if 1 <= len(decimals) <= 2:
            digits = f"{integer_part}.{decimals}"
        else:
            digits = integer_part + decimals

    try:
        return Decimal(digits)
    except InvalidOperation:
        return None


def parse_price(text: str | None) -> ParsedPrice | None:
    """Extract the first plausible price from a text fragment.

    Returns ``None`` when the fragment holds no usable number.  That
    is the normal outcome for most page elements, not an error.

    >>> parse_price("$1,234.56")
    ParsedPrice(amount=Decimal('1234.56'), currency='USD')
    >>> parse_price("1.234,56 €")
    ParsedPrice(amount=Decimal('1234.56'), currency='EUR')
    """
    if not text:
        return None
    cleaned = _GROUP_SPACE_RE.sub("", text.strip())
    if not cleaned:
        return None

    symbol_currency = _detect_symbol_currency(cleaned)

    for match in _NUMBER_RE.finditer(cleaned):
        if cleaned[match.end():].lstrip().startswith("%"):
            continue
        amount = _normalise_number(match.group())
        if amount is None or amount <= 0:
            continue
        currency = (
            _adjacent_iso_code(cleaned, match.start(), match.end())
            or symbol_currency
            or Settings.DEFAULT_CURRENCY
        )
        return ParsedPrice(amount=amount, currency=currency)

    logger.debug("No price found in fragment: %.80r", text)
    return None
