# pricewatch/scrapers/strategies.py

"""Extraction strategies tried in order by the product extractor.

Each strategy looks at an already-parsed page and returns whatever of
the requested fields it can find.  The extractor only asks a strategy
for fields that earlier (more trusted) strategies left empty.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from pricewatch.config.settings import Settings
from pricewatch.models.parsed_price import ParsedPrice, PriceCandidate
from pricewatch.pricing.disambiguator import find_most_likely_price
from pricewatch.pricing.price_parser import parse_price

logger = logging.getLogger("pricewatch.extractor")

NAME = "name"
PRICE = "price"
IMAGE = "image_url"
ALL_FIELDS: tuple[str, ...] = (NAME, PRICE, IMAGE)


def resolve_url(src: str, page_url: str) -> str:
    """Make *src* absolute against the page URL, or return it as-is."""
    try:
        return urljoin(page_url, src)
    except ValueError:
        return src


def _collapse(text: str) -> str:
    return " ".join(text.split())


# schema.org amounts always use "." as the decimal point: "12.500" is 12.5
_PLAIN_DECIMAL_RE = re.compile(r"\d+(?:\.\d+)?")


def plain_decimal(value: str) -> Decimal | None:
    """Read a machine-formatted amount, or None if it is free text."""
    text = value.strip()
    if not _PLAIN_DECIMAL_RE.fullmatch(text):
        return None
    return Decimal(text)


class ExtractionStrategy(ABC):
    """A single step of the extraction chain."""

    name: str = "base"

    @abstractmethod
    def extract(
        self,
        soup: BeautifulSoup,
        page_url: str,
        fields: frozenset[str],
    ) -> dict[str, Any]:
        """Return values for any of *fields* found on the page."""
        ...


# ── Structured data (JSON-LD) ────────────────────────────


def _is_product_type(node: dict[str, Any]) -> bool:
    declared = node.get("@type")
    if isinstance(declared, list):
        return "Product" in declared
    return declared == "Product"


def find_product_node(data: Any) -> dict[str, Any] | None:
    """Depth-first search for a schema.org Product node."""
    if isinstance(data, list):
        for item in data:
            found = find_product_node(item)
            if found:
                return found
        return None

    if not isinstance(data, dict):
        return None

    if _is_product_type(data):
        return data

    for key in ("@graph", "mainEntity"):
        if key in data:
            found = find_product_node(data[key])
            if found:
                return found
    return None


class StructuredDataStrategy(ExtractionStrategy):
    """Read name, price and image from embedded JSON-LD Product data."""

    name = "structured_data"

    def __init__(self, default_currency: str = "USD") -> None:
        self.default_currency = default_currency

    @staticmethod
    def _iter_json_ld(soup: BeautifulSoup) -> Iterator[Any]:
        for script in soup.find_all(
            "script", attrs={"type": "application/ld+json"}
        ):
            content = script.string or script.get_text()
            if not content or not content.strip():
                continue
            try:
                yield json.loads(content)
            except json.JSONDecodeError as exc:
                logger.debug(
                    "Skipping malformed JSON-LD block: %s", exc,
                )

    def _offer_price(self, offers: Any) -> ParsedPrice | None:
        """Pull a price out of an Offer / AggregateOffer / offer list."""
        offer = offers[0] if isinstance(offers, list) and offers else offers
        if not isinstance(offer, dict):
            return None

        raw = offer.get("price")
        if raw in (None, ""):
            raw = offer.get("lowPrice")
        currency = offer.get("priceCurrency")
        price_spec = offer.get("priceSpecification")
        if raw in (None, "") and isinstance(price_spec, dict):
            raw = price_spec.get("price")
            currency = currency or price_spec.get("priceCurrency")
        if raw in (None, "") or isinstance(raw, bool):
            return None

        fallback_currency = self.default_currency
        if isinstance(raw, (int, float)):
            try:
                amount: Decimal | None = Decimal(str(raw))
            except InvalidOperation:
                return None
        else:
            amount = plain_decimal(str(raw))
            if amount is None:
                parsed = parse_price(str(raw))
                if parsed is None:
                    return None
                amount = parsed.amount
                fallback_currency = parsed.currency
        if amount is None:
            return None

        if amount <= 0:
            return None
        return ParsedPrice(
            amount=amount,
            currency=str(currency or fallback_currency).upper(),
        )

    @staticmethod
    def _image(image: Any, page_url: str) -> str | None:
        if isinstance(image, list):
            image = image[0] if image else None
        if isinstance(image, dict):
            image = image.get("url") or image.get("contentUrl")
        if isinstance(image, str) and image.strip():
            return resolve_url(image.strip(), page_url)
        return None

    def extract(
        self,
        soup: BeautifulSoup,
        page_url: str,
        fields: frozenset[str],
    ) -> dict[str, Any]:
        for data in self._iter_json_ld(soup):
            product = find_product_node(data)
            if product is None:
                continue

            found: dict[str, Any] = {}
            if NAME in fields:
                name = product.get("name")
                if isinstance(name, str) and name.strip():
                    found[NAME] = _collapse(name)
            if PRICE in fields and "offers" in product:
                price = self._offer_price(product["offers"])
                if price is not None:
                    found[PRICE] = price
            if IMAGE in fields and "image" in product:
                image = self._image(product["image"], page_url)
                if image:
                    found[IMAGE] = image
            return found
        return {}


# ── CSS selector chains ──────────────────────────────────


def load_selectors(path: Path | None = None) -> dict[str, Any]:
    """Load the selector chains from selectors.json."""
    with open(path or Settings.SELECTORS_PATH, encoding="utf-8") as f:
        selectors: dict[str, Any] = json.load(f)
    return selectors


class SelectorChainStrategy(ExtractionStrategy):
    """Walk prioritised CSS selector lists for each field."""

    name = "selector_chain"

    def __init__(
        self,
        selectors: dict[str, Any] | None = None,
        max_name_length: int = 500,
        default_currency: str = "USD",
    ) -> None:
        config = selectors if selectors is not None else load_selectors()
        self.price_groups: list[dict[str, Any]] = config.get("price", [])
        self.name_selectors: list[str] = config.get("name", [])
        self.image_selectors: list[str] = config.get("image", [])
        self.image_attributes: list[str] = config.get(
            "image_attributes", ["src", "content"]
        )
        self.price_attributes: list[str] = config.get(
            "price_attributes", ["content"]
        )
        self.max_name_length = max_name_length
        self.default_currency = default_currency

    @staticmethod
    def _schema_currency(soup: BeautifulSoup) -> str | None:
        element = soup.select_one('[itemprop="priceCurrency"]')
        if element is None:
            return None
        value = element.get("content")
        if not isinstance(value, str) or not value.strip():
            value = element.get_text(strip=True)
        return value.strip().upper() or None

    def _parse_element(
        self, element: Tag, schema_currency: str | None,
    ) -> ParsedPrice | None:
        """Machine attributes first (plain decimals read as-is), then text."""
        for attr in self.price_attributes:
            value = element.get(attr)
            if not isinstance(value, str) or not value.strip():
                continue
            amount = plain_decimal(value)
            if amount is None:
                return parse_price(value)
            if amount <= 0:
                return None
            return ParsedPrice(
                amount=amount,
                currency=schema_currency or self.default_currency,
            )
        return parse_price(element.get_text(" ", strip=True))

    def find_price(self, soup: BeautifulSoup) -> ParsedPrice | None:
        """Disambiguate the matches of the first selector that parses."""
        schema_currency = self._schema_currency(soup)
        for group in self.price_groups:
            priority = int(group.get("priority", 0))
            for selector in group.get("selectors", []):
                candidates: list[PriceCandidate] = []
                for element in soup.select(selector):
                    parsed = self._parse_element(element, schema_currency)
                    if parsed is not None:
                        candidates.append(
                            PriceCandidate(parsed, priority, selector)
                        )
                if candidates:
                    logger.debug(
                        "Selector %r yielded %d price candidates",
                        selector,
                        len(candidates),
                    )
                    return find_most_likely_price(candidates)
        return None

    def find_name(self, soup: BeautifulSoup) -> str | None:
        for selector in self.name_selectors:
            element = soup.select_one(selector)
            if element is None:
                continue
            text = _collapse(element.get_text(" "))
            if text and len(text) < self.max_name_length:
                return text
        return None

    def find_image(
        self, soup: BeautifulSoup, page_url: str,
    ) -> str | None:
        for selector in self.image_selectors:
            element = soup.select_one(selector)
            if element is None:
                continue
            for attr in self.image_attributes:
                value = element.get(attr)
                if isinstance(value, str) and value.strip():
                    return resolve_url(value.strip(), page_url)
        return None

    def extract(
        self,
        soup: BeautifulSoup,
        page_url: str,
        fields: frozenset[str],
    ) -> dict[str, Any]:
        found: dict[str, Any] = {}
        if NAME in fields:
            found[NAME] = self.find_name(soup)
        if PRICE in fields:
            found[PRICE] = self.find_price(soup)
        if IMAGE in fields:
            found[IMAGE] = self.find_image(soup, page_url)
        return {k: v for k, v in found.items() if v}


# ── Meta tag fallback ────────────────────────────────────


class MetaTagStrategy(ExtractionStrategy):
    """Open Graph / Twitter card tags as a last resort."""

    name = "meta_tags"

    _TITLE_TAGS: list[tuple[str, str]] = [
        ("property", "og:title"),
        ("name", "twitter:title"),
    ]
    _IMAGE_TAGS: list[tuple[str, str]] = [
        ("property", "og:image"),
        ("property", "og:image:url"),
        ("name", "twitter:image"),
    ]
    _PRICE_TAGS: list[tuple[str, str]] = [
        ("product:price:amount", "product:price:currency"),
        ("og:price:amount", "og:price:currency"),
    ]

    def __init__(self, default_currency: str = "USD") -> None:
        self.default_currency = default_currency

    @staticmethod
    def _meta(soup: BeautifulSoup, attr: str, value: str) -> str | None:
        tag = soup.find("meta", attrs={attr: value})
        if tag is None:
            return None
        content = tag.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()
        return None

    def _price(self, soup: BeautifulSoup) -> ParsedPrice | None:
        for amount_tag, currency_tag in self._PRICE_TAGS:
            raw = self._meta(soup, "property", amount_tag)
            if raw is None:
                continue
            amount = plain_decimal(raw)
            if amount is None:
                parsed = parse_price(raw)
                amount = parsed.amount if parsed else None
            if amount is None or amount <= 0:
                continue
            currency = self._meta(soup, "property", currency_tag)
            return ParsedPrice(
                amount=amount,
                currency=(currency or self.default_currency).upper(),
            )
        return None

    def extract(
        self,
        soup: BeautifulSoup,
        page_url: str,
        fields: frozenset[str],
    ) -> dict[str, Any]:
        found: dict[str, Any] = {}
        if NAME in fields:
            for attr, value in self._TITLE_TAGS:
                title = self._meta(soup, attr, value)
                if title:
                    found[NAME] = _collapse(title)
                    break
        if IMAGE in fields:
            for attr, value in self._IMAGE_TAGS:
                image = self._meta(soup, attr, value)
                if image:
                    found[IMAGE] = resolve_url(image, page_url)
                    break
        if PRICE in fields:
            price = self._price(soup)
            if price is not None:
                found[PRICE] = price
        return found


def default_strategies(
    settings: Settings | None = None,
) -> list[ExtractionStrategy]:
    """Build the standard chain: JSON-LD, selectors, then meta tags."""
    cfg = settings or Settings()
    return [
        StructuredDataStrategy(default_currency=cfg.DEFAULT_CURRENCY),
        SelectorChainStrategy(
            selectors=load_selectors(cfg.SELECTORS_PATH),
            max_name_length=cfg.MAX_NAME_LENGTH,
            default_currency=cfg.DEFAULT_CURRENCY,
        ),
        MetaTagStrategy(default_currency=cfg.DEFAULT_CURRENCY),
    ]
