# pricewatch/scrapers/product_extractor.py

"""Best-effort product snapshot extraction from arbitrary product pages."""

import logging
from typing import Any

from bs4 import BeautifulSoup

from pricewatch.config.settings import Settings
from pricewatch.models.product import ExtractionResult
from pricewatch.scrapers.page_fetcher import PageFetcher
from pricewatch.scrapers.strategies import (
    ALL_FIELDS,
    IMAGE,
    NAME,
    PRICE,
    ExtractionStrategy,
    default_strategies,
)


class ProductExtractor:
    """Fetch a page and run the strategy chain over it, field by field."""

    def __init__(
        self,
        fetcher: PageFetcher | None = None,
        strategies: list[ExtractionStrategy] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.logger = logging.getLogger("pricewatch.extractor")
        self.settings = settings or Settings()
        self.fetcher = fetcher or PageFetcher(self.settings)
        self.strategies = (
            strategies
            if strategies is not None
            else default_strategies(self.settings)
        )

    def parse(self, html: str, url: str) -> ExtractionResult:
        """Extract name, price and image from already-fetched markup."""
        soup = BeautifulSoup(html, "lxml")
        found: dict[str, Any] = {}

        for strategy in self.strategies:
            missing = frozenset(f for f in ALL_FIELDS if f not in found)
            if not missing:
                break
            values = strategy.extract(soup, url, missing)
            for field_name, value in values.items():
                if field_name in missing and value:
                    found[field_name] = value
                    self.logger.debug(
                        "%s for %s found by %s",
                        field_name,
                        url,
                        strategy.name,
                    )

        result = ExtractionResult(
            url=url,
            name=found.get(NAME),
            price=found.get(PRICE),
            image_url=found.get(IMAGE),
        )
        if result.price is None:
            self.logger.info("No price found on %s", url)
        return result

    def extract(self, url: str) -> ExtractionResult:
        """Fetch *url* and extract a product snapshot.

        A page that loads but yields nothing still returns a result
        with empty fields; only a failed fetch raises.

        Raises:
            FetchError: the page could not be retrieved.
        """
        self.logger.info("Extracting %s", url)
        html = self.fetcher.fetch(url)
        return self.parse(html, url)
