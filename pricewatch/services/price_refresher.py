# pricewatch/services/price_refresher.py

"""Extract-and-record for a single tracked item."""

import logging
from dataclasses import dataclass

from pricewatch.models.price_reading import PriceChange
from pricewatch.models.product import ExtractionResult, TrackedItem
from pricewatch.scrapers.product_extractor import ProductExtractor
from pricewatch.services.change_recorder import ChangeRecorder
from pricewatch.storage.item_store import ItemStore

logger = logging.getLogger("pricewatch.refresher")

STATUS_CHANGED = "changed"
STATUS_UNCHANGED = "unchanged"
STATUS_NO_PRICE = "no_price"


class PriceNotFoundError(Exception):
    """A manual refresh fetched the page but found no price on it."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Could not extract price from URL: {url}")
        self.url = url


@dataclass
class RefreshOutcome:
    """What one refresh of one item produced."""

    item_id: int
    status: str
    extraction: ExtractionResult
    change: PriceChange | None = None


class PriceRefresher:
    """Shared by the scheduled batch and the manual "refresh now"."""

    def __init__(
        self,
        store: ItemStore,
        extractor: ProductExtractor | None = None,
        recorder: ChangeRecorder | None = None,
    ) -> None:
        self.store = store
        self.extractor = extractor or ProductExtractor()
        self.recorder = recorder or ChangeRecorder(store)

    def refresh(self, item: TrackedItem) -> RefreshOutcome:
        """Extract the item's page and record a changed price.

        Does not touch last-checked; callers decide when that moves.

        Raises:
            FetchError: the page could not be retrieved.
        """
        extraction = self.extractor.extract(item.url)

        if (
            (item.name is None and extraction.name)
            or (item.image_url is None and extraction.image_url)
        ):
            self.store.update_details(
                item.id, extraction.name, extraction.image_url,
            )

        if extraction.price is None:
            logger.warning(
                "Could not extract price for item %d: %s",
                item.id,
                item.url,
            )
            return RefreshOutcome(item.id, STATUS_NO_PRICE, extraction)

        change = self.recorder.record(item.id, extraction.price)
        status = STATUS_CHANGED if change else STATUS_UNCHANGED
        return RefreshOutcome(item.id, status, extraction, change)

    def refresh_now(self, item_id: int) -> RefreshOutcome:
        """Manual trigger: refresh one item regardless of its schedule.

        Raises:
            KeyError: unknown item id.
            FetchError: the page could not be retrieved.
            PriceNotFoundError: the page had no extractable price.
        """
        item = self.store.get_item(item_id)
        logger.info("Manual refresh of item %d: %s", item.id, item.url)
        outcome = self.refresh(item)
        if outcome.status == STATUS_NO_PRICE:
            raise PriceNotFoundError(item.url)
        self.store.mark_checked(item.id)
        return outcome
