# pricewatch/services/change_recorder.py

"""Persist a price reading only when it differs from the last one."""

import logging
from collections.abc import Callable

from pricewatch.models.parsed_price import ParsedPrice
from pricewatch.models.price_reading import PriceChange
from pricewatch.storage.item_store import ItemStore

logger = logging.getLogger("pricewatch.recorder")

ChangeCallback = Callable[[PriceChange], None]


class ChangeRecorder:
    """Duplicate-suppressing writer for price readings.

    ``on_change`` receives every persisted change together with its
    predecessor, which is all a drop notifier needs.
    """

    def __init__(
        self,
        store: ItemStore,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self._store = store
        self._on_change = on_change

    def record(
        self, item_id: int, price: ParsedPrice,
    ) -> PriceChange | None:
        """Append *price* unless it equals the latest reading.

        Returns the change, or ``None`` for a duplicate.
        """
        previous = self._store.latest_reading(item_id)
        if previous is not None and previous.price == price:
            logger.info("Price unchanged for item %d: %s", item_id, price)
            return None

        reading = self._store.append_reading(
            item_id, price.amount, price.currency,
        )
        change = PriceChange(reading=reading, previous=previous)
        if change.is_first:
            logger.info(
                "First price for item %d: %s", item_id, price,
            )
        elif change.is_drop:
            logger.info(
                "Price drop for item %d: %s -> %s",
                item_id,
                previous.price if previous else "-",
                price,
            )
        else:
            logger.info(
                "Recorded new price for item %d: %s", item_id, price,
            )

        if self._on_change is not None:
            try:
                self._on_change(change)
            except Exception as exc:
                logger.error(
                    "Change callback failed for item %d: %s",
                    item_id,
                    exc,
                    exc_info=True,
                )
        return change
