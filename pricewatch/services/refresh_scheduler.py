# pricewatch/services/refresh_scheduler.py

"""Recurring batch refresh of every tracked item that is due."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from pricewatch.config.settings import Settings
from pricewatch.models.product import TrackedItem
from pricewatch.scrapers.page_fetcher import FetchError
from pricewatch.services.price_refresher import (
    STATUS_CHANGED,
    STATUS_NO_PRICE,
    STATUS_UNCHANGED,
    PriceRefresher,
)
from pricewatch.storage.item_store import ItemStore, utcnow

logger = logging.getLogger("pricewatch.scheduler")


@dataclass
class BatchReport:
    """Container for the outcome of one scheduled tick."""

    started_at: datetime
    due: int = 0
    changed: int = 0
    unchanged: int = 0
    no_price: int = 0
    failed: int = 0
    aborted: bool = False
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )

    @property
    def processed(self) -> int:
        return self.changed + self.unchanged + self.no_price + self.failed


class RefreshScheduler:
    """Runs one batch per tick; overlapping ticks are skipped.

    Items in a batch are fetched strictly one after another with a
    pacing delay in between.  The blocking fetch and store calls run
    in worker threads so the event loop keeps firing ticks.
    """

    def __init__(
        self,
        store: ItemStore,
        refresher: PriceRefresher | None = None,
        tick_interval: float | None = None,
        pacing_delay: float | None = None,
    ) -> None:
        self.settings = Settings()
        self.store = store
        self.refresher = refresher or PriceRefresher(store)
        self.tick_interval = (
            tick_interval
            if tick_interval is not None
            else self.settings.TICK_INTERVAL
        )
        self.pacing_delay = (
            pacing_delay
            if pacing_delay is not None
            else self.settings.PACING_DELAY
        )
        self._guard = asyncio.Lock()
        self._stopped = asyncio.Event()
        self._tasks: set[asyncio.Task[BatchReport | None]] = set()

    @property
    def is_running(self) -> bool:
        """True while a batch holds the Running state."""
        return self._guard.locked()

    # ── Per-item processing ──────────────────────────────

    async def _process_item(
        self, item: TrackedItem, report: BatchReport,
    ) -> None:
        """Refresh one item; every failure stays inside this item."""
        try:
            logger.info(
                "Checking price for item %d: %s", item.id, item.url,
            )
            outcome = await asyncio.to_thread(
                self.refresher.refresh, item,
            )
            if outcome.status == STATUS_CHANGED:
                report.changed += 1
            elif outcome.status == STATUS_UNCHANGED:
                report.unchanged += 1
            elif outcome.status == STATUS_NO_PRICE:
                report.no_price += 1
        except FetchError as exc:
            report.failed += 1
            report.errors.append(str(exc))
            logger.warning(
                "Fetch failed for item %d: %s", item.id, exc,
            )
        except Exception as exc:
            report.failed += 1
            report.errors.append(f"item {item.id}: {exc}")
            logger.error(
                "Error checking item %d: %s",
                item.id,
                exc,
                exc_info=True,
            )

        # Advance even on failure so a broken page waits a full interval
        try:
            await asyncio.to_thread(
                self.store.mark_checked, item.id, utcnow(),
            )
        except Exception as exc:
            report.errors.append(f"item {item.id}: {exc}")
            logger.error(
                "Failed to mark item %d checked: %s",
                item.id,
                exc,
                exc_info=True,
            )

    # ── Batch ────────────────────────────────────────────

    async def tick(self) -> BatchReport | None:
        """Run one batch, or do nothing if a batch is already running.

        Returns the batch report, or ``None`` when skipped.
        """
        if self._guard.locked():
            logger.info("Price check already in progress, skipping")
            return None

        async with self._guard:
            report = BatchReport(started_at=utcnow())
            logger.info("Starting scheduled price check")
            try:
                items = await asyncio.to_thread(
                    self.store.list_due, report.started_at,
                )
            except Exception as exc:
                report.aborted = True
                report.errors.append(str(exc))
                logger.error(
                    "Could not select due items: %s", exc, exc_info=True,
                )
                return report

            report.due = len(items)
            logger.info("Found %d items to check", report.due)

            for item in items:
                await self._process_item(item, report)
                await asyncio.sleep(self.pacing_delay)

            logger.info(
                "Scheduled price check complete: %d changed, "
                "%d unchanged, %d without price, %d failed",
                report.changed,
                report.unchanged,
                report.no_price,
                report.failed,
            )
            return report

    # ── Timer ────────────────────────────────────────────

    def _fire(self) -> None:
        task = asyncio.create_task(self.tick())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run_forever(self) -> None:
        """Fire a tick every ``tick_interval`` seconds until stopped.

        Each tick runs as its own task, so a long batch never delays
        the timer; the guard turns the overlapping tick into a no-op.
        """
        logger.info(
            "Price check scheduler started (every %.0fs)",
            self.tick_interval,
        )
        self._stopped.clear()
        while not self._stopped.is_set():
            self._fire()
            try:
                await asyncio.wait_for(
                    self._stopped.wait(), timeout=self.tick_interval,
                )
            except asyncio.TimeoutError:
                continue

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Price check scheduler stopped")

    def stop(self) -> None:
        """Ask ``run_forever`` to return after the current batch."""
        self._stopped.set()
