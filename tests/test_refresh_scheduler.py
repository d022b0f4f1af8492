# tests/test_refresh_scheduler.py

"""Tests for the recurring batch refresh scheduler."""

import asyncio
import sqlite3
import tempfile
import threading
import unittest
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, call, patch

from pricewatch.models.parsed_price import ParsedPrice
from pricewatch.models.product import ExtractionResult, TrackedItem
from pricewatch.scrapers.page_fetcher import FetchError
from pricewatch.services.price_refresher import (
    STATUS_UNCHANGED,
    PriceRefresher,
    RefreshOutcome,
)
from pricewatch.services.refresh_scheduler import RefreshScheduler
from pricewatch.storage.item_store import ItemStore, utcnow

UTCNOW_PATH = "pricewatch.services.refresh_scheduler.utcnow"


def _result(url: str, amount: str = "19.99") -> ExtractionResult:
    """Extraction result carrying a EUR price."""
    return ExtractionResult(
        url=url, name="Widget", price=ParsedPrice(Decimal(amount), "EUR"),
    )


class _StoreBackedTestCase(unittest.IsolatedAsyncioTestCase):
    """Real store, mocked extractor, no pacing."""

    def setUp(self) -> None:
        """Create the store and scheduler."""
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.store = ItemStore(db_path=Path(self.tmp_dir.name) / "t.db")
        self.extractor = MagicMock()
        self.scheduler = RefreshScheduler(
            self.store,
            PriceRefresher(self.store, extractor=self.extractor),
            tick_interval=60,
            pacing_delay=0,
        )

    def tearDown(self) -> None:
        """Close the database."""
        self.store.close()
        self.tmp_dir.cleanup()


class TestTick(_StoreBackedTestCase):
    """A single batch over the due items."""

    async def test_records_and_marks_checked(self) -> None:
        """A due item gets a reading and a last-checked time."""
        item = self.store.add_item("https://shop.example.com/p/1")
        self.extractor.extract.side_effect = _result

        report = await self.scheduler.tick()

        assert report is not None
        self.assertEqual(report.due, 1)
        self.assertEqual(report.changed, 1)
        self.assertFalse(report.aborted)
        self.assertEqual(len(self.store.get_history(item.id)), 1)
        self.assertIsNotNone(self.store.get_item(item.id).last_checked)

    async def test_second_tick_finds_nothing_due(self) -> None:
        """Right after a batch nothing is due again."""
        self.store.add_item("https://shop.example.com/p/1")
        self.extractor.extract.side_effect = _result

        await self.scheduler.tick()
        report = await self.scheduler.tick()

        assert report is not None
        self.assertEqual(report.due, 0)
        self.assertEqual(self.extractor.extract.call_count, 1)

    async def test_same_price_twice_is_one_reading(self) -> None:
        """Re-checking an unchanged page appends nothing."""
        item = self.store.add_item("https://shop.example.com/p/1", 3600)
        self.extractor.extract.side_effect = _result

        await self.scheduler.tick()
        with patch(UTCNOW_PATH, return_value=utcnow() + timedelta(hours=2)):
            report = await self.scheduler.tick()

        assert report is not None
        self.assertEqual(report.due, 1)
        self.assertEqual(report.unchanged, 1)
        self.assertEqual(len(self.store.get_history(item.id)), 1)

    async def test_items_processed_in_order(self) -> None:
        """Items are fetched one after another, oldest first."""
        urls = [f"https://shop.example.com/p/{n}" for n in range(3)]
        for url in urls:
            self.store.add_item(url)
        self.extractor.extract.side_effect = _result

        await self.scheduler.tick()

        self.assertEqual(
            [c.args[0] for c in self.extractor.extract.call_args_list],
            urls,
        )

    async def test_failures_are_isolated(self) -> None:
        """One broken page never stops the rest of the batch."""
        ok_a = self.store.add_item("https://a.example.com/p")
        down = self.store.add_item("https://down.example.com/p")
        broken = self.store.add_item("https://broken.example.com/p")
        ok_b = self.store.add_item("https://b.example.com/p")

        def fake_extract(url: str) -> ExtractionResult:
            if "down" in url:
                raise FetchError(url, "timed out")
            if "broken" in url:
                raise RuntimeError("parser exploded")
            return _result(url)

        self.extractor.extract.side_effect = fake_extract

        report = await self.scheduler.tick()

        assert report is not None
        self.assertEqual(report.due, 4)
        self.assertEqual(report.changed, 2)
        self.assertEqual(report.failed, 2)
        self.assertEqual(report.processed, 4)
        self.assertEqual(len(report.errors), 2)
        for item in (ok_a, ok_b):
            self.assertEqual(len(self.store.get_history(item.id)), 1)
        for item in (ok_a, down, broken, ok_b):
            self.assertIsNotNone(
                self.store.get_item(item.id).last_checked,
            )

    async def test_pacing_sleep_after_every_item(self) -> None:
        """The pacing delay is awaited once per item, failed or not."""
        self.scheduler.pacing_delay = 2.5
        self.store.add_item("https://down.example.com/p")
        self.store.add_item("https://shop.example.com/p/1")

        def fake_extract(url: str) -> ExtractionResult:
            if "down" in url:
                raise FetchError(url, "timed out")
            return _result(url)

        self.extractor.extract.side_effect = fake_extract

        with patch(
            "pricewatch.services.refresh_scheduler.asyncio.sleep",
            new_callable=AsyncMock,
        ) as mock_sleep:
            report = await self.scheduler.tick()

        assert report is not None
        self.assertEqual(report.failed, 1)
        self.assertEqual(report.changed, 1)
        self.assertEqual(mock_sleep.await_args_list, [call(2.5), call(2.5)])

    async def test_no_price_is_counted(self) -> None:
        """A page without a price is neither a change nor a failure."""
        self.store.add_item("https://shop.example.com/p/1")
        self.extractor.extract.return_value = ExtractionResult(
            url="https://shop.example.com/p/1",
        )

        report = await self.scheduler.tick()

        assert report is not None
        self.assertEqual(report.no_price, 1)
        self.assertEqual(report.failed, 0)


class TestGuard(unittest.IsolatedAsyncioTestCase):
    """Overlapping ticks and selection failures."""

    def _item(self) -> TrackedItem:
        """A minimal due item."""
        return TrackedItem(
            id=1, url="https://shop.example.com/p/1", refresh_interval=60,
        )

    async def test_overlapping_tick_is_a_no_op(self) -> None:
        """A tick while a batch runs touches nothing and returns None."""
        item = self._item()
        store = MagicMock()
        store.list_due.return_value = [item]
        started = threading.Event()
        release = threading.Event()

        def slow_refresh(target: TrackedItem) -> RefreshOutcome:
            started.set()
            release.wait(5)
            return RefreshOutcome(
                target.id, STATUS_UNCHANGED, _result(target.url),
            )

        refresher = MagicMock()
        refresher.refresh.side_effect = slow_refresh
        scheduler = RefreshScheduler(
            store, refresher, tick_interval=60, pacing_delay=0,
        )

        first = asyncio.create_task(scheduler.tick())
        await asyncio.to_thread(started.wait, 5)
        self.assertTrue(scheduler.is_running)
        store.reset_mock()

        skipped = await scheduler.tick()

        self.assertIsNone(skipped)
        self.assertEqual(store.method_calls, [])
        self.assertEqual(refresher.refresh.call_count, 1)

        release.set()
        report = await first
        assert report is not None
        self.assertEqual(report.unchanged, 1)
        self.assertFalse(scheduler.is_running)

    async def test_selection_failure_aborts_batch(self) -> None:
        """If due items cannot be listed, nothing is processed."""
        store = MagicMock()
        store.list_due.side_effect = sqlite3.OperationalError("locked")
        refresher = MagicMock()
        scheduler = RefreshScheduler(
            store, refresher, tick_interval=60, pacing_delay=0,
        )

        report = await scheduler.tick()

        assert report is not None
        self.assertTrue(report.aborted)
        self.assertEqual(report.processed, 0)
        refresher.refresh.assert_not_called()
        store.mark_checked.assert_not_called()
        self.assertFalse(scheduler.is_running)

    async def test_mark_checked_failure_is_contained(self) -> None:
        """A store error after refreshing does not end the batch."""
        store = MagicMock()
        store.list_due.return_value = [self._item(), self._item()]
        store.mark_checked.side_effect = sqlite3.OperationalError("locked")
        refresher = MagicMock()
        refresher.refresh.return_value = RefreshOutcome(
            1, STATUS_UNCHANGED, _result("https://shop.example.com/p/1"),
        )
        scheduler = RefreshScheduler(
            store, refresher, tick_interval=60, pacing_delay=0,
        )

        report = await scheduler.tick()

        assert report is not None
        self.assertEqual(report.unchanged, 2)
        self.assertEqual(store.mark_checked.call_count, 2)
        self.assertEqual(len(report.errors), 2)


class TestRunForever(unittest.IsolatedAsyncioTestCase):
    """The recurring timer."""

    async def test_fires_repeatedly_until_stopped(self) -> None:
        """Ticks keep firing on the interval until stop()."""
        store = MagicMock()
        store.list_due.return_value = []
        scheduler = RefreshScheduler(
            store, MagicMock(), tick_interval=0.01, pacing_delay=0,
        )

        runner = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.1)
        scheduler.stop()
        await asyncio.wait_for(runner, timeout=2)

        self.assertGreaterEqual(store.list_due.call_count, 2)
        self.assertTrue(runner.done())

    async def test_stop_before_first_interval(self) -> None:
        """Stopping right away still runs the immediate first tick."""
        store = MagicMock()
        store.list_due.return_value = []
        scheduler = RefreshScheduler(
            store, MagicMock(), tick_interval=3600, pacing_delay=0,
        )

        runner = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.05)
        scheduler.stop()
        await asyncio.wait_for(runner, timeout=2)

        store.list_due.assert_called_once()


if __name__ == "__main__":
    unittest.main()
