# tests/test_item_store.py

"""Tests for the SQLite item and price reading store."""

import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from pricewatch.storage.item_store import ItemStore, normalize_url, utcnow


class TestNormalizeUrl(unittest.TestCase):
    """Tests for URL normalization logic."""

    def test_strips_tracking_params(self) -> None:
        """Amazon tracking params should be removed."""
        raw = (
            "https://www.amazon.ae/Product/dp/B08ZW875PR"
            "/ref=sr_1_243?dib=abc&qid=123&sr=8-5&keywords=x"
        )
        result = normalize_url(raw)
        self.assertIn("/dp/B08ZW875PR", result)
        self.assertNotIn("ref=", result)
        self.assertNotIn("dib=", result)
        self.assertNotIn("qid=", result)
        self.assertNotIn("keywords=", result)

    def test_strips_utm_and_click_ids(self) -> None:
        """Campaign parameters do not identify a product."""
        raw = (
            "https://shop.example.com/p/1"
            "?utm_source=mail&utm_campaign=spring&gclid=xyz&color=red"
        )
        self.assertEqual(
            normalize_url(raw), "https://shop.example.com/p/1?color=red",
        )

    def test_preserves_product_path(self) -> None:
        """The core product path should survive normalization."""
        url = "https://www.amazon.ae/Product-Name/dp/B001234"
        self.assertEqual(normalize_url(url), url)

    def test_strips_fragment(self) -> None:
        """URL fragments should be dropped."""
        url = "https://example.com/product#section"
        self.assertNotIn("#", normalize_url(url))


class _StoreTestCase(unittest.TestCase):
    """Fresh on-disk store per test."""

    def setUp(self) -> None:
        """Create a temp DB for each test."""
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.store = ItemStore(db_path=Path(self.tmp_dir.name) / "t.db")

    def tearDown(self) -> None:
        """Close the database and remove the directory."""
        self.store.close()
        self.tmp_dir.cleanup()


class TestTrackedItems(_StoreTestCase):
    """Adding, listing and removing tracked items."""

    def test_add_item_defaults(self) -> None:
        """A new item has the default interval and no check yet."""
        item = self.store.add_item("https://shop.example.com/p/1")

        self.assertEqual(item.url, "https://shop.example.com/p/1")
        self.assertEqual(item.refresh_interval, 3600)
        self.assertIsNone(item.last_checked)
        self.assertIsNone(item.name)
        self.assertIsNotNone(item.created_at)

    def test_add_item_normalizes_url(self) -> None:
        """The stored URL has tracking params removed."""
        item = self.store.add_item(
            "https://shop.example.com/p/1?utm_source=x", 600,
        )
        self.assertEqual(item.url, "https://shop.example.com/p/1")
        self.assertEqual(item.refresh_interval, 600)

    def test_add_item_returns_stored_row(self) -> None:
        """The returned item is the row as read back by id."""
        first = self.store.add_item("https://shop.example.com/p/1")
        second = self.store.add_item(
            "https://shop.example.com/p/2", name="Kettle",
        )

        self.assertNotEqual(first.id, second.id)
        self.assertEqual(second, self.store.get_item(second.id))
        self.assertEqual(second.name, "Kettle")

    def test_rejects_non_positive_interval(self) -> None:
        """Zero and negative intervals are invalid."""
        for interval in (0, -60):
            with self.subTest(interval=interval):
                with self.assertRaises(ValueError):
                    self.store.add_item(
                        "https://shop.example.com/p/1", interval,
                    )
        self.assertEqual(self.store.list_items(), [])

    def test_rejects_non_http_url(self) -> None:
        """Only http and https URLs can be tracked."""
        for url in ("ftp://files.example.com/x", "not a url"):
            with self.subTest(url=url):
                with self.assertRaises(ValueError):
                    self.store.add_item(url)

    def test_rejects_duplicate_url(self) -> None:
        """The same product page is only tracked once."""
        self.store.add_item("https://shop.example.com/p/1")
        with self.assertRaises(ValueError):
            self.store.add_item("https://shop.example.com/p/1#reviews")

    def test_get_unknown_item_raises(self) -> None:
        """Unknown ids raise KeyError."""
        with self.assertRaises(KeyError):
            self.store.get_item(999)

    def test_list_items_in_insertion_order(self) -> None:
        """Items come back oldest first."""
        a = self.store.add_item("https://a.example.com/p")
        b = self.store.add_item("https://b.example.com/p")
        self.assertEqual(
            [i.id for i in self.store.list_items()], [a.id, b.id],
        )

    def test_remove_item_cascades_readings(self) -> None:
        """Removing an item drops its history too."""
        item = self.store.add_item("https://shop.example.com/p/1")
        self.store.append_reading(item.id, Decimal("10.00"))

        self.assertTrue(self.store.remove_item(item.id))
        self.assertFalse(self.store.remove_item(item.id))
        self.assertEqual(self.store.get_history(item.id), [])

    def test_update_details_fills_only_missing(self) -> None:
        """Name and image are set once and never overwritten."""
        item = self.store.add_item("https://shop.example.com/p/1")
        self.store.update_details(item.id, name="Widget")
        self.store.update_details(
            item.id,
            name="Widget (Renamed)",
            image_url="https://shop.example.com/w.jpg",
        )

        updated = self.store.get_item(item.id)
        self.assertEqual(updated.name, "Widget")
        self.assertEqual(updated.image_url, "https://shop.example.com/w.jpg")


class TestDueSelection(_StoreTestCase):
    """Which items are due for a refresh."""

    def test_never_checked_is_due(self) -> None:
        """A fresh item is due immediately."""
        item = self.store.add_item("https://shop.example.com/p/1", 60)
        self.assertEqual([i.id for i in self.store.list_due()], [item.id])

    def test_due_after_interval_elapses(self) -> None:
        """Due exactly when the interval has elapsed, not before."""
        item = self.store.add_item("https://shop.example.com/p/1", 60)
        checked = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        self.store.mark_checked(item.id, checked)

        self.assertEqual(
            self.store.list_due(checked + timedelta(seconds=59)), [],
        )
        self.assertEqual(
            len(self.store.list_due(checked + timedelta(seconds=60))), 1,
        )

    def test_mark_checked_is_monotonic(self) -> None:
        """An older timestamp never moves last-checked backwards."""
        item = self.store.add_item("https://shop.example.com/p/1")
        later = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        self.store.mark_checked(item.id, later)
        self.store.mark_checked(item.id, later - timedelta(hours=1))

        self.assertEqual(self.store.get_item(item.id).last_checked, later)

    def test_mark_checked_unknown_item(self) -> None:
        """Unknown ids raise KeyError."""
        with self.assertRaises(KeyError):
            self.store.mark_checked(999)

    def test_naive_timestamps_are_utc(self) -> None:
        """Naive datetimes are stored as UTC."""
        item = self.store.add_item("https://shop.example.com/p/1")
        self.store.mark_checked(item.id, datetime(2024, 5, 1, 12, 0))

        last = self.store.get_item(item.id).last_checked
        self.assertEqual(
            last, datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        )


class TestPriceReadings(_StoreTestCase):
    """Appending and querying price readings."""

    def setUp(self) -> None:
        """Add one tracked item to record against."""
        super().setUp()
        self.item = self.store.add_item("https://shop.example.com/p/1")

    def test_append_and_latest(self) -> None:
        """The most recent reading comes back exactly."""
        self.store.append_reading(self.item.id, Decimal("19.99"), "EUR")
        self.store.append_reading(self.item.id, Decimal("17.49"), "EUR")

        latest = self.store.latest_reading(self.item.id)
        assert latest is not None
        self.assertEqual(latest.amount, Decimal("17.49"))
        self.assertEqual(latest.currency, "EUR")

    def test_latest_without_readings(self) -> None:
        """No readings, no latest."""
        self.assertIsNone(self.store.latest_reading(self.item.id))

    def test_rejects_negative_amount(self) -> None:
        """Prices are never negative."""
        with self.assertRaises(ValueError):
            self.store.append_reading(self.item.id, Decimal("-1"))

    def test_timestamps_never_go_backwards(self) -> None:
        """A reading older than the previous one is clamped."""
        first = self.store.append_reading(self.item.id, Decimal("10"))
        second = self.store.append_reading(
            self.item.id,
            Decimal("11"),
            captured_at=first.captured_at - timedelta(days=1),
        )
        self.assertEqual(second.captured_at, first.captured_at)

        history = self.store.get_history(self.item.id)
        self.assertEqual(
            [r.amount for r in history], [Decimal("10"), Decimal("11")],
        )

    def test_history_oldest_first_and_day_filter(self) -> None:
        """Only readings within the window are returned, in order."""
        now = utcnow()
        self.store.append_reading(
            self.item.id, Decimal("30"), captured_at=now - timedelta(days=10),
        )
        self.store.append_reading(
            self.item.id, Decimal("25"), captured_at=now - timedelta(days=2),
        )
        self.store.append_reading(
            self.item.id, Decimal("20"), captured_at=now,
        )

        full = self.store.get_history(self.item.id)
        recent = self.store.get_history(self.item.id, days=7)
        self.assertEqual(
            [r.amount for r in full],
            [Decimal("30"), Decimal("25"), Decimal("20")],
        )
        self.assertEqual(
            [r.amount for r in recent], [Decimal("25"), Decimal("20")],
        )

    def test_amounts_keep_exact_decimals(self) -> None:
        """Amounts survive storage without float rounding."""
        self.store.append_reading(self.item.id, Decimal("0.10"))
        latest = self.store.latest_reading(self.item.id)
        assert latest is not None
        self.assertEqual(str(latest.amount), "0.10")

    def test_stats(self) -> None:
        """Min, max, average and latest across the history."""
        for amount in ("10.00", "20.00", "15.00"):
            self.store.append_reading(self.item.id, Decimal(amount))

        stats = self.store.get_stats(self.item.id)
        assert stats is not None
        self.assertEqual(stats["min"], Decimal("10.00"))
        self.assertEqual(stats["max"], Decimal("20.00"))
        self.assertEqual(stats["avg"], Decimal("15.00"))
        self.assertEqual(stats["count"], 3)
        self.assertEqual(stats["latest"], Decimal("15.00"))
        self.assertEqual(stats["currency"], "USD")

    def test_stats_without_history(self) -> None:
        """No readings, no stats."""
        self.assertIsNone(self.store.get_stats(self.item.id))


if __name__ == "__main__":
    unittest.main()
