# pricewatch/storage/item_store.py

"""SQLite-backed store for tracked items and their price readings."""

import logging
import re
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, cast
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from pricewatch.config.settings import Settings
from pricewatch.models.price_reading import PriceReading
from pricewatch.models.product import TrackedItem

logger = logging.getLogger("pricewatch.store")

# Campaign / session params that never change which product a URL shows
_TRACKING_PARAMS: frozenset[str] = frozenset({
    "ref", "ref_", "tag", "dib", "dib_tag", "qid", "sr", "spc",
    "sp_csd", "xpid", "aref", "sp_cr", "keywords",
    "pd_rd_i", "pd_rd_r", "pd_rd_w", "pd_rd_wg",
    "pf_rd_i", "pf_rd_m", "pf_rd_p", "pf_rd_r", "pf_rd_s", "pf_rd_t",
    "gclid", "fbclid", "msclkid", "mc_cid", "mc_eid",
})

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS tracked_items (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    url              TEXT    NOT NULL UNIQUE,
    name             TEXT,
    image_url        TEXT,
    refresh_interval INTEGER NOT NULL CHECK (refresh_interval > 0),
    last_checked     TEXT,
    created_at       TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS price_readings (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id     INTEGER NOT NULL
                REFERENCES tracked_items(id) ON DELETE CASCADE,
    amount      TEXT    NOT NULL,
    currency    TEXT    NOT NULL DEFAULT 'USD',
    captured_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_readings_item_date
    ON price_readings(item_id, captured_at);
"""

_ITEM_COLUMNS = (
    "id, url, name, image_url, refresh_interval, last_checked, created_at"
)
_READING_COLUMNS = "id, item_id, amount, currency, captured_at"


def utcnow() -> datetime:
    """Timezone-aware current time; every stored timestamp is UTC."""
    return datetime.now(timezone.utc)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_ts(value: str | None) -> datetime | None:
    return _to_utc(datetime.fromisoformat(value)) if value else None


def _format_ts(value: datetime) -> str:
    return _to_utc(value).isoformat(timespec="microseconds")


def normalize_url(raw_url: str) -> str:
    """Strip tracking query params so one product maps to one URL."""
    parsed = urlparse(raw_url.strip())

    # Strip Amazon path-based tracking (e.g. /ref=sr_1_243)
    path = re.sub(r"/ref=[^/]*", "", parsed.path)

    params = parse_qs(parsed.query, keep_blank_values=True)
    cleaned = {
        k: v for k, v in params.items()
        if k.lower() not in _TRACKING_PARAMS
        and not k.lower().startswith("utm_")
    }
    new_query = urlencode(cleaned, doseq=True) if cleaned else ""
    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        path,
        parsed.params,
        new_query,
        "",  # drop fragment
    ))


def _row_to_item(row: tuple[Any, ...]) -> TrackedItem:
    return TrackedItem(
        id=row[0],
        url=row[1],
        name=row[2],
        image_url=row[3],
        refresh_interval=row[4],
        last_checked=_parse_ts(row[5]),
        created_at=_parse_ts(row[6]),
    )


def _row_to_reading(row: tuple[Any, ...]) -> PriceReading:
    return PriceReading(
        id=row[0],
        item_id=row[1],
        amount=Decimal(row[2]),
        currency=row[3],
        captured_at=_to_utc(datetime.fromisoformat(row[4])),
    )


class ItemStore:
    """SQLite-backed store for tracked items and price readings.

    One connection is shared by the scheduler's worker threads and
    manual refreshes, so every operation runs under a lock.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.PRICE_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("ItemStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Tracked items ────────────────────────────────────

    def add_item(
        self,
        url: str,
        refresh_interval: int | None = None,
        name: str | None = None,
        image_url: str | None = None,
    ) -> TrackedItem:
        """Start tracking a product URL.

        Raises:
            ValueError: the interval is not positive, the URL is not
                http(s), or the URL is already tracked.
        """
        interval = (
            refresh_interval
            if refresh_interval is not None
            else Settings.DEFAULT_REFRESH_INTERVAL
        )
        if interval <= 0:
            raise ValueError(
                f"refresh interval must be positive, got {interval}"
            )
        normalized = normalize_url(url)
        if urlparse(normalized).scheme not in ("http", "https"):
            raise ValueError(f"not an http(s) URL: {url!r}")

        with self._lock:
            try:
                cur = self._conn.execute(
                    "INSERT INTO tracked_items "
                    "(url, name, image_url, refresh_interval, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        normalized,
                        name,
                        image_url,
                        interval,
                        _format_ts(utcnow()),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError(
                    f"already tracking {normalized}"
                ) from exc
            self._conn.commit()
            item_id = cur.lastrowid
        logger.info(
            "Tracking item %s: %s (every %ds)",
            item_id,
            normalized,
            interval,
        )
        return self.get_item(cast(int, item_id))

    def get_item(self, item_id: int) -> TrackedItem:
        """Return a tracked item.

        Raises:
            KeyError: no item has this id.
        """
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_ITEM_COLUMNS} FROM tracked_items WHERE id = ?",
                (item_id,),
            ).fetchone()
        if row is None:
            raise KeyError(item_id)
        return _row_to_item(row)

    def list_items(self) -> list[TrackedItem]:
        """Return every tracked item, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_ITEM_COLUMNS} FROM tracked_items ORDER BY id",
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def remove_item(self, item_id: int) -> bool:
        """Stop tracking an item and drop its readings."""
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM tracked_items WHERE id = ?", (item_id,),
            )
            self._conn.commit()
        return cur.rowcount > 0

    def update_details(
        self,
        item_id: int,
        name: str | None = None,
        image_url: str | None = None,
    ) -> None:
        """Fill in a missing display name / image; never overwrite."""
        with self._lock:
            self._conn.execute(
                "UPDATE tracked_items SET "
                "name = COALESCE(name, ?), "
                "image_url = COALESCE(image_url, ?) "
                "WHERE id = ?",
                (name, image_url, item_id),
            )
            self._conn.commit()

    def list_due(self, now: datetime | None = None) -> list[TrackedItem]:
        """Items never checked or whose refresh interval has elapsed."""
        current = _to_utc(now or utcnow())
        due = [
            item for item in self.list_items() if item.is_due(current)
        ]
        logger.debug("%d items due at %s", len(due), current.isoformat())
        return due

    def mark_checked(
        self, item_id: int, when: datetime | None = None,
    ) -> None:
        """Advance last-checked; an older timestamp is ignored."""
        ts = _to_utc(when or utcnow())
        with self._lock:
            row = self._conn.execute(
                "SELECT last_checked FROM tracked_items WHERE id = ?",
                (item_id,),
            ).fetchone()
            if row is None:
                raise KeyError(item_id)
            current = _parse_ts(row[0])
            if current is not None and current >= ts:
                return
            self._conn.execute(
                "UPDATE tracked_items SET last_checked = ? WHERE id = ?",
                (_format_ts(ts), item_id),
            )
            self._conn.commit()

    # ── Price readings ───────────────────────────────────

    def latest_reading(self, item_id: int) -> PriceReading | None:
        """Most recent reading for an item, if any."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_READING_COLUMNS} FROM price_readings "
                "WHERE item_id = ? "
                "ORDER BY captured_at DESC, id DESC LIMIT 1",
                (item_id,),
            ).fetchone()
        return _row_to_reading(row) if row else None

    def append_reading(
        self,
        item_id: int,
        amount: Decimal,
        currency: str = "USD",
        captured_at: datetime | None = None,
    ) -> PriceReading:
        """Append an immutable reading.

        The timestamp is clamped so it never precedes the item's
        previous reading.

        Raises:
            ValueError: the amount is negative.
        """
        if amount < 0:
            raise ValueError(f"negative price amount: {amount}")
        ts = _to_utc(captured_at or utcnow())
        previous = self.latest_reading(item_id)
        if previous is not None and previous.captured_at > ts:
            ts = previous.captured_at

        with self._lock:
            cur = self._conn.execute(
                "INSERT INTO price_readings "
                "(item_id, amount, currency, captured_at) "
                "VALUES (?, ?, ?, ?)",
                (item_id, str(amount), currency, _format_ts(ts)),
            )
            self._conn.commit()
            reading_id = cur.lastrowid
        return PriceReading(
            id=reading_id,
            item_id=item_id,
            amount=Decimal(str(amount)),
            currency=currency,
            captured_at=ts,
        )

    def get_history(
        self, item_id: int, days: int | None = None,
    ) -> list[PriceReading]:
        """Readings for an item, oldest first, optionally recent only."""
        query = (
            f"SELECT {_READING_COLUMNS} FROM price_readings "
            "WHERE item_id = ?"
        )
        params: list[object] = [item_id]
        if days:
            query += " AND captured_at >= ?"
            params.append(_format_ts(utcnow() - timedelta(days=days)))
        query += " ORDER BY captured_at ASC, id ASC"

        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_reading(r) for r in rows]

    def get_stats(self, item_id: int) -> dict[str, object] | None:
        """Compute min / max / avg / count / latest for an item."""
        history = self.get_history(item_id)
        if not history:
            return None
        amounts = [r.amount for r in history]
        return {
            "min": min(amounts),
            "max": max(amounts),
            "avg": round(sum(amounts) / len(amounts), 2),
            "count": len(amounts),
            "latest": history[-1].amount,
            "currency": history[-1].currency,
        }
