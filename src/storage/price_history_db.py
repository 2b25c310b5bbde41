# src/storage/price_history_db.py

"""SQLite-backed price history store with daily dedup and retention."""

import logging
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

from src.config.settings import Settings
from src.filters.url_normalizer import normalize_item_id
from src.models.errors import InvalidPriceError, StorageError
from src.models.price_record import (
    PriceRecord,
    PriceStats,
    RecordOutcome,
    as_price,
)
from src.storage.database import (
    SQLiteDatabase,
    format_ts,
    parse_ts,
    to_utc,
)
from src.storage.keyed_locks import KeyedLocks

logger = logging.getLogger("price_tracker.price_history")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS items (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id    TEXT    NOT NULL UNIQUE,
    first_seen TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS price_records (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    item_ref    INTEGER NOT NULL
                REFERENCES items(id) ON DELETE CASCADE,
    title       TEXT    NOT NULL,
    price       TEXT    NOT NULL,
    currency    TEXT    NOT NULL,
    observed_at TEXT    NOT NULL,
    day         TEXT    NOT NULL,
    UNIQUE (item_ref, day)
);

CREATE INDEX IF NOT EXISTS idx_records_item_date
    ON price_records(item_ref, observed_at);
"""

_SERIES_QUERY = (
    "SELECT r.title, r.price, r.currency, r.observed_at "
    "FROM price_records r "
    "JOIN items i ON i.id = r.item_ref "
    "WHERE i.item_id = ? "
    "ORDER BY r.observed_at ASC, r.id ASC"
)

_CENTS = Decimal("0.01")


def _row_to_record(row: tuple[str, str, str, str]) -> PriceRecord:
    return PriceRecord(
        title=row[0],
        price=Decimal(row[1]),
        currency=row[2],
        observed_at=parse_ts(row[3]),
    )


class PriceHistoryDB:
    """Per-item time series of price observations.

    At most one observation is kept per item per calendar day, the day
    being taken in a fixed reference time zone that is pinned in the
    database on first use.  Observations older than the retention window
    are pruned on the write path.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        retention_days: int | None = None,
        timezone: str | None = None,
    ) -> None:
        path = db_path or Settings.DB_PATH
        self._db = SQLiteDatabase(path, _SCHEMA)
        self._locks = KeyedLocks()
        self._retention = timedelta(
            days=(
                Settings.RETENTION_DAYS
                if retention_days is None
                else retention_days
            )
        )
        zone_name = timezone or Settings.TIMEZONE
        self._tz = ZoneInfo(zone_name)
        self._pin_timezone(zone_name)
        logger.debug(
            "PriceHistoryDB opened at %s (retention=%s, tz=%s)",
            path,
            self._retention,
            zone_name,
        )

    def _pin_timezone(self, zone_name: str) -> None:
        """Record the day-boundary zone, refusing to reopen with another."""
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO meta (key, value) "
                "VALUES ('timezone', ?)",
                (zone_name,),
            )
            stored: str = conn.execute(
                "SELECT value FROM meta WHERE key = 'timezone'",
            ).fetchone()[0]
        if stored != zone_name:
            raise StorageError(
                f"Price history at {self._db.path} uses day boundaries "
                f"in {stored!r}, refusing to open with {zone_name!r}"
            )

    def day_of(self, moment: datetime) -> str:
        """Calendar day of *moment* in the reference zone (ISO date)."""
        return to_utc(moment).astimezone(self._tz).date().isoformat()

    # ── Recording ────────────────────────────────────────

    def record(
        self,
        item_id: str,
        title: str,
        price: Decimal | float | str,
        currency: str,
        now: datetime | None = None,
    ) -> RecordOutcome:
        """Append today's observation for *item_id* unless one exists.

        The first observation of a day wins; later ones the same day are
        discarded.  Every call, deduped or not, first prunes the item's
        observations older than the retention window in the same
        transaction.
        """
        amount = as_price(price)
        if amount <= 0:
            raise InvalidPriceError(
                f"Price must be positive, got {amount} for {item_id}"
            )
        key = normalize_item_id(item_id)
        observed = to_utc(now or datetime.now(UTC))
        day = self.day_of(observed)
        cutoff = format_ts(observed - self._retention)

        with self._locks.hold(key), self._db.transaction() as conn:
            row = conn.execute(
                "SELECT id FROM items WHERE item_id = ?", (key,),
            ).fetchone()
            if row is None:
                cur = conn.execute(
                    "INSERT INTO items (item_id, first_seen) "
                    "VALUES (?, ?)",
                    (key, format_ts(observed)),
                )
                item_ref = cur.lastrowid
            else:
                item_ref = row[0]

            # The cutoff is always before today's record
            pruned = conn.execute(
                "DELETE FROM price_records "
                "WHERE item_ref = ? AND observed_at < ?",
                (item_ref, cutoff),
            ).rowcount
            existing = conn.execute(
                "SELECT 1 FROM price_records "
                "WHERE item_ref = ? AND day = ?",
                (item_ref, day),
            ).fetchone()
            if existing is None:
                conn.execute(
                    "INSERT INTO price_records "
                    "(item_ref, title, price, currency, observed_at, day) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        item_ref,
                        title,
                        str(amount),
                        currency,
                        format_ts(observed),
                        day,
                    ),
                )

        if pruned:
            logger.debug(
                "Pruned %d expired records for %s", pruned, key,
            )
        if existing is not None:
            logger.debug("Deduped %s for %s on %s", amount, key, day)
            return RecordOutcome.DEDUPED
        logger.info(
            "Recorded %s %s for %s on %s", amount, currency, key, day,
        )
        return RecordOutcome.RECORDED

    # ── Querying ─────────────────────────────────────────

    def history(self, item_id: str) -> list[PriceRecord]:
        """Return the retained series for an item, oldest first."""
        key = normalize_item_id(item_id)
        with self._db.transaction(write=False) as conn:
            rows = conn.execute(_SERIES_QUERY, (key,)).fetchall()
        return [_row_to_record(r) for r in rows]

    def stats(self, item_id: str) -> PriceStats | None:
        """Low / high / average / count / latest, or None if unknown."""
        series = self.history(item_id)
        if not series:
            return None
        prices = [r.price for r in series]
        average = (sum(prices, Decimal(0)) / len(prices)).quantize(
            _CENTS, rounding=ROUND_HALF_UP,
        )
        return PriceStats(
            low=min(prices),
            high=max(prices),
            average=average,
            count=len(series),
            latest=series[-1],
        )

    def latest_two(
        self, item_id: str,
    ) -> tuple[PriceRecord, PriceRecord] | None:
        """The two chronologically last records, or None if fewer exist."""
        key = normalize_item_id(item_id)
        with self._db.transaction(write=False) as conn:
            rows = conn.execute(
                "SELECT r.title, r.price, r.currency, r.observed_at "
                "FROM price_records r "
                "JOIN items i ON i.id = r.item_ref "
                "WHERE i.item_id = ? "
                "ORDER BY r.observed_at DESC, r.id DESC LIMIT 2",
                (key,),
            ).fetchall()
        if len(rows) < 2:
            return None
        latest, previous = (_row_to_record(r) for r in rows)
        return previous, latest

    def all_item_ids(self) -> set[str]:
        """Every item identifier that currently has a series."""
        with self._db.transaction(write=False) as conn:
            rows = conn.execute("SELECT item_id FROM items").fetchall()
        return {r[0] for r in rows}
