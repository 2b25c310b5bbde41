# src/storage/tracked_items_db.py

"""SQLite-backed registry of active price-watch subscriptions."""

import logging
import sqlite3
from decimal import Decimal
from pathlib import Path

from src.config.settings import Settings
from src.filters.url_normalizer import normalize_item_id
from src.models.errors import InvalidPriceError
from src.models.price_record import as_price
from src.models.tracked_item import TrackedItem
from src.storage.database import SQLiteDatabase, format_ts, parse_ts
from src.storage.keyed_locks import KeyedLocks

logger = logging.getLogger("price_tracker.registry")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS tracked_items (
    owner_id       TEXT NOT NULL,
    item_id        TEXT NOT NULL,
    destination_id TEXT NOT NULL,
    target_price   TEXT NOT NULL,
    created_at     TEXT NOT NULL,
    PRIMARY KEY (owner_id, item_id)
);

CREATE INDEX IF NOT EXISTS idx_tracked_owner
    ON tracked_items(owner_id);
"""

_COLUMNS = "owner_id, destination_id, item_id, target_price, created_at"


def _row_to_item(row: sqlite3.Row | tuple[str, ...]) -> TrackedItem:
    return TrackedItem(
        owner_id=row[0],
        destination_id=row[1],
        item_id=row[2],
        target_price=Decimal(row[3]),
        created_at=parse_ts(row[4]),
    )


class TrackedItemRegistry:
    """Durable map from ``(owner_id, item_id)`` to :class:`TrackedItem`."""

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.DB_PATH
        self._db = SQLiteDatabase(path, _SCHEMA)
        self._locks = KeyedLocks()
        logger.debug("TrackedItemRegistry opened at %s", path)

    def subscribe(self, item: TrackedItem) -> TrackedItem:
        """Insert or overwrite the subscription for ``item.key``.

        Returns the stored entry (with a normalised item id).
        """
        target = as_price(item.target_price)
        if target <= 0:
            raise InvalidPriceError(
                f"Target price must be positive, got {target}"
            )
        stored = TrackedItem(
            owner_id=item.owner_id,
            destination_id=item.destination_id,
            item_id=normalize_item_id(item.item_id),
            target_price=target,
            created_at=item.created_at,
        )
        with self._locks.hold(stored.key), self._db.transaction() as conn:
            conn.execute(
                f"INSERT INTO tracked_items ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(owner_id, item_id) DO UPDATE SET "
                "destination_id = excluded.destination_id, "
                "target_price = excluded.target_price, "
                "created_at = excluded.created_at",
                (
                    stored.owner_id,
                    stored.destination_id,
                    stored.item_id,
                    str(stored.target_price),
                    format_ts(stored.created_at),
                ),
            )
        logger.info(
            "Owner %s tracking %s at target %s",
            stored.owner_id,
            stored.item_id,
            stored.target_price,
        )
        return stored

    def unsubscribe(self, owner_id: str, item_id: str) -> bool:
        """Remove a subscription.  Returns False if there was none."""
        key = (owner_id, normalize_item_id(item_id))
        with self._locks.hold(key), self._db.transaction() as conn:
            removed = conn.execute(
                "DELETE FROM tracked_items "
                "WHERE owner_id = ? AND item_id = ?",
                key,
            ).rowcount
        if removed:
            logger.info("Owner %s stopped tracking %s", *key)
        return bool(removed)

    def retire(self, item: TrackedItem) -> bool:
        """Remove *item* only if it is still the stored subscription.

        A re-subscription made after *item* was read carries a newer
        ``created_at`` and is left in place.
        """
        key = (item.owner_id, normalize_item_id(item.item_id))
        with self._locks.hold(key), self._db.transaction() as conn:
            removed = conn.execute(
                "DELETE FROM tracked_items "
                "WHERE owner_id = ? AND item_id = ? AND created_at = ?",
                (*key, format_ts(item.created_at)),
            ).rowcount
        if removed:
            logger.info("Retired subscription %s / %s", *key)
        else:
            logger.info(
                "Subscription %s / %s changed or vanished, not retired",
                *key,
            )
        return bool(removed)

    def get(self, owner_id: str, item_id: str) -> TrackedItem | None:
        """Current subscription for the key, if any."""
        with self._db.transaction(write=False) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM tracked_items "
                "WHERE owner_id = ? AND item_id = ?",
                (owner_id, normalize_item_id(item_id)),
            ).fetchone()
        return _row_to_item(row) if row else None

    def list_all(self) -> list[TrackedItem]:
        """Snapshot of every subscription, oldest first."""
        with self._db.transaction(write=False) as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM tracked_items "
                "ORDER BY created_at, owner_id, item_id",
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def list_for(self, owner_id: str) -> list[TrackedItem]:
        """Snapshot of one owner's subscriptions, oldest first."""
        with self._db.transaction(write=False) as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM tracked_items "
                "WHERE owner_id = ? ORDER BY created_at, item_id",
                (owner_id,),
            ).fetchall()
        return [_row_to_item(r) for r in rows]
