# src/storage/database.py

"""Shared SQLite plumbing for the price history and subscription stores."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from src.models.errors import StorageError

logger = logging.getLogger("price_tracker.database")


def to_utc(moment: datetime) -> datetime:
    """Return *moment* as an aware UTC datetime (naive values are UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def format_ts(moment: datetime) -> str:
    """Fixed-width UTC ISO timestamp, so text order equals time order."""
    return to_utc(moment).isoformat(timespec="microseconds")


def parse_ts(raw: str) -> datetime:
    """Inverse of :func:`format_ts`."""
    return datetime.fromisoformat(raw)


class SQLiteDatabase:
    """Opens one short-lived connection per unit of work.

    Every call to :meth:`transaction` gets its own connection, so
    transactions issued from different threads never interleave on a
    shared handle.  WAL mode lets readers proceed while a writer commits.
    """

    def __init__(self, path: Path, schema: str) -> None:
        self.path = path
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(path))
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(schema)
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StorageError(
                f"Cannot initialise database at {path}: {exc}"
            ) from exc
        logger.debug("Database ready at %s", path)

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.path), timeout=30.0, isolation_level=None,
        )
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def transaction(
        self, write: bool = True,
    ) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block in one transaction.

        Write transactions start with ``BEGIN IMMEDIATE`` so the read half
        of a read-modify-write cannot be invalidated by another writer.
        Any SQLite failure rolls back and surfaces as
        :class:`StorageError`.
        """
        try:
            conn = self._open()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open {self.path}: {exc}") from exc
        try:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error(
                "SQLite error on %s: %s", self.path, exc, exc_info=True,
            )
            raise StorageError(str(exc)) from exc
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
