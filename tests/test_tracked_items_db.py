# tests/test_tracked_items_db.py

"""Tests for the SQLite subscription registry."""

import shutil
import tempfile
import threading
import unittest
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

from src.models.errors import InvalidPriceError
from src.models.tracked_item import TrackedItem
from src.storage.tracked_items_db import TrackedItemRegistry

URL = "https://www.empik.com/minecraft,p1234,ksiazka-p"
T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _item(
    owner: str = "u1",
    url: str = URL,
    target: str = "60",
    created_at: datetime = T0,
    destination: str = "chan-1",
) -> TrackedItem:
    return TrackedItem(
        owner_id=owner,
        destination_id=destination,
        item_id=url,
        target_price=Decimal(target),
        created_at=created_at,
    )


class TestTrackedItemRegistry(unittest.TestCase):
    """Tests for the TrackedItemRegistry class."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp_dir, True)
        self.registry = TrackedItemRegistry(
            db_path=Path(self.tmp_dir) / "test.db"
        )

    def test_subscribe_and_get(self) -> None:
        """A subscription round-trips through the store."""
        self.registry.subscribe(_item())
        stored = self.registry.get("u1", URL)
        self.assertEqual(stored, _item())

    def test_resubscribe_overwrites(self) -> None:
        """Same owner and item leaves one entry with the newest target."""
        self.registry.subscribe(_item(target="60"))
        later = T0 + timedelta(minutes=5)
        self.registry.subscribe(
            _item(target="45.50", created_at=later, destination="chan-2")
        )
        items = self.registry.list_all()
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].target_price, Decimal("45.50"))
        self.assertEqual(items[0].created_at, later)
        self.assertEqual(items[0].destination_id, "chan-2")

    def test_different_owners_are_separate(self) -> None:
        """Two owners may watch the same item independently."""
        self.registry.subscribe(_item(owner="u1"))
        self.registry.subscribe(_item(owner="u2"))
        self.assertEqual(len(self.registry.list_all()), 2)
        self.assertEqual(len(self.registry.list_for("u1")), 1)

    def test_subscribe_normalises_item_id(self) -> None:
        """Tracking params are stripped from the stored URL."""
        stored = self.registry.subscribe(_item(url=URL + "?utm_source=fb"))
        self.assertEqual(stored.item_id, URL)
        self.assertIsNotNone(self.registry.get("u1", URL))

    def test_rejects_non_positive_target(self) -> None:
        """Targets must be above zero."""
        with self.assertRaises(InvalidPriceError):
            self.registry.subscribe(_item(target="0"))
        self.assertEqual(self.registry.list_all(), [])

    def test_unsubscribe_present_and_absent(self) -> None:
        """Removal reports whether anything was removed, never raises."""
        self.registry.subscribe(_item())
        self.assertTrue(self.registry.unsubscribe("u1", URL))
        self.assertFalse(self.registry.unsubscribe("u1", URL))
        self.assertIsNone(self.registry.get("u1", URL))

    def test_retire_removes_unchanged_subscription(self) -> None:
        """retire() deletes the exact subscription that was read."""
        stored = self.registry.subscribe(_item())
        self.assertTrue(self.registry.retire(stored))
        self.assertEqual(self.registry.list_all(), [])

    def test_retire_spares_newer_subscription(self) -> None:
        """A re-subscription after the read is not retired."""
        old = self.registry.subscribe(_item())
        self.registry.subscribe(
            _item(target="30", created_at=T0 + timedelta(hours=1))
        )
        self.assertFalse(self.registry.retire(old))
        current = self.registry.get("u1", URL)
        assert current is not None
        self.assertEqual(current.target_price, Decimal("30"))

    def test_list_for_filters_by_owner(self) -> None:
        """list_for only returns the owner's entries."""
        self.registry.subscribe(_item(owner="u1"))
        self.registry.subscribe(
            _item(owner="u1", url="https://www.empik.com/b,p2")
        )
        self.registry.subscribe(_item(owner="u2"))
        owners = {i.owner_id for i in self.registry.list_for("u1")}
        self.assertEqual(owners, {"u1"})
        self.assertEqual(len(self.registry.list_for("u1")), 2)
        self.assertEqual(self.registry.list_for("nobody"), [])

    def test_list_all_is_a_snapshot(self) -> None:
        """Mutations after listing do not change the returned list."""
        self.registry.subscribe(_item())
        snapshot = self.registry.list_all()
        self.registry.unsubscribe("u1", URL)
        self.assertEqual(len(snapshot), 1)

    def test_concurrent_subscribe_same_key(self) -> None:
        """Racing upserts on one key leave exactly one entry."""
        targets = [str(t) for t in range(10, 20)]
        barrier = threading.Barrier(len(targets))

        def write(target: str) -> None:
            barrier.wait()
            self.registry.subscribe(_item(target=target))

        threads = [
            threading.Thread(target=write, args=(t,)) for t in targets
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        items = self.registry.list_all()
        self.assertEqual(len(items), 1)
        self.assertIn(str(items[0].target_price), targets)


if __name__ == "__main__":
    unittest.main()
