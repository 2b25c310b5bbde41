# tests/test_tracker_service.py

"""Tests for the PriceTrackerService command surface."""

import shutil
import tempfile
import unittest
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

from src.filters.url_normalizer import is_item_url
from src.models.errors import FetchError, InvalidPriceError, ItemNotFoundError
from src.models.product import ProductSnapshot, SearchHit
from src.services.tracker_service import PriceTrackerService
from src.storage.price_history_db import PriceHistoryDB
from src.storage.tracked_items_db import TrackedItemRegistry

URL = "https://www.empik.com/minecraft,p1234,ksiazka-p"
T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _fake_scraper() -> MagicMock:
    scraper = MagicMock()
    scraper.is_item_url.side_effect = lambda text: is_item_url(
        text, "empik.com"
    )
    scraper.fetch.return_value = ProductSnapshot(
        title="Minecraft", price=Decimal("49.99"), url=URL,
    )
    scraper.search.return_value = [
        SearchHit(title="Minecraft", price_text="49,99 zł", url=URL),
    ]
    return scraper


class TestPriceTrackerService(unittest.IsolatedAsyncioTestCase):
    """Service calls against temp stores and a mocked scraper."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp_dir, True)
        db_path = Path(self.tmp_dir) / "service.db"
        self.store = PriceHistoryDB(db_path=db_path, timezone="Europe/Warsaw")
        self.registry = TrackedItemRegistry(db_path=db_path)
        self.scraper = _fake_scraper()
        self.service = PriceTrackerService(
            store=self.store, registry=self.registry, scraper=self.scraper,
        )

    # ── check_or_search ──────────────────────────────────

    async def test_url_fetches_snapshot(self) -> None:
        result = await self.service.check_or_search(f"  {URL}  ")
        self.assertIsInstance(result, ProductSnapshot)
        self.scraper.fetch.assert_called_once_with(URL)
        self.scraper.search.assert_not_called()

    async def test_free_text_searches(self) -> None:
        result = await self.service.check_or_search("minecraft")
        self.assertIsInstance(result, list)
        self.scraper.search.assert_called_once_with("minecraft")

    async def test_lookup_does_not_record_history(self) -> None:
        await self.service.check_or_search(URL)
        self.assertEqual(self.store.all_item_ids(), set())

    async def test_empty_text_rejected(self) -> None:
        with self.assertRaises(ValueError):
            await self.service.check_or_search("   ")

    async def test_fetch_error_propagates(self) -> None:
        self.scraper.fetch.side_effect = FetchError("down")
        with self.assertRaises(FetchError):
            await self.service.check_or_search(URL)

    # ── subscriptions ────────────────────────────────────

    async def test_subscribe_and_list(self) -> None:
        item = await self.service.subscribe("u1", "chan-1", URL, "60")
        self.assertEqual(item.target_price, Decimal("60"))
        self.assertEqual(item.created_at.tzinfo, UTC)
        items = await self.service.list_subscriptions("u1")
        self.assertEqual([i.item_id for i in items], [URL])

    async def test_subscribe_rejects_foreign_url(self) -> None:
        with self.assertRaises(ValueError):
            await self.service.subscribe(
                "u1", "chan-1", "https://allegro.pl/x", "60",
            )
        self.assertEqual(self.registry.list_all(), [])

    async def test_subscribe_rejects_bad_target(self) -> None:
        for bad in ("0", "-5", "abc"):
            with self.subTest(target=bad):
                with self.assertRaises(InvalidPriceError):
                    await self.service.subscribe("u1", "chan-1", URL, bad)

    async def test_unsubscribe(self) -> None:
        await self.service.subscribe("u1", "chan-1", URL, "60")
        self.assertTrue(await self.service.unsubscribe("u1", URL))
        self.assertFalse(await self.service.unsubscribe("u1", URL))

    # ── history queries ──────────────────────────────────

    async def test_get_stats(self) -> None:
        self.store.record(URL, "M", Decimal("10"), "PLN", T0)
        self.store.record(URL, "M", Decimal("8"), "PLN", T0 + timedelta(days=1))
        stats = await self.service.get_stats(URL)
        self.assertEqual(stats.low, Decimal("8"))
        self.assertEqual(stats.count, 2)

    async def test_get_stats_unknown_raises(self) -> None:
        with self.assertRaises(ItemNotFoundError):
            await self.service.get_stats(URL)

    async def test_list_deals(self) -> None:
        self.store.record(URL, "M", Decimal("100"), "PLN", T0)
        self.store.record(URL, "M", Decimal("80"), "PLN", T0 + timedelta(days=1))
        deals = await self.service.list_deals(5)
        self.assertEqual(len(deals), 1)
        self.assertEqual(str(deals[0].drop_pct), "20.0")


if __name__ == "__main__":
    unittest.main()
