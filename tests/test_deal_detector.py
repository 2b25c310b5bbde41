# tests/test_deal_detector.py

"""Tests for recent price-drop detection."""

import shutil
import tempfile
import unittest
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

from src.filters.deal_detector import DealDetector
from src.models.price_record import PriceRecord
from src.storage.price_history_db import PriceHistoryDB

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _rec(price: str, days: int = 0, title: str = "T") -> PriceRecord:
    return PriceRecord(
        title=title,
        price=Decimal(price),
        currency="PLN",
        observed_at=T0 + timedelta(days=days),
    )


class FakeHistory:
    """In-memory stand-in exposing the reader protocol."""

    def __init__(self, series: dict[str, list[PriceRecord]]) -> None:
        self.series = series

    def all_item_ids(self) -> set[str]:
        return set(self.series)

    def latest_two(
        self, item_id: str,
    ) -> tuple[PriceRecord, PriceRecord] | None:
        records = self.series.get(item_id, [])
        if len(records) < 2:
            return None
        return records[-2], records[-1]


class TestDealDetector(unittest.TestCase):
    """DealDetector.find_deals behaviour."""

    def test_ten_percent_drop_included(self) -> None:
        """[100 -> 90] is a 10.0% deal."""
        store = FakeHistory({"a": [_rec("100"), _rec("90", 1, "Book")]})
        deals = DealDetector.find_deals(store)
        self.assertEqual(len(deals), 1)
        deal = deals[0]
        self.assertEqual(deal.item_id, "a")
        self.assertEqual(deal.title, "Book")
        self.assertEqual(str(deal.drop_pct), "10.0")
        self.assertEqual(deal.current_price, Decimal("90"))
        self.assertEqual(deal.previous_price, Decimal("100"))
        self.assertEqual(deal.currency, "PLN")

    def test_four_percent_drop_excluded(self) -> None:
        """[100 -> 96] is below the threshold."""
        store = FakeHistory({"a": [_rec("100"), _rec("96", 1)]})
        self.assertEqual(DealDetector.find_deals(store), [])

    def test_exactly_threshold_included(self) -> None:
        """A 5.0% drop qualifies."""
        store = FakeHistory({"a": [_rec("100"), _rec("95", 1)]})
        self.assertEqual(len(DealDetector.find_deals(store)), 1)

    def test_price_rise_excluded(self) -> None:
        """Increases are never deals."""
        store = FakeHistory({"a": [_rec("90"), _rec("100", 1)]})
        self.assertEqual(DealDetector.find_deals(store), [])

    def test_single_record_skipped(self) -> None:
        """Items without two observations are ignored."""
        store = FakeHistory({"a": [_rec("100")]})
        self.assertEqual(DealDetector.find_deals(store), [])

    def test_only_last_two_records_count(self) -> None:
        """Older history does not affect the drop."""
        store = FakeHistory({
            "a": [_rec("200"), _rec("100", 1), _rec("99", 2)],
        })
        self.assertEqual(DealDetector.find_deals(store), [])

    def test_sorted_desc_with_item_id_tiebreak(self) -> None:
        """Bigger drops first; equal drops ordered by item id."""
        store = FakeHistory({
            "c": [_rec("100"), _rec("80", 1)],
            "b": [_rec("100"), _rec("90", 1)],
            "a": [_rec("50"), _rec("45", 1)],
            "d": [_rec("100"), _rec("70", 1)],
        })
        deals = DealDetector.find_deals(store)
        self.assertEqual([d.item_id for d in deals], ["d", "c", "a", "b"])

    def test_limit_applied(self) -> None:
        """Only the top *limit* deals are returned."""
        store = FakeHistory({
            f"item{i}": [_rec("100"), _rec(str(90 - i), 1)]
            for i in range(8)
        })
        self.assertEqual(len(DealDetector.find_deals(store)), 5)
        self.assertEqual(len(DealDetector.find_deals(store, limit=2)), 2)
        self.assertEqual(DealDetector.find_deals(store, limit=0), [])

    def test_drop_pct_rounded_to_one_decimal(self) -> None:
        """33.333...% is reported as 33.3."""
        store = FakeHistory({"a": [_rec("30"), _rec("20", 1)]})
        self.assertEqual(str(DealDetector.find_deals(store)[0].drop_pct), "33.3")

    def test_custom_threshold(self) -> None:
        """The threshold is configurable per call."""
        store = FakeHistory({"a": [_rec("100"), _rec("96", 1)]})
        self.assertEqual(
            len(DealDetector.find_deals(store, threshold=4.0)), 1
        )

    def test_against_real_store(self) -> None:
        """Works end to end over PriceHistoryDB."""
        tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmp_dir, True)
        db = PriceHistoryDB(
            db_path=Path(tmp_dir) / "deals.db", timezone="Europe/Warsaw",
        )
        url = "https://www.empik.com/book,p1"
        db.record(url, "Book", Decimal("100"), "PLN", T0)
        db.record(url, "Book", Decimal("90"), "PLN", T0 + timedelta(days=1))
        deals = DealDetector.find_deals(db)
        self.assertEqual([d.item_id for d in deals], [url])
        self.assertEqual(str(deals[0].drop_pct), "10.0")


if __name__ == "__main__":
    unittest.main()
