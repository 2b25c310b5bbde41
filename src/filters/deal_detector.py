# src/filters/deal_detector.py

"""Rank recent price drops across every item in the price history."""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from src.config.settings import Settings
from src.models.deal import Deal
from src.models.price_record import PriceRecord

logger = logging.getLogger("price_tracker.deals")

_ONE_PLACE = Decimal("0.1")


class PriceHistoryReader(Protocol):
    """Read-only slice of the price history store used for deal scans."""

    def all_item_ids(self) -> set[str]: ...

    def latest_two(
        self, item_id: str,
    ) -> tuple[PriceRecord, PriceRecord] | None: ...


class DealDetector:
    """Compare each item's last two observations and keep the big drops."""

    @staticmethod
    def drop_pct(previous: Decimal, latest: Decimal) -> Decimal:
        """Percentage drop from *previous* to *latest* (negative on a rise)."""
        return (previous - latest) / previous * 100

    @staticmethod
    def find_deals(
        store: PriceHistoryReader,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[Deal]:
        """Return the largest recent drops, biggest first.

        An item qualifies when its drop is at least *threshold* percent.
        Ties are broken by item id so the ranking is deterministic.
        Items with fewer than two observations are skipped.
        """
        max_items = Settings.DEAL_LIMIT if limit is None else limit
        minimum = Decimal(str(
            Settings.DEAL_DROP_THRESHOLD if threshold is None else threshold
        ))
        if max_items <= 0:
            return []

        candidates: list[tuple[Decimal, str, PriceRecord, PriceRecord]] = []
        for item_id in store.all_item_ids():
            pair = store.latest_two(item_id)
            if pair is None:
                continue
            previous, latest = pair
            if previous.price <= 0:
                continue
            pct = DealDetector.drop_pct(previous.price, latest.price)
            if pct >= minimum:
                candidates.append((pct, item_id, previous, latest))

        candidates.sort(key=lambda c: (-c[0], c[1]))
        deals = [
            Deal(
                item_id=item_id,
                title=latest.title,
                current_price=latest.price,
                previous_price=previous.price,
                drop_pct=pct.quantize(_ONE_PLACE, rounding=ROUND_HALF_UP),
                currency=latest.currency,
            )
            for pct, item_id, previous, latest in candidates[:max_items]
        ]
        logger.debug(
            "Deal scan: %d qualifying, returning %d",
            len(candidates),
            len(deals),
        )
        return deals
