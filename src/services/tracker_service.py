# src/services/tracker_service.py

"""Command surface of the price tracker: what a user can ask for."""

import asyncio
import logging
from datetime import UTC, datetime
from decimal import Decimal

from src.config.settings import Settings
from src.filters.deal_detector import DealDetector
from src.filters.url_normalizer import normalize_item_id
from src.models.deal import Deal
from src.models.errors import (
    FetchError,
    InvalidPriceError,
    ItemNotFoundError,
)
from src.models.price_record import PriceStats, as_price
from src.models.product import ProductSnapshot, SearchHit
from src.models.tracked_item import TrackedItem
from src.scrapers.empik_scraper import EmpikScraper
from src.storage.price_history_db import PriceHistoryDB
from src.storage.tracked_items_db import TrackedItemRegistry

logger = logging.getLogger("price_tracker.service")


class PriceTrackerService:
    """Async facade over the store, the registry and the scraper.

    Every call re-reads current state; nothing is cached between calls.
    Blocking work runs on worker threads so commands never stall the
    event loop shared with the recheck scheduler.
    """

    def __init__(
        self,
        store: PriceHistoryDB | None = None,
        registry: TrackedItemRegistry | None = None,
        scraper: EmpikScraper | None = None,
    ) -> None:
        self.store = store or PriceHistoryDB()
        self.registry = registry or TrackedItemRegistry()
        self.scraper = scraper or EmpikScraper()

    async def check_or_search(
        self, text: str,
    ) -> ProductSnapshot | list[SearchHit]:
        """Look up a product URL, or search Empik for free text."""
        query = text.strip()
        if not query:
            raise ValueError("Nothing to look up")
        lookup = (
            self.scraper.fetch
            if self.scraper.is_item_url(query)
            else self.scraper.search
        )
        try:
            result: ProductSnapshot | list[SearchHit] = await asyncio.wait_for(
                asyncio.to_thread(lookup, query),
                timeout=Settings.FETCH_TIMEOUT,
            )
        except TimeoutError as exc:
            raise FetchError(
                f"Lookup of '{query}' timed out after "
                f"{Settings.FETCH_TIMEOUT:.0f}s"
            ) from exc
        return result

    async def subscribe(
        self,
        owner_id: str,
        destination_id: str,
        item_id: str,
        target_price: Decimal | float | str,
    ) -> TrackedItem:
        """Start (or replace) a price watch for *owner_id*."""
        if not self.scraper.is_item_url(item_id):
            raise ValueError(
                f"Please provide a valid Empik URL, got {item_id!r}"
            )
        target = as_price(target_price)
        if target <= 0:
            raise InvalidPriceError(
                f"Target price must be positive, got {target}"
            )
        item = TrackedItem(
            owner_id=owner_id,
            destination_id=destination_id,
            item_id=normalize_item_id(item_id),
            target_price=target,
            created_at=datetime.now(UTC),
        )
        stored: TrackedItem = await asyncio.to_thread(
            self.registry.subscribe, item,
        )
        return stored

    async def unsubscribe(self, owner_id: str, item_id: str) -> bool:
        """Stop a price watch.  False if it did not exist."""
        removed: bool = await asyncio.to_thread(
            self.registry.unsubscribe, owner_id, item_id,
        )
        return removed

    async def list_deals(self, limit: int | None = None) -> list[Deal]:
        """Biggest recent price drops across all recorded items."""
        deals: list[Deal] = await asyncio.to_thread(
            DealDetector.find_deals, self.store, limit,
        )
        return deals

    async def get_stats(self, item_id: str) -> PriceStats:
        """Price statistics for an item.  Raises ItemNotFoundError."""
        stats = await asyncio.to_thread(self.store.stats, item_id)
        if stats is None:
            raise ItemNotFoundError(
                f"No price history for {normalize_item_id(item_id)}"
            )
        return stats

    async def list_subscriptions(self, owner_id: str) -> list[TrackedItem]:
        """All active price watches of one owner."""
        items: list[TrackedItem] = await asyncio.to_thread(
            self.registry.list_for, owner_id,
        )
        return items
