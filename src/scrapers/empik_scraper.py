# src/scrapers/empik_scraper.py

"""Scraper for empik.com product pages and search results."""

import re
import urllib.parse

from bs4 import BeautifulSoup, Tag

from src.filters.url_normalizer import is_item_url
from src.models.errors import FetchError
from src.models.product import ProductSnapshot, SearchHit
from src.scrapers.base_scraper import BaseScraper, parse_price

# Badges Empik glues onto price labels in search tiles
_PRICE_NOISE_RE = re.compile(r"megacena|promocja", re.IGNORECASE)
_PRICE_WITH_CURRENCY_RE = re.compile(r"[\d\s.,]*\d\s*zł")


def _collapse_repeated_title(title: str) -> str:
    """Empik tiles often render the title twice; keep one copy."""
    words = title.split()
    half = len(words) // 2
    if half and words[:half] == words[half:]:
        return " ".join(words[:half])
    return " ".join(words)


def _clean_price_text(text: str) -> str:
    """Strip promo badges and keep just the ``NN,NN zł`` part."""
    cleaned = " ".join(_PRICE_NOISE_RE.sub("", text).split())
    match = _PRICE_WITH_CURRENCY_RE.search(cleaned)
    return match.group(0).strip() if match else cleaned


class EmpikScraper(BaseScraper):
    """Fetch current price snapshots and search results from Empik."""

    def __init__(self) -> None:
        super().__init__("empik")

    def _get_homepage(self) -> str:
        return self.settings.EMPIK_HOMEPAGE

    def is_item_url(self, text: str) -> bool:
        """True when *text* points at an Empik page."""
        return is_item_url(text, self.settings.EMPIK_HOST)

    def _select_text(self, soup: BeautifulSoup | Tag, key: str) -> str:
        """First non-empty text among the elements matching a selector."""
        for node in soup.select(self.selectors.get(key, "")):
            text = node.get_text(" ", strip=True)
            if text:
                return text
        return ""

    def parse_product(self, soup: BeautifulSoup, url: str) -> ProductSnapshot:
        """Turn a product page into a snapshot.  Raises FetchError."""
        title = self._select_text(soup, "title") or "Unknown Product"
        price = parse_price(self._select_text(soup, "price"))
        if price is None or price <= 0:
            raise FetchError(f"No price found on {url}")
        return ProductSnapshot(
            title=title,
            price=price,
            currency=self.settings.DEFAULT_CURRENCY,
            url=url,
        )

    def fetch(self, url: str) -> ProductSnapshot:
        """Fetch the current title and price for an Empik product page."""
        if not self.is_item_url(url):
            raise FetchError(f"Not an Empik URL: {url}")
        soup = self._get_page(url, self.settings.SCRAPE_BUDGET)
        if soup is None:
            raise FetchError(f"Could not fetch {url}")
        snapshot = self.parse_product(soup, url)
        self.logger.info(
            "[empik] %s -> %s %s",
            url,
            snapshot.price,
            snapshot.currency,
        )
        return snapshot

    def parse_search(self, soup: BeautifulSoup) -> list[SearchHit]:
        """Extract up to SEARCH_RESULT_LIMIT hits from a results page."""
        hits: list[SearchHit] = []
        seen: set[str] = set()
        for tile in soup.select(self.selectors.get("search_item", "")):
            if len(hits) >= self.settings.SEARCH_RESULT_LIMIT:
                break
            title = _collapse_repeated_title(
                self._select_text(tile, "search_title")
            )
            link_node = tile.find("a", href=True) or tile.find_parent(
                "a", href=True
            )
            if not title or link_node is None:
                continue
            href = str(link_node.get("href", ""))
            url = urllib.parse.urljoin(self.settings.EMPIK_HOMEPAGE, href)
            if url in seen:
                continue
            seen.add(url)
            price_text = _clean_price_text(
                self._select_text(tile, "search_price")
            )
            hits.append(SearchHit(
                title=title,
                price_text=price_text or "Price not found",
                url=url,
            ))
        return hits

    def search(self, query: str) -> list[SearchHit]:
        """Search Empik and return the first few product hits."""
        url = self.settings.EMPIK_SEARCH_URL.format(
            query=urllib.parse.quote_plus(query)
        )
        soup = self._get_page(url, self.settings.SCRAPE_BUDGET)
        if soup is None:
            raise FetchError(f"Search failed for '{query}'")
        hits = self.parse_search(soup)
        self.logger.info(
            "[empik] Search '%s' returned %d hits", query, len(hits),
        )
        return hits
