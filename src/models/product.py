# src/models/product.py

"""Product data models returned by the Empik scraper."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ProductSnapshot:
    """Best-effort current state of a single product page."""

    title: str
    price: Decimal
    currency: str = "PLN"
    url: str = ""


@dataclass(frozen=True)
class SearchHit:
    """One row of an Empik search results page.

    ``price_text`` is kept as displayed (e.g. ``"49,99 zł"``) since search
    tiles are not reliable enough to feed the price history.
    """

    title: str
    price_text: str
    url: str
