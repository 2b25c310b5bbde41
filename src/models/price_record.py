# src/models/price_record.py

"""Temporal price observation models for the price history store."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

from src.models.errors import InvalidPriceError


def as_price(value: Decimal | float | int | str) -> Decimal:
    """Coerce *value* to a finite :class:`Decimal`.

    Floats go through ``str`` so ``19.99`` stays ``19.99``.  Raises
    :class:`InvalidPriceError` for anything that is not a number.
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise InvalidPriceError(f"Not a price: {value!r}") from exc
    if not result.is_finite():
        raise InvalidPriceError(f"Not a price: {value!r}")
    return result


class RecordOutcome(Enum):
    """Result of offering an observation to the price history store."""

    RECORDED = "recorded"
    DEDUPED = "deduped"


@dataclass(frozen=True)
class PriceRecord:
    """A single price observation for an item at a point in time."""

    title: str
    price: Decimal
    currency: str
    observed_at: datetime


@dataclass(frozen=True)
class PriceStats:
    """Aggregate view over an item's retained price series."""

    low: Decimal
    high: Decimal
    average: Decimal
    count: int
    latest: PriceRecord
