# src/models/deal.py

"""Recent price drop model produced by the deal detector."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Deal:
    """An item whose latest observation is meaningfully below the previous one."""

    item_id: str
    title: str
    current_price: Decimal
    previous_price: Decimal
    drop_pct: Decimal
    currency: str
