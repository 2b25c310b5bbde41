# src/models/tracked_item.py

"""Price-watch subscription model."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class TrackedItem:
    """A user's request to be alerted once an item drops to a target price.

    Identity is ``(owner_id, item_id)``; re-subscribing replaces the entry.
    """

    owner_id: str
    destination_id: str
    item_id: str
    target_price: Decimal
    created_at: datetime

    @property
    def key(self) -> tuple[str, str]:
        """Identity key used by the registry."""
        return (self.owner_id, self.item_id)


@dataclass(frozen=True)
class AlertPayload:
    """Content handed to a notifier when a target price is reached."""

    title: str
    price: Decimal
    target_price: Decimal
    item_id: str
    currency: str = "PLN"
