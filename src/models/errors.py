# src/models/errors.py

"""Exception taxonomy for the price tracker engine."""


class PriceTrackerError(Exception):
    """Base class for all engine errors."""


class InvalidPriceError(PriceTrackerError, ValueError):
    """A non-positive price was offered to the store or registry."""


class ItemNotFoundError(PriceTrackerError, LookupError):
    """No price history exists for the requested item."""


class FetchError(PriceTrackerError):
    """The product page could not be fetched or parsed."""


class NotifyError(PriceTrackerError):
    """An alert could not be delivered to its destination."""


class StorageError(PriceTrackerError):
    """A persistence operation failed; no partial write is visible."""
