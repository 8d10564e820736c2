"""Error taxonomy for the driver proximity index."""

from __future__ import annotations


class ProximityError(Exception):
    """Base class for every error raised by the proximity index."""


class InvalidCoordinate(ProximityError, ValueError):
    """Raised when a longitude/latitude pair is malformed or out of range."""


class InvalidEntityId(ProximityError, ValueError):
    """Raised when an entity id is empty or not a string."""


class InvalidRadius(ProximityError, ValueError):
    """Raised when a query radius is not a positive finite number."""


class InvalidCount(ProximityError, ValueError):
    """Raised when a count or limit is not a valid integer."""


class IndexUnavailable(ProximityError, RuntimeError):
    """Raised when the hierarchical strategy is used before the cell index is built."""


class StoreUnavailable(ProximityError, ConnectionError):
    """Raised when the backing point store cannot be reached."""


class ScanInterrupted(ProximityError, RuntimeError):
    """Raised when a caller cancels a flat scan between chunks."""


class InvalidStrategy(ProximityError, ValueError):
    """Raised when a strategy flag names neither query strategy."""
