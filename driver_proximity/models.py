"""Typed data models used by the driver proximity index."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import heapq
from typing import Any, Iterable

from .errors import InvalidCount, InvalidEntityId, InvalidStrategy
from .geometry import validate_coordinates


class Strategy(str, Enum):
    """Query strategy used to collect radius candidates."""

    FLAT_SCAN = "flat_scan"
    HIERARCHICAL = "hierarchical"

    @classmethod
    def parse(cls, value: "Strategy | str") -> "Strategy":
        """Accept enum members and the flag spellings used by transport callers."""
        if isinstance(value, Strategy):
            return value

        normalized = str(value).strip().lower().replace("-", "_")
        aliases = {
            "flat_scan": cls.FLAT_SCAN,
            "flatscan": cls.FLAT_SCAN,
            "flat": cls.FLAT_SCAN,
            "hierarchical": cls.HIERARCHICAL,
            "h3": cls.HIERARCHICAL,
        }
        if normalized not in aliases:
            raise InvalidStrategy(f"unknown strategy: {value!r}")
        return aliases[normalized]


def validate_entity_id(entity_id: Any) -> str:
    """Return `entity_id` unchanged or raise `InvalidEntityId`."""
    if not isinstance(entity_id, str) or not entity_id.strip():
        raise InvalidEntityId(f"entity id must be a non-empty string, got {entity_id!r}")
    return entity_id


def validate_limit(limit: Any, name: str = "limit") -> int | None:
    """Return a positive int limit, `None` for unlimited, or raise `InvalidCount`."""
    if limit is None:
        return None

    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidCount(f"{name} must be an integer, got {limit!r}")

    if limit <= 0:
        raise InvalidCount(f"{name} must be > 0, got {limit}")
    return limit


@dataclass(frozen=True)
class Point:
    """One tracked entity location keyed by an opaque id."""

    id: str
    longitude: float
    latitude: float

    def __post_init__(self) -> None:
        """Validate id and coordinate ranges at construction time."""
        validate_entity_id(self.id)
        lon, lat = validate_coordinates(self.longitude, self.latitude)
        object.__setattr__(self, "longitude", lon)
        object.__setattr__(self, "latitude", lat)


@dataclass(frozen=True)
class SearchHit:
    """One ranked search result entry."""

    id: str
    distance_km: float

    def to_wire(self) -> dict[str, str]:
        """Return the transport representation used by nearby-search clients."""
        return {"driverId": self.id, "distance": format_distance(self.distance_km)}


SearchResult = tuple[SearchHit, ...]


def format_distance(distance_km: float) -> str:
    """Format kilometres as a short decimal string (at most 4 decimals)."""
    text = f"{float(distance_km):.4f}".rstrip("0").rstrip(".")
    if text in {"", "-0"}:
        return "0"
    return text


def rank_hits(hits: Iterable[SearchHit], limit: int | None = None) -> SearchResult:
    """Sort hits by `(distance_km, id)` and truncate to `limit`.

    The id tie-break keeps rankings reproducible across strategies and backends.
    """
    def sort_key(hit: SearchHit) -> tuple[float, str]:
        return (hit.distance_km, hit.id)

    if limit is None:
        return tuple(sorted(hits, key=sort_key))
    return tuple(heapq.nsmallest(limit, hits, key=sort_key))
