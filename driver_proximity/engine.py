"""Search orchestration across the flat-scan and hierarchical strategies."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from .cell_index import CellIndex
from .config import ProximityConfig
from .errors import IndexUnavailable, InvalidCount
from .geometry import validate_coordinates, validate_radius
from .models import SearchResult, Strategy
from .overlay import OverlayClassifier
from .point_store import PointStore

logger = logging.getLogger(__name__)


class ProximitySearchEngine:
    """Answer "k nearest within radius" queries over an injected store and index.

    The engine only reads: it never mutates the store or the cell index.
    Strategies are kept separately measurable, so a hierarchical request
    without a built index fails instead of falling back to a flat scan.
    """

    def __init__(
        self,
        point_store: PointStore,
        cell_index: CellIndex | None = None,
        classifier: OverlayClassifier | None = None,
        config: ProximityConfig | None = None,
    ) -> None:
        self.config = config or ProximityConfig()
        self.point_store = point_store
        self.cell_index = cell_index
        self.classifier = classifier or OverlayClassifier(self.config.synthetic_prefix)

    def candidates(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        strategy: Strategy | str | None = None,
        limit: int | None = None,
        cancel: threading.Event | None = None,
    ) -> SearchResult:
        """Return the raw distance-ordered strategy result before overlay filtering."""
        resolved = self._resolve_strategy(strategy)

        if resolved == Strategy.FLAT_SCAN:
            return self.point_store.scan_radius(longitude, latitude, radius_km, limit=limit, cancel=cancel)

        if self.cell_index is None:
            raise IndexUnavailable("hierarchical strategy requested but no cell index is attached")
        return self.cell_index.query(longitude, latitude, radius_km, limit=limit)

    def search(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        desired_count: int,
        strategy: Strategy | str | None = None,
        prefer_primary: bool = True,
        cancel: threading.Event | None = None,
    ) -> SearchResult:
        """Return up to `desired_count` entities within `radius_km`, nearest first."""
        lon, lat = validate_coordinates(longitude, latitude)
        radius = validate_radius(radius_km)
        if isinstance(desired_count, bool) or not isinstance(desired_count, int):
            raise InvalidCount(f"desired_count must be an integer, got {desired_count!r}")

        resolved = self._resolve_strategy(strategy)
        if desired_count <= 0:
            return ()

        # Oversize the fetch so enough primary entities survive overlay filtering.
        internal_limit = max(self.config.candidate_ceiling, desired_count)

        started = time.perf_counter()
        candidates = self.candidates(lon, lat, radius, strategy=resolved, limit=internal_limit, cancel=cancel)
        result = self.classifier.partition_and_fill(candidates, desired_count, prefer_primary)

        logger.debug(
            "search strategy=%s radius=%skm count=%d prefer_primary=%s: %d candidates -> %d results in %.2fms",
            resolved.value,
            radius,
            desired_count,
            prefer_primary,
            len(candidates),
            len(result),
            (time.perf_counter() - started) * 1000,
        )
        return result

    def search_nearby(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        count: int,
        strategy_flag: Strategy | str | None = None,
        prefer_primary_flag: bool = True,
    ) -> list[dict[str, Any]]:
        """Transport-facing search returning `[{"driverId", "distance"}]`."""
        hits = self.search(
            longitude,
            latitude,
            radius_km,
            count,
            strategy=strategy_flag,
            prefer_primary=bool(prefer_primary_flag),
        )
        return [hit.to_wire() for hit in hits]

    def _resolve_strategy(self, strategy: Strategy | str | None) -> Strategy:
        if strategy is None:
            return self.config.strategy
        return Strategy.parse(strategy)
