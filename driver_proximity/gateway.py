"""Location update gateway keeping the point store and cell index consistent."""

from __future__ import annotations

import logging
from typing import Iterable

from .cell_index import CellIndex
from .models import Point, validate_entity_id
from .point_store import PointStore

logger = logging.getLogger(__name__)


class LocationUpdateGateway:
    """Apply location reports and deregistrations as single logical writes.

    Each write holds the store's lock (shared with the cell index) across
    both the store mutation and the membership change.
    """

    def __init__(self, point_store: PointStore, cell_index: CellIndex | None = None) -> None:
        self.point_store = point_store
        self.cell_index = cell_index

    def report_location(self, entity_id: str, longitude: float, latitude: float) -> Point:
        """Validate and upsert one location; returns the normalized point."""
        point = Point(id=entity_id, longitude=longitude, latitude=latitude)

        with self.point_store.lock:
            self.point_store.upsert(point.id, point.longitude, point.latitude)
            if self.cell_index is not None:
                self.cell_index.place(point.id, point.longitude, point.latitude)
        return point

    def report_many(self, points: Iterable[Point]) -> int:
        """Apply a batch of reports in order; returns how many were applied."""
        applied = 0
        for point in points:
            self.report_location(point.id, point.longitude, point.latitude)
            applied += 1

        logger.debug("Applied %d location reports", applied)
        return applied

    def deregister(self, entity_id: str) -> None:
        """Remove `entity_id` from the store and from every cell membership set."""
        validate_entity_id(entity_id)

        with self.point_store.lock:
            self.point_store.remove(entity_id)
            if self.cell_index is not None:
                self.cell_index.evict(entity_id)
