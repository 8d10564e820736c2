"""Point store interface and the in-memory flat-scan backend."""

from __future__ import annotations

import logging
import threading
import time
from typing import Iterable, Iterator, Protocol

import numpy as np

from .errors import ScanInterrupted
from .geometry import haversine_km_many, validate_coordinates, validate_radius
from .models import Point, SearchHit, SearchResult, rank_hits, validate_limit

logger = logging.getLogger(__name__)


class PointStore(Protocol):
    """Keyed mapping from entity id to `(longitude, latitude)`.

    `lock` is a re-entrant lock that writers hold while keeping derived
    structures (such as a cell index) in step with the store.
    """

    lock: threading.RLock

    def upsert(self, entity_id: str, longitude: float, latitude: float) -> None:
        """Insert or replace the location of `entity_id`."""

    def remove(self, entity_id: str) -> None:
        """Delete `entity_id`; no error if it is absent."""

    def get_many(self, entity_ids: Iterable[str]) -> dict[str, tuple[float, float]]:
        """Return `{id: (longitude, latitude)}` for the ids that are stored."""

    def points(self) -> Iterator[Point]:
        """Iterate over every stored point."""

    def scan_radius(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        limit: int | None = None,
        cancel: threading.Event | None = None,
    ) -> SearchResult:
        """Return all points within `radius_km`, nearest first, capped at `limit`."""

    def __len__(self) -> int:
        """Return number of stored points."""


class InMemoryPointStore:
    """Slot-array point store with a vectorized brute-force radius scan.

    Coordinates live in one float64 array of shape `(capacity, 2)`; removed
    slots are set to NaN and recycled. A scan touches every slot, so its
    cost grows with the total number of stored points.
    """

    def __init__(self, initial_capacity: int = 1024, scan_chunk_size: int = 65536) -> None:
        """Allocate empty slot arrays."""
        if initial_capacity <= 0:
            raise ValueError("initial_capacity must be > 0")
        if scan_chunk_size <= 0:
            raise ValueError("scan_chunk_size must be > 0")

        self.lock = threading.RLock()
        self._scan_chunk_size = int(scan_chunk_size)
        self._lonlat = np.full((initial_capacity, 2), np.nan, dtype=np.float64)
        self._ids: list[str | None] = []
        self._slot_by_id: dict[str, int] = {}
        self._free_slots: list[int] = []

    def __len__(self) -> int:
        return len(self._slot_by_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._slot_by_id

    def upsert(self, entity_id: str, longitude: float, latitude: float) -> None:
        """Insert or replace the location of `entity_id`."""
        point = Point(id=entity_id, longitude=longitude, latitude=latitude)

        with self.lock:
            slot = self._slot_by_id.get(point.id)
            if slot is None:
                slot = self._allocate_slot()
                self._slot_by_id[point.id] = slot
                self._ids[slot] = point.id
            self._lonlat[slot, 0] = point.longitude
            self._lonlat[slot, 1] = point.latitude

    def remove(self, entity_id: str) -> None:
        """Delete `entity_id`; no error if it is absent."""
        with self.lock:
            slot = self._slot_by_id.pop(entity_id, None)
            if slot is None:
                return
            self._ids[slot] = None
            self._lonlat[slot, :] = np.nan
            self._free_slots.append(slot)

    def get(self, entity_id: str) -> tuple[float, float] | None:
        """Return `(longitude, latitude)` for `entity_id`, or None."""
        with self.lock:
            slot = self._slot_by_id.get(entity_id)
            if slot is None:
                return None
            return float(self._lonlat[slot, 0]), float(self._lonlat[slot, 1])

    def get_many(self, entity_ids: Iterable[str]) -> dict[str, tuple[float, float]]:
        """Return `{id: (longitude, latitude)}` for the ids that are stored."""
        found: dict[str, tuple[float, float]] = {}
        with self.lock:
            for entity_id in entity_ids:
                slot = self._slot_by_id.get(entity_id)
                if slot is not None:
                    found[entity_id] = (float(self._lonlat[slot, 0]), float(self._lonlat[slot, 1]))
        return found

    def points(self) -> Iterator[Point]:
        """Iterate over a snapshot of every stored point."""
        with self.lock:
            snapshot = [
                Point(id=entity_id, longitude=float(self._lonlat[slot, 0]), latitude=float(self._lonlat[slot, 1]))
                for entity_id, slot in self._slot_by_id.items()
            ]
        return iter(snapshot)

    def scan_radius(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        limit: int | None = None,
        cancel: threading.Event | None = None,
    ) -> SearchResult:
        """Return all points within `radius_km`, nearest first, capped at `limit`.

        The scan runs in chunks of `scan_chunk_size` slots; if `cancel` is set
        between chunks, `ScanInterrupted` is raised and nothing is returned.
        """
        lon, lat = validate_coordinates(longitude, latitude)
        radius = validate_radius(radius_km)
        limit = validate_limit(limit)

        started = time.perf_counter()
        hits: list[SearchHit] = []

        with self.lock:
            n_slots = len(self._ids)
            for start in range(0, n_slots, self._scan_chunk_size):
                if cancel is not None and cancel.is_set():
                    raise ScanInterrupted(f"flat scan cancelled after {start} of {n_slots} slots")

                stop = min(start + self._scan_chunk_size, n_slots)
                chunk = self._lonlat[start:stop]
                distances = haversine_km_many(lon, lat, chunk[:, 0], chunk[:, 1])

                # Empty slots hold NaN and never pass the comparison.
                for offset in np.flatnonzero(distances <= radius):
                    entity_id = self._ids[start + int(offset)]
                    if entity_id is None:
                        continue
                    hits.append(SearchHit(id=entity_id, distance_km=float(distances[offset])))

            total = len(self._slot_by_id)

        result = rank_hits(hits, limit)
        logger.debug(
            "Flat scan over %d points: %d within %s km, returned %d in %.2fms",
            total,
            len(hits),
            radius,
            len(result),
            (time.perf_counter() - started) * 1000,
        )
        return result

    def _allocate_slot(self) -> int:
        if self._free_slots:
            return self._free_slots.pop()

        slot = len(self._ids)
        if slot >= self._lonlat.shape[0]:
            grown = np.full((self._lonlat.shape[0] * 2, 2), np.nan, dtype=np.float64)
            grown[: self._lonlat.shape[0]] = self._lonlat
            self._lonlat = grown
        self._ids.append(None)
        return slot
