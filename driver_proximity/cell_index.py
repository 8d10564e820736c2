"""Hierarchical H3 cell index for bounded radius queries."""

from __future__ import annotations

import logging
import math
import time

import h3
import numpy as np

from .config import DEFAULT_H3_RESOLUTION
from .errors import IndexUnavailable
from .geometry import EARTH_RADIUS_KM, haversine_km_many, validate_coordinates, validate_radius
from .models import SearchHit, SearchResult, rank_hits, validate_limit
from .point_store import PointStore

logger = logging.getLogger(__name__)

# H3 cell sizes at one resolution vary across the sphere; edge lengths stay
# within this factor of the resolution's average.
_EDGE_VARIATION = 1.5

# No two points on the sphere are farther apart than half its circumference.
_MAX_SURFACE_DISTANCE_KM = math.pi * EARTH_RADIUS_KM


def _disk_size(rings: int) -> int:
    """Return the number of hexagons in a k-ring disk."""
    return 3 * rings * (rings + 1) + 1


class CellIndex:
    """Secondary index `cell id -> set of entity ids` over a `PointStore`.

    The index shares the store's lock, so membership changes made by a
    writer holding that lock are atomic with the matching store write, and
    queries (which also take the lock) never see one without the other.

    Until `build()` is called the index is inactive: `place`/`evict` are
    no-ops and `query` raises `IndexUnavailable`.
    """

    def __init__(self, point_store: PointStore, resolution: int = DEFAULT_H3_RESOLUTION) -> None:
        if not 0 <= resolution <= 15:
            raise ValueError(f"invalid H3 resolution: {resolution}. Must be between 0 and 15")

        self._store = point_store
        self._lock = point_store.lock
        self._resolution = int(resolution)
        self._edge_km = float(h3.average_hexagon_edge_length(self._resolution, unit="km"))
        self._members: dict[str, set[str]] = {}
        self._cell_by_id: dict[str, str] = {}
        self._built = False

    @property
    def resolution(self) -> int:
        return self._resolution

    @property
    def is_built(self) -> bool:
        return self._built

    def __len__(self) -> int:
        """Return number of indexed entities."""
        return len(self._cell_by_id)

    def cell_for(self, longitude: float, latitude: float) -> str:
        """Return the H3 cell containing the point at this index's resolution."""
        lon, lat = validate_coordinates(longitude, latitude)
        return h3.latlng_to_cell(lat, lon, self._resolution)

    def ring_count(self, radius_km: float) -> int:
        """Return how many rings around the home cell cover `radius_km`.

        A point within the radius sits in a cell whose center is at most
        `radius + 2 * max_edge` from the home cell's center, and adjacent
        cell centers are at least `sqrt(3) * min_edge` apart. Radii beyond
        the antipodal distance cover the same area and are clamped to it.
        """
        radius = min(validate_radius(radius_km), _MAX_SURFACE_DISTANCE_KM)
        max_edge = self._edge_km * _EDGE_VARIATION
        min_spacing = math.sqrt(3.0) * self._edge_km / _EDGE_VARIATION
        return max(1, int(math.ceil((radius + 2.0 * max_edge) / min_spacing)))

    def neighbor_cells(self, cell_id: str, radius_km: float) -> frozenset[str]:
        """Return the home cell plus enough rings to cover `radius_km`.

        The disk grows with the square of the radius; `query` only builds it
        when it is smaller than the set of occupied cells.
        """
        if not h3.is_valid_cell(cell_id):
            raise ValueError(f"invalid H3 cell id: {cell_id!r}")
        if h3.get_resolution(cell_id) != self._resolution:
            raise ValueError(
                f"cell {cell_id!r} has resolution {h3.get_resolution(cell_id)}, "
                f"index uses {self._resolution}"
            )
        return frozenset(h3.grid_disk(cell_id, self.ring_count(radius_km)))

    def build(self) -> int:
        """Rebuild membership from every point in the store and activate the index."""
        started = time.perf_counter()
        with self._lock:
            members: dict[str, set[str]] = {}
            cell_by_id: dict[str, str] = {}
            for point in self._store.points():
                cell_id = self.cell_for(point.longitude, point.latitude)
                members.setdefault(cell_id, set()).add(point.id)
                cell_by_id[point.id] = cell_id

            # Swap in only after the store has been read completely.
            self._members = members
            self._cell_by_id = cell_by_id
            self._built = True

        logger.info(
            "Built H3 cell index at resolution %d: %d points in %d cells (%.1fms)",
            self._resolution,
            len(cell_by_id),
            len(members),
            (time.perf_counter() - started) * 1000,
        )
        return len(cell_by_id)

    def drop(self) -> None:
        """Deactivate the index and release its membership sets."""
        with self._lock:
            self._members.clear()
            self._cell_by_id.clear()
            self._built = False

    def place(self, entity_id: str, longitude: float, latitude: float) -> str | None:
        """Move `entity_id` into the cell for its new location.

        Returns the cell id, or None when the index is not built.
        """
        with self._lock:
            if not self._built:
                return None
            cell_id = self.cell_for(longitude, latitude)
            if self._cell_by_id.get(entity_id) != cell_id:
                self._unassign(entity_id)
                self._assign(entity_id, cell_id)
            return cell_id

    def evict(self, entity_id: str) -> None:
        """Remove `entity_id` from whichever cell holds it."""
        with self._lock:
            self._unassign(entity_id)

    def cell_of(self, entity_id: str) -> str | None:
        """Return the cell currently holding `entity_id`, or None."""
        with self._lock:
            return self._cell_by_id.get(entity_id)

    def members(self, cell_id: str) -> frozenset[str]:
        """Return the ids indexed under `cell_id`."""
        with self._lock:
            return frozenset(self._members.get(cell_id, ()))

    def membership_snapshot(self) -> dict[str, frozenset[str]]:
        """Return a copy of every non-empty cell membership set."""
        with self._lock:
            return {cell_id: frozenset(ids) for cell_id, ids in self._members.items()}

    def query(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        limit: int | None = None,
    ) -> SearchResult:
        """Return points within `radius_km`, nearest first, using only nearby cells.

        When the covering disk has more cells than the index has occupied
        cells, the occupied cells are visited instead, so the work is bounded
        by the candidate set rather than by the radius.
        """
        lon, lat = validate_coordinates(longitude, latitude)
        radius = validate_radius(radius_km)
        limit = validate_limit(limit)
        home = self.cell_for(lon, lat)
        rings = self.ring_count(radius)

        started = time.perf_counter()
        with self._lock:
            self._require_built()
            sweep = _disk_size(rings) > len(self._members)
            if sweep:
                n_cells = len(self._members)
                positions = self._store.get_many(list(self._cell_by_id))

        if not sweep:
            # Disk geometry does not depend on membership; build it unlocked.
            cells = frozenset(h3.grid_disk(home, rings))
            n_cells = len(cells)
            with self._lock:
                self._require_built()
                candidate_ids: set[str] = set()
                for cell_id in cells:
                    members = self._members.get(cell_id)
                    if members:
                        candidate_ids.update(members)
                positions = self._store.get_many(candidate_ids)

        if not positions:
            return ()

        ids = list(positions)
        coords = np.asarray([positions[entity_id] for entity_id in ids], dtype=np.float64)
        distances = haversine_km_many(lon, lat, coords[:, 0], coords[:, 1])
        hits = [SearchHit(id=ids[i], distance_km=float(distances[i])) for i in np.flatnonzero(distances <= radius)]

        result = rank_hits(hits, limit)
        logger.debug(
            "Cell query over %d cells (sweep=%s): %d candidates, %d within %s km, returned %d in %.2fms",
            n_cells,
            sweep,
            len(ids),
            len(hits),
            radius,
            len(result),
            (time.perf_counter() - started) * 1000,
        )
        return result

    def _require_built(self) -> None:
        if not self._built:
            raise IndexUnavailable(f"no cell index built at resolution {self._resolution}")

    def _assign(self, entity_id: str, cell_id: str) -> None:
        self._members.setdefault(cell_id, set()).add(entity_id)
        self._cell_by_id[entity_id] = cell_id

    def _unassign(self, entity_id: str) -> None:
        cell_id = self._cell_by_id.pop(entity_id, None)
        if cell_id is None:
            return
        members = self._members.get(cell_id)
        if members is not None:
            members.discard(entity_id)
            if not members:
                del self._members[cell_id]
