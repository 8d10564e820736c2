"""Point store adapter over a Redis geo sorted set."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterable, Iterator

import numpy as np
import redis

from .errors import InvalidCoordinate, StoreUnavailable
from .geometry import haversine_km_many, validate_coordinates, validate_radius
from .models import Point, SearchHit, SearchResult, rank_hits, validate_limit

logger = logging.getLogger(__name__)

# Redis measures with a 6372.797 km Earth radius; widening the server-side
# radius slightly keeps every point our 6371 km haversine would accept.
DEFAULT_RADIUS_SLACK = 1.001


class RedisPointStore:
    """`PointStore` backed by GEOADD/GEOSEARCH on one sorted-set key.

    Distances returned by Redis are discarded: coordinates are fetched with
    WITHCOORD and re-measured locally so rankings match the in-memory store.
    Every Redis failure other than a rejected coordinate surfaces as
    `StoreUnavailable`; this layer never retries.
    """

    def __init__(
        self,
        client: Any,
        key: str = "drivers",
        radius_slack: float = DEFAULT_RADIUS_SLACK,
        batch_size: int = 500,
    ) -> None:
        if not key:
            raise ValueError("key must be a non-empty string")
        if radius_slack < 1.0:
            raise ValueError("radius_slack must be >= 1.0")
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")

        self.lock = threading.RLock()
        self._client = client
        self._key = key
        self._radius_slack = float(radius_slack)
        self._batch_size = int(batch_size)

    @classmethod
    def from_url(
        cls,
        url: str,
        key: str = "drivers",
        socket_timeout_s: float | None = 2.0,
    ) -> "RedisPointStore":
        """Create a store with a fresh client for `url`."""
        logger.info("Initializing Redis point store: %s (key=%r)", url, key)
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout_s,
            socket_connect_timeout=socket_timeout_s,
        )
        return cls(client, key=key)

    @property
    def key(self) -> str:
        return self._key

    def ping(self) -> bool:
        """Return True if the server answers PING."""
        return bool(self._call(self._client.ping))

    def __len__(self) -> int:
        return int(self._call(self._client.zcard, self._key))

    def upsert(self, entity_id: str, longitude: float, latitude: float) -> None:
        """GEOADD the point, replacing any previous position."""
        point = Point(id=entity_id, longitude=longitude, latitude=latitude)
        try:
            self._client.geoadd(self._key, (point.longitude, point.latitude, point.id))
        except redis.exceptions.ResponseError as exc:
            # Redis only indexes latitudes within +/-85.05112878 degrees.
            if "invalid" in str(exc).lower():
                raise InvalidCoordinate(
                    f"backing store rejected ({point.longitude}, {point.latitude}): {exc}"
                ) from exc
            raise self._unavailable(exc) from exc
        except redis.exceptions.RedisError as exc:
            raise self._unavailable(exc) from exc

    def remove(self, entity_id: str) -> None:
        """ZREM the member; a missing member is not an error."""
        self._call(self._client.zrem, self._key, entity_id)

    def get_many(self, entity_ids: Iterable[str]) -> dict[str, tuple[float, float]]:
        """Return `{id: (longitude, latitude)}` via batched GEOPOS."""
        ids = list(entity_ids)
        found: dict[str, tuple[float, float]] = {}

        for start in range(0, len(ids), self._batch_size):
            batch = ids[start : start + self._batch_size]
            positions = self._call(self._client.geopos, self._key, *batch)
            for entity_id, position in zip(batch, positions):
                if position is not None:
                    found[entity_id] = (float(position[0]), float(position[1]))
        return found

    def points(self) -> Iterator[Point]:
        """Iterate over every member using ZSCAN + GEOPOS batches."""
        cursor = 0
        while True:
            cursor, rows = self._call(self._client.zscan, self._key, cursor=cursor, count=self._batch_size)
            batch = [_decode(member) for member, _score in rows]
            if batch:
                yield from self._positions_as_points(batch)
            if int(cursor) == 0:
                break

    def scan_radius(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        limit: int | None = None,
        cancel: threading.Event | None = None,
    ) -> SearchResult:
        """GEOSEARCH around the center, then re-measure and filter locally.

        `cancel` is accepted for interface parity; a single GEOSEARCH call
        cannot be interrupted once issued.
        """
        del cancel
        lon, lat = validate_coordinates(longitude, latitude)
        radius = validate_radius(radius_km)
        limit = validate_limit(limit)

        started = time.perf_counter()
        rows = self._call(
            self._client.geosearch,
            self._key,
            longitude=lon,
            latitude=lat,
            radius=radius * self._radius_slack,
            unit="km",
            sort="ASC",
            count=limit,
            withcoord=True,
        )
        duration_ms = (time.perf_counter() - started) * 1000

        if not rows:
            logger.debug("Redis GEOSEARCH completed: 0 drivers in %.2fms", duration_ms)
            return ()

        members = [_decode(row[0]) for row in rows]
        coords = np.asarray([(float(row[1][0]), float(row[1][1])) for row in rows], dtype=np.float64)
        distances = haversine_km_many(lon, lat, coords[:, 0], coords[:, 1])

        hits = [
            SearchHit(id=members[i], distance_km=float(distances[i]))
            for i in np.flatnonzero(distances <= radius)
        ]
        logger.debug("Redis GEOSEARCH completed: %d drivers in %.2fms", len(rows), duration_ms)
        return rank_hits(hits, limit)

    def _positions_as_points(self, batch: list[str]) -> Iterator[Point]:
        for entity_id, (lon, lat) in self.get_many(batch).items():
            yield Point(id=entity_id, longitude=lon, latitude=lat)

    def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except redis.exceptions.RedisError as exc:
            raise self._unavailable(exc) from exc

    def _unavailable(self, exc: Exception) -> StoreUnavailable:
        # Connection and timeout failures, and server replies such as WRONGTYPE.
        return StoreUnavailable(f"redis store unavailable ({self._key!r}): {type(exc).__name__}: {exc}")


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)
