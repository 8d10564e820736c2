"""Composition root wiring config, store, cell index, gateway and engine."""

from __future__ import annotations

import logging
from typing import Any

from .cell_index import CellIndex
from .config import ProximityConfig
from .engine import ProximitySearchEngine
from .errors import InvalidEntityId
from .gateway import LocationUpdateGateway
from .models import Point, SearchResult, Strategy
from .overlay import OverlayClassifier
from .point_store import InMemoryPointStore, PointStore
from .redis_store import RedisPointStore

logger = logging.getLogger(__name__)


class ProximityService:
    """One explicitly constructed proximity index instance.

    Exposes the boundary calls consumed by the transport layer:
    `report_location`, `deregister` and `search_nearby`.
    """

    def __init__(self, point_store: PointStore, config: ProximityConfig | None = None) -> None:
        self.config = config or ProximityConfig()
        self.point_store = point_store
        self.classifier = OverlayClassifier(self.config.synthetic_prefix)
        self.cell_index = CellIndex(point_store, resolution=self.config.h3_resolution)
        self.gateway = LocationUpdateGateway(point_store, self.cell_index)
        self.engine = ProximitySearchEngine(
            point_store,
            cell_index=self.cell_index,
            classifier=self.classifier,
            config=self.config,
        )

    @classmethod
    def from_config(cls, config: ProximityConfig | None = None) -> "ProximityService":
        """Create the configured backing store and wrap it in a service."""
        cfg = config or ProximityConfig()
        store: PointStore
        if cfg.store_backend == "redis":
            store = RedisPointStore.from_url(cfg.redis_url, key=cfg.redis_key, socket_timeout_s=cfg.redis_socket_timeout_s)
        else:
            store = InMemoryPointStore(scan_chunk_size=cfg.scan_chunk_size)

        service = cls(store, config=cfg)
        logger.info(
            "Proximity service ready: backend=%s strategy=%s resolution=%d candidate_ceiling=%d",
            cfg.store_backend,
            cfg.strategy.value,
            cfg.h3_resolution,
            cfg.candidate_ceiling,
        )
        return service

    @classmethod
    def from_env(cls) -> "ProximityService":
        return cls.from_config(ProximityConfig.from_env())

    def build_index(self) -> int:
        """Build the hierarchical index from the current store contents."""
        return self.cell_index.build()

    def report_location(self, driver_id: str, longitude: float, latitude: float) -> Point:
        if self.config.reject_synthetic_ids and isinstance(driver_id, str) and self.classifier.is_synthetic(driver_id):
            raise InvalidEntityId(
                f"id {driver_id!r} uses the reserved synthetic prefix {self.classifier.synthetic_prefix!r}"
            )
        return self.gateway.report_location(driver_id, longitude, latitude)

    def seed_synthetic(self, points: list[Point]) -> int:
        """Load synthetic filler points, bypassing `reject_synthetic_ids`."""
        for point in points:
            if not self.classifier.is_synthetic(point.id):
                raise InvalidEntityId(f"seed id {point.id!r} is not in the synthetic namespace")
        return self.gateway.report_many(points)

    def deregister(self, driver_id: str) -> None:
        self.gateway.deregister(driver_id)

    def search(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        count: int,
        strategy: Strategy | str | None = None,
        prefer_primary: bool = True,
    ) -> SearchResult:
        return self.engine.search(longitude, latitude, radius_km, count, strategy=strategy, prefer_primary=prefer_primary)

    def search_nearby(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        count: int,
        strategy_flag: Strategy | str | None = None,
        prefer_primary_flag: bool = True,
    ) -> list[dict[str, Any]]:
        return self.engine.search_nearby(
            longitude,
            latitude,
            radius_km,
            count,
            strategy_flag=strategy_flag,
            prefer_primary_flag=prefer_primary_flag,
        )
