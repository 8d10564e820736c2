"""Public API for the driver proximity index."""

from .benchmark import BenchmarkConfig, load_benchmark_config, run_benchmark, run_benchmark_from_config
from .cell_index import CellIndex
from .config import ConfigError, ProximityConfig, load_proximity_config
from .engine import ProximitySearchEngine
from .errors import (
    IndexUnavailable,
    InvalidCoordinate,
    InvalidCount,
    InvalidEntityId,
    InvalidRadius,
    InvalidStrategy,
    ProximityError,
    ScanInterrupted,
    StoreUnavailable,
)
from .gateway import LocationUpdateGateway
from .geometry import EARTH_RADIUS_KM, haversine_km
from .models import Point, SearchHit, SearchResult, Strategy, format_distance
from .overlay import EntityClass, OverlayClassifier
from .point_store import InMemoryPointStore, PointStore
from .redis_store import RedisPointStore
from .service import ProximityService

__all__ = [
    "BenchmarkConfig",
    "CellIndex",
    "ConfigError",
    "EARTH_RADIUS_KM",
    "EntityClass",
    "InMemoryPointStore",
    "IndexUnavailable",
    "InvalidCoordinate",
    "InvalidCount",
    "InvalidEntityId",
    "InvalidRadius",
    "InvalidStrategy",
    "LocationUpdateGateway",
    "OverlayClassifier",
    "Point",
    "PointStore",
    "ProximityConfig",
    "ProximityError",
    "ProximitySearchEngine",
    "ProximityService",
    "RedisPointStore",
    "ScanInterrupted",
    "SearchHit",
    "SearchResult",
    "StoreUnavailable",
    "Strategy",
    "format_distance",
    "haversine_km",
    "load_benchmark_config",
    "load_proximity_config",
    "run_benchmark",
    "run_benchmark_from_config",
]
