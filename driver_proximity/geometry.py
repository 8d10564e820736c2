"""Geometry helpers for great-circle measurements in kilometre space."""

from __future__ import annotations

import math
from typing import Any

import numpy as np

from .errors import InvalidCoordinate, InvalidRadius

# Mean Earth radius. Every distance in the package uses this constant.
EARTH_RADIUS_KM = 6371.0


def validate_coordinates(longitude: Any, latitude: Any) -> tuple[float, float]:
    """Return `(longitude, latitude)` as floats or raise `InvalidCoordinate`."""
    if isinstance(longitude, bool) or isinstance(latitude, bool):
        raise InvalidCoordinate("coordinates must be numbers, not booleans")

    try:
        lon = float(longitude)
        lat = float(latitude)
    except (TypeError, ValueError) as exc:
        raise InvalidCoordinate(f"coordinates must be numeric: ({longitude!r}, {latitude!r})") from exc

    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise InvalidCoordinate(f"coordinates must be finite: ({lon}, {lat})")

    if not -180.0 <= lon <= 180.0:
        raise InvalidCoordinate(f"invalid longitude: {lon}. Must be between -180 and 180")

    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"invalid latitude: {lat}. Must be between -90 and 90")

    return lon, lat


def validate_radius(radius_km: Any) -> float:
    """Return `radius_km` as a float or raise `InvalidRadius`."""
    if isinstance(radius_km, bool):
        raise InvalidRadius("radius_km must be a number")

    try:
        value = float(radius_km)
    except (TypeError, ValueError) as exc:
        raise InvalidRadius(f"radius_km must be numeric: {radius_km!r}") from exc

    if not math.isfinite(value) or value <= 0:
        raise InvalidRadius(f"radius_km must be > 0, got {radius_km!r}")
    return value


def haversine_km_many(
    longitude: float,
    latitude: float,
    longitudes: np.ndarray,
    latitudes: np.ndarray,
) -> np.ndarray:
    """Return distances in km from one point to arrays of points.

    NaN coordinates propagate to NaN distances, which never compare `<=` to a
    radius, so callers can use NaN to mark empty slots.
    """
    lon1 = np.radians(longitude)
    lat1 = np.radians(latitude)
    lon2 = np.radians(np.asarray(longitudes, dtype=np.float64))
    lat2 = np.radians(np.asarray(latitudes, dtype=np.float64))

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = np.sin(dlat / 2.0) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2.0) ** 2
    # Rounding can push `a` marginally outside [0, 1] for antipodal points.
    a = np.clip(a, 0.0, 1.0)
    return 2.0 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(a))


def haversine_km(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """Return great-circle distance between two points in kilometres."""
    distances = haversine_km_many(lon1, lat1, np.asarray([lon2]), np.asarray([lat2]))
    return float(distances[0])
