"""Tests for great-circle geometry helpers and input validation."""

from __future__ import annotations

import math
import unittest

import numpy as np

from driver_proximity import EARTH_RADIUS_KM, InvalidCoordinate, InvalidRadius, haversine_km
from driver_proximity.geometry import haversine_km_many, validate_coordinates, validate_radius


class HaversineTest(unittest.TestCase):
    """Distances use the 6371 km mean Earth radius."""

    def test_same_point_is_zero(self) -> None:
        self.assertEqual(haversine_km(106.7, 10.77, 106.7, 10.77), 0.0)

    def test_one_degree_of_latitude(self) -> None:
        expected = 2.0 * math.pi * EARTH_RADIUS_KM / 360.0
        self.assertAlmostEqual(haversine_km(0.0, 0.0, 0.0, 1.0), expected, places=6)

    def test_antipodal_points_do_not_overflow(self) -> None:
        distance = haversine_km(0.0, 0.0, 180.0, 0.0)
        self.assertAlmostEqual(distance, math.pi * EARTH_RADIUS_KM, places=6)

    def test_vectorized_matches_scalar_and_propagates_nan(self) -> None:
        lons = np.array([106.71, np.nan, 106.8])
        lats = np.array([10.78, np.nan, 10.70])
        distances = haversine_km_many(106.7, 10.77, lons, lats)

        self.assertAlmostEqual(distances[0], haversine_km(106.7, 10.77, 106.71, 10.78), places=9)
        self.assertTrue(np.isnan(distances[1]))
        self.assertFalse(bool(distances[1] <= 1000.0))


class ValidationTest(unittest.TestCase):
    """Coordinate and radius validation."""

    def test_valid_bounds_are_accepted(self) -> None:
        self.assertEqual(validate_coordinates(-180, 90), (-180.0, 90.0))
        self.assertEqual(validate_coordinates("106.7", "10.77"), (106.7, 10.77))

    def test_out_of_range_and_malformed_coordinates(self) -> None:
        for lon, lat in [(200.0, 10.0), (10.0, -90.5), (float("nan"), 0.0), ("abc", 0.0), (None, 1.0), (True, 1.0)]:
            with self.subTest(lon=lon, lat=lat):
                with self.assertRaises(InvalidCoordinate):
                    validate_coordinates(lon, lat)

    def test_invalid_coordinate_is_a_value_error(self) -> None:
        with self.assertRaises(ValueError):
            validate_coordinates(181.0, 0.0)

    def test_radius_must_be_positive_and_finite(self) -> None:
        self.assertEqual(validate_radius(5), 5.0)
        for radius in [0, -1.0, float("inf"), "x", None]:
            with self.subTest(radius=radius):
                with self.assertRaises(InvalidRadius):
                    validate_radius(radius)


if __name__ == "__main__":
    unittest.main()
