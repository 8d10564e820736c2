"""Tests for search orchestration and ranking properties."""

from __future__ import annotations

import unittest

import numpy as np

from driver_proximity import (
    CellIndex,
    InMemoryPointStore,
    IndexUnavailable,
    InvalidCount,
    InvalidRadius,
    InvalidStrategy,
    LocationUpdateGateway,
    ProximityConfig,
    ProximityError,
    ProximitySearchEngine,
    Strategy,
    haversine_km,
)

CENTER = (106.700, 10.770)


class ProximitySearchEngineTest(unittest.TestCase):
    """Search behaviour across both strategies."""

    def _make_engine(self, config: ProximityConfig | None = None, build: bool = True) -> ProximitySearchEngine:
        store = InMemoryPointStore()
        index = CellIndex(store, resolution=7)
        if build:
            index.build()
        self.gateway = LocationUpdateGateway(store, index)
        return ProximitySearchEngine(store, cell_index=index, config=config)

    def _seed_example(self) -> dict[str, tuple[float, float]]:
        ghosts = {
            "ghost:1": (106.709, 10.772),
            "ghost:2": (106.702, 10.771),
            "ghost:3": (106.705, 10.778),
            "ghost:4": (106.693, 10.765),
            "ghost:5": (106.701, 10.761),
        }
        self.gateway.report_location("real:1", *CENTER)
        for entity_id, (lon, lat) in ghosts.items():
            self.gateway.report_location(entity_id, lon, lat)
        return ghosts

    def _seed_random(self, n_primary: int, n_synthetic: int, seed: int = 5) -> None:
        rng = np.random.default_rng(seed)
        for i in range(n_primary + n_synthetic):
            entity_id = f"driver_{i}" if i < n_primary else f"ghost:{i}"
            self.gateway.report_location(
                entity_id,
                CENTER[0] + float(rng.uniform(-0.08, 0.08)),
                CENTER[1] + float(rng.uniform(-0.08, 0.08)),
            )

    def test_example_scenario_real_driver_first(self) -> None:
        engine = self._make_engine()
        ghosts = self._seed_example()
        nearest_ghosts = sorted(ghosts, key=lambda g: haversine_km(*CENTER, *ghosts[g]))[:2]

        for strategy in Strategy:
            with self.subTest(strategy=strategy):
                result = engine.search(*CENTER, 5.0, 3, strategy=strategy, prefer_primary=True)
                self.assertEqual([h.id for h in result], ["real:1", *nearest_ghosts])
                self.assertAlmostEqual(result[0].distance_km, 0.0, places=9)

    def test_overlay_priority_excludes_secondary(self) -> None:
        engine = self._make_engine()
        for i in range(20):
            self.gateway.report_location(f"ghost:{i}", CENTER[0] + 0.0001 * i, CENTER[1])
        for i in range(3):
            self.gateway.report_location(f"real:{i}", CENTER[0] + 0.01 * (i + 1), CENTER[1])

        for strategy in Strategy:
            with self.subTest(strategy=strategy):
                result = engine.search(*CENTER, 5.0, 3, strategy=strategy, prefer_primary=True)
                self.assertEqual([h.id for h in result], ["real:0", "real:1", "real:2"])

                mixed = engine.search(*CENTER, 5.0, 3, strategy=strategy, prefer_primary=False)
                self.assertTrue(all(h.id.startswith("ghost:") for h in mixed))

    def test_ranking_properties_hold(self) -> None:
        engine = self._make_engine()
        self._seed_random(n_primary=30, n_synthetic=500)

        for strategy in Strategy:
            for prefer_primary in (True, False):
                for count in (1, 7, 50):
                    with self.subTest(strategy=strategy, prefer_primary=prefer_primary, count=count):
                        result = engine.search(*CENTER, 6.0, count, strategy=strategy, prefer_primary=prefer_primary)
                        distances = [h.distance_km for h in result]
                        ids = [h.id for h in result]
                        self.assertLessEqual(len(result), count)
                        self.assertEqual(distances, sorted(distances))
                        self.assertEqual(len(ids), len(set(ids)))
                        self.assertTrue(all(d <= 6.0 for d in distances))

    def test_strategies_return_identical_candidate_sets(self) -> None:
        engine = self._make_engine()
        self._seed_random(n_primary=10, n_synthetic=800, seed=9)

        for radius_km in (0.5, 3.0, 12.0):
            with self.subTest(radius_km=radius_km):
                flat = engine.candidates(*CENTER, radius_km, strategy=Strategy.FLAT_SCAN)
                cells = engine.candidates(*CENTER, radius_km, strategy=Strategy.HIERARCHICAL)
                self.assertEqual({h.id for h in flat}, {h.id for h in cells})

    def test_empty_store_returns_empty(self) -> None:
        engine = self._make_engine()
        for strategy in Strategy:
            self.assertEqual(engine.search(*CENTER, 5.0, 3, strategy=strategy), ())

    def test_non_positive_count_returns_empty(self) -> None:
        engine = self._make_engine()
        self._seed_example()
        self.assertEqual(engine.search(*CENTER, 5.0, 0), ())
        self.assertEqual(engine.search(*CENTER, 5.0, -2), ())

    def test_invalid_parameters_are_rejected(self) -> None:
        engine = self._make_engine()
        with self.assertRaises(InvalidRadius):
            engine.search(*CENTER, 0.0, 3)
        with self.assertRaises(InvalidRadius):
            engine.search(*CENTER, -1.0, 3)
        with self.assertRaises(InvalidCount):
            engine.search(*CENTER, 5.0, 2.5)

    def test_hierarchical_without_index_fails_without_fallback(self) -> None:
        engine = self._make_engine(build=False)
        self._seed_example()

        with self.assertRaises(IndexUnavailable):
            engine.search(*CENTER, 5.0, 3, strategy=Strategy.HIERARCHICAL)

        detached = ProximitySearchEngine(engine.point_store)
        with self.assertRaises(IndexUnavailable):
            detached.search(*CENTER, 5.0, 3, strategy="hierarchical")

    def test_configured_default_strategy_is_used(self) -> None:
        engine = self._make_engine(config=ProximityConfig(strategy=Strategy.HIERARCHICAL), build=False)
        self._seed_example()
        with self.assertRaises(IndexUnavailable):
            engine.search(*CENTER, 5.0, 3)

    def test_candidate_ceiling_bounds_internal_fetch(self) -> None:
        engine = self._make_engine(config=ProximityConfig(candidate_ceiling=5))
        for i in range(10):
            self.gateway.report_location(f"ghost:{i}", CENTER[0] + 0.0001 * i, CENTER[1])
        self.gateway.report_location("real:far", CENTER[0] + 0.02, CENTER[1])

        result = engine.search(*CENTER, 5.0, 3, strategy=Strategy.FLAT_SCAN, prefer_primary=True)
        self.assertNotIn("real:far", [h.id for h in result])

        roomy = ProximitySearchEngine(engine.point_store, cell_index=engine.cell_index)
        result = roomy.search(*CENTER, 5.0, 3, strategy=Strategy.FLAT_SCAN, prefer_primary=True)
        # The primary is kept even though ghosts are closer; output stays distance-ordered.
        self.assertEqual([h.id for h in result], ["ghost:0", "ghost:1", "real:far"])

    def test_search_nearby_wire_format(self) -> None:
        engine = self._make_engine()
        self._seed_example()

        wire = engine.search_nearby(*CENTER, 5.0, 2, strategy_flag="flatScan", prefer_primary_flag=True)

        self.assertEqual(wire[0], {"driverId": "real:1", "distance": "0"})
        self.assertEqual(set(wire[1]), {"driverId", "distance"})
        self.assertIsInstance(wire[1]["distance"], str)
        self.assertGreater(float(wire[1]["distance"]), 0.0)

    def test_search_is_read_only(self) -> None:
        engine = self._make_engine()
        self._seed_example()
        before = engine.cell_index.membership_snapshot()

        for strategy in Strategy:
            engine.search(*CENTER, 5.0, 3, strategy=strategy)

        self.assertEqual(len(engine.point_store), 6)
        self.assertEqual(engine.cell_index.membership_snapshot(), before)

    def test_very_large_radius_matches_flat_scan(self) -> None:
        engine = self._make_engine()
        self._seed_example()
        self.gateway.report_location("real:hanoi", 105.85, 21.03)

        for radius_km in (3000.0, 20000.0):
            with self.subTest(radius_km=radius_km):
                flat = engine.search(*CENTER, radius_km, 3, strategy=Strategy.FLAT_SCAN)
                cells = engine.search(*CENTER, radius_km, 3, strategy=Strategy.HIERARCHICAL)
                self.assertEqual([h.id for h in cells], [h.id for h in flat])
                self.assertEqual(cells[0].id, "real:1")
                self.assertIn("real:hanoi", [h.id for h in cells])

    def test_unknown_strategy_flag_is_a_proximity_error(self) -> None:
        engine = self._make_engine()
        self._seed_example()

        with self.assertRaises(InvalidStrategy) as ctx:
            engine.search_nearby(*CENTER, 5.0, 3, strategy_flag="quadtree")
        self.assertIsInstance(ctx.exception, ProximityError)
        self.assertIsInstance(ctx.exception, ValueError)


if __name__ == "__main__":
    unittest.main()
