"""Tests for the primary/secondary overlay policy."""

from __future__ import annotations

import unittest

from driver_proximity import EntityClass, OverlayClassifier, SearchHit


def _hits(*pairs: tuple[str, float]) -> tuple[SearchHit, ...]:
    return tuple(SearchHit(id=entity_id, distance_km=distance) for entity_id, distance in pairs)


class OverlayClassifierTest(unittest.TestCase):
    """Classification by prefix and slot filling."""

    def setUp(self) -> None:
        self.classifier = OverlayClassifier("ghost:")
        self.results = _hits(
            ("ghost:1", 0.1),
            ("ghost:2", 0.2),
            ("real:1", 0.3),
            ("ghost:3", 0.4),
            ("real:2", 0.5),
        )

    def test_classify_by_prefix(self) -> None:
        self.assertEqual(self.classifier.classify("ghost:42"), EntityClass.SECONDARY)
        self.assertEqual(self.classifier.classify("driver_00001"), EntityClass.PRIMARY)
        # Prefix must match at the start, not anywhere in the id.
        self.assertEqual(self.classifier.classify("real-ghost:1"), EntityClass.PRIMARY)

    def test_synthetic_id_uses_prefix(self) -> None:
        self.assertEqual(self.classifier.synthetic_id(7), "ghost:7")
        self.assertTrue(self.classifier.is_synthetic(self.classifier.synthetic_id("x")))

    def test_empty_prefix_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            OverlayClassifier("")

    def test_prefer_primary_takes_primary_first(self) -> None:
        result = self.classifier.partition_and_fill(self.results, 2, prefer_primary=True)
        self.assertEqual([h.id for h in result], ["real:1", "real:2"])

    def test_prefer_primary_fills_with_nearest_secondary(self) -> None:
        result = self.classifier.partition_and_fill(self.results, 4, prefer_primary=True)

        self.assertEqual({h.id for h in result}, {"real:1", "real:2", "ghost:1", "ghost:2"})
        distances = [h.distance_km for h in result]
        self.assertEqual(distances, sorted(distances))

    def test_without_preference_returns_prefix_of_input(self) -> None:
        result = self.classifier.partition_and_fill(self.results, 3, prefer_primary=False)
        self.assertEqual(result, self.results[:3])

    def test_non_positive_count_is_empty(self) -> None:
        self.assertEqual(self.classifier.partition_and_fill(self.results, 0, prefer_primary=True), ())
        self.assertEqual(self.classifier.partition_and_fill(self.results, -3, prefer_primary=False), ())

    def test_count_larger_than_results(self) -> None:
        result = self.classifier.partition_and_fill(self.results, 50, prefer_primary=True)
        self.assertEqual(len(result), len(self.results))


if __name__ == "__main__":
    unittest.main()
