"""Minimal demo for the driver proximity index.

Run:
    python examples/minimal_demo.py
"""

from __future__ import annotations

from pathlib import Path
import sys

# Ensure package import works when running this script directly.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from driver_proximity import (
    IndexUnavailable,
    InvalidCoordinate,
    Point,
    ProximityConfig,
    ProximityService,
    Strategy,
)


def make_demo_points() -> list[Point]:
    """Create one real driver and a small cluster of ghost drivers."""
    # Ghosts are placed so two of them are closer than the third-nearest real slot.
    return [
        Point(id="real:1", longitude=106.700, latitude=10.770),
        Point(id="ghost:1", longitude=106.701, latitude=10.770),
        Point(id="ghost:2", longitude=106.702, latitude=10.771),
        Point(id="ghost:3", longitude=106.705, latitude=10.773),
        Point(id="ghost:4", longitude=106.708, latitude=10.776),
        Point(id="ghost:5", longitude=106.709, latitude=10.779),
    ]


def main() -> None:
    """Report locations, search with both strategies, and print the results."""
    service = ProximityService.from_config(ProximityConfig(h3_resolution=7))

    for point in make_demo_points():
        service.report_location(point.id, point.longitude, point.latitude)

    try:
        service.search(106.700, 10.770, 5.0, 3, strategy=Strategy.HIERARCHICAL)
    except IndexUnavailable as exc:
        print("Hierarchical before build:", exc)

    print("Indexed points:", service.build_index())

    for strategy in Strategy:
        wire = service.search_nearby(106.700, 10.770, 5.0, 3, strategy_flag=strategy, prefer_primary_flag=True)
        print(f"{strategy.value}: {wire}")

    try:
        service.report_location("d1", 200.0, 10.0)
    except InvalidCoordinate as exc:
        print("Rejected update:", exc)


if __name__ == "__main__":
    main()
