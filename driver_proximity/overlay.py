"""Primary/secondary overlay policy for mixing real and synthetic entities."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from .config import DEFAULT_SYNTHETIC_PREFIX
from .models import SearchHit, SearchResult, rank_hits


class EntityClass(str, Enum):
    """Classification of an entity id."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class OverlayClassifier:
    """Classify ids by the reserved synthetic prefix and fill result slots.

    Real entity ids must never start with the synthetic prefix; everything
    carrying it is load-test filler. Classification is computed from the id
    on every call and never stored.
    """

    def __init__(self, synthetic_prefix: str = DEFAULT_SYNTHETIC_PREFIX) -> None:
        if not isinstance(synthetic_prefix, str) or not synthetic_prefix:
            raise ValueError("synthetic_prefix must be a non-empty string")
        self._prefix = synthetic_prefix

    @property
    def synthetic_prefix(self) -> str:
        return self._prefix

    def classify(self, entity_id: str) -> EntityClass:
        if entity_id.startswith(self._prefix):
            return EntityClass.SECONDARY
        return EntityClass.PRIMARY

    def is_synthetic(self, entity_id: str) -> bool:
        return entity_id.startswith(self._prefix)

    def synthetic_id(self, suffix: object) -> str:
        """Return an id in the synthetic namespace, e.g. `ghost:42`."""
        return f"{self._prefix}{suffix}"

    def partition(self, results: Iterable[SearchHit]) -> tuple[list[SearchHit], list[SearchHit]]:
        """Split results into `(primary, secondary)`, preserving order."""
        primary: list[SearchHit] = []
        secondary: list[SearchHit] = []
        for hit in results:
            if self.is_synthetic(hit.id):
                secondary.append(hit)
            else:
                primary.append(hit)
        return primary, secondary

    def partition_and_fill(
        self,
        results: Iterable[SearchHit],
        desired_count: int,
        prefer_primary: bool,
    ) -> SearchResult:
        """Select up to `desired_count` hits from distance-ordered `results`.

        With `prefer_primary`, primary hits take slots first and secondary
        hits only fill what is left; the chosen hits are returned in distance
        order. Without it, the first `desired_count` hits are returned as-is.
        """
        ordered = tuple(results)
        if desired_count <= 0:
            return ()

        if not prefer_primary:
            return ordered[:desired_count]

        primary, secondary = self.partition(ordered)
        chosen = primary[:desired_count]
        remaining = desired_count - len(chosen)
        if remaining > 0:
            chosen.extend(secondary[:remaining])
        return rank_hits(chosen)
