"""Route result cache with a generation counter."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Optional

from ...errors import StaleResult
from ...models.domain import RouteResult, RouteStatus

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str, str]


class RouteCache:
    """Final route results keyed by (point id, target id, mode).

    Any clearing operation bumps ``generation``; results computed for an older
    generation are refused by ``accept``.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, RouteResult] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def generation(self) -> int:
        return self._generation

    def begin_generation(self) -> int:
        self._generation += 1
        logger.debug(f"Route generation advanced to {self._generation}")
        return self._generation

    def get(self, point_id: str, target_id: str, mode: str) -> Optional[RouteResult]:
        cached = self._entries.get((point_id, target_id, mode))
        if cached is None:
            return None
        if cached.generation != self._generation:
            cached = replace(cached, generation=self._generation)
        return cached

    def accept(self, result: RouteResult) -> RouteResult:
        """Store a freshly computed result; raises StaleResult for superseded generations."""
        if result.generation != self._generation:
            raise StaleResult(result.generation, self._generation)
        # failures stay out of the cache so they can be retried
        if result.status in (RouteStatus.REACHABLE, RouteStatus.UNREACHABLE):
            self._entries[(result.population_point_id, result.target_id, result.mode)] = result
        return result

    def invalidate(self, target_ids: Iterable[str] | None = None, mode: str | None = None) -> int:
        """Drop entries (all, or those of the given targets/mode) and start a new generation."""
        if target_ids is None and mode is None:
            self._entries.clear()
        else:
            doomed_targets = set(target_ids) if target_ids is not None else None
            for key in list(self._entries):
                _, target_id, entry_mode = key
                if doomed_targets is not None and target_id not in doomed_targets:
                    continue
                if mode is not None and entry_mode != mode:
                    continue
                del self._entries[key]
        return self.begin_generation()
