"""In-memory registry of target facilities with change notification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Optional

from ...errors import ValidationError
from ...models.domain import LatLng, Target
from ..geospatial import is_valid_coordinate

logger = logging.getLogger(__name__)

COORDINATE_TOLERANCE_DEG = 0.0001

ChangeKind = Literal["added", "removed", "cleared"]


@dataclass(slots=True, frozen=True)
class TargetChange:
    kind: ChangeKind
    target_ids: tuple[str, ...]


TargetListener = Callable[[TargetChange], None]


class TargetService:
    """Owns the set of candidate targets; every mutation notifies subscribers."""

    def __init__(self, tolerance_deg: float = COORDINATE_TOLERANCE_DEG) -> None:
        self.tolerance_deg = tolerance_deg
        self._targets: dict[str, Target] = {}
        self._listeners: list[TargetListener] = []
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._targets

    def list_targets(self) -> list[Target]:
        return list(self._targets.values())

    def ids(self) -> frozenset[str]:
        return frozenset(self._targets)

    def get(self, target_id: str) -> Optional[Target]:
        return self._targets.get(target_id)

    def find_near(self, lat: float, lon: float) -> Optional[Target]:
        """Return an existing target within the coordinate tolerance, if any."""
        for target in self._targets.values():
            if (
                abs(target.location.lat - lat) < self.tolerance_deg
                and abs(target.location.lon - lon) < self.tolerance_deg
            ):
                return target
        return None

    def subscribe(self, listener: TargetListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_target(self, target: Target) -> bool:
        """Add a target; returns False when its id or location is already present."""
        added = self._insert(target)
        if added:
            self._emit(TargetChange("added", (target.id,)))
        return added

    def add_location(
        self,
        lat: float,
        lon: float,
        *,
        category: str = "school",
        name: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[Target]:
        """Create a target with the next free numeric id; None when the spot is taken."""
        target = Target(
            id=self._allocate_id(),
            location=LatLng(lat, lon),
            category=category,
            name=name,
            metadata=dict(metadata or {}),
        )
        return target if self.add_target(target) else None

    def add_many(self, targets: Iterable[Target]) -> list[Target]:
        """Bulk insert emitting a single notification."""
        added = [target for target in targets if self._insert(target)]
        if added:
            self._emit(TargetChange("added", tuple(target.id for target in added)))
        return added

    def remove_target(self, target_id: str) -> Optional[Target]:
        target = self._targets.pop(target_id, None)
        if target is None:
            return None
        self._emit(TargetChange("removed", (target_id,)))
        return target

    def clear(self) -> None:
        removed = tuple(self._targets)
        self._targets.clear()
        self._emit(TargetChange("cleared", removed))

    def _insert(self, target: Target) -> bool:
        if not is_valid_coordinate(target.location.lat, target.location.lon):
            raise ValidationError(f"Target '{target.id}' has invalid coordinates {tuple(target.location)}")
        if not str(target.id).strip():
            raise ValidationError("Target id must not be empty")
        if target.id in self._targets or self.find_near(target.location.lat, target.location.lon):
            return False
        self._targets[target.id] = target
        if target.id.isdigit():
            self._next_id = max(self._next_id, int(target.id) + 1)
        return True

    def _allocate_id(self) -> str:
        while str(self._next_id) in self._targets:
            self._next_id += 1
        return str(self._next_id)

    def _emit(self, change: TargetChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(f"Target listener failed for {change.kind} event")
