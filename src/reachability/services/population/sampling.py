"""Population-weighted start point sampling around a target."""

from __future__ import annotations

import logging
import random
from typing import Sequence

from ...models.domain import LatLng, PopulationPoint
from ..distribution.expected import expected_distribution
from ..geospatial import haversine_m

logger = logging.getLogger(__name__)

MAX_BINS = 15


def points_within_radius(
    points: Sequence[PopulationPoint], center: LatLng, radius_m: float
) -> list[tuple[PopulationPoint, float]]:
    """Return (point, distance) pairs for points inside the radius."""

    matches: list[tuple[PopulationPoint, float]] = []
    for point in points:
        distance = haversine_m(center.lat, center.lon, point.location.lat, point.location.lon)
        if distance <= radius_m:
            matches.append((point, distance))
    return matches


def _bin_quota(kind: str, num_bins: int, radius_m: float, count: int) -> list[int]:
    expected = expected_distribution(kind, num_bins, radius_m, count)
    quota = [max(0, round(value)) for value in expected]
    diff = count - sum(quota)
    index = 0
    while diff != 0 and index < num_bins * 2:
        bin_index = index % num_bins
        if diff > 0 and expected[bin_index] > 0:
            quota[bin_index] += 1
            diff -= 1
        elif diff < 0 and quota[bin_index] > 0:
            quota[bin_index] -= 1
            diff += 1
        index += 1
    return quota


def sample_start_points(
    points: Sequence[PopulationPoint],
    center: LatLng,
    radius_m: float,
    count: int,
    kind: str = "lognormal",
    seed: int | None = None,
) -> list[PopulationPoint]:
    """Draw ``count`` populated points so their distances follow the expected curve.

    Points are drawn with replacement, proportional to weight within each
    distance bin. Quota for bins without population is moved to populated bins.
    """

    populated = [(point, distance) for point, distance in points_within_radius(points, center, radius_m) if point.weight > 0]
    if not populated or count <= 0:
        return []

    rng = random.Random(seed)
    num_bins = min(MAX_BINS, max(1, count))
    bin_size = radius_m / num_bins
    by_bin: list[list[PopulationPoint]] = [[] for _ in range(num_bins)]
    for point, distance in populated:
        by_bin[min(int(distance // bin_size), num_bins - 1)].append(point)

    quota = _bin_quota(kind, num_bins, radius_m, count)

    pool = 0
    for index in range(num_bins):
        if quota[index] > 0 and not by_bin[index]:
            pool += quota[index]
            quota[index] = 0
    while pool > 0:
        moved = False
        for index in range(num_bins):
            if pool <= 0:
                break
            if by_bin[index]:
                quota[index] += 1
                pool -= 1
                moved = True
        if not moved:
            break

    sampled: list[PopulationPoint] = []
    for index, members in enumerate(by_bin):
        if quota[index] <= 0 or not members:
            continue
        sampled.extend(rng.choices(members, weights=[point.weight for point in members], k=quota[index]))

    if len(sampled) < count:
        everyone = [point for point, _ in populated]
        sampled.extend(rng.choices(everyone, weights=[point.weight for point in everyone], k=count - len(sampled)))

    logger.debug(f"Sampled {len(sampled)} start points from {len(populated)} populated points")
    return sampled[:count]
