"""Reference distance distributions drawn next to observed histograms."""

from __future__ import annotations

import math

MIN_WEIGHT = 0.01
LOGNORMAL_SIGMA = 2.0

KINDS = ("uniform", "near", "far", "normal", "lognormal")


def _lognormal_pdf(distance: float, radius_m: float) -> float:
    mu = radius_m / 4
    if distance <= 0.1:
        return 0.0
    log_x = math.log(distance / mu)
    value = (1 / (distance * LOGNORMAL_SIGMA * math.sqrt(2 * math.pi))) * math.exp(
        -(log_x * log_x) / (2 * LOGNORMAL_SIGMA * LOGNORMAL_SIGMA)
    )
    return value if math.isfinite(value) and value > 0 else 0.0


def _shape(kind: str, distance: float, radius_m: float) -> float:
    match kind:
        case "uniform":
            return 1.0
        case "near":
            return (radius_m - distance) / radius_m
        case "far":
            return distance / radius_m
        case "normal":
            sigma = radius_m / 3
            diff = distance - radius_m / 2
            return math.exp(-(diff * diff) / (2 * sigma * sigma))
        case "lognormal":
            return _lognormal_pdf(distance, radius_m)
        case _:
            raise ValueError(f"Unknown distribution kind '{kind}'.")


def distance_weight(kind: str, distance_m: float, radius_m: float) -> float:
    """Non-negative sampling weight for a single distance; floored at MIN_WEIGHT."""

    if radius_m <= 0 or distance_m < 0:
        return 0.0
    r = min(distance_m, radius_m)
    if kind == "uniform":
        return 1.0
    if kind == "lognormal" and r <= 0.1:
        return MIN_WEIGHT
    return max(MIN_WEIGHT, _shape(kind, r, radius_m))


def expected_distribution(kind: str, num_bins: int, radius_m: float, total: float) -> list[float]:
    """Expected amount per distance bin, normalized so the bins sum to ``total``."""

    if num_bins < 1:
        raise ValueError("num_bins must be at least 1.")
    if radius_m <= 0:
        raise ValueError("radius_m must be positive.")

    bin_size = radius_m / num_bins
    raw = [_shape(kind, (index + 0.5) * bin_size, radius_m) for index in range(num_bins)]
    norm = sum(raw)
    if norm <= 0:
        return [total / num_bins] * num_bins
    return [(value / norm) * total for value in raw]
