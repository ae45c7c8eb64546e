"""Bucketization and weighted statistics over (cost, weight) pairs."""

from __future__ import annotations

import logging
import math
from bisect import bisect_right
from typing import Any, Iterable, Mapping, Sequence

from pydantic import ValidationError as PydanticValidationError

from ...errors import ConfigError
from ...models.domain import BucketKind, DistributionBucket, DistributionSummary
from ...schemas.distribution import MAX_BUCKETS, DistributionConfig

logger = logging.getLogger(__name__)

CostWeight = tuple[float, float]


def resolve_config(config: DistributionConfig | Mapping[str, Any] | None) -> DistributionConfig:
    """Coerce user input into a validated config, raising ConfigError on bad values."""

    if config is None:
        return DistributionConfig()
    if isinstance(config, DistributionConfig):
        # re-validate; model_construct() or attribute assignment can bypass validators
        payload: Mapping[str, Any] = config.model_dump()
    elif isinstance(config, Mapping):
        payload = config
    else:
        raise ConfigError(f"Unsupported distribution config type: {type(config).__name__}")
    try:
        return DistributionConfig.model_validate(payload)
    except PydanticValidationError as exc:
        messages = "; ".join(error["msg"] for error in exc.errors())
        raise ConfigError(f"Invalid distribution config: {messages}") from exc


def sturges_bucket_count(n: int) -> int:
    if n <= 1:
        return 1
    return math.ceil(math.log2(n)) + 1


def _checked_steps(upper: float, width: float) -> int:
    steps = max(1, math.ceil(upper / width))
    if steps > MAX_BUCKETS:
        raise ConfigError(
            f"bucket_width {width:g} needs {steps} buckets to reach {upper:g}; the limit is {MAX_BUCKETS}."
        )
    return steps


def resolve_edges(costs: Sequence[float], config: DistributionConfig) -> list[float]:
    """Return the regular bucket edges for the given costs.

    Raises ConfigError when a bucket width would need more than MAX_BUCKETS
    buckets to span the costs.
    """

    if config.bucket_edges is not None:
        return list(config.bucket_edges)

    finite = [cost for cost in costs if math.isfinite(cost)]
    observed_max = max(finite) if finite else 0.0

    width = config.bucket_width
    count = config.bucket_count

    if width is not None and count is not None:
        return [index * width for index in range(count + 1)]

    if width is not None:
        if config.max_cutoff is not None:
            upper = config.max_cutoff
            steps = _checked_steps(upper, width)
            edges = [index * width for index in range(steps)]
            edges.append(upper)
            return edges
        # the top edge is inclusive, so a maximum sitting on it needs no extra bucket
        steps = _checked_steps(observed_max, width)
        return [index * width for index in range(steps + 1)]

    upper = config.max_cutoff if config.max_cutoff is not None else observed_max
    if upper <= 0:
        upper = 1.0
    if count is None:
        count = sturges_bucket_count(len(costs))
    step = upper / count
    edges = [index * step for index in range(count)]
    edges.append(upper)
    return edges


def bucketize(
    costs: Iterable[CostWeight],
    config: DistributionConfig | Mapping[str, Any] | None = None,
) -> list[DistributionBucket]:
    """Assign each (cost, weight) pair to exactly one bucket.

    Regular buckets follow ``edges[i] <= cost < edges[i+1]``; the last regular
    bucket is closed on both ends. Costs above the last edge land in the
    trailing overflow bucket, which is always present.
    """

    resolved = resolve_config(config)
    pairs = list(costs)
    edges = resolve_edges([cost for cost, _ in pairs], resolved)

    regular = len(edges) - 1
    weights: list[list[float]] = [[] for _ in range(regular + 1)]
    counts = [0] * (regular + 1)
    last_edge = edges[-1]

    for cost, weight in pairs:
        if math.isnan(cost):
            logger.debug("Ignoring NaN cost during bucketization")
            continue
        if cost > last_edge:
            index = regular
        elif cost == last_edge:
            index = regular - 1
        else:
            index = max(bisect_right(edges, cost) - 1, 0)
        weights[index].append(weight)
        counts[index] += 1

    buckets = [
        DistributionBucket(
            range_start=edges[index],
            range_end=edges[index + 1],
            total_weight=math.fsum(weights[index]),
            count=counts[index],
        )
        for index in range(regular)
    ]
    buckets.append(
        DistributionBucket(
            range_start=last_edge,
            range_end=math.inf,
            total_weight=math.fsum(weights[regular]),
            count=counts[regular],
            kind=BucketKind.OVERFLOW,
        )
    )
    return buckets


def weighted_percentile(costs: Iterable[CostWeight], q: float) -> float | None:
    """Smallest cost whose cumulative weight reaches fraction ``q`` of the total."""

    if not 0.0 <= q <= 1.0:
        raise ValueError(f"Percentile fraction must be within [0, 1], got {q}.")
    ordered = sorted((cost, weight) for cost, weight in costs if math.isfinite(cost))
    total = sum(weight for _, weight in ordered)
    if not ordered or total <= 0:
        return None
    threshold = q * total
    running = 0.0
    for cost, weight in ordered:
        running += weight
        if running >= threshold and weight > 0:
            return cost
    return ordered[-1][0]


def summarize(costs: Iterable[CostWeight]) -> DistributionSummary:
    pairs = [(cost, weight) for cost, weight in costs if math.isfinite(cost)]
    if not pairs:
        return DistributionSummary()
    total = sum(weight for _, weight in pairs)
    mean = sum(cost * weight for cost, weight in pairs) / total if total > 0 else None
    return DistributionSummary(
        mean=mean,
        median=weighted_percentile(pairs, 0.5),
        p90=weighted_percentile(pairs, 0.9),
        minimum=min(cost for cost, _ in pairs),
        maximum=max(cost for cost, _ in pairs),
    )
