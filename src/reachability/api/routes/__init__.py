"""Route group exports."""

from . import aggregation, distribution, health, population, targets

__all__ = ["aggregation", "distribution", "health", "population", "targets"]
