"""Exception hierarchy for the reachability core."""

from __future__ import annotations


class ReachabilityError(Exception):
    """Base class for domain errors."""


class ValidationError(ReachabilityError, ValueError):
    """A population or target record is malformed."""

    def __init__(self, message: str, *, record_index: int | None = None) -> None:
        super().__init__(message)
        self.record_index = record_index


class RouteUnavailable(ReachabilityError):
    """The routing provider could not produce a route for a pair."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        # transient failures (timeouts, network) are not cached
        self.transient = transient


class StaleResult(ReachabilityError):
    """A routing result arrived for a superseded generation."""

    def __init__(self, generation: int, current: int) -> None:
        super().__init__(f"Result from generation {generation} superseded by {current}.")
        self.generation = generation
        self.current = current


class ConfigError(ReachabilityError, ValueError):
    """Distribution or aggregation configuration is invalid."""
