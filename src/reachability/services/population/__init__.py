"""Population service helpers."""

from .loader import PopulationLoad, load_population, load_population_csv, parse_population_record
from .sampling import points_within_radius, sample_start_points

__all__ = [
    "PopulationLoad",
    "load_population",
    "load_population_csv",
    "parse_population_record",
    "points_within_radius",
    "sample_start_points",
]
