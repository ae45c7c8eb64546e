"""Export services."""

from .geojson import bucket_color, export_aggregation_to_geojson

__all__ = [
    "bucket_color",
    "export_aggregation_to_geojson",
]
