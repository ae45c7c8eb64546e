"""Output serializers."""

from .formatter import aggregation_result_to_json, point_costs_to_csv

__all__ = ["aggregation_result_to_json", "point_costs_to_csv"]
