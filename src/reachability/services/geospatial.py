"""Geospatial helper functions."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Iterable, Sequence

from shapely.geometry import Point, Polygon, box

from ..models.domain import LatLng

EARTH_RADIUS_M = 6_371_000.0
EARTH_RADIUS_KM = EARTH_RADIUS_M / 1000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in metres between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_m(lat1, lon1, lat2, lon2) / 1000.0


def is_valid_coordinate(lat: object, lon: object) -> bool:
    """Return True for finite numbers within latitude [-90, 90] and longitude [-180, 180]."""

    if isinstance(lat, bool) or isinstance(lon, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


@dataclass(slots=True, frozen=True)
class BoundingBox:
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    @classmethod
    def from_points(cls, points: Iterable[LatLng]) -> "BoundingBox":
        lats: list[float] = []
        lons: list[float] = []
        for point in points:
            lats.append(point.lat)
            lons.append(point.lon)
        if not lats:
            raise ValueError("Cannot build a bounding box from zero points.")
        return cls(min(lats), min(lons), max(lats), max(lons))

    def contains(self, lat: float, lon: float) -> bool:
        # covers() keeps points on the boundary inside
        return box(self.min_lon, self.min_lat, self.max_lon, self.max_lat).covers(Point(lon, lat))

    def expand_m(self, margin_m: float) -> "BoundingBox":
        d_lat = math.degrees(margin_m / EARTH_RADIUS_M)
        mid_lat = math.radians((self.min_lat + self.max_lat) / 2)
        cos_lat = max(math.cos(mid_lat), 1e-12)
        d_lon = math.degrees(margin_m / (EARTH_RADIUS_M * cos_lat))
        return BoundingBox(
            max(self.min_lat - d_lat, -90.0),
            max(self.min_lon - d_lon, -180.0),
            min(self.max_lat + d_lat, 90.0),
            min(self.max_lon + d_lon, 180.0),
        )

    @property
    def center(self) -> LatLng:
        return LatLng((self.min_lat + self.max_lat) / 2, (self.min_lon + self.max_lon) / 2)


def point_in_polygon(lat: float, lon: float, polygon_coords: Sequence[tuple[float, float]]) -> bool:
    """Return True if the point is inside the polygon denoted by (lat, lon) pairs."""

    polygon = Polygon([(lng, lat) for lat, lng in polygon_coords])
    return polygon.contains(Point(lon, lat))


def polygon_centroid(polygon_coords: Sequence[tuple[float, float]]) -> LatLng:
    """Centroid of a polygon given as (lat, lon) pairs."""

    centroid = Polygon([(lng, lat) for lat, lng in polygon_coords]).centroid
    return LatLng(centroid.y, centroid.x)


def point_at_distance(lat: float, lon: float, distance_m: float, angle_rad: float) -> LatLng:
    """Offset a point by distance_m along angle_rad (flat-earth approximation)."""

    d_lat = (distance_m * math.sin(angle_rad)) / EARTH_RADIUS_M
    d_lon = (distance_m * math.cos(angle_rad)) / (EARTH_RADIUS_M * math.cos(math.radians(lat)))
    return LatLng(lat + math.degrees(d_lat), lon + math.degrees(d_lon))


def random_point_in_radius(lat: float, lon: float, radius_m: float, rng: random.Random | None = None) -> LatLng:
    """Uniformly distributed point inside a circle (not denser towards the rim)."""

    rng = rng or random.Random()
    distance = radius_m * math.sqrt(rng.random())
    angle = 2 * math.pi * rng.random()
    return point_at_distance(lat, lon, distance, angle)


def route_length_m(coordinates: Sequence[tuple[float, float]]) -> float:
    """Length of a (lat, lon) polyline in metres."""

    if len(coordinates) < 2:
        return 0.0
    total = 0.0
    for (lat1, lon1), (lat2, lon2) in zip(coordinates, coordinates[1:]):
        total += haversine_m(lat1, lon1, lat2, lon2)
    return total
