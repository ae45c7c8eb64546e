import math
import random

import pytest

from reachability.models.domain import LatLng
from reachability.services.geospatial import (
    BoundingBox,
    haversine_km,
    haversine_m,
    is_valid_coordinate,
    point_in_polygon,
    polygon_centroid,
    random_point_in_radius,
    route_length_m,
)


def test_haversine_known_distance():
    # Brandenburger Tor -> Alexanderplatz, roughly 2.5 km
    distance = haversine_km(52.5163, 13.3777, 52.5219, 13.4132)
    assert 2.3 < distance < 2.7


def test_haversine_zero_for_same_point():
    assert haversine_m(48.0, 11.0, 48.0, 11.0) == 0


@pytest.mark.parametrize(
    "lat, lon, expected",
    [
        (52.5, 13.4, True),
        (-90, 180, True),
        (91, 0, False),
        (0, -181, False),
        (float("nan"), 0, False),
        (True, 0, False),
        ("52.5", 13.4, False),
    ],
)
def test_is_valid_coordinate(lat, lon, expected):
    assert is_valid_coordinate(lat, lon) is expected


def test_bounding_box_contains_boundary_and_expands():
    bbox = BoundingBox.from_points([LatLng(52.0, 13.0), LatLng(52.5, 13.5)])
    assert bbox.contains(52.0, 13.0)
    assert bbox.contains(52.25, 13.25)
    assert not bbox.contains(53.0, 13.25)

    grown = bbox.expand_m(1000)
    assert grown.min_lat < bbox.min_lat
    assert grown.max_lon > bbox.max_lon
    assert bbox.center == LatLng(52.25, 13.25)


def test_bounding_box_requires_points():
    with pytest.raises(ValueError):
        BoundingBox.from_points([])


def test_polygon_helpers():
    square = [(0.0, 0.0), (0.0, 2.0), (2.0, 2.0), (2.0, 0.0)]
    assert point_in_polygon(1.0, 1.0, square)
    assert not point_in_polygon(3.0, 1.0, square)
    centroid = polygon_centroid(square)
    assert centroid.lat == pytest.approx(1.0)
    assert centroid.lon == pytest.approx(1.0)


def test_random_point_stays_inside_radius():
    rng = random.Random(7)
    for _ in range(200):
        point = random_point_in_radius(52.5, 13.4, 500, rng)
        assert haversine_m(52.5, 13.4, point.lat, point.lon) <= 505


def test_route_length_sums_segments():
    line = [(52.5, 13.4), (52.51, 13.4), (52.52, 13.4)]
    assert route_length_m(line) == pytest.approx(2 * haversine_m(52.5, 13.4, 52.51, 13.4))
    assert route_length_m(line[:1]) == 0.0
    assert math.isfinite(route_length_m(line))
