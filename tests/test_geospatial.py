import math

import pytest

from neighborcare.models.domain import Coordinate
from neighborcare.services.geospatial import EARTH_RADIUS_M, distance_meters


def test_distance_to_self_is_zero():
    point = Coordinate(12.9716, 77.5946)
    assert distance_meters(point, point) == 0.0


@pytest.mark.parametrize(
    "a, b",
    [
        (Coordinate(12.9716, 77.5946), Coordinate(12.9720, 77.5950)),
        (Coordinate(-33.8688, 151.2093), Coordinate(51.5074, -0.1278)),
        (Coordinate(89.9, 0.0), Coordinate(-89.9, 179.9)),
    ],
)
def test_distance_is_symmetric(a: Coordinate, b: Coordinate):
    assert distance_meters(a, b) == distance_meters(b, a)


def test_one_degree_of_latitude_matches_earth_radius():
    expected = EARTH_RADIUS_M * math.pi / 180
    assert distance_meters(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0)) == pytest.approx(expected)


def test_neighbourhood_distance():
    origin = Coordinate(12.9716, 77.5946)
    nearby = Coordinate(12.9720, 77.5950)
    assert 50 < distance_meters(origin, nearby) < 70


def test_antipodal_points_do_not_fail():
    distance = distance_meters(Coordinate(0.0, 0.0), Coordinate(0.0, 180.0))
    assert distance == pytest.approx(math.pi * EARTH_RADIUS_M)
