import pytest

from utils.distance import haversine, format_distance


def test_same_point_is_zero():
    assert haversine(12.97, 77.59, 12.97, 77.59) == 0


def test_symmetric():
    assert haversine(28.61, 77.2, 19.07, 72.87) == pytest.approx(haversine(19.07, 72.87, 28.61, 77.2))


def test_one_degree_of_longitude_at_equator():
    assert haversine(0, 0, 0, 1) == pytest.approx(111.19, abs=0.01)


@pytest.mark.parametrize("coords", [
    (None, 0, 0, 0),
    (0, None, 0, 0),
    (0, 0, None, 0),
    (0, 0, 0, None),
])
def test_missing_coordinate_gives_none(coords):
    assert haversine(*coords) is None


@pytest.mark.parametrize("km, expected", [
    (None, "Distance unknown"),
    (0.0, "0 m"),
    (0.4567, "457 m"),
    (3.14159, "3.1 km"),
    (9.94, "9.9 km"),
    (111.19, "111 km"),
])
def test_format_distance(km, expected):
    assert format_distance(km) == expected
