import math

import pytest

from GeoPoint import GeoPoint, UserPosition
from geo_kernel import (
    bearing_deg,
    bearing_to_cardinal,
    closest_point_index,
    cum_array,
    distance_m,
    estimate_duration_s,
    has_arrived,
    is_near_segment,
    is_valid_coordinate,
    is_within_radius,
    normalize_heading,
)
from route_errors import InvalidCoordinate

ITACARE = GeoPoint(-13.3775, -38.9160)


def test_distance_is_symmetric():
    pairs = [
        (GeoPoint(0, 0), GeoPoint(1, 1)),
        (GeoPoint(-13.3775457, -38.9159969), GeoPoint(-13.38, -38.92)),
        (GeoPoint(51.2562, 7.1508), GeoPoint(51.2277, 6.7735)),
        (GeoPoint(89.9, 179.9), GeoPoint(-89.9, -179.9)),
    ]
    for a, b in pairs:
        assert distance_m(a, b) == pytest.approx(distance_m(b, a))


def test_distance_zero_for_same_point():
    assert distance_m(ITACARE, ITACARE) == 0.0


def test_distance_longitude_step_at_itacare():
    d = distance_m(ITACARE, GeoPoint(-13.3775, -38.9060))
    assert d == pytest.approx(1083, rel=0.05)


def test_bearing_cardinal_directions():
    assert bearing_deg(GeoPoint(0, 0), GeoPoint(1, 0)) == pytest.approx(0.0, abs=1e-9)
    assert bearing_deg(GeoPoint(0, 0), GeoPoint(0, 1)) == pytest.approx(90.0)
    assert bearing_deg(GeoPoint(1, 0), GeoPoint(0, 0)) == pytest.approx(180.0)
    assert bearing_deg(GeoPoint(0, 1), GeoPoint(0, 0)) == pytest.approx(270.0)


def test_bearing_is_normalized():
    for lat, lon in [(0.5, -0.5), (-0.5, -0.5), (-0.0001, 0.0), (0.0, -1e-9)]:
        b = bearing_deg(GeoPoint(0, 0), GeoPoint(lat, lon))
        assert 0.0 <= b < 360.0


def test_normalize_heading():
    assert normalize_heading(-90) == 270
    assert normalize_heading(360) == 0
    assert normalize_heading(725) == 5
    assert normalize_heading(-1e-15) == 0.0


def test_is_valid_coordinate():
    assert is_valid_coordinate(0, 0)
    assert is_valid_coordinate(90, 180)
    assert is_valid_coordinate(-90, -180)
    assert not is_valid_coordinate(90.0001, 0)
    assert not is_valid_coordinate(0, -180.5)
    assert not is_valid_coordinate(math.nan, 0)
    assert not is_valid_coordinate(0, math.inf)
    assert not is_valid_coordinate("1", 2)
    assert not is_valid_coordinate(None, 2)
    assert not is_valid_coordinate(True, 2)


def test_geopoint_parse_rejects_bad_input():
    assert GeoPoint.parse(1, 2) == GeoPoint(1.0, 2.0)
    with pytest.raises(InvalidCoordinate):
        GeoPoint.parse(100, 0)
    with pytest.raises(InvalidCoordinate):
        GeoPoint.parse(math.nan, 0)
    assert not GeoPoint(100, 0).is_valid


def test_user_position_accuracy_must_not_be_negative():
    with pytest.raises(ValueError):
        UserPosition(0, 0, -1)


def test_is_within_radius():
    near = GeoPoint(-13.3775, -38.9161)  # ~11 m west
    assert is_within_radius(near, ITACARE, 15)
    assert not is_within_radius(near, ITACARE, 5)


def test_bearing_to_cardinal():
    assert bearing_to_cardinal(0) == "N"
    assert bearing_to_cardinal(359) == "N"
    assert bearing_to_cardinal(90) == "E"
    assert bearing_to_cardinal(225) == "SW"
    assert bearing_to_cardinal(-45) == "NW"


def test_cum_array():
    assert cum_array([1.0, 2.0, 3.0]) == [0.0, 1.0, 3.0, 6.0]
    assert cum_array([]) == [0.0]


def test_closest_point_index():
    pts = [GeoPoint(0, 0), GeoPoint(0, 0.001), GeoPoint(0, 0.002)]
    assert closest_point_index(pts, GeoPoint(0.0001, 0.0011)) == 1
    assert closest_point_index(pts, GeoPoint(0, 5)) == 2


def test_is_near_segment():
    a, b = GeoPoint(0, 0), GeoPoint(0, 0.002)  # ~222 m east-west
    assert is_near_segment(GeoPoint(0.0001, 0.001), a, b, 30)       # ~11 m off the middle
    assert not is_near_segment(GeoPoint(0.001, 0.001), a, b, 30)    # ~111 m off
    assert not is_near_segment(GeoPoint(0, 0.004), a, b, 30)        # beyond the end


def test_has_arrived_and_duration():
    assert has_arrived(GeoPoint(0, 0.0001), GeoPoint(0, 0))
    assert not has_arrived(GeoPoint(0, 0.001), GeoPoint(0, 0))
    assert estimate_duration_s(5000) == pytest.approx(3600)
    assert estimate_duration_s(100, 0) == pytest.approx(72)
