import math

import pytest

from nudge.domain.proximity.exceptions import InvalidPosition
from nudge.domain.proximity.geo import EARTH_RADIUS_M, GeoIndex, distance_m, haversine
from nudge.domain.proximity.models import Position


def test_haversine_is_symmetric_and_zero_on_identity():
    points = [(0.0, 0.0), (45.5048, -73.5772), (-33.86, 151.21), (89.9, 179.9)]
    for lat1, lon1 in points:
        assert haversine(lat1, lon1, lat1, lon1) == 0.0
        for lat2, lon2 in points:
            assert haversine(lat1, lon1, lat2, lon2) == pytest.approx(haversine(lat2, lon2, lat1, lon1))


def test_haversine_matches_arc_length_on_equator():
    # 0.00045 degrees of longitude on the equator is roughly 50m
    expected = EARTH_RADIUS_M * math.radians(0.00045)
    assert haversine(0.0, 0.0, 0.0, 0.00045) == pytest.approx(expected)
    assert 49.0 <= expected <= 51.0


def test_antipodal_points_do_not_overflow():
    assert haversine(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * EARTH_RADIUS_M)


def test_query_orders_by_distance_then_actor_id():
    index = GeoIndex()
    origin = Position(0.0, 0.0)
    index.insert("far", Position(0.0, 0.0004))
    index.insert("b-near", Position(0.0, 0.0001))
    index.insert("a-near", Position(0.0, -0.0001))
    index.insert("outside", Position(0.0, 0.01))

    hits = index.query_within_radius(origin, 50.0)

    assert [actor for actor, _ in hits] == ["a-near", "b-near", "far"]
    assert hits[0][1] == pytest.approx(hits[1][1])


def test_update_and_remove():
    index = GeoIndex()
    index.insert("a", Position(0.0, 0.0))
    index.update("a", Position(10.0, 10.0))
    assert index.position_of("a") == Position(10.0, 10.0)
    index.remove("a")
    index.remove("a")
    assert "a" not in index
    assert len(index) == 0


def test_distance_m_uses_positions():
    a = Position(45.5048, -73.5772)
    b = Position(45.5050, -73.5772)
    assert distance_m(a, b) == pytest.approx(haversine(45.5048, -73.5772, 45.5050, -73.5772))


@pytest.mark.parametrize(
    "raw",
    [
        {"latitude": 91.0, "longitude": 0.0},
        {"lat": 0.0, "lon": -180.5},
        {"latitude": float("nan"), "longitude": 0.0},
        {"latitude": float("inf"), "longitude": 0.0},
        {"latitude": "north", "longitude": 0.0},
        {"latitude": 1.0},
        [0.0, 0.0],
        (0.0, 0.0),
        "POINT(0 0",
        None,
    ],
)
def test_parse_rejects_malformed_positions(raw):
    with pytest.raises(InvalidPosition):
        Position.parse(raw)


def test_parse_accepts_canonical_encodings():
    assert Position.parse({"latitude": 45.5, "longitude": -73.5}) == Position(45.5, -73.5)
    assert Position.parse({"lat": "45.5", "lon": "-73.5"}) == Position(45.5, -73.5)
    # WKT puts longitude first
    assert Position.parse("POINT(-73.5 45.5)") == Position(45.5, -73.5)
    assert Position.parse(" point ( -73.5  45.5 ) ") == Position(45.5, -73.5)
    existing = Position(1.0, 2.0)
    assert Position.parse(existing) is existing
