import pytest

from geo import haversine_km, within_radius


def test_same_point_is_zero():
    assert haversine_km(12.5, -45.0, 12.5, -45.0) == 0.0


def test_one_degree_of_latitude():
    assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.01)


def test_paris_to_london():
    distance = haversine_km(48.8566, 2.3522, 51.5074, -0.1278)
    assert distance == pytest.approx(343.5, abs=1.5)


def test_symmetric():
    a = haversine_km(10.0, 20.0, -5.0, 100.0)
    b = haversine_km(-5.0, 100.0, 10.0, 20.0)
    assert a == pytest.approx(b)


def test_antipodal_points_do_not_blow_up():
    assert haversine_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(20015.1, abs=1.0)


def test_within_radius_includes_boundary():
    distance = haversine_km(0.0, 0.0, 0.0, 0.5)
    inside, measured = within_radius((0.0, 0.0), (0.0, 0.5), distance)
    assert inside
    assert measured == pytest.approx(distance)


def test_within_radius_outside():
    inside, measured = within_radius((0.0, 0.0), (1.0, 0.0), 50.0)
    assert not inside
    assert measured > 100
