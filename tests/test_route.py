"""Tests for the journey route arc and reveal progress."""

import pytest

from storymap.cinema.route import arc_points, reveal_progress, route_coordinates, visible_route

from conftest import make_journey


class TestArc:
    def test_endpoints(self):
        pts = arc_points((0.0, 0.0), (10.0, 0.0))
        assert len(pts) == 101
        assert pts[0] == (0.0, 0.0)
        assert pts[-1] == pytest.approx((10.0, 0.0))

    def test_bulge_is_fifth_of_distance(self):
        pts = arc_points((0.0, 0.0), (10.0, 0.0))
        lng, lat = pts[50]
        assert lng == pytest.approx(5.0)
        assert lat == pytest.approx(2.0)

    def test_same_point(self):
        pts = arc_points((3.0, 4.0), (3.0, 4.0), points=4)
        assert all(p == (3.0, 4.0) for p in pts)


class TestRouteCoordinates:
    def test_needs_two_stops(self):
        assert route_coordinates(make_journey(stops=0).locations) == []
        assert route_coordinates(make_journey(stops=1).locations) == []

    def test_one_arc_per_leg(self):
        coords = route_coordinates(make_journey(stops=3).locations)
        assert len(coords) == 2 * 101


class TestRevealProgress:
    def test_clamped(self):
        assert reveal_progress(1.0, 1.5, 4.5) == 0.0
        assert reveal_progress(3.0, 1.5, 4.5) == pytest.approx(0.5)
        assert reveal_progress(9.0, 1.5, 4.5) == 1.0

    def test_degenerate_range(self):
        assert reveal_progress(2.0, 2.0, 2.0) == 1.0

    def test_visible_route(self):
        coords = [(float(i), 0.0) for i in range(10)]
        assert visible_route(coords, 0.0) == []
        assert len(visible_route(coords, 0.55)) == 5
        assert visible_route(coords, 1.0) == coords
