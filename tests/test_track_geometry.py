import pytest

from fieldtrack import track_geometry
from fieldtrack.track_geometry import (
    Coordinate,
    douglas_peucker,
    filter_valid_coordinates,
    format_distance,
    format_duration,
    haversine_distance,
    haversine_distance_km,
    is_valid_coordinate,
    simplify,
    to_coordinates,
    trail_length,
    trail_statistics,
    uniform_sample,
)


def zigzag(n: int):
    # Visibly non-straight so Douglas-Peucker has something to keep
    return [Coordinate(lat=-1.28 + (0.001 if i % 2 else 0.0), lng=36.80 + i * 0.0005) for i in range(n)]


class TestHaversine:
    def test_symmetric_and_zero_on_self(self):
        a = Coordinate(-1.2921, 36.8219)
        b = Coordinate(-0.0917, 34.7680)
        assert haversine_distance(a, b) == haversine_distance(b, a)
        assert haversine_distance(a, a) == 0

    def test_one_degree_latitude(self):
        d = haversine_distance(Coordinate(0, 0), Coordinate(1, 0))
        assert d == pytest.approx(111_195, rel=1e-3)

    def test_km_variant_matches_meters(self):
        a, b = Coordinate(1, 1), Coordinate(2, 2)
        assert haversine_distance_km(a, b) * 1000 == pytest.approx(haversine_distance(a, b))


class TestTrailLength:
    def test_short_trails_are_zero(self):
        assert trail_length([]) == 0
        assert trail_length([Coordinate(1, 1)]) == 0

    def test_sums_segments(self):
        pts = [Coordinate(0, 0), Coordinate(0, 1), Coordinate(0, 2)]
        expected = haversine_distance(pts[0], pts[1]) + haversine_distance(pts[1], pts[2])
        assert trail_length(pts) == pytest.approx(expected)


class TestCoordinateValidity:
    @pytest.mark.parametrize("coord", [
        Coordinate(91, 0),
        Coordinate(-90.5, 0),
        Coordinate(0, 180.1),
        Coordinate(float("nan"), 0),
        Coordinate(0, float("inf")),
        {"lat": None, "lng": 1},
        {"lat": True, "lng": 1},
        None,
        "1,1",
    ])
    def test_invalid(self, coord):
        assert not is_valid_coordinate(coord)

    @pytest.mark.parametrize("coord", [
        Coordinate(45.0, -122.5),
        Coordinate(90, 180),
        Coordinate(-90, -180),
        {"lat": -1.28, "lng": 36.8},
    ])
    def test_valid(self, coord):
        assert is_valid_coordinate(coord)

    def test_filter_keeps_order_and_never_grows(self):
        coords = [Coordinate(1, 1), Coordinate(91, 0), Coordinate(2, 2), None, Coordinate(3, 3)]
        result = filter_valid_coordinates(coords)
        assert result == [Coordinate(1, 1), Coordinate(2, 2), Coordinate(3, 3)]
        assert len(result) <= len(coords)

    def test_to_coordinates_converts_mappings(self):
        assert to_coordinates([{"lat": 1, "lng": 2}, {"lat": 100, "lng": 0}]) == [Coordinate(1.0, 2.0)]


class TestSimplify:
    def test_short_input_unchanged(self):
        pts = zigzag(10)
        assert simplify(pts, 10) == pts

    @pytest.mark.parametrize("n,max_points", [(101, 100), (500, 100), (5000, 50), (37, 3)])
    def test_endpoints_and_bound(self, n, max_points):
        pts = zigzag(n)
        result = simplify(pts, max_points)
        assert result[0] == pts[0]
        assert result[-1] == pts[-1]
        assert len(result) <= max_points + 2

    def test_straight_line_collapses_to_endpoints(self):
        pts = [Coordinate(0, i * 0.001) for i in range(300)]
        assert simplify(pts, 100) == [pts[0], pts[-1]]

    def test_keeps_order(self):
        pts = zigzag(400)
        result = simplify(pts, 100)
        indices = [pts.index(p) for p in result]
        assert indices == sorted(indices)

    def test_falls_back_to_stride_sampling(self, monkeypatch):
        def broken(points, tolerance):
            raise FloatingPointError("overflow")

        monkeypatch.setattr(track_geometry, "douglas_peucker", broken)
        pts = zigzag(250)
        result = simplify(pts, 100)
        assert result == uniform_sample(pts, 100)
        assert result[0] == pts[0] and result[-1] == pts[-1]

    def test_douglas_peucker_rejects_non_finite(self):
        pts = zigzag(5) + [Coordinate(float("nan"), 1)]
        with pytest.raises(ValueError):
            douglas_peucker(pts, 0.0001)


class TestUniformSample:
    def test_stride(self):
        pts = list(range(10))
        # step = ceil(10 / 4) = 3
        assert uniform_sample(pts, 4) == [0, 3, 6, 9]

    def test_bound(self):
        pts = list(range(1001))
        result = uniform_sample(pts, 100)
        assert result[0] == 0 and result[-1] == 1000
        assert len(result) <= 102


class TestStatisticsAndFormatting:
    def test_trail_statistics(self):
        pts = [Coordinate(1, 1), Coordinate(2, 2), Coordinate(95, 0)]
        stats = trail_statistics(pts)
        assert stats.point_count == 2
        assert stats.total_distance_km == pytest.approx(haversine_distance_km(pts[0], pts[1]))
        assert stats.bounding_box.min_lat == 1 and stats.bounding_box.max_lng == 2

    def test_empty_statistics(self):
        stats = trail_statistics([])
        assert stats.point_count == 0
        assert stats.bounding_box is None

    @pytest.mark.parametrize("meters,expected", [(0, "0 m"), (532.4, "532 m"), (999.5, "1000 m"), (1250, "1.25 km")])
    def test_format_distance(self, meters, expected):
        assert format_distance(meters) == expected

    @pytest.mark.parametrize("seconds,expected", [(59, "0 min"), (720, "12 min"), (3900, "1h 5m")])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

