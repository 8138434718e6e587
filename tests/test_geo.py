"""Tests for distance and track smoothing."""

import pytest

from walkaround.geo import distance_meters, haversine_distance, median_smooth, total_path_length
from walkaround.models import TrackPoint


def _point(i, lat, lon):
    return TrackPoint(i, float(i), lat, lon, 0.0, 0.0, 5.0)


class TestDistance:
    def test_zero_for_same_point(self):
        assert distance_meters((35.68, 139.76), (35.68, 139.76)) == 0.0

    def test_symmetric(self):
        a = (35.681236, 139.767125)
        b = (35.689487, 139.691706)
        assert distance_meters(a, b) == distance_meters(b, a)

    def test_known_distance(self):
        # One degree of latitude is about 111.2 km
        assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111195, rel=1e-3)

    def test_accepts_objects_with_lat_lon(self):
        a = _point(1, 51.5, -0.12)
        b = _point(2, 51.501, -0.12)
        assert distance_meters(a, b) == distance_meters((51.5, -0.12), (51.501, -0.12))


class TestTotalPathLength:
    def test_empty_and_single(self):
        assert total_path_length([]) == 0.0
        assert total_path_length([(1.0, 2.0)]) == 0.0

    def test_sums_consecutive_pairs(self):
        points = [(0.0, 0.0), (0.001, 0.0), (0.001, 0.001)]
        expected = distance_meters(points[0], points[1]) + distance_meters(points[1], points[2])
        assert total_path_length(points) == pytest.approx(expected)
        assert total_path_length(points) > 0


class TestMedianSmooth:
    def test_window_zero_is_noop(self):
        points = [_point(i, 35.0 + i * 0.001, 139.0) for i in range(5)]
        assert median_smooth(points, 0) == points

    def test_short_input_is_noop(self):
        points = [_point(1, 35.0, 139.0)]
        assert median_smooth(points, 7) == points

    @pytest.mark.parametrize("window", [1, 2, 3, 7, 20])
    def test_preserves_length_and_order(self, window):
        points = [_point(i, 35.0 + (i % 3) * 0.001, 139.0 + i * 0.001) for i in range(9)]
        smoothed = median_smooth(points, window)
        assert len(smoothed) == len(points)
        assert [p.id for p in smoothed] == [p.id for p in points]

    def test_removes_spike(self):
        lats = [35.0, 35.0, 36.0, 35.0, 35.0]
        points = [_point(i, lat, 139.0) for i, lat in enumerate(lats)]
        smoothed = median_smooth(points, 3)
        assert [p.lat for p in smoothed] == [35.0] * 5

    def test_coordinates_filtered_independently(self):
        # The median latitude and median longitude come from different points
        points = [(1.0, 30.0), (3.0, 10.0), (2.0, 20.0)]
        smoothed = median_smooth(points, 3)
        assert smoothed[1] == (2.0, 20.0)
        assert smoothed[0] == (3.0, 30.0)

    def test_even_window_takes_upper_middle_of_sorted_window(self):
        points = [(1.0, 0.0), (2.0, 0.0), (3.0, 0.0), (4.0, 0.0)]
        # half = 1, window at index 0 is [1.0, 2.0]; sorted index 1
        assert median_smooth(points, 2)[0] == (2.0, 0.0)

    def test_tuple_extra_fields_kept(self):
        points = [(1.0, 1.0, "a"), (2.0, 2.0, "b")]
        assert [p[2] for p in median_smooth(points, 3)] == ["a", "b"]
