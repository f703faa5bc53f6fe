"""
Reconstruction tests - download rows back into point clouds.
"""

import math

import numpy as np

from core.models.point_cloud import PointColumn
from core.models.records import DownloadEntry
from core.reconstruction import colorize_by_column_hash, derive_point_cloud


def _entry(point_id: int, feature: str = None, distance: float = None, **overrides) -> DownloadEntry:
    base = {
        "patch_id": 1,
        "x": float(point_id), "y": 2.0, "z": 3.0,
        "point_id": point_id,
        "timestamp_sec": 1586722257,
        "timestamp_nanosec": 123,
        "intensity": 0.5,
        "beam_origin_x": 10.0, "beam_origin_y": 20.0, "beam_origin_z": 30.0,
        "beam_length": 4.0,
        "message_id": 3,
        "point_id_in_message": point_id,
        "feature_external_id": feature,
        "surface_distance": distance,
    }
    base.update(overrides)
    return DownloadEntry(**base)


class TestDerivePointCloud:

    def test_columns_and_order(self):
        cloud = derive_point_cloud([_entry(0, "wall_1", 0.05), _entry(1)], frame_id="world")
        assert cloud.size == 2
        assert cloud[PointColumn.ID].tolist() == [0, 1]
        assert cloud[PointColumn.FEATURE_EXTERNAL_ID].tolist() == ["wall_1", ""]

    def test_beam_origins_come_from_the_beam(self):
        cloud = derive_point_cloud([_entry(0)], frame_id="world")
        np.testing.assert_allclose(cloud.beam_origins(), [[10.0, 20.0, 30.0]])

    def test_missing_optional_values_become_nan(self):
        cloud = derive_point_cloud([_entry(0)], frame_id="world")
        assert math.isnan(cloud[PointColumn.SURFACE_DISTANCE][0])
        assert math.isnan(cloud[PointColumn.INTERSECTION_ANGLE][0])

    def test_intersection_marker(self):
        cloud = derive_point_cloud([_entry(0, intersection_angle=1.0)], frame_id="world")
        assert cloud[PointColumn.INTERSECTION_ANGLE][0] == 1.0

    def test_empty(self):
        assert derive_point_cloud([], frame_id="world").size == 0


class TestColorize:

    def test_equal_values_share_a_colour(self):
        cloud = derive_point_cloud(
            [_entry(0, "roof_7"), _entry(1, "wall_1"), _entry(2, "roof_7")], frame_id="world"
        )
        colored = colorize_by_column_hash(cloud, PointColumn.FEATURE_EXTERNAL_ID)
        rgb = np.column_stack([
            colored[PointColumn.COLOR_RED],
            colored[PointColumn.COLOR_GREEN],
            colored[PointColumn.COLOR_BLUE],
        ])
        assert rgb.dtype == np.uint8
        assert rgb[0].tolist() == rgb[2].tolist()
        assert rgb[0].tolist() != rgb[1].tolist()

    def test_colour_is_stable_across_calls(self):
        a = colorize_by_column_hash(derive_point_cloud([_entry(0, "x")], "world"), PointColumn.FEATURE_EXTERNAL_ID)
        b = colorize_by_column_hash(derive_point_cloud([_entry(5, "x")], "world"), PointColumn.FEATURE_EXTERNAL_ID)
        assert a[PointColumn.COLOR_RED][0] == b[PointColumn.COLOR_RED][0]
