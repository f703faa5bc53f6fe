"""
Point cloud file IO tests (XYZ via pandas, LAS via laspy).
"""

import laspy
import numpy as np
import pytest

from core.models.point_cloud import PointColumn
from core.models.records import DownloadEntry
from core.reconstruction import colorize_by_column_hash, derive_point_cloud
from exceptions import ConfigurationError
from infrastructure.point_cloud_io import read_point_cloud, read_xyz, write_xyz
from tests.factories.point_cloud_factories import make_point_cloud


class TestXyz:

    def test_header_starts_with_xyz(self, tmp_path):
        path = write_xyz(make_point_cloud(3), tmp_path / "cloud.xyz")
        assert path.read_text().splitlines()[0].startswith("x y z id")

    def test_written_file_reads_back(self, tmp_path):
        cloud = make_point_cloud(xyz=[[1.5, 2.25, 3.125], [4.0, 5.0, 6.0]])
        path = write_xyz(cloud, tmp_path / "cloud.xyz")
        loaded = read_xyz(path)
        np.testing.assert_allclose(loaded.xyz(), cloud.xyz())
        assert loaded[PointColumn.ID].tolist() == [0, 1]

    def test_feature_strings_and_missing_values(self, tmp_path):
        entries = [
            DownloadEntry(
                patch_id=1, x=0.0, y=0.0, z=0.0, point_id=i, timestamp_sec=0, timestamp_nanosec=0,
                intensity=0.0, beam_origin_x=0.0, beam_origin_y=0.0, beam_origin_z=0.0,
                beam_length=0.0, message_id=0, point_id_in_message=i,
                feature_external_id=feature, feature_name="Town Hall" if feature else None,
            )
            for i, feature in enumerate(["wall_1", None])
        ]
        cloud = colorize_by_column_hash(derive_point_cloud(entries, "world"), PointColumn.FEATURE_EXTERNAL_ID)
        loaded = read_xyz(write_xyz(cloud, tmp_path / "1.xyz"))
        assert loaded[PointColumn.FEATURE_NAME].tolist()[0] == "Town Hall"
        assert np.isnan(loaded[PointColumn.SURFACE_DISTANCE]).all()
        assert loaded.has_column(PointColumn.COLOR_BLUE)


class TestReadPointCloud:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            read_point_cloud(tmp_path / "absent.las")

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "cloud.ply"
        path.write_text("ply\n")
        with pytest.raises(ConfigurationError, match="Unsupported"):
            read_point_cloud(path)

    def test_las(self, tmp_path):
        header = laspy.LasHeader(point_format=3, version="1.2")
        header.scales = np.array([0.001, 0.001, 0.001])
        header.offsets = np.array([0.0, 0.0, 0.0])
        las = laspy.LasData(header)
        las.x = np.array([1.0, 2.0, 3.0])
        las.y = np.array([4.0, 5.0, 6.0])
        las.z = np.array([7.0, 8.0, 9.0])
        las.intensity = np.array([10, 20, 30], dtype=np.uint16)
        path = tmp_path / "cloud.las"
        las.write(str(path))

        cloud = read_point_cloud(path)
        assert cloud.frame_id == "world"
        np.testing.assert_allclose(cloud[PointColumn.Z], [7.0, 8.0, 9.0])
        assert cloud[PointColumn.INTENSITY].tolist() == [10.0, 20.0, 30.0]
