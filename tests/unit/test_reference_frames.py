"""
Reference frame graph tests.
"""

import json

import numpy as np
import pytest

from core.models.reference_frames import FrameTransform, ReferenceFrames
from exceptions import ConfigurationError, ReferenceFrameConflictError, ReferenceFrameError
from tests.factories.point_cloud_factories import translation_frames


class TestFrameTransform:

    def test_rotation_is_normalized(self):
        transform = FrameTransform(parent_frame_id="a", child_frame_id="b", rotation=(0, 0, 0, 2))
        assert transform.rotation == (0.0, 0.0, 0.0, 1.0)

    def test_zero_quaternion_rejected(self):
        with pytest.raises(ValueError):
            FrameTransform(parent_frame_id="a", child_frame_id="b", rotation=(0, 0, 0, 0))

    def test_quarter_turn_about_z(self):
        half = np.sqrt(0.5)
        transform = FrameTransform(parent_frame_id="a", child_frame_id="b", rotation=(0, 0, half, half))
        np.testing.assert_allclose(transform.matrix()[:3, :3] @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], atol=1e-12)


class TestReferenceFrames:

    def test_chain_composes_translations(self):
        frames = translation_frames("world", "base_link", (100.0, 0.0, 0.0)).merge(
            [translation_frames("base_link", "lidar", (0.0, 0.0, 2.0))]
        )
        matrix = frames.transform_matrix("lidar", "world")
        np.testing.assert_allclose(matrix[:3, 3], [100.0, 0.0, 2.0])
        assert frames.frame_ids == ["base_link", "lidar", "world"]

    def test_merge_accepts_identical_definitions(self):
        a = translation_frames("world", "base_link", (1.0, 2.0, 3.0))
        assert a.merge([translation_frames("world", "base_link", (1.0, 2.0, 3.0))]) == a

    def test_merge_rejects_conflicting_definitions(self):
        a = translation_frames("world", "base_link", (1.0, 2.0, 3.0))
        b = translation_frames("world", "base_link", (9.0, 2.0, 3.0))
        with pytest.raises(ReferenceFrameConflictError) as excinfo:
            a.merge([b])
        assert excinfo.value.child_frame_id == "base_link"

    def test_missing_link_raises(self):
        frames = translation_frames("map", "base_link", (0.0, 0.0, 0.0))
        with pytest.raises(ReferenceFrameError, match="No transform chain"):
            frames.transform_matrix("base_link", "world")

    def test_cycle_raises(self):
        frames = ReferenceFrames(transforms={
            "a": FrameTransform(parent_frame_id="b", child_frame_id="a"),
            "b": FrameTransform(parent_frame_id="a", child_frame_id="b"),
        })
        with pytest.raises(ReferenceFrameError, match="Cycle"):
            frames.transform_matrix("a", "world")

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "frames.json"
        path.write_text(json.dumps({"transforms": [
            {"parent_frame_id": "world", "child_frame_id": "base_link", "translation": [1, 2, 3]},
        ]}))
        frames = ReferenceFrames.from_json_file(path)
        np.testing.assert_allclose(frames.transform_matrix("base_link", "world")[:3, 3], [1, 2, 3])

    def test_malformed_json_file_raises_configuration_error(self, tmp_path):
        path = tmp_path / "frames.json"
        path.write_text(json.dumps({"frames": []}))
        with pytest.raises(ConfigurationError):
            ReferenceFrames.from_json_file(path)

    def test_missing_json_file_raises_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ReferenceFrames.from_json_file(tmp_path / "absent.json")
