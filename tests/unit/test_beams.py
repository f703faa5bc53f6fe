"""
Beam geometry tests.
"""

import numpy as np
import pytest

from core.beams import build_beam_batch, compute_beam_lengths, compute_reflection_lines
from core.models.point_cloud import PointColumn
from exceptions import ContractViolationError, ValidationError
from tests.factories.point_cloud_factories import make_point_cloud, make_xyz_cloud


class TestReflectionLines:

    def test_line_is_centred_on_reflection_point(self):
        origin = np.array([[0.0, 0.0, 0.0]])
        reflection = np.array([[0.0, 0.0, 10.0]])
        start, end = compute_reflection_lines(origin, reflection, 0.2)
        np.testing.assert_allclose(start, [[0.0, 0.0, 9.8]])
        np.testing.assert_allclose(end, [[0.0, 0.0, 10.2]])

    def test_line_length_is_twice_the_threshold(self):
        rng = np.random.default_rng(7)
        origin = rng.uniform(-50, 50, size=(20, 3))
        reflection = rng.uniform(-50, 50, size=(20, 3))
        start, end = compute_reflection_lines(origin, reflection, 0.35)
        np.testing.assert_allclose(np.linalg.norm(end - start, axis=1), 0.7)

    def test_zero_length_beam_has_no_line(self):
        origin = np.array([[1.0, 1.0, 1.0], [0.0, 0.0, 0.0]])
        reflection = np.array([[1.0, 1.0, 1.0], [3.0, 4.0, 0.0]])
        start, end = compute_reflection_lines(origin, reflection, 0.2)
        assert np.isnan(start[0]).all() and np.isnan(end[0]).all()
        assert not np.isnan(start[1]).any()

    def test_non_positive_threshold_raises(self):
        with pytest.raises(ValidationError):
            compute_reflection_lines(np.zeros((1, 3)), np.ones((1, 3)), 0.0)

    def test_lengths(self):
        lengths = compute_beam_lengths(np.zeros((2, 3)), np.array([[3.0, 4.0, 0.0], [0.0, 0.0, 2.0]]))
        np.testing.assert_allclose(lengths, [5.0, 2.0])


class TestBuildBeamBatch:

    def test_batch_mirrors_patch(self):
        patch = make_point_cloud(xyz=[[0.0, 0.0, 10.0], [5.0, 5.0, 5.0]], origins=[[0.0, 0.0, 0.0], [5.0, 5.0, 5.0]])
        beams = build_beam_batch(42, patch, 0.2)
        assert beams.size == 2
        assert beams.point_id.tolist() == patch[PointColumn.ID].tolist()
        np.testing.assert_allclose(beams.length, [10.0, 0.0])
        assert beams.has_reflection_line.tolist() == [True, False]

    def test_rows_follow_staging_layout(self):
        patch = make_point_cloud(xyz=[[0.0, 0.0, 10.0], [5.0, 5.0, 5.0]], origins=[[0.0, 0.0, 0.0], [5.0, 5.0, 5.0]])
        rows = list(build_beam_batch(42, patch, 0.2).rows())
        assert all(len(row) == 20 for row in rows)
        assert rows[0][0] == 42
        assert rows[0][11] == pytest.approx(10.0)
        assert rows[0][12:18] == pytest.approx((0.0, 0.0, 9.8, 0.0, 0.0, 10.2))
        assert rows[1][12:18] == (None,) * 6

    def test_patch_without_beam_columns_raises(self):
        with pytest.raises(ContractViolationError, match="beam_origin_x"):
            build_beam_batch(1, make_xyz_cloud(3).with_sequential_ids(), 0.2)
