"""
Patch partitioner tests.

ID ranges cover [id_min, id_max] exactly once, time windows drop the
trailing remainder, user time bounds are clamped with warnings.
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from core.models.point_cloud import PointColumn
from core.partitioning import (
    IdRange,
    compute_id_ranges,
    compute_time_windows,
    partition_point_cloud,
    resolve_time_range,
)
from exceptions import ValidationError
from tests.factories.point_cloud_factories import make_point_cloud

T0 = datetime(2020, 4, 12, 20, 10, 57, tzinfo=timezone.utc)


class TestComputeIdRanges:

    def test_ranges_cover_interval_exactly_once(self):
        ranges = compute_id_ranges(0, 249, 100)
        assert ranges == [IdRange(0, 99), IdRange(100, 199), IdRange(200, 249)]
        covered = [i for r in ranges for i in range(r.id_min, r.id_max + 1)]
        assert covered == list(range(250))

    def test_last_id_is_included(self):
        ranges = compute_id_ranges(0, 200, 100)
        assert ranges[-1] == IdRange(200, 200)

    def test_single_id(self):
        assert compute_id_ranges(7, 7, 100) == [IdRange(7, 7)]

    def test_ranges_start_at_id_min(self):
        assert compute_id_ranges(50, 120, 50)[0] == IdRange(50, 99)

    def test_invalid_step_raises(self):
        with pytest.raises(ValidationError):
            compute_id_ranges(0, 10, 0)

    def test_inverted_interval_raises(self):
        with pytest.raises(ValidationError):
            compute_id_ranges(10, 0, 5)

    def test_key_names_the_range(self):
        assert IdRange(0, 99).key == "ids 0-99"


class TestPartitionPointCloud:

    def test_patches_hold_every_point_once(self):
        cloud = make_point_cloud(250)
        patches = partition_point_cloud(cloud, 100)
        assert [p.size for _, p in patches] == [100, 100, 50]
        ids = np.concatenate([p[PointColumn.ID] for _, p in patches])
        assert sorted(ids.tolist()) == list(range(250))

    def test_empty_ranges_are_skipped(self):
        cloud = make_point_cloud(4).with_column(PointColumn.ID, [0, 1, 500, 501])
        patches = partition_point_cloud(cloud, 100)
        assert [r for r, _ in patches] == [IdRange(0, 99), IdRange(500, 501)]

    def test_empty_cloud_gives_no_patches(self):
        assert partition_point_cloud(make_point_cloud(0), 100) == []


class TestTimeWindows:

    def test_windows_of_equal_length(self):
        windows = compute_time_windows(T0, T0 + timedelta(seconds=1.5), timedelta(milliseconds=500))
        assert [w.step for w in windows] == [0, 1, 2]
        assert windows[0].start == T0
        assert windows[-1].stop == T0 + timedelta(seconds=1.5)
        assert all(w.stop - w.start == timedelta(milliseconds=500) for w in windows)

    def test_trailing_remainder_is_dropped(self):
        windows = compute_time_windows(T0, T0 + timedelta(milliseconds=1700), timedelta(milliseconds=500))
        assert len(windows) == 3

    def test_empty_interval(self):
        assert compute_time_windows(T0, T0, timedelta(seconds=1)) == []

    def test_non_positive_step_raises(self):
        with pytest.raises(ValidationError):
            compute_time_windows(T0, T0 + timedelta(seconds=1), timedelta(0))


class TestResolveTimeRange:

    STOP = T0 + timedelta(seconds=10)

    def test_defaults_to_recording_bounds(self):
        resolved = resolve_time_range(T0, self.STOP)
        assert (resolved.start, resolved.stop) == (T0, self.STOP)
        assert resolved.warnings == ()

    def test_offset_and_total_duration(self):
        resolved = resolve_time_range(
            T0, self.STOP,
            start_offset=timedelta(seconds=2),
            total_duration=timedelta(seconds=3),
        )
        assert resolved.start == T0 + timedelta(seconds=2)
        assert resolved.stop == T0 + timedelta(seconds=5)
        assert resolved.duration == timedelta(seconds=3)

    def test_stop_wins_over_total_duration(self):
        resolved = resolve_time_range(
            T0, self.STOP,
            stop=T0 + timedelta(seconds=4),
            total_duration=timedelta(seconds=1),
        )
        assert resolved.stop == T0 + timedelta(seconds=4)
        assert resolved.warnings == ("Both stop time and total duration defined. Using stop time",)

    def test_bounds_are_clamped_with_warnings(self):
        resolved = resolve_time_range(
            T0, self.STOP,
            start=T0 - timedelta(seconds=5),
            stop=self.STOP + timedelta(seconds=5),
        )
        assert (resolved.start, resolved.stop) == (T0, self.STOP)
        assert len(resolved.warnings) == 2
        assert "before the recording's start time" in resolved.warnings[0]
        assert "after the recording's stop time" in resolved.warnings[1]
