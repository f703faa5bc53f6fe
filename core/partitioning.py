# ============================================================================
# PATCH PARTITIONER
# ============================================================================
# STATUS: Core - pure functions, no store access
# PURPOSE: Split recordings into time windows and point clouds into bounded
#          ID-range patches
# EXPORTS: TimeWindow, compute_time_windows, ClampedTimeRange,
#          resolve_time_range, IdRange, compute_id_ranges, partition_point_cloud
# DEPENDENCIES: numpy (via PointCloud)
# ============================================================================
"""
Patch Partitioner.

Two partitioning schemes feed the upload:

    Time windows: a recording interval [start, stop) is cut into
    floor((stop - start) / step_duration) windows of equal length. A trailing
    remainder shorter than one step is not extracted.

    ID ranges: a point cloud with ids in [id_min, id_max] is cut into
    successive inclusive ranges of width step_size starting at id_min. The
    ranges are disjoint and cover [id_min, id_max] exactly once; the last one
    may be shorter. Ranges without any point (sparse ids) produce no patch.

Exports:
    TimeWindow: One extraction window
    compute_time_windows: Windows of a time interval
    ClampedTimeRange: Resolved start/stop with clamping warnings
    resolve_time_range: Apply user overrides and clamp to recording bounds
    IdRange: One inclusive id range
    compute_id_ranges: Ranges of an id interval
    partition_point_cloud: (IdRange, PointCloud) patches of a point cloud
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from core.models.point_cloud import PointCloud
from exceptions import ValidationError
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.CORE, "partitioning")


# ============================================================================
# TIME WINDOWS
# ============================================================================

@dataclass(frozen=True)
class TimeWindow:
    """Half-open extraction window [start, stop)."""
    step: int
    start: datetime
    stop: datetime


def compute_time_windows(
    start: datetime,
    stop: datetime,
    step_duration: timedelta
) -> List[TimeWindow]:
    """
    Cut [start, stop) into equal windows of step_duration.

    Raises:
        ValidationError: step_duration is not positive
    """
    if step_duration <= timedelta(0):
        raise ValidationError(f"step_duration must be positive, got {step_duration}")
    if stop <= start:
        return []

    total_steps = (stop - start) // step_duration
    return [
        TimeWindow(
            step=step,
            start=start + step_duration * step,
            stop=start + step_duration * (step + 1),
        )
        for step in range(total_steps)
    ]


@dataclass(frozen=True)
class ClampedTimeRange:
    start: datetime
    stop: datetime
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def duration(self) -> timedelta:
        return self.stop - self.start


def resolve_time_range(
    recording_start: datetime,
    recording_stop: datetime,
    start: Optional[datetime] = None,
    stop: Optional[datetime] = None,
    start_offset: Optional[timedelta] = None,
    total_duration: Optional[timedelta] = None
) -> ClampedTimeRange:
    """
    Resolve the upload interval of a recording.

    start defaults to the recording start, then start_offset is added.
    stop is the explicit stop, else start + total_duration, else the recording
    stop. Both bounds are clamped into the recording; clamping and the
    stop/total_duration conflict produce warnings, never errors.
    """
    warnings = []

    resolved_start = (start or recording_start) + (start_offset or timedelta(0))

    if stop is not None and total_duration is not None:
        warnings.append("Both stop time and total duration defined. Using stop time")
        resolved_stop = stop
    elif total_duration is not None:
        resolved_stop = resolved_start + total_duration
    elif stop is not None:
        resolved_stop = stop
    else:
        resolved_stop = recording_stop

    if resolved_start < recording_start:
        warnings.append(
            f"Defined start time ({resolved_start.isoformat()}) is before the "
            f"recording's start time ({recording_start.isoformat()})"
        )
        resolved_start = recording_start

    if resolved_stop > recording_stop:
        warnings.append(
            f"Defined stop time ({resolved_stop.isoformat()}) is after the "
            f"recording's stop time ({recording_stop.isoformat()})"
        )
        resolved_stop = recording_stop

    for warning in warnings:
        logger.warning(warning)

    return ClampedTimeRange(start=resolved_start, stop=resolved_stop, warnings=tuple(warnings))


# ============================================================================
# ID RANGES
# ============================================================================

@dataclass(frozen=True)
class IdRange:
    """Inclusive id range [id_min, id_max]."""
    id_min: int
    id_max: int

    @property
    def key(self) -> str:
        return f"ids {self.id_min}-{self.id_max}"


def compute_id_ranges(id_min: int, id_max: int, step_size: int) -> List[IdRange]:
    """
    Successive inclusive ranges of width step_size covering [id_min, id_max].

    Raises:
        ValidationError: step_size below one or id_max below id_min
    """
    if step_size < 1:
        raise ValidationError(f"step_size must be at least 1, got {step_size}")
    if id_max < id_min:
        raise ValidationError(f"id_max ({id_max}) is below id_min ({id_min})")

    return [
        IdRange(id_min=current, id_max=min(current + step_size - 1, id_max))
        for current in range(id_min, id_max + 1, step_size)
    ]


def partition_point_cloud(
    point_cloud: PointCloud,
    step_size: int
) -> List[Tuple[IdRange, PointCloud]]:
    """
    Split a point cloud with an id column into id-range patches.

    Empty clouds give no patches; empty ranges are skipped.
    """
    if point_cloud.size == 0:
        return []

    patches = []
    for id_range in compute_id_ranges(point_cloud.id_min, point_cloud.id_max, step_size):
        patch = point_cloud.filter_by_id_range(id_range.id_min, id_range.id_max)
        if patch.size == 0:
            logger.debug(f"Skipping empty patch {id_range.key}")
            continue
        patches.append((id_range, patch))

    logger.info(
        f"Partitioned {point_cloud.size} points into {len(patches)} patches "
        f"(step size {step_size})"
    )
    return patches
