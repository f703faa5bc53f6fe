"""
Beam Geometry.

A beam is the ray from the sensor origin to the reflection point of one
measured point. Besides its length, every beam carries a short reflection
line: the beam direction scaled to 2 x distance_threshold and centred on the
reflection point. Intersecting that segment with model surfaces tells whether
the beam passed through a surface near its reflection.

Beams with zero length have no direction and therefore no reflection line.

Exports:
    BeamBatch: Columnar beam geometry of one patch
    compute_beam_lengths: Euclidean origin -> reflection distance
    compute_reflection_lines: Reflection line start/end points
    build_beam_batch: BeamBatch from a patch point cloud
"""

from dataclasses import dataclass
from typing import Iterator, Tuple

import numpy as np

from core.models.point_cloud import PointCloud, PointColumn
from exceptions import ContractViolationError, ValidationError


@dataclass(frozen=True)
class BeamBatch:
    """
    Beams of one patch. All arrays have one row per point.

    reflection_line_start/end are NaN for zero-length beams; has_reflection_line
    flags the rows where they are defined.
    """
    patch_id: int
    point_id: np.ndarray
    timestamp_sec: np.ndarray
    timestamp_nanosec: np.ndarray
    intensity: np.ndarray
    origin: np.ndarray
    reflection: np.ndarray
    length: np.ndarray
    reflection_line_start: np.ndarray
    reflection_line_end: np.ndarray
    message_id: np.ndarray
    point_id_in_message: np.ndarray

    @property
    def size(self) -> int:
        return len(self.point_id)

    @property
    def has_reflection_line(self) -> np.ndarray:
        return ~np.isnan(self.reflection_line_start).any(axis=1)

    def rows(self) -> Iterator[Tuple]:
        """
        Flat rows for the beam staging table.

        Order: patch_id, point_id, timestamp_sec, timestamp_nanosec, intensity,
        origin x/y/z, reflection x/y/z, length, reflection line start x/y/z,
        reflection line end x/y/z (None when undefined), message_id,
        point_id_in_message.
        """
        defined = self.has_reflection_line
        for i in range(self.size):
            if defined[i]:
                line = (*self.reflection_line_start[i].tolist(), *self.reflection_line_end[i].tolist())
            else:
                line = (None,) * 6
            yield (
                self.patch_id,
                int(self.point_id[i]),
                int(self.timestamp_sec[i]),
                int(self.timestamp_nanosec[i]),
                float(self.intensity[i]),
                *self.origin[i].tolist(),
                *self.reflection[i].tolist(),
                float(self.length[i]),
                *line,
                int(self.message_id[i]),
                int(self.point_id_in_message[i]),
            )


def compute_beam_lengths(origin: np.ndarray, reflection: np.ndarray) -> np.ndarray:
    """Euclidean distance per row of two (N, 3) arrays."""
    return np.linalg.norm(reflection - origin, axis=1)


def compute_reflection_lines(
    origin: np.ndarray,
    reflection: np.ndarray,
    distance_threshold: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Reflection line end points for every beam.

    The beam line is recentred at its midpoint, rescaled by
    (2 * distance_threshold) / length and translated onto the reflection
    point, giving the segment reflection -/+ distance_threshold * direction.

    Returns:
        (start, end) arrays of shape (N, 3); rows of zero-length beams are NaN

    Raises:
        ValidationError: distance_threshold is not positive
    """
    if distance_threshold <= 0:
        raise ValidationError(f"distance_threshold must be positive, got {distance_threshold}")

    vector = reflection - origin
    length = np.linalg.norm(vector, axis=1)
    start = np.full(reflection.shape, np.nan)
    end = np.full(reflection.shape, np.nan)

    nonzero = length > 0
    direction = vector[nonzero] / length[nonzero, np.newaxis]
    half = distance_threshold * direction
    start[nonzero] = reflection[nonzero] - half
    end[nonzero] = reflection[nonzero] + half
    return start, end


def build_beam_batch(
    patch_id: int,
    patch: PointCloud,
    distance_threshold: float
) -> BeamBatch:
    """
    Beams of one exploded patch.

    Raises:
        ContractViolationError: Patch lacks beam origin or message columns
        ValidationError: distance_threshold is not positive
    """
    required = (
        PointColumn.ID,
        PointColumn.TIMESTAMP_SEC,
        PointColumn.TIMESTAMP_NANOSEC,
        PointColumn.INTENSITY,
        PointColumn.BEAM_ORIGIN_X,
        PointColumn.BEAM_ORIGIN_Y,
        PointColumn.BEAM_ORIGIN_Z,
        PointColumn.MESSAGE_ID,
        PointColumn.POINT_ID_IN_MESSAGE,
    )
    missing = [c.value for c in required if not patch.has_column(c)]
    if missing:
        raise ContractViolationError(f"Patch {patch_id} lacks columns {missing}")

    origin = patch.beam_origins()
    reflection = patch.xyz()
    start, end = compute_reflection_lines(origin, reflection, distance_threshold)

    return BeamBatch(
        patch_id=patch_id,
        point_id=patch[PointColumn.ID],
        timestamp_sec=patch[PointColumn.TIMESTAMP_SEC],
        timestamp_nanosec=patch[PointColumn.TIMESTAMP_NANOSEC],
        intensity=patch[PointColumn.INTENSITY],
        origin=origin,
        reflection=reflection,
        length=compute_beam_lengths(origin, reflection),
        reflection_line_start=start,
        reflection_line_end=end,
        message_id=patch[PointColumn.MESSAGE_ID],
        point_id_in_message=patch[PointColumn.POINT_ID_IN_MESSAGE],
    )
