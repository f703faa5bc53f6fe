"""
Point cloud reconstruction from download rows.

Exports:
    derive_point_cloud: DownloadEntry rows -> PointCloud
    colorize_by_column_hash: Stable per-value colours for a column
"""

import hashlib
from typing import Dict, List, Sequence

import numpy as np

from core.models.point_cloud import PointCloud, PointColumn
from core.models.records import DownloadEntry

_ENTRY_COLUMNS = {
    PointColumn.X: "x",
    PointColumn.Y: "y",
    PointColumn.Z: "z",
    PointColumn.ID: "point_id",
    PointColumn.TIMESTAMP_SEC: "timestamp_sec",
    PointColumn.TIMESTAMP_NANOSEC: "timestamp_nanosec",
    PointColumn.INTENSITY: "intensity",
    PointColumn.BEAM_ORIGIN_X: "beam_origin_x",
    PointColumn.BEAM_ORIGIN_Y: "beam_origin_y",
    PointColumn.BEAM_ORIGIN_Z: "beam_origin_z",
    PointColumn.BEAM_LENGTH: "beam_length",
    PointColumn.MESSAGE_ID: "message_id",
    PointColumn.POINT_ID_IN_MESSAGE: "point_id_in_message",
}

_STRING_COLUMNS = (
    PointColumn.FEATURE_EXTERNAL_ID,
    PointColumn.FEATURE_NAME,
    PointColumn.FEATURE_CLASS,
)

_OPTIONAL_FLOAT_COLUMNS = (
    PointColumn.SURFACE_DISTANCE,
    PointColumn.INTERSECTION_ANGLE,
)


def derive_point_cloud(entries: Sequence[DownloadEntry], frame_id: str) -> PointCloud:
    """
    Build a point cloud from download rows, keeping row order.

    Missing feature strings become "" and missing distances/markers NaN.
    """
    columns: Dict[str, List] = {}
    for column, attribute in _ENTRY_COLUMNS.items():
        columns[column.value] = [getattr(e, attribute) for e in entries]
    for column in _STRING_COLUMNS:
        values = [getattr(e, column.value) for e in entries]
        columns[column.value] = np.array(["" if v is None else v for v in values], dtype=object)
    for column in _OPTIONAL_FLOAT_COLUMNS:
        values = [getattr(e, column.value) for e in entries]
        columns[column.value] = [np.nan if v is None else v for v in values]
    return PointCloud(columns, frame_id=frame_id)


def _color_of(value: str) -> tuple:
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]


def colorize_by_column_hash(point_cloud: PointCloud, column) -> PointCloud:
    """
    Add color_red/green/blue derived from a SHA-256 hash of each value.

    Equal values always get the same colour, across patches and runs.
    """
    values = point_cloud[column]
    palette = {value: _color_of(str(value)) for value in set(values.tolist())}
    colors = np.array([palette[v] for v in values.tolist()], dtype=np.uint8).reshape(-1, 3)
    return (
        point_cloud
        .with_column(PointColumn.COLOR_RED, colors[:, 0])
        .with_column(PointColumn.COLOR_GREEN, colors[:, 1])
        .with_column(PointColumn.COLOR_BLUE, colors[:, 2])
    )
