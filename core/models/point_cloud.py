"""
Point Cloud Data Model.

Columnar point container used by every pipeline stage: numpy arrays keyed by
column name, plus the frame the coordinates are expressed in and the frame
graph needed to resolve them elsewhere.

Point clouds are immutable once extracted. Every operation returns a new
PointCloud; arrays are never modified in place.

Exports:
    PointColumn: Column names with their numpy dtypes
    PointCloud: Columnar point container
    UPLOAD_COLUMNS: Columns a patch needs before it can be encoded
"""

from enum import Enum
from typing import Dict, Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from exceptions import ContractViolationError
from .reference_frames import ReferenceFrames


class PointColumn(str, Enum):
    """Known point columns. Unknown columns are carried along untouched."""

    X = "x"
    Y = "y"
    Z = "z"
    ID = "id"
    TIMESTAMP_SEC = "timestamp_sec"
    TIMESTAMP_NANOSEC = "timestamp_nanosec"
    INTENSITY = "intensity"
    BEAM_ORIGIN_X = "beam_origin_x"
    BEAM_ORIGIN_Y = "beam_origin_y"
    BEAM_ORIGIN_Z = "beam_origin_z"
    MESSAGE_ID = "message_id"
    POINT_ID_IN_MESSAGE = "point_id_in_message"

    # Reconstruction columns
    BEAM_LENGTH = "beam_length"
    FEATURE_EXTERNAL_ID = "feature_external_id"
    FEATURE_NAME = "feature_name"
    FEATURE_CLASS = "feature_class"
    SURFACE_DISTANCE = "surface_distance"
    INTERSECTION_ANGLE = "intersection_angle"
    COLOR_RED = "color_red"
    COLOR_GREEN = "color_green"
    COLOR_BLUE = "color_blue"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(_COLUMN_DTYPES[self])


_COLUMN_DTYPES = {
    PointColumn.X: np.float64,
    PointColumn.Y: np.float64,
    PointColumn.Z: np.float64,
    PointColumn.ID: np.uint64,
    PointColumn.TIMESTAMP_SEC: np.int64,
    PointColumn.TIMESTAMP_NANOSEC: np.uint32,
    PointColumn.INTENSITY: np.float32,
    PointColumn.BEAM_ORIGIN_X: np.float64,
    PointColumn.BEAM_ORIGIN_Y: np.float64,
    PointColumn.BEAM_ORIGIN_Z: np.float64,
    PointColumn.MESSAGE_ID: np.uint32,
    PointColumn.POINT_ID_IN_MESSAGE: np.uint32,
    PointColumn.BEAM_LENGTH: np.float64,
    PointColumn.FEATURE_EXTERNAL_ID: object,
    PointColumn.FEATURE_NAME: object,
    PointColumn.FEATURE_CLASS: object,
    PointColumn.SURFACE_DISTANCE: np.float64,
    PointColumn.INTERSECTION_ANGLE: np.float64,
    PointColumn.COLOR_RED: np.uint8,
    PointColumn.COLOR_GREEN: np.uint8,
    PointColumn.COLOR_BLUE: np.uint8,
}

XYZ_COLUMNS = (PointColumn.X, PointColumn.Y, PointColumn.Z)
BEAM_ORIGIN_COLUMNS = (
    PointColumn.BEAM_ORIGIN_X,
    PointColumn.BEAM_ORIGIN_Y,
    PointColumn.BEAM_ORIGIN_Z,
)

UPLOAD_COLUMNS = (
    PointColumn.X,
    PointColumn.Y,
    PointColumn.Z,
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


def _column_name(column) -> str:
    return column.value if isinstance(column, PointColumn) else str(column)


class PointCloud:
    """
    Immutable columnar point cloud.

    Args:
        columns: Mapping of column name to 1-D array, all of equal length
        frame_id: Frame the coordinates are expressed in
        reference_frames: Frame graph used by resolve_to_frame()

    Raises:
        ContractViolationError: Columns of different length or missing x/y/z
    """

    def __init__(
        self,
        columns: Mapping[str, Iterable],
        frame_id: str,
        reference_frames: Optional[ReferenceFrames] = None
    ):
        converted: Dict[str, np.ndarray] = {}
        for key, values in columns.items():
            name = _column_name(key)
            try:
                dtype = PointColumn(name).dtype
            except ValueError:
                dtype = None
            array = np.asarray(values, dtype=dtype).view()
            if array.ndim != 1:
                raise ContractViolationError(
                    f"Column '{name}' must be one-dimensional, got shape {array.shape}"
                )
            array.setflags(write=False)
            converted[name] = array

        for column in XYZ_COLUMNS:
            if column.value not in converted:
                raise ContractViolationError(f"Point cloud requires column '{column.value}'")

        lengths = {name: len(array) for name, array in converted.items()}
        if len(set(lengths.values())) > 1:
            raise ContractViolationError(f"Point cloud columns differ in length: {lengths}")

        self._columns = converted
        self._size = lengths[PointColumn.X.value]
        self.frame_id = frame_id
        self.reference_frames = reference_frames or ReferenceFrames()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    @property
    def column_names(self):
        return list(self._columns)

    def has_column(self, column) -> bool:
        return _column_name(column) in self._columns

    def column(self, column) -> np.ndarray:
        name = _column_name(column)
        if name not in self._columns:
            raise ContractViolationError(f"Point cloud has no column '{name}'")
        return self._columns[name]

    def __getitem__(self, column) -> np.ndarray:
        return self.column(column)

    def xyz(self) -> np.ndarray:
        """(N, 3) array of point coordinates."""
        return np.column_stack([self._columns[c.value] for c in XYZ_COLUMNS])

    def beam_origins(self) -> np.ndarray:
        """(N, 3) array of sensor origins per point."""
        return np.column_stack([self.column(c) for c in BEAM_ORIGIN_COLUMNS])

    @property
    def id_min(self) -> int:
        ids = self.column(PointColumn.ID)
        if ids.size == 0:
            raise ContractViolationError("id_min of an empty point cloud")
        return int(ids.min())

    @property
    def id_max(self) -> int:
        ids = self.column(PointColumn.ID)
        if ids.size == 0:
            raise ContractViolationError("id_max of an empty point cloud")
        return int(ids.max())

    # ------------------------------------------------------------------
    # Derivations (all return new point clouds)
    # ------------------------------------------------------------------

    def _replace(self, columns: Mapping[str, np.ndarray], frame_id: Optional[str] = None) -> "PointCloud":
        return PointCloud(
            columns,
            frame_id=frame_id if frame_id is not None else self.frame_id,
            reference_frames=self.reference_frames,
        )

    def _take(self, mask_or_index) -> "PointCloud":
        return self._replace({name: array[mask_or_index] for name, array in self._columns.items()})

    def filter_by_id_range(self, id_min: int, id_max: int) -> "PointCloud":
        """Copy holding the points whose id lies in [id_min, id_max]."""
        ids = self.column(PointColumn.ID)
        mask = (ids >= np.uint64(id_min)) & (ids <= np.uint64(id_max))
        return self._take(mask)

    def with_sequential_ids(self, start: int = 0) -> "PointCloud":
        """Replace the id column with start, start+1, ..."""
        ids = np.arange(start, start + self._size, dtype=np.uint64)
        return self.with_column(PointColumn.ID, ids)

    def with_column(self, column, values) -> "PointCloud":
        columns = dict(self._columns)
        columns[_column_name(column)] = values
        return self._replace(columns)

    def with_reference_frames(self, reference_frames: ReferenceFrames) -> "PointCloud":
        return PointCloud(self._columns, frame_id=self.frame_id, reference_frames=reference_frames)

    def with_upload_defaults(self) -> "PointCloud":
        """
        Zero-fill upload columns that the source did not provide.

        Direct point cloud uploads (LAS/XYZ files) carry coordinates only;
        timestamps, intensity, beam origins and message ids become zeros.
        """
        columns = dict(self._columns)
        for column in UPLOAD_COLUMNS:
            if column.value not in columns:
                columns[column.value] = np.zeros(self._size, dtype=column.dtype)
        return self._replace(columns)

    def resolve_to_frame(self, target_frame_id: str) -> "PointCloud":
        """
        Express coordinates and beam origins in target_frame_id.

        Raises:
            ReferenceFrameError: No transform chain to the target frame
        """
        if self.frame_id == target_frame_id:
            return self

        matrix = self.reference_frames.transform_matrix(self.frame_id, target_frame_id)
        columns = dict(self._columns)

        transformed = _apply_transform(matrix, self.xyz())
        for index, column in enumerate(XYZ_COLUMNS):
            columns[column.value] = transformed[:, index]

        if all(self.has_column(c) for c in BEAM_ORIGIN_COLUMNS):
            origins = _apply_transform(matrix, self.beam_origins())
            for index, column in enumerate(BEAM_ORIGIN_COLUMNS):
                columns[column.value] = origins[:, index]

        return self._replace(columns, frame_id=target_frame_id)

    def deterministic_downsample(self, max_points: int, seed: int) -> "PointCloud":
        """
        Reproducible random subset of at most max_points, original order kept.
        """
        if self._size <= max_points:
            return self
        rng = np.random.default_rng(seed)
        index = np.sort(rng.choice(self._size, size=max_points, replace=False))
        return self._take(index)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_dataframe(self) -> pd.DataFrame:
        """Columns in canonical order first, extra columns after."""
        known = [c.value for c in PointColumn if c.value in self._columns]
        extra = [name for name in self._columns if name not in known]
        return pd.DataFrame({name: self._columns[name] for name in known + extra})

    @classmethod
    def from_dataframe(
        cls,
        frame: pd.DataFrame,
        frame_id: str,
        reference_frames: Optional[ReferenceFrames] = None
    ) -> "PointCloud":
        return cls(
            {name: frame[name].to_numpy() for name in frame.columns},
            frame_id=frame_id,
            reference_frames=reference_frames,
        )

    def __repr__(self) -> str:
        return f"PointCloud(size={self._size}, frame_id={self.frame_id!r}, columns={self.column_names})"


def _apply_transform(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    return points @ matrix[:3, :3].T + matrix[:3, 3]
