"""
Point cloud file IO.

Readers for the direct upload command and the XYZ writer used for upload
artefacts and download results.

XYZ files are space separated text with a header line naming the columns;
x, y and z come first.

Exports:
    read_point_cloud: Dispatch on file suffix
    read_las: LAS/LAZ via laspy
    read_xyz: XYZ text via pandas
    write_xyz: XYZ text via pandas
"""

from pathlib import Path
from typing import Union

import laspy
import numpy as np
import pandas as pd

from core.models.point_cloud import PointCloud, PointColumn
from exceptions import ConfigurationError
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.ADAPTER, "point_cloud_io")

PathLike = Union[str, Path]

LAS_SUFFIXES = {'.las', '.laz'}
XYZ_SUFFIXES = {'.xyz', '.txt'}


def read_point_cloud(path: PathLike, frame_id: str = "world") -> PointCloud:
    """
    Read a point cloud file by suffix.

    Raises:
        ConfigurationError: Missing file or unsupported suffix
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Point cloud file not found: {path}")

    suffix = path.suffix.lower()
    if suffix in LAS_SUFFIXES:
        return read_las(path, frame_id=frame_id)
    if suffix in XYZ_SUFFIXES:
        return read_xyz(path, frame_id=frame_id)
    raise ConfigurationError(
        f"Unsupported point cloud format '{suffix}' "
        f"(supported: {sorted(LAS_SUFFIXES | XYZ_SUFFIXES)})"
    )


def read_las(path: PathLike, frame_id: str = "world") -> PointCloud:
    """Coordinates (scaled) and intensity of a LAS/LAZ file."""
    las = laspy.read(path)
    point_cloud = PointCloud(
        {
            PointColumn.X: np.asarray(las.x, dtype=np.float64),
            PointColumn.Y: np.asarray(las.y, dtype=np.float64),
            PointColumn.Z: np.asarray(las.z, dtype=np.float64),
            PointColumn.INTENSITY: np.asarray(las.intensity, dtype=np.float32),
        },
        frame_id=frame_id,
    )
    logger.info(f"Loaded {point_cloud.size:,} points from {path}")
    return point_cloud


def read_xyz(path: PathLike, frame_id: str = "world") -> PointCloud:
    """XYZ text with a header line, as written by write_xyz()."""
    frame = pd.read_csv(path, sep=' ', keep_default_na=False, na_values=['nan', 'NaN'])
    missing = [c.value for c in (PointColumn.X, PointColumn.Y, PointColumn.Z) if c.value not in frame.columns]
    if missing:
        raise ConfigurationError(f"XYZ file {path} lacks columns {missing}")
    point_cloud = PointCloud.from_dataframe(frame, frame_id=frame_id)
    logger.info(f"Loaded {point_cloud.size:,} points from {path}")
    return point_cloud


def write_xyz(point_cloud: PointCloud, path: PathLike) -> Path:
    """Write all columns of a point cloud, x/y/z first."""
    path = Path(path)
    frame = point_cloud.to_dataframe()
    frame.to_csv(path, sep=' ', index=False, float_format='%.6f', na_rep='nan')
    logger.debug(f"Wrote {point_cloud.size:,} points to {path}")
    return path

