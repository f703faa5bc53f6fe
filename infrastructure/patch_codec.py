"""
pgPointCloud Patch Codec.

Encodes a point cloud patch into the flat float8[] argument of
PC_MakePatch(pcid, float8[]) and describes the matching pointcloud_formats
schema document.

The dimension order is fixed; it must equal the position order of the
registered schema.

Exports:
    PatchDimension: One dimension of the patch schema
    PATCH_DIMENSIONS: Dimensions in schema position order
    encode_patch_values: Flatten a patch row-major into float values
    pointcloud_schema_xml: pointcloud_formats.schema document
"""

from dataclasses import dataclass
from typing import List

import numpy as np

from core.models.point_cloud import PointCloud, PointColumn
from exceptions import ContractViolationError


@dataclass(frozen=True)
class PatchDimension:
    column: PointColumn
    pc_name: str
    interpretation: str
    size: int
    description: str


PATCH_DIMENSIONS = (
    PatchDimension(PointColumn.X, "X", "double", 8, "X coordinate in the world frame"),
    PatchDimension(PointColumn.Y, "Y", "double", 8, "Y coordinate in the world frame"),
    PatchDimension(PointColumn.Z, "Z", "double", 8, "Z coordinate in the world frame"),
    PatchDimension(PointColumn.ID, "id", "uint64_t", 8, "Sequential point id"),
    PatchDimension(PointColumn.TIMESTAMP_SEC, "timestamp_sec", "int64_t", 8, "Timestamp seconds"),
    PatchDimension(PointColumn.TIMESTAMP_NANOSEC, "timestamp_nanosec", "uint32_t", 4, "Timestamp nanoseconds"),
    PatchDimension(PointColumn.INTENSITY, "intensity", "float", 4, "Return intensity"),
    PatchDimension(PointColumn.BEAM_ORIGIN_X, "beam_origin_x", "double", 8, "Sensor origin X"),
    PatchDimension(PointColumn.BEAM_ORIGIN_Y, "beam_origin_y", "double", 8, "Sensor origin Y"),
    PatchDimension(PointColumn.BEAM_ORIGIN_Z, "beam_origin_z", "double", 8, "Sensor origin Z"),
    PatchDimension(PointColumn.MESSAGE_ID, "message_id", "uint32_t", 4, "Source message index"),
    PatchDimension(PointColumn.POINT_ID_IN_MESSAGE, "point_id_in_message", "uint32_t", 4, "Point index in message"),
)


def encode_patch_values(patch: PointCloud) -> List[float]:
    """
    Flatten a patch into [x0, y0, z0, id0, ..., x1, y1, ...].

    Raises:
        ContractViolationError: A patch dimension column is missing
    """
    missing = [d.column.value for d in PATCH_DIMENSIONS if not patch.has_column(d.column)]
    if missing:
        raise ContractViolationError(
            f"Patch is missing columns {missing}; call with_upload_defaults() first"
        )

    matrix = np.column_stack(
        [patch[d.column].astype(np.float64) for d in PATCH_DIMENSIONS]
    ) if patch.size else np.empty((0, len(PATCH_DIMENSIONS)))
    return matrix.ravel().tolist()


def pointcloud_schema_xml(pcid: int, srid: int) -> str:
    """pointcloud_formats.schema document for PATCH_DIMENSIONS (pcid is informational)."""
    dimensions = "\n".join(
        f"""  <pc:dimension>
    <pc:position>{position}</pc:position>
    <pc:size>{d.size}</pc:size>
    <pc:description>{d.description}</pc:description>
    <pc:name>{d.pc_name}</pc:name>
    <pc:interpretation>{d.interpretation}</pc:interpretation>
    <pc:scale>1</pc:scale>
  </pc:dimension>"""
        for position, d in enumerate(PATCH_DIMENSIONS, start=1)
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!-- pcid {pcid}, srid {srid} -->
<pc:PointCloudSchema xmlns:pc="http://pointcloud.org/schemas/PC/1.1"
    xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
{dimensions}
  <pc:metadata>
    <Metadata name="compression">dimensional</Metadata>
  </pc:metadata>
  <pc:orientation>point</pc:orientation>
</pc:PointCloudSchema>
"""
