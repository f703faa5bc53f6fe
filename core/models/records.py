"""
Database Record Models.

Rows read back from the sensor data tables.

Exports:
    DownloadEntry: One denormalised point_cloud_download row
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DownloadEntry(BaseModel):
    """
    One beam with its best-matching model feature.

    The feature columns are NULL when no point-model association exists
    for the beam. intersection_angle is only a presence marker: 1 when the
    beam intersects any model surface, otherwise NULL.
    """

    model_config = ConfigDict(extra='ignore')

    patch_id: int
    x: float
    y: float
    z: float
    point_id: int = Field(..., ge=0)
    timestamp_sec: int
    timestamp_nanosec: int = Field(..., ge=0)
    intensity: float
    beam_origin_x: float
    beam_origin_y: float
    beam_origin_z: float
    beam_length: float
    message_id: int = Field(..., ge=0)
    point_id_in_message: int = Field(..., ge=0)
    feature_external_id: Optional[str] = None
    feature_name: Optional[str] = None
    feature_class: Optional[str] = None
    surface_distance: Optional[float] = None
    intersection_angle: Optional[float] = None
