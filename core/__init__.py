"""
Core Pipeline Components.

Store-independent building blocks of the sensor data pipeline.

Structure:
    models/: Pure data structures (point clouds, frames, results, records)
    partitioning.py: Time windows, time range clamping, ID range patches
    beams.py: Beam geometry (origin -> reflection rays)
    reconstruction.py: Download rows -> point cloud, colorization
    fan_out.py: Per-patch concurrent task execution with outcome aggregation
"""

from . import models

__all__ = [
    'models',
]
