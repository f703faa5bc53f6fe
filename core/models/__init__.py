"""
Core Data Models Package.

Contains pure data structures without store access.

Exports:
    PointCloud, PointColumn, UPLOAD_COLUMNS: Columnar point container
    FrameTransform, ReferenceFrames: Static frame graph
    PatchOutcome, BatchResult, BatchStatus: Fan-out result types
    DownloadEntry: Denormalised download row
"""

# Frame graph
from .reference_frames import (
    FrameTransform,
    ReferenceFrames
)

# Point cloud
from .point_cloud import (
    PointCloud,
    PointColumn,
    UPLOAD_COLUMNS
)

# Result models
from .results import (
    BatchResult,
    BatchStatus,
    PatchOutcome
)

# Store records
from .records import DownloadEntry

__all__ = [
    'FrameTransform',
    'ReferenceFrames',
    'PointCloud',
    'PointColumn',
    'UPLOAD_COLUMNS',
    'BatchResult',
    'BatchStatus',
    'PatchOutcome',
    'DownloadEntry',
]
