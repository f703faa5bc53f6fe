# ============================================================================
# LOG RECORDING INTERFACE
# ============================================================================
# PURPOSE: Abstract interface for time-indexed sensor log recordings
# EXPORTS: ILogRecording - Abstract base class for recording readers
# DEPENDENCIES: abc, datetime
# ============================================================================

"""
Log Recording Interface

Defines what the upload needs from a robot log recording. Container formats
(rosbag directories, MCAP files, ...) are read by concrete implementations
that live outside this package.

Extraction runs in worker processes, so implementations must be picklable;
reopen file handles lazily instead of holding them across pickling.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from core.models.point_cloud import PointCloud


class ILogRecording(ABC):
    """
    Interface for time-indexed sensor log recordings.

    Implementations should handle:
    - Opening the recording container
    - Decoding point cloud messages into PointCloud columns
    - Attaching the recording's static frame graph to each extracted cloud
    """

    @abstractmethod
    def get_start_time(self) -> datetime:
        """
        Timestamp of the first message (timezone-aware UTC).

        Raises:
            ExtractionError: Recording has no start time
        """
        pass

    @abstractmethod
    def get_stop_time(self) -> datetime:
        """
        Timestamp of the last message (timezone-aware UTC).

        Raises:
            ExtractionError: Recording has no stop time
        """
        pass

    @abstractmethod
    def get_point_cloud(self, start: datetime, stop: datetime) -> PointCloud:
        """
        All points recorded in [start, stop).

        The returned cloud is expressed in the sensor frame and carries the
        recording's frame graph. It must provide the upload columns except
        id, which the upload assigns.

        Args:
            start: Window start, inclusive
            stop: Window stop, exclusive

        Returns:
            Point cloud of the window, possibly empty

        Raises:
            ExtractionError: Messages in the window could not be decoded
        """
        pass
