"""
Upload Service - Point cloud extraction, partitioning and patch upload.

Two entry points feed the same patch fan-out:

    upload_point_cloud: a georeferenced cloud (LAS/XYZ file) is given
    sequential ids, zero-filled upload columns and cut into patches.

    upload_recording: a log recording is cut into time windows, every window
    is extracted in a worker process, its frame graph merged with the
    georeferencing graph and resolved into the world frame. Ids are assigned
    process-wide in step order, then every step is partitioned.

Each patch becomes one task holding one pooled connection for one
PC_MakePatch insert. Failed patches are reported in the BatchResult.

Exports:
    UploadService: Upload orchestration
"""

import shutil
from concurrent.futures import ProcessPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple, Union

from config.pipeline_config import PipelineConfig
from core.fan_out import TaskReport, run_patch_tasks
from core.models.point_cloud import PointCloud
from core.models.reference_frames import ReferenceFrames
from core.models.results import BatchResult
from core.partitioning import (
    IdRange,
    TimeWindow,
    compute_time_windows,
    partition_point_cloud,
    resolve_time_range,
)
from infrastructure.point_cloud_io import write_xyz
from infrastructure.sensor_data_repository import SensorDataRepository
from interfaces.recording import ILogRecording
from util_logger import LoggerFactory, ComponentType, log_memory_checkpoint

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "UploadService")

PatchItem = Tuple[str, IdRange, PointCloud]


def _extract_step(
    recording: ILogRecording,
    window: TimeWindow,
    reference_frames: ReferenceFrames,
    world_frame_id: str
) -> PointCloud:
    """
    Extract one window and resolve it into the world frame.

    Module level so it can be pickled into worker processes.

    Raises:
        ExtractionError: Window could not be read or resolved
        ReferenceFrameConflictError: Recording and georeferencing disagree
    """
    point_cloud = recording.get_point_cloud(window.start, window.stop)
    merged = point_cloud.reference_frames.merge([reference_frames])
    return point_cloud.with_reference_frames(merged).resolve_to_frame(world_frame_id)


class UploadService:
    """Upload orchestration for point clouds and log recordings."""

    def __init__(
        self,
        pool,
        repository: SensorDataRepository,
        pipeline_config: PipelineConfig,
        debug_mode: bool = False
    ):
        self.pool = pool
        self.repository = repository
        self.config = pipeline_config
        self.debug_mode = debug_mode

    # ========================================================================
    # DIRECT POINT CLOUD
    # ========================================================================

    def upload_point_cloud(self, point_cloud: PointCloud) -> BatchResult:
        """
        Upload a georeferenced point cloud.

        Ids are reassigned from 0; missing timestamp, intensity, beam origin
        and message columns are zero-filled.
        """
        prepared = point_cloud.with_sequential_ids(0).with_upload_defaults()
        patches = [
            (id_range.key, id_range, patch)
            for id_range, patch in partition_point_cloud(prepared, self.config.patch_step_size)
        ]
        logger.info(f"Start uploading {prepared.size:,} points in {len(patches)} patches")
        return self._upload_patches(patches)

    # ========================================================================
    # LOG RECORDING
    # ========================================================================

    def upload_recording(
        self,
        recording: ILogRecording,
        reference_frames: ReferenceFrames,
        step_duration: Optional[timedelta] = None,
        start_time: Optional[datetime] = None,
        stop_time: Optional[datetime] = None,
        artefact_dir: Optional[Union[str, Path]] = None,
        start_offset: Optional[timedelta] = None,
        total_duration: Optional[timedelta] = None
    ) -> BatchResult:
        """
        Extract a recording window by window and upload all patches.

        Raises:
            ValidationError: Non-positive step duration
            ExtractionError: A window could not be extracted or resolved
            ReferenceFrameConflictError: Conflicting frame definitions
        """
        step_duration = step_duration or self.config.step_duration

        time_range = resolve_time_range(
            recording_start=recording.get_start_time(),
            recording_stop=recording.get_stop_time(),
            start=start_time,
            stop=stop_time,
            start_offset=start_offset,
            total_duration=total_duration,
        )
        windows = compute_time_windows(time_range.start, time_range.stop, step_duration)
        logger.info(
            f"Recording duration: {time_range.duration} "
            f"({time_range.start.isoformat()} - {time_range.stop.isoformat()}), "
            f"{len(windows)} steps of {step_duration}"
        )

        step_clouds = self._extract_windows(recording, windows, reference_frames)
        log_memory_checkpoint(
            logger, "after extraction", self.debug_mode,
            steps=len(step_clouds), points=sum(c.size for c in step_clouds)
        )

        step_clouds = self._assign_sequential_ids(step_clouds)

        if artefact_dir is not None:
            self._write_artefacts(Path(artefact_dir), step_clouds)

        patches: List[PatchItem] = []
        for window, step_cloud in zip(windows, step_clouds):
            for id_range, patch in partition_point_cloud(step_cloud, self.config.patch_step_size):
                patches.append((f"step {window.step}, {id_range.key}", id_range, patch))

        logger.info(f"Start uploading {len(patches)} patches")
        result = self._upload_patches(patches)
        log_memory_checkpoint(logger, "after upload", self.debug_mode, patches=len(patches))
        return result

    def _extract_windows(
        self,
        recording: ILogRecording,
        windows: List[TimeWindow],
        reference_frames: ReferenceFrames
    ) -> List[PointCloud]:
        """Extract all windows, in step order."""
        if not windows:
            return []

        workers = min(self.config.resolved_cpu_workers(), len(windows))
        args = (
            [recording] * len(windows),
            windows,
            [reference_frames] * len(windows),
            [self.config.world_frame_id] * len(windows),
        )

        logger.info(f"Extracting {len(windows)} steps with {workers} worker(s)")
        if workers <= 1:
            return list(map(_extract_step, *args))

        with ProcessPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(_extract_step, *args))

    @staticmethod
    def _assign_sequential_ids(step_clouds: List[PointCloud]) -> List[PointCloud]:
        """Ids continue across steps, so they are unique within the upload."""
        assigned = []
        next_id = 0
        for step_cloud in step_clouds:
            assigned.append(step_cloud.with_sequential_ids(next_id))
            next_id += step_cloud.size
        return assigned

    def _write_artefacts(self, artefact_dir: Path, step_clouds: List[PointCloud]) -> None:
        """One downsampled XYZ file per step; the directory is recreated."""
        if artefact_dir.exists():
            shutil.rmtree(artefact_dir)
        artefact_dir.mkdir(parents=True)

        for step, step_cloud in enumerate(step_clouds):
            downsampled = step_cloud.deterministic_downsample(
                self.config.artefact_downsample_points,
                self.config.artefact_downsample_seed,
            )
            write_xyz(downsampled, artefact_dir / f"{step}.xyz")
        logger.info(f"Wrote {len(step_clouds)} artefact files to {artefact_dir}")

    # ========================================================================
    # PATCH FAN-OUT
    # ========================================================================

    def _upload_patch(self, item: PatchItem) -> TaskReport:
        _, id_range, patch = item
        logger.debug(
            f"Uploading point cloud with {patch.size} points in the ID range: "
            f"{id_range.id_min}-{id_range.id_max}"
        )
        with self.pool.get_connection() as conn:
            patch_id = self.repository.insert_patch(conn, patch)
        return TaskReport(patch_id=patch_id, rows_affected=patch.size)

    def _upload_patches(self, patches: List[PatchItem]) -> BatchResult:
        return run_patch_tasks(
            "upload",
            patches,
            self._upload_patch,
            key_fn=lambda item: item[0],
            max_threads=self.config.fan_out_threads(self.pool.max_size),
        )
