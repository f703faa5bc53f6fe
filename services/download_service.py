"""
Download Service - Reconstruct associated point clouds.

Per uploaded patch (concurrently, one pooled connection each) one
denormalised row per beam is materialised in point_cloud_download, read
back ordered by point id and turned into a point cloud with the feature
metadata of its nearest model surface. The cloud is coloured by a stable
hash of the feature id and written to <output_dir>/<patch_id>.xyz.

Exports:
    DownloadService: download() and retrieve_patch() operations
"""

from pathlib import Path
from typing import Union

from config.pipeline_config import PipelineConfig
from core.fan_out import TaskReport, run_patch_tasks
from core.models.point_cloud import PointCloud, PointColumn
from core.models.results import BatchResult
from core.reconstruction import colorize_by_column_hash, derive_point_cloud
from infrastructure.point_cloud_io import write_xyz
from infrastructure.sensor_data_repository import SensorDataRepository
from services.lifecycle_service import LifecycleService
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "DownloadService")


class DownloadService:
    """Retrieval and reconstruction of associated patches."""

    def __init__(
        self,
        pool,
        repository: SensorDataRepository,
        lifecycle: LifecycleService,
        pipeline_config: PipelineConfig
    ):
        self.pool = pool
        self.repository = repository
        self.lifecycle = lifecycle
        self.config = pipeline_config

    def download(self, output_dir: Union[str, Path], keep_staging: bool = False) -> BatchResult:
        """
        Write one colourised XYZ file per stored patch.

        The output directory is created if needed; existing files of the
        same patch ids are overwritten, other files are left alone.
        """
        output_dir = Path(output_dir)
        self.lifecycle.clear_download_tables()
        output_dir.mkdir(parents=True, exist_ok=True)

        with self.pool.get_connection() as conn:
            patch_ids = self.repository.list_patch_ids(conn)

        def download_patch(patch_id: int) -> TaskReport:
            point_cloud = self.retrieve_patch(patch_id, keep_staging)
            colorized = colorize_by_column_hash(point_cloud, PointColumn.FEATURE_EXTERNAL_ID)
            write_xyz(colorized, output_dir / f"{patch_id}.xyz")
            return TaskReport(patch_id=patch_id, rows_affected=point_cloud.size)

        return run_patch_tasks(
            "download",
            patch_ids,
            download_patch,
            key_fn=lambda patch_id: f"patch {patch_id}",
            patch_id_fn=lambda patch_id: patch_id,
            max_threads=self.config.fan_out_threads(self.pool.max_size),
        )

    def retrieve_patch(self, patch_id: int, keep_staging: bool = False) -> PointCloud:
        """
        Reconstruct one patch from its beams and associations.

        Stale download rows of the patch are replaced. Rows are deleted
        after reading unless keep_staging is set.
        """
        with self.pool.get_connection() as conn:
            self.repository.delete_download_entries(conn, patch_id)
            self.repository.materialize_download_entries(conn, patch_id)
            entries = self.repository.fetch_download_entries(conn, patch_id)
            logger.info(f"Number of points in patch {patch_id}: {len(entries)}")

            if not keep_staging:
                deleted = self.repository.delete_download_entries(conn, patch_id)
                logger.debug(
                    f"Deleted temporary entries of patch {patch_id}: "
                    f"point_cloud_download (number of rows: {deleted})"
                )

        return derive_point_cloud(entries, frame_id=self.config.world_frame_id)
