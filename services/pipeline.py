# ============================================================================
# SENSOR DATA PIPELINE
# ============================================================================
# STATUS: Service - boundary facade used by the CLI and by library callers
# PURPOSE: Wire pool, repository and services from one explicit AppConfig
# EXPORTS: SensorDataPipeline
# DEPENDENCIES: config, infrastructure, services
# ============================================================================
"""
Sensor Data Pipeline Facade.

Control flow between the stages runs only through the store:

    upload_rosbag / upload_point_cloud  -> point_cloud_upload
    associate                           -> beam, association_* tables
    download                            -> point_cloud_download -> XYZ files

Usage:
    config = AppConfig(database=DatabaseConfig(connection_string=url))
    with SensorDataPipeline(config) as pipeline:
        pipeline.clear()
        pipeline.upload_point_cloud(read_point_cloud("scan.las")).raise_for_failures()
        pipeline.associate(distance_threshold=0.2).raise_for_failures()
        pipeline.download("out/").raise_for_failures()
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Union

from config.app_config import AppConfig
from core.models.point_cloud import PointCloud
from core.models.reference_frames import ReferenceFrames
from core.models.results import BatchResult
from infrastructure.connection_pool import ConnectionPoolManager
from infrastructure.sensor_data_repository import SensorDataRepository
from infrastructure.sensor_data_schema import SensorDataSchemaDeployer
from interfaces.recording import ILogRecording
from services.association_service import AssociationService
from services.download_service import DownloadService
from services.lifecycle_service import LifecycleService
from services.upload_service import UploadService
from util_logger import LoggerFactory, ComponentType, log_exceptions

logger = LoggerFactory.create_logger(ComponentType.PIPELINE, "SensorDataPipeline")


class SensorDataPipeline:
    """
    Boundary operations of the sensor data analyzer.

    Args:
        config: Explicit application configuration
        pool: Opened pool (tests inject fakes); created and opened from
            config.database when omitted
        repository: SQL layer; built from config when omitted

    Raises:
        DatabaseConnectionError: The pool could not be opened
    """

    def __init__(
        self,
        config: AppConfig,
        pool: Optional[Any] = None,
        repository: Optional[SensorDataRepository] = None
    ):
        self.config = config
        logger.info(
            "Initializing sensor data pipeline",
            extra={'custom_dimensions': config.debug_dict()}
        )

        self._owns_pool = pool is None
        self.pool = pool if pool is not None else ConnectionPoolManager(config.database).open()
        self.repository = repository or SensorDataRepository(config.database, config.pipeline)

        self.lifecycle = LifecycleService(self.pool, self.repository)
        self.upload_service = UploadService(
            self.pool, self.repository, config.pipeline, debug_mode=config.debug_mode
        )
        self.association_service = AssociationService(
            self.pool, self.repository, self.lifecycle, config.pipeline
        )
        self.download_service = DownloadService(
            self.pool, self.repository, self.lifecycle, config.pipeline
        )

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @log_exceptions(ComponentType.PIPELINE, "SensorDataPipeline")
    def clear(self) -> None:
        """Empty download, association and upload tables. Idempotent."""
        self.lifecycle.clear_all()

    @log_exceptions(ComponentType.PIPELINE, "SensorDataPipeline")
    def deploy_schema(self) -> Dict[str, Any]:
        deployer = SensorDataSchemaDeployer(self.pool, self.config.database, self.config.pipeline)
        return deployer.deploy_all()

    # ========================================================================
    # UPLOAD
    # ========================================================================

    @log_exceptions(ComponentType.PIPELINE, "SensorDataPipeline")
    def upload_rosbag(
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
        """Time-windowed extraction of a log recording plus patch upload."""
        return self.upload_service.upload_recording(
            recording,
            reference_frames,
            step_duration=step_duration,
            start_time=start_time,
            stop_time=stop_time,
            artefact_dir=artefact_dir,
            start_offset=start_offset,
            total_duration=total_duration,
        )

    @log_exceptions(ComponentType.PIPELINE, "SensorDataPipeline")
    def upload_point_cloud(self, point_cloud: PointCloud) -> BatchResult:
        """Upload a georeferenced point cloud with sequential ids."""
        return self.upload_service.upload_point_cloud(point_cloud)

    # ========================================================================
    # ASSOCIATION / DOWNLOAD
    # ========================================================================

    @log_exceptions(ComponentType.PIPELINE, "SensorDataPipeline")
    def associate(
        self,
        distance_threshold: Optional[float] = None,
        beam_intersection: bool = False,
        keep_staging: bool = False
    ) -> BatchResult:
        return self.association_service.associate(
            distance_threshold=distance_threshold,
            beam_intersection=beam_intersection,
            keep_staging=keep_staging,
        )

    @log_exceptions(ComponentType.PIPELINE, "SensorDataPipeline")
    def download(self, output_dir: Union[str, Path], keep_staging: bool = False) -> BatchResult:
        return self.download_service.download(output_dir, keep_staging=keep_staging)

    def retrieve_patch(self, patch_id: int, keep_staging: bool = False) -> PointCloud:
        return self.download_service.retrieve_patch(patch_id, keep_staging=keep_staging)

    # ========================================================================
    # STATS
    # ========================================================================

    def stats(self) -> int:
        """Number of stored patches."""
        with self.pool.get_connection() as conn:
            count = self.repository.count_patches(conn)
        logger.info(f"Number of stored patches: {count}")
        return count

    def table_counts(self) -> Dict[str, int]:
        with self.pool.get_connection() as conn:
            return self.repository.count_rows(conn)

    # ========================================================================
    # RESOURCES
    # ========================================================================

    def close(self) -> None:
        """Close the pool if this pipeline created it."""
        if self._owns_pool:
            self.pool.close()

    def __enter__(self) -> "SensorDataPipeline":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
