"""
Association Service - Beams and point/beam to model associations.

Per uploaded patch (concurrently, one pooled connection each):
    1. Explode the patch and derive beams (origin -> reflection) in numpy
    2. Stage beams with COPY and insert them with PostGIS geometries
    3. Point-model association: every model geometry within the inclusive
       3D distance threshold of the reflection point
    4. Beam-model association (optional): reflection line intersecting a
       repaired planar model polygon

Exports:
    AssociationService: associate() operation
"""

from typing import Optional

from config.pipeline_config import PipelineConfig
from core.beams import build_beam_batch
from core.fan_out import TaskReport, run_patch_tasks
from core.models.results import BatchResult
from exceptions import ValidationError
from infrastructure.sensor_data_repository import SensorDataRepository
from services.lifecycle_service import LifecycleService
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "AssociationService")


class AssociationService:
    """Association of stored patches with the city model."""

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

    def associate(
        self,
        distance_threshold: Optional[float] = None,
        beam_intersection: bool = False,
        keep_staging: bool = False
    ) -> BatchResult:
        """
        Recreate beams and associations for every stored patch.

        Args:
            distance_threshold: Inclusive point-to-surface distance in metres
            beam_intersection: Also intersect reflection lines with model polygons
            keep_staging: Keep the exploded feature geometries after the run

        Raises:
            ValidationError: distance_threshold is not positive
        """
        if distance_threshold is None:
            distance_threshold = self.config.distance_threshold
        if distance_threshold <= 0:
            raise ValidationError(f"distance_threshold must be positive, got {distance_threshold}")

        logger.info(
            f"Run associate with distance_threshold: {distance_threshold}, "
            f"beam_intersection: {beam_intersection}"
        )
        self.lifecycle.clear_association_tables()

        if beam_intersection:
            logger.info("Explode feature geometry data")
            with self.pool.get_connection() as conn:
                self.repository.explode_feature_geometries(conn)

        with self.pool.get_connection() as conn:
            patch_ids = self.repository.list_patch_ids(conn)

        def associate_patch(patch_id: int) -> TaskReport:
            return self._associate_patch(patch_id, distance_threshold, beam_intersection)

        result = run_patch_tasks(
            "associate",
            patch_ids,
            associate_patch,
            key_fn=lambda patch_id: f"patch {patch_id}",
            patch_id_fn=lambda patch_id: patch_id,
            max_threads=self.config.fan_out_threads(self.pool.max_size),
        )

        if beam_intersection and not keep_staging:
            with self.pool.get_connection() as conn:
                self.repository.truncate_feature_geometry(conn)
            logger.info("Deleted exploded feature geometries")

        return result

    def _associate_patch(
        self,
        patch_id: int,
        distance_threshold: float,
        beam_intersection: bool
    ) -> TaskReport:
        with self.pool.get_connection() as conn:
            logger.debug(f"Exploding patch with id: {patch_id}")
            points, srid = self.repository.fetch_patch_points(conn, patch_id)
            beams = build_beam_batch(patch_id, points, distance_threshold)
            beam_count = self.repository.insert_beams(conn, beams, srid)

            logger.debug(f"Associating point-model with patch_id: {patch_id}")
            point_model = self.repository.insert_point_model_associations(
                conn, patch_id, distance_threshold
            )

            beam_model = 0
            if beam_intersection:
                logger.debug(f"Associating beam-model with patch_id: {patch_id}")
                beam_model = self.repository.insert_beam_model_associations(conn, patch_id)

        logger.info(
            f"Associated patch {patch_id}: {beam_count} beams, "
            f"{point_model} point-model and {beam_model} beam-model associations",
            extra={'custom_dimensions': {
                'patch_id': patch_id,
                'beams': beam_count,
                'point_model_associations': point_model,
                'beam_model_associations': beam_model,
            }}
        )
        return TaskReport(patch_id=patch_id, rows_affected=beam_count)
