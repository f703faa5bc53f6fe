"""
Pipeline Configuration.

Settings of the patch partitioner, the association engine and the
upload artefacts.

Exports:
    PipelineConfig: Pipeline configuration
"""

import os
from datetime import timedelta

from pydantic import BaseModel, Field

from .defaults import EnvVars, PipelineDefaults


class PipelineConfig(BaseModel):
    """Patch, association and artefact settings."""

    patch_step_size: int = Field(
        default=PipelineDefaults.PATCH_STEP_SIZE,
        ge=1,
        description="Maximum number of point IDs per uploaded patch"
    )

    distance_threshold: float = Field(
        default=PipelineDefaults.DISTANCE_THRESHOLD,
        gt=0,
        description="Default point-to-surface association distance in metres"
    )

    step_duration: timedelta = Field(
        default=timedelta(milliseconds=PipelineDefaults.STEP_DURATION_MILLISECONDS),
        description="Default duration of one extraction window"
    )

    pointcloud_pcid: int = Field(
        default=PipelineDefaults.POINTCLOUD_PCID,
        ge=1,
        description="pgPointCloud schema id (pointcloud_formats.pcid) of uploaded patches"
    )

    srid: int = Field(
        default=PipelineDefaults.SRID,
        ge=0,
        description="SRID of the 'world' frame, registered with the pcid"
    )

    world_frame_id: str = Field(
        default=PipelineDefaults.WORLD_FRAME_ID,
        description="Common frame every extracted point is resolved into"
    )

    cpu_workers: int = Field(
        default=PipelineDefaults.CPU_WORKERS,
        ge=0,
        description="Processes for step extraction; 0 = all cores, 1 = inline"
    )

    threads_per_connection: int = Field(
        default=PipelineDefaults.THREADS_PER_CONNECTION,
        ge=1,
        description="Patch task threads per pooled connection"
    )

    artefact_downsample_points: int = Field(
        default=PipelineDefaults.ARTEFACT_DOWNSAMPLE_POINTS,
        ge=1,
        description="Points kept in each per-step artefact file"
    )

    artefact_downsample_seed: int = Field(
        default=PipelineDefaults.ARTEFACT_DOWNSAMPLE_SEED,
        description="Seed of the deterministic artefact downsampling"
    )

    def fan_out_threads(self, pool_size: int) -> int:
        """Thread bound of one patch fan-out over a pool of pool_size connections."""
        return pool_size * self.threads_per_connection

    def resolved_cpu_workers(self) -> int:
        """Number of extraction processes, resolving 0 to the core count."""
        if self.cpu_workers == 0:
            return os.cpu_count() or 1
        return self.cpu_workers

    @classmethod
    def from_environment(cls) -> "PipelineConfig":
        """Load from environment variables, falling back to defaults."""
        return cls(
            pointcloud_pcid=int(
                os.environ.get(EnvVars.POINTCLOUD_PCID, str(PipelineDefaults.POINTCLOUD_PCID))
            ),
            srid=int(os.environ.get(EnvVars.SRID, str(PipelineDefaults.SRID))),
            cpu_workers=int(
                os.environ.get(EnvVars.CPU_WORKERS, str(PipelineDefaults.CPU_WORKERS))
            ),
        )
