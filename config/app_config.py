"""
Main Application Configuration.

Composes domain-specific configuration modules:
    - DatabaseConfig (connection string, pool bound, schema names)
    - PipelineConfig (patch size, association threshold, artefacts)

Exports:
    AppConfig: Main configuration class

Pattern:
    Composition over inheritance - domain configs are composed, not inherited.
"""

import os

from pydantic import BaseModel, Field

from .database_config import DatabaseConfig
from .pipeline_config import PipelineConfig
from .defaults import AppDefaults, EnvVars


# ============================================================================
# APPLICATION CONFIGURATION
# ============================================================================

class AppConfig(BaseModel):
    """
    Application configuration - composition of domain configs.

    Constructed once by the CLI (or a test) and handed to
    SensorDataPipeline; services only see the parts they need.
    """

    debug_mode: bool = Field(
        default=AppDefaults.DEBUG_MODE,
        description="Enable debug mode for verbose diagnostics. "
                    "Features enabled: memory tracking around uploads. "
                    "Set DEBUG_MODE=true in environment to enable.",
        examples=[True, False]
    )

    database: DatabaseConfig = Field(
        ...,
        description="PostgreSQL/PostGIS configuration"
    )

    pipeline: PipelineConfig = Field(
        default_factory=PipelineConfig,
        description="Partitioning and association configuration"
    )

    def debug_dict(self) -> dict:
        """Sanitized configuration for logging."""
        return {
            "debug_mode": self.debug_mode,
            "database": self.database.debug_dict(),
            "pipeline": self.pipeline.model_dump(mode="json"),
        }

    @classmethod
    def from_environment(cls) -> "AppConfig":
        """
        Load configuration from environment variables.

        Raises:
            ConfigurationError: Required variables are missing
        """
        return cls(
            debug_mode=os.environ.get(EnvVars.DEBUG_MODE, "false").lower() == "true",
            database=DatabaseConfig.from_environment(),
            pipeline=PipelineConfig.from_environment(),
        )
