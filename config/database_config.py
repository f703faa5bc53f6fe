"""
PostgreSQL/PostGIS Database Configuration.

Provides configuration for:
    - The connection string of the 3DCityDB database that also hosts the
      sensor data tables (pgPointCloud + PostGIS)
    - The connection pool bound, the only admission control for store work
    - Schema names of the sensor data tables and the city model

Exports:
    DatabaseConfig: Database and pool configuration
"""

import os
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator, model_validator

from exceptions import ConfigurationError
from .defaults import DatabaseDefaults, EnvVars


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

class DatabaseConfig(BaseModel):
    """
    PostgreSQL/PostGIS configuration for the sensor data pipeline.

    Passed explicitly to the pipeline constructor; nothing in the pipeline
    reads the environment on its own.
    """

    connection_string: str = Field(
        ...,
        repr=False,
        description="""libpq connection string or postgresql:// URL.

        Environment Variable: CITYDB_DATABASE_URL

        Contains credentials - never log it, use debug_dict() instead.
        """
    )

    maximum_number_connections: int = Field(
        default=DatabaseDefaults.MAX_CONNECTIONS,
        ge=1,
        description="""Upper bound of concurrently open pooled connections.

        Every store-touching task holds exactly one connection for its whole
        duration. Tasks beyond this bound block on acquisition, they never fail.
        """
    )

    min_connections: int = Field(
        default=DatabaseDefaults.MIN_CONNECTIONS,
        ge=0,
        description="Connections opened eagerly when the pool starts"
    )

    connection_timeout_seconds: int = Field(
        default=DatabaseDefaults.CONNECTION_TIMEOUT_SECONDS,
        ge=1,
        description="Time allowed for the pool to become ready at startup"
    )

    acquire_timeout_seconds: float = Field(
        default=DatabaseDefaults.ACQUIRE_TIMEOUT_SECONDS,
        gt=0,
        description="Time a task waits for a free connection before failing"
    )

    sensor_data_schema: str = Field(
        default=DatabaseDefaults.SENSOR_DATA_SCHEMA,
        description="Schema holding upload, beam, association and download tables"
    )

    model_schema: str = Field(
        default=DatabaseDefaults.MODEL_SCHEMA,
        description="3DCityDB schema holding feature, geometry_data, objectclass, property"
    )

    @field_validator('connection_string')
    @classmethod
    def validate_connection_string(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("connection_string must not be empty")
        return v.strip()

    @model_validator(mode='after')
    def validate_pool_bounds(self) -> "DatabaseConfig":
        if self.min_connections > self.maximum_number_connections:
            self.min_connections = self.maximum_number_connections
        return self

    def with_maximum_connections(self, maximum_number_connections: Optional[int]) -> "DatabaseConfig":
        """Copy with a different pool bound (CLI override)."""
        if maximum_number_connections is None:
            return self
        return self.model_validate(
            {**self.model_dump(), "maximum_number_connections": maximum_number_connections}
        )

    def debug_dict(self) -> dict:
        """Debug output with masked credentials."""
        host = None
        if "://" in self.connection_string:
            parts = urlsplit(self.connection_string)
            host = parts.hostname
        return {
            "host": host,
            "connection_string": "***MASKED***",
            "maximum_number_connections": self.maximum_number_connections,
            "min_connections": self.min_connections,
            "sensor_data_schema": self.sensor_data_schema,
            "model_schema": self.model_schema,
        }

    @classmethod
    def from_environment(cls) -> "DatabaseConfig":
        """
        Load from environment variables.

        Raises:
            ConfigurationError: CITYDB_DATABASE_URL is not set
        """
        connection_string = os.environ.get(EnvVars.DATABASE_URL)
        if not connection_string:
            raise ConfigurationError(
                f"Environment variable {EnvVars.DATABASE_URL} not set."
            )
        return cls(
            connection_string=connection_string,
            maximum_number_connections=int(
                os.environ.get(EnvVars.MAX_CONNECTIONS, str(DatabaseDefaults.MAX_CONNECTIONS))
            ),
            sensor_data_schema=os.environ.get(
                EnvVars.SENSOR_DATA_SCHEMA, DatabaseDefaults.SENSOR_DATA_SCHEMA
            ),
            model_schema=os.environ.get(EnvVars.MODEL_SCHEMA, DatabaseDefaults.MODEL_SCHEMA),
        )
