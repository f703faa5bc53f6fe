"""
Configuration Defaults - Single source of truth for all default values.

FAIL-FAST DESIGN:
The database connection string has no default. The pipeline refuses to start
if CITYDB_DATABASE_URL is missing instead of guessing a local database.

Organization:
    - EnvVars: Environment variable names read by from_environment()
    - DatabaseDefaults: Pool sizing and schema names
    - PipelineDefaults: Patch sizes, association threshold, artefact settings
    - AppDefaults: Debug flag

Usage:
    from config.defaults import DatabaseDefaults, PipelineDefaults

    # In Pydantic Field definitions:
    maximum_number_connections: int = Field(default=DatabaseDefaults.MAX_CONNECTIONS, ...)
"""


# =============================================================================
# ENVIRONMENT VARIABLE NAMES
# =============================================================================

class EnvVars:
    """Environment variable names, kept in one place for the CLI help text."""

    DATABASE_URL = "CITYDB_DATABASE_URL"
    MAX_CONNECTIONS = "SENSOR_DATA_MAX_CONNECTIONS"
    SENSOR_DATA_SCHEMA = "SENSOR_DATA_SCHEMA"
    MODEL_SCHEMA = "CITYDB_SCHEMA"
    POINTCLOUD_PCID = "SENSOR_DATA_POINTCLOUD_PCID"
    SRID = "SENSOR_DATA_SRID"
    CPU_WORKERS = "SENSOR_DATA_CPU_WORKERS"
    DEBUG_MODE = "DEBUG_MODE"


# =============================================================================
# DATABASE DEFAULTS (Safe for any deployment)
# =============================================================================

class DatabaseDefaults:
    """
    Database configuration defaults.

    MAX_CONNECTIONS mirrors the command line default of the upload,
    associate and download commands. Maintenance commands (clear, stats)
    use MAINTENANCE_CONNECTIONS.
    """

    SENSOR_DATA_SCHEMA = "sensor_data"
    MODEL_SCHEMA = "citydb"
    MIN_CONNECTIONS = 1
    MAX_CONNECTIONS = 30
    MAINTENANCE_CONNECTIONS = 10
    CONNECTION_TIMEOUT_SECONDS = 30
    # Waiting for a free pooled connection is effectively unbounded
    ACQUIRE_TIMEOUT_SECONDS = 24 * 60 * 60


# =============================================================================
# PIPELINE DEFAULTS
# =============================================================================

class PipelineDefaults:
    """Patch partitioning, association and artefact defaults."""

    PATCH_STEP_SIZE = 100_000
    DISTANCE_THRESHOLD = 0.2
    STEP_DURATION_MILLISECONDS = 500

    # pgPointCloud schema registered in pointcloud_formats
    POINTCLOUD_PCID = 1
    SRID = 25832

    WORLD_FRAME_ID = "world"

    # 0 = os.cpu_count(), 1 = extract steps inline without a process pool
    CPU_WORKERS = 0

    # Patch task threads started per pooled connection; surplus threads wait
    # on connection acquisition
    THREADS_PER_CONNECTION = 4

    ARTEFACT_DOWNSAMPLE_POINTS = 100_000
    ARTEFACT_DOWNSAMPLE_SEED = 123


# =============================================================================
# APPLICATION DEFAULTS
# =============================================================================

class AppDefaults:
    """Application-wide flags."""

    DEBUG_MODE = False
