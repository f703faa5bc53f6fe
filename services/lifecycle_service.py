"""
Lifecycle Service - Table group truncation.

Empties the upload, association and download table groups. Truncation is
idempotent and always finishes before any repopulating task is started.

Exports:
    LifecycleService: Clear operations
"""

from infrastructure.sensor_data_repository import SensorDataRepository, TableGroup
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "LifecycleService")


class LifecycleService:
    """Clear operations over the sensor data table groups."""

    def __init__(self, pool, repository: SensorDataRepository):
        self.pool = pool
        self.repository = repository

    def clear_group(self, group: TableGroup) -> None:
        with self.pool.get_connection() as conn:
            self.repository.truncate_group(conn, group)

    def clear_download_tables(self) -> None:
        self.clear_group(TableGroup.DOWNLOAD)

    def clear_association_tables(self) -> None:
        self.clear_group(TableGroup.ASSOCIATION)

    def clear_upload_tables(self) -> None:
        self.clear_group(TableGroup.UPLOAD)

    def clear_all(self) -> None:
        """Download first, then association, then upload."""
        self.clear_download_tables()
        self.clear_association_tables()
        self.clear_upload_tables()
        logger.info("Cleared all sensor data tables")
