"""
Infrastructure Package - Lazy Loading Implementation.

Store and file adapters of the sensor data pipeline. Imports are deferred
until a name is first accessed, so importing the package never pulls in
psycopg, psycopg_pool or laspy and never reads the environment.

Modules:
    connection_pool.py: Bounded psycopg_pool wrapper
    sensor_data_repository.py: All SQL against the sensor data and city model schemas
    sensor_data_schema.py: Idempotent schema deployment
    patch_codec.py: Point cloud -> PC_MakePatch value array
    point_cloud_io.py: LAS/XYZ readers, XYZ writer
"""

from typing import TYPE_CHECKING

# For type checking only - doesn't actually import at runtime
if TYPE_CHECKING:
    from .connection_pool import ConnectionPoolManager as _ConnectionPoolManager
    from .sensor_data_repository import SensorDataRepository as _SensorDataRepository
    from .sensor_data_repository import TableGroup as _TableGroup
    from .sensor_data_schema import SensorDataSchemaDeployer as _SensorDataSchemaDeployer


def __getattr__(name: str):
    """
    Lazy import mechanism - only imports when actually accessed.
    """
    if name == "ConnectionPoolManager":
        from .connection_pool import ConnectionPoolManager
        return ConnectionPoolManager

    # Repository
    elif name == "SensorDataRepository":
        from .sensor_data_repository import SensorDataRepository
        return SensorDataRepository
    elif name == "TableGroup":
        from .sensor_data_repository import TableGroup
        return TableGroup

    # Schema
    elif name == "SensorDataSchemaDeployer":
        from .sensor_data_schema import SensorDataSchemaDeployer
        return SensorDataSchemaDeployer

    # File IO
    elif name == "read_point_cloud":
        from .point_cloud_io import read_point_cloud
        return read_point_cloud
    elif name == "write_xyz":
        from .point_cloud_io import write_xyz
        return write_xyz

    else:
        raise AttributeError(f"module 'infrastructure' has no attribute '{name}'")


__all__ = [
    "ConnectionPoolManager",
    "SensorDataRepository",
    "TableGroup",
    "SensorDataSchemaDeployer",
    "read_point_cloud",
    "write_xyz",
]
