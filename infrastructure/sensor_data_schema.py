# ============================================================================
# SENSOR DATA SCHEMA DEPLOYER
# ============================================================================
# STATUS: Infrastructure - sensor_data schema DDL
# PURPOSE: Deploy extensions, pgPointCloud format and sensor_data tables
# EXPORTS: SensorDataSchemaDeployer
# DEPENDENCIES: psycopg
# ============================================================================
"""
Sensor Data Schema Deployment.

Tables of the sensor_data schema, next to the 3DCityDB model schema in the
same database:

- point_cloud_upload: One pgPointCloud patch per row (PCPATCH(pcid))
- beam: One row per point of every patch, with PostGIS geometries
- association_point_model: Beam -> model feature within distance threshold
- association_beam_model: Beam reflection line -> intersected model polygon
- feature_geometry_exploded: Model geometries dumped into repaired polygons
- point_cloud_download: Denormalised per-beam rows read by the download

All statements are idempotent (IF NOT EXISTS, ON CONFLICT DO NOTHING).

Usage:
    deployer = SensorDataSchemaDeployer(pool, config.database, config.pipeline)
    result = deployer.deploy_all()
"""

from datetime import datetime, timezone
from typing import Any, Dict

from psycopg import sql

from config.database_config import DatabaseConfig
from config.pipeline_config import PipelineConfig
from infrastructure.patch_codec import pointcloud_schema_xml
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "sensor_data_schema")


# ============================================================================
# SENSOR DATA SCHEMA DEPLOYER
# ============================================================================

class SensorDataSchemaDeployer:
    """
    Deploy the sensor_data schema using psycopg SQL composition.

    Each step runs on its own pooled connection and commits on success, so a
    failing step leaves the earlier ones in place.
    """

    def __init__(self, pool, database_config: DatabaseConfig, pipeline_config: PipelineConfig):
        self.pool = pool
        self.schema_name = database_config.sensor_data_schema
        self.pcid = pipeline_config.pointcloud_pcid
        self.srid = pipeline_config.srid

    def _table(self, name: str) -> sql.Composed:
        return sql.SQL("{}.{}").format(sql.Identifier(self.schema_name), sql.Identifier(name))

    def deploy_all(self) -> Dict[str, Any]:
        """
        Deploy the complete schema.

        Returns:
            Dict with deployment results and any errors
        """
        results = {
            "schema": self.schema_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "steps": [],
            "success": False,
            "errors": []
        }

        steps = [
            ("create_extensions", self._deploy_extensions),
            ("create_schema", self._deploy_schema),
            ("register_pointcloud_format", self._deploy_pointcloud_format),
            ("create_point_cloud_upload", self._deploy_upload_table),
            ("create_beam", self._deploy_beam_table),
            ("create_associations", self._deploy_association_tables),
            ("create_feature_geometry_exploded", self._deploy_feature_geometry_table),
            ("create_point_cloud_download", self._deploy_download_table),
        ]

        for step_name, step_func in steps:
            step = {"name": step_name, "status": "pending"}
            try:
                with self.pool.get_connection() as conn:
                    with conn.cursor() as cur:
                        step_func(cur)
                step["status"] = "success"
                logger.info(f"✅ Step '{step_name}' committed successfully")
            except Exception as e:
                step["status"] = "failed"
                step["error"] = str(e)
                results["errors"].append(f"{step_name}: {e}")
                logger.error(f"❌ Step '{step_name}' failed: {e}")
            finally:
                results["steps"].append(step)

        results["success"] = len(results["errors"]) == 0
        logger.info(f"Sensor data schema deployment complete (errors: {len(results['errors'])})")
        return results

    # ========================================================================
    # EXTENSIONS / SCHEMA / FORMAT
    # ========================================================================

    def _deploy_extensions(self, cur):
        cur.execute("CREATE EXTENSION IF NOT EXISTS postgis")
        cur.execute("CREATE EXTENSION IF NOT EXISTS pointcloud")
        cur.execute("CREATE EXTENSION IF NOT EXISTS pointcloud_postgis")

    def _deploy_schema(self, cur):
        cur.execute(sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(
            sql.Identifier(self.schema_name)
        ))

    def _deploy_pointcloud_format(self, cur):
        cur.execute(
            """
            INSERT INTO pointcloud_formats (pcid, srid, schema)
            VALUES (%s, %s, %s)
            ON CONFLICT (pcid) DO NOTHING
            """,
            (self.pcid, self.srid, pointcloud_schema_xml(self.pcid, self.srid))
        )

    # ========================================================================
    # TABLES
    # ========================================================================

    def _deploy_upload_table(self, cur):
        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                id SERIAL PRIMARY KEY,
                pa PCPATCH({pcid}) NOT NULL
            )
        """).format(table=self._table("point_cloud_upload"), pcid=sql.Literal(self.pcid)))

    def _deploy_beam_table(self, cur):
        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                patch_id INTEGER NOT NULL,
                point_id BIGINT NOT NULL,
                timestamp_sec BIGINT NOT NULL,
                timestamp_nanosec BIGINT NOT NULL,
                intensity DOUBLE PRECISION NOT NULL,
                origin GEOMETRY(PointZ) NOT NULL,
                reflection GEOMETRY(PointZ) NOT NULL,
                line GEOMETRY(LineStringZ) NOT NULL,
                length DOUBLE PRECISION NOT NULL,
                reflection_line GEOMETRY(LineStringZ),
                message_id BIGINT NOT NULL,
                point_id_in_message BIGINT NOT NULL
            )
        """).format(table=self._table("beam")))
        cur.execute(sql.SQL("""
            CREATE INDEX IF NOT EXISTS beam_patch_id_idx ON {table}(patch_id)
        """).format(table=self._table("beam")))
        cur.execute(sql.SQL("""
            CREATE INDEX IF NOT EXISTS beam_reflection_idx
            ON {table} USING GIST(reflection gist_geometry_ops_nd)
        """).format(table=self._table("beam")))

    def _deploy_association_tables(self, cur):
        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                beam_id BIGINT NOT NULL,
                feature_id BIGINT NOT NULL,
                distance DOUBLE PRECISION NOT NULL
            )
        """).format(table=self._table("association_point_model")))
        cur.execute(sql.SQL("""
            CREATE INDEX IF NOT EXISTS association_point_model_beam_idx ON {table}(beam_id)
        """).format(table=self._table("association_point_model")))

        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                beam_id BIGINT NOT NULL,
                feature_id BIGINT NOT NULL,
                intersection GEOMETRY NOT NULL
            )
        """).format(table=self._table("association_beam_model")))
        cur.execute(sql.SQL("""
            CREATE INDEX IF NOT EXISTS association_beam_model_beam_idx ON {table}(beam_id)
        """).format(table=self._table("association_beam_model")))

    def _deploy_feature_geometry_table(self, cur):
        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                geometry_data_id BIGINT NOT NULL,
                feature_id BIGINT NOT NULL,
                geometry GEOMETRY NOT NULL,
                valid_geometry GEOMETRY
            )
        """).format(table=self._table("feature_geometry_exploded")))
        cur.execute(sql.SQL("""
            CREATE INDEX IF NOT EXISTS feature_geometry_exploded_valid_idx
            ON {table} USING GIST(valid_geometry gist_geometry_ops_nd)
        """).format(table=self._table("feature_geometry_exploded")))

    def _deploy_download_table(self, cur):
        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                patch_id INTEGER NOT NULL,
                x DOUBLE PRECISION NOT NULL,
                y DOUBLE PRECISION NOT NULL,
                z DOUBLE PRECISION NOT NULL,
                point_id BIGINT NOT NULL,
                timestamp_sec BIGINT NOT NULL,
                timestamp_nanosec BIGINT NOT NULL,
                intensity DOUBLE PRECISION NOT NULL,
                beam_origin_x DOUBLE PRECISION NOT NULL,
                beam_origin_y DOUBLE PRECISION NOT NULL,
                beam_origin_z DOUBLE PRECISION NOT NULL,
                beam_length DOUBLE PRECISION NOT NULL,
                message_id BIGINT NOT NULL,
                point_id_in_message BIGINT NOT NULL,
                feature_external_id VARCHAR(256),
                feature_name VARCHAR(1000),
                feature_class VARCHAR(256),
                surface_distance DOUBLE PRECISION,
                intersection_angle DOUBLE PRECISION
            )
        """).format(table=self._table("point_cloud_download")))
        cur.execute(sql.SQL("""
            CREATE INDEX IF NOT EXISTS point_cloud_download_patch_idx ON {table}(patch_id)
        """).format(table=self._table("point_cloud_download")))
