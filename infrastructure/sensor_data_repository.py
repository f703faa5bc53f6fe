# ============================================================================
# SENSOR DATA REPOSITORY
# ============================================================================
# STATUS: Infrastructure - all SQL of the pipeline
# PURPOSE: Patch upload, beam derivation, association and download statements
#          against the sensor_data schema and the 3DCityDB model schema
# EXPORTS: SensorDataRepository, TableGroup, database_errors
# DEPENDENCIES: psycopg, psycopg.sql, numpy, config
# SOURCE: PostgreSQL + PostGIS + pgPointCloud (sensor_data), 3DCityDB (citydb)
# VALIDATION: SQL injection prevention via psycopg.sql composition
# PATTERNS: Repository pattern, caller-owned connections (one per patch task)
# ============================================================================

"""
Sensor Data Repository - SQL access for the pipeline.

Every method takes the connection as its first argument. Connections are
owned by the calling task (one pooled connection per patch task), so a
method never commits; the connection context of the pool commits when the
task finishes and rolls back when it raises. psycopg errors leave a method
as DatabaseError.

Schema and table names are composed with sql.Identifier(); every value is
passed as a query parameter.

Table groups:
    upload:      point_cloud_upload
    association: feature_geometry_exploded, association_beam_model,
                 association_point_model, beam
    download:    point_cloud_download
"""

import time
from enum import Enum
from functools import wraps
from typing import Dict, List, Tuple

import numpy as np
import psycopg
from psycopg import sql

from config.database_config import DatabaseConfig
from config.pipeline_config import PipelineConfig
from core.beams import BeamBatch
from core.models.point_cloud import PointCloud, PointColumn
from core.models.records import DownloadEntry
from exceptions import DatabaseError
from infrastructure.patch_codec import encode_patch_values
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "SensorDataRepository")


def database_errors(func):
    """
    Convert psycopg errors raised by a repository method into DatabaseError.

    The driver error stays available as __cause__.
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except psycopg.Error as e:
            logger.error(f"❌ {func.__name__} failed: {type(e).__name__}: {e}")
            logger.error(f"   SQL State: {getattr(e, 'sqlstate', None) or 'unknown'}")
            raise DatabaseError(f"{func.__name__} failed: {e}") from e
    return wrapper


class TableGroup(str, Enum):
    UPLOAD = "upload"
    ASSOCIATION = "association"
    DOWNLOAD = "download"


TABLE_GROUPS: Dict[TableGroup, Tuple[str, ...]] = {
    TableGroup.UPLOAD: ("point_cloud_upload",),
    TableGroup.ASSOCIATION: (
        "feature_geometry_exploded",
        "association_beam_model",
        "association_point_model",
        "beam",
    ),
    TableGroup.DOWNLOAD: ("point_cloud_download",),
}

# Staging columns of one beam row, see BeamBatch.rows()
BEAM_STAGING_COLUMNS = (
    "patch_id", "point_id", "timestamp_sec", "timestamp_nanosec", "intensity",
    "origin_x", "origin_y", "origin_z",
    "reflection_x", "reflection_y", "reflection_z",
    "length",
    "line_start_x", "line_start_y", "line_start_z",
    "line_end_x", "line_end_y", "line_end_z",
    "message_id", "point_id_in_message",
)

DOWNLOAD_COLUMNS = tuple(DownloadEntry.model_fields)

_EXPLODABLE_GEOMETRY_TYPES = ('ST_PolyhedralSurface', 'ST_MultiPolygon')


class SensorDataRepository:
    """
    SQL statements of the sensor data pipeline.

    Stateless apart from configuration; safe to share between threads.
    """

    def __init__(self, database_config: DatabaseConfig, pipeline_config: PipelineConfig):
        self.schema = database_config.sensor_data_schema
        self.model_schema = database_config.model_schema
        self.pcid = pipeline_config.pointcloud_pcid

    def _table(self, name: str) -> sql.Composed:
        return sql.SQL("{}.{}").format(sql.Identifier(self.schema), sql.Identifier(name))

    def _model_table(self, name: str) -> sql.Composed:
        return sql.SQL("{}.{}").format(sql.Identifier(self.model_schema), sql.Identifier(name))

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def truncate_statement(self, group: TableGroup) -> sql.Composed:
        tables = sql.SQL(", ").join(self._table(name) for name in TABLE_GROUPS[group])
        return sql.SQL("TRUNCATE TABLE {tables} CASCADE").format(tables=tables)

    @database_errors
    def truncate_group(self, conn, group: TableGroup) -> None:
        """Empty one table group. Idempotent."""
        logger.info(f"Deleting entries in tables {', '.join(TABLE_GROUPS[group])}")
        conn.execute(self.truncate_statement(group))

    @database_errors
    def truncate_feature_geometry(self, conn) -> None:
        conn.execute(sql.SQL("TRUNCATE TABLE {table}").format(
            table=self._table("feature_geometry_exploded")
        ))

    # ========================================================================
    # UPLOAD
    # ========================================================================

    def insert_patch_statement(self) -> sql.Composed:
        return sql.SQL("""
            INSERT INTO {table} (pa)
            SELECT PC_MakePatch(%s, %s::float8[])
            RETURNING id
        """).format(table=self._table("point_cloud_upload"))

    @database_errors
    def insert_patch(self, conn, patch: PointCloud) -> int:
        """
        Encode and insert one patch.

        Returns:
            Store-assigned patch id
        """
        values = encode_patch_values(patch)
        with conn.cursor() as cur:
            cur.execute(self.insert_patch_statement(), (self.pcid, values))
            row = cur.fetchone()
        patch_id = row['id']
        logger.info(
            f"Uploaded patch {patch_id} with {patch.size} points",
            extra={'custom_dimensions': {'patch_id': patch_id, 'points': patch.size}}
        )
        return patch_id

    @database_errors
    def list_patch_ids(self, conn) -> List[int]:
        with conn.cursor() as cur:
            cur.execute(sql.SQL("SELECT id FROM {table} ORDER BY id").format(
                table=self._table("point_cloud_upload")
            ))
            return [row['id'] for row in cur.fetchall()]

    @database_errors
    def count_patches(self, conn) -> int:
        with conn.cursor() as cur:
            cur.execute(sql.SQL("SELECT count(*) AS n FROM {table}").format(
                table=self._table("point_cloud_upload")
            ))
            return cur.fetchone()['n']

    @database_errors
    def count_rows(self, conn) -> Dict[str, int]:
        """Row count of every sensor data table."""
        counts = {}
        with conn.cursor() as cur:
            for group in TableGroup:
                for name in TABLE_GROUPS[group]:
                    cur.execute(sql.SQL("SELECT count(*) AS n FROM {table}").format(
                        table=self._table(name)
                    ))
                    counts[name] = cur.fetchone()['n']
        return counts

    # ========================================================================
    # ASSOCIATION
    # ========================================================================

    @database_errors
    def fetch_patch_points(self, conn, patch_id: int) -> Tuple[PointCloud, int]:
        """
        Explode a stored patch.

        Returns:
            (point cloud in the world frame, SRID of the patch)
        """
        dimensions = sql.SQL(", ").join(
            sql.SQL("PC_Get(pt, {name})::float8 AS {alias}").format(
                name=sql.Literal(name), alias=sql.Identifier(alias)
            )
            for name, alias in (
                ("X", "x"), ("Y", "y"), ("Z", "z"),
                ("id", "id"),
                ("timestamp_sec", "timestamp_sec"),
                ("timestamp_nanosec", "timestamp_nanosec"),
                ("intensity", "intensity"),
                ("beam_origin_x", "beam_origin_x"),
                ("beam_origin_y", "beam_origin_y"),
                ("beam_origin_z", "beam_origin_z"),
                ("message_id", "message_id"),
                ("point_id_in_message", "point_id_in_message"),
            )
        )
        query = sql.SQL("""
            SELECT {dimensions}, ST_SRID(pt::geometry) AS srid
            FROM (
                SELECT PC_Explode(pa) AS pt
                FROM {table}
                WHERE id = %s
            ) AS exploded
        """).format(dimensions=dimensions, table=self._table("point_cloud_upload"))

        with conn.cursor() as cur:
            cur.execute(query, (patch_id,))
            rows = cur.fetchall()

        names = [c.value for c in (
            PointColumn.X, PointColumn.Y, PointColumn.Z, PointColumn.ID,
            PointColumn.TIMESTAMP_SEC, PointColumn.TIMESTAMP_NANOSEC, PointColumn.INTENSITY,
            PointColumn.BEAM_ORIGIN_X, PointColumn.BEAM_ORIGIN_Y, PointColumn.BEAM_ORIGIN_Z,
            PointColumn.MESSAGE_ID, PointColumn.POINT_ID_IN_MESSAGE,
        )]
        columns = {name: np.array([row[name] for row in rows], dtype=np.float64) for name in names}
        srid = rows[0]['srid'] if rows else 0
        return PointCloud(columns, frame_id="world"), srid

    @database_errors
    def insert_beams(self, conn, beams: BeamBatch, srid: int) -> int:
        """
        Bulk insert beams using COPY + staging table.

        Numbers are staged with COPY, geometries are built by PostGIS in one
        INSERT...SELECT. The staging table drops on commit.

        Returns:
            Number of beams inserted
        """
        if beams.size == 0:
            return 0

        start_time = time.time()
        with conn.cursor() as cur:
            # STEP 1: Create temp table (no indexes, drops on commit)
            cur.execute("""
                CREATE TEMP TABLE IF NOT EXISTS beam_staging (
                    patch_id INTEGER,
                    point_id BIGINT,
                    timestamp_sec BIGINT,
                    timestamp_nanosec BIGINT,
                    intensity DOUBLE PRECISION,
                    origin_x DOUBLE PRECISION,
                    origin_y DOUBLE PRECISION,
                    origin_z DOUBLE PRECISION,
                    reflection_x DOUBLE PRECISION,
                    reflection_y DOUBLE PRECISION,
                    reflection_z DOUBLE PRECISION,
                    length DOUBLE PRECISION,
                    line_start_x DOUBLE PRECISION,
                    line_start_y DOUBLE PRECISION,
                    line_start_z DOUBLE PRECISION,
                    line_end_x DOUBLE PRECISION,
                    line_end_y DOUBLE PRECISION,
                    line_end_z DOUBLE PRECISION,
                    message_id BIGINT,
                    point_id_in_message BIGINT
                ) ON COMMIT DROP
            """)

            # STEP 2: COPY FROM STDIN to staging table
            copy_statement = sql.SQL("COPY beam_staging ({columns}) FROM STDIN").format(
                columns=sql.SQL(", ").join(sql.Identifier(c) for c in BEAM_STAGING_COLUMNS)
            )
            with cur.copy(copy_statement) as copy:
                for row in beams.rows():
                    copy.write_row(row)

            # STEP 3: INSERT...SELECT with geometry construction
            cur.execute(sql.SQL("""
                INSERT INTO {beam}
                    (patch_id, point_id, timestamp_sec, timestamp_nanosec, intensity,
                     origin, reflection, line, length, reflection_line,
                     message_id, point_id_in_message)
                SELECT
                    patch_id,
                    point_id,
                    timestamp_sec,
                    timestamp_nanosec,
                    intensity,
                    ST_SetSRID(ST_MakePoint(origin_x, origin_y, origin_z), %(srid)s),
                    ST_SetSRID(ST_MakePoint(reflection_x, reflection_y, reflection_z), %(srid)s),
                    ST_SetSRID(ST_MakeLine(
                        ST_MakePoint(origin_x, origin_y, origin_z),
                        ST_MakePoint(reflection_x, reflection_y, reflection_z)), %(srid)s),
                    length,
                    CASE WHEN line_start_x IS NULL THEN NULL
                         ELSE ST_SetSRID(ST_MakeLine(
                             ST_MakePoint(line_start_x, line_start_y, line_start_z),
                             ST_MakePoint(line_end_x, line_end_y, line_end_z)), %(srid)s)
                    END,
                    message_id,
                    point_id_in_message
                FROM beam_staging
            """).format(beam=self._table("beam")), {'srid': srid})
            rowcount = cur.rowcount

            cur.execute("TRUNCATE beam_staging")

        logger.debug(
            f"Inserted {rowcount:,} beams of patch {beams.patch_id} in {time.time() - start_time:.2f}s"
        )
        return rowcount

    def point_model_association_statement(self) -> sql.Composed:
        return sql.SQL("""
            INSERT INTO {association} (beam_id, feature_id, distance)
            SELECT DISTINCT b.id, g.feature_id, ST_3DDistance(g.geometry, b.reflection)
            FROM {beam} AS b
            JOIN {geometry_data} AS g
                ON ST_3DDWithin(g.geometry, b.reflection, %s)
            WHERE b.patch_id = %s
        """).format(
            association=self._table("association_point_model"),
            beam=self._table("beam"),
            geometry_data=self._model_table("geometry_data"),
        )

    @database_errors
    def insert_point_model_associations(self, conn, patch_id: int, distance_threshold: float) -> int:
        """
        Associate every beam of a patch with all model geometries whose 3D
        distance to the reflection point is <= distance_threshold.
        """
        with conn.cursor() as cur:
            cur.execute(self.point_model_association_statement(), (distance_threshold, patch_id))
            return cur.rowcount

    def beam_model_association_statement(self) -> sql.Composed:
        return sql.SQL("""
            INSERT INTO {association} (beam_id, feature_id, intersection)
            SELECT beam_id, feature_id, intersection
            FROM (
                SELECT DISTINCT b.id AS beam_id, g.feature_id,
                       ST_3DIntersection(g.valid_geometry, b.reflection_line) AS intersection
                FROM {beam} AS b
                JOIN {exploded} AS g
                    ON ST_3DIntersects(g.valid_geometry, b.reflection_line)
                WHERE b.patch_id = %s
                  AND b.reflection_line IS NOT NULL
                  AND g.valid_geometry IS NOT NULL
            ) AS candidates
            WHERE NOT ST_IsEmpty(intersection)
        """).format(
            association=self._table("association_beam_model"),
            beam=self._table("beam"),
            exploded=self._table("feature_geometry_exploded"),
        )

    @database_errors
    def insert_beam_model_associations(self, conn, patch_id: int) -> int:
        """Associate beams whose reflection line intersects a repaired model polygon."""
        with conn.cursor() as cur:
            cur.execute(self.beam_model_association_statement(), (patch_id,))
            return cur.rowcount

    def explode_statement(self, single_geometry: bool = False) -> sql.Composed:
        id_filter = sql.SQL("AND d.id = %(geometry_data_id)s") if single_geometry else sql.SQL("")
        return sql.SQL("""
            INSERT INTO {exploded} (geometry_data_id, feature_id, geometry, valid_geometry)
            SELECT
                geometry_data_id,
                feature_id,
                geometry,
                CASE WHEN ST_GeometryType(valid_geometry) = 'ST_Polygon' AND ST_IsPlanar(valid_geometry)
                     THEN valid_geometry
                     ELSE NULL
                END
            FROM (
                SELECT
                    d.id AS geometry_data_id,
                    d.feature_id,
                    dumped.geom AS geometry,
                    ST_MakeValid(dumped.geom) AS valid_geometry
                FROM {geometry_data} AS d
                CROSS JOIN LATERAL ST_Dump(d.geometry) AS dumped
                WHERE ST_GeometryType(d.geometry) = ANY(%(geometry_types)s)
                {id_filter}
            ) AS t
        """).format(
            exploded=self._table("feature_geometry_exploded"),
            geometry_data=self._model_table("geometry_data"),
            id_filter=id_filter,
        )

    @database_errors
    def explode_feature_geometries(self, conn) -> Dict[str, int]:
        """
        Explode PolyhedralSurface/MultiPolygon model geometries into repaired
        planar polygons.

        The bulk statement runs in a savepoint. When it fails (ST_MakeValid
        raising on a degenerate geometry), the explode is repeated per
        geometry_data row, each in its own savepoint, and failing rows are
        skipped.

        Returns:
            {'inserted': rows, 'skipped_geometries': count}
        """
        params = {'geometry_types': list(_EXPLODABLE_GEOMETRY_TYPES)}
        try:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(self.explode_statement(), params)
                    inserted = cur.rowcount
            logger.info(f"Exploded feature geometries into {inserted:,} polygons")
            return {'inserted': inserted, 'skipped_geometries': 0}
        except psycopg.Error as e:
            logger.warning(
                f"Bulk geometry explode failed ({type(e).__name__}: {e}); "
                f"retrying per geometry"
            )

        with conn.cursor() as cur:
            cur.execute(sql.SQL("""
                SELECT id FROM {geometry_data}
                WHERE ST_GeometryType(geometry) = ANY(%(geometry_types)s)
                ORDER BY id
            """).format(geometry_data=self._model_table("geometry_data")), params)
            geometry_ids = [row['id'] for row in cur.fetchall()]

        inserted = 0
        skipped = 0
        statement = self.explode_statement(single_geometry=True)
        for geometry_data_id in geometry_ids:
            try:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(statement, {**params, 'geometry_data_id': geometry_data_id})
                        inserted += cur.rowcount
            except psycopg.Error as e:
                skipped += 1
                logger.warning(
                    f"Skipping geometry_data {geometry_data_id}: {type(e).__name__}: {e}",
                    extra={'custom_dimensions': {'geometry_data_id': geometry_data_id}}
                )

        logger.info(
            f"Exploded feature geometries into {inserted:,} polygons, "
            f"skipped {skipped} of {len(geometry_ids)} geometries"
        )
        return {'inserted': inserted, 'skipped_geometries': skipped}

    # ========================================================================
    # DOWNLOAD
    # ========================================================================

    def materialize_download_statement(self) -> sql.Composed:
        return sql.SQL("""
            INSERT INTO {download} (
                patch_id, x, y, z, point_id, timestamp_sec, timestamp_nanosec, intensity,
                beam_origin_x, beam_origin_y, beam_origin_z, beam_length,
                message_id, point_id_in_message,
                feature_external_id, feature_name, feature_class,
                surface_distance, intersection_angle)
            SELECT
                b.patch_id,
                ST_X(b.reflection),
                ST_Y(b.reflection),
                ST_Z(b.reflection),
                b.point_id,
                b.timestamp_sec,
                b.timestamp_nanosec,
                b.intensity,
                ST_X(b.origin),
                ST_Y(b.origin),
                ST_Z(b.origin),
                b.length,
                b.message_id,
                b.point_id_in_message,
                f.objectid,
                name_property.val_string,
                oc.classname,
                apm.distance,
                CASE WHEN EXISTS (
                    SELECT 1 FROM {beam_model} AS abm WHERE abm.beam_id = b.id
                ) THEN 1 ELSE NULL END
            FROM {beam} AS b
            LEFT JOIN LATERAL (
                SELECT a.feature_id, a.distance
                FROM {point_model} AS a
                WHERE a.beam_id = b.id
                ORDER BY a.distance, a.feature_id
                LIMIT 1
            ) AS apm ON TRUE
            LEFT JOIN {feature} AS f ON f.id = apm.feature_id
            LEFT JOIN {objectclass} AS oc ON oc.id = f.objectclass_id
            LEFT JOIN LATERAL (
                SELECT p.val_string
                FROM {property} AS p
                WHERE p.feature_id = f.id AND p.name = 'name'
                ORDER BY p.id
                LIMIT 1
            ) AS name_property ON TRUE
            WHERE b.patch_id = %s
        """).format(
            download=self._table("point_cloud_download"),
            beam=self._table("beam"),
            beam_model=self._table("association_beam_model"),
            point_model=self._table("association_point_model"),
            feature=self._model_table("feature"),
            objectclass=self._model_table("objectclass"),
            property=self._model_table("property"),
        )

    @database_errors
    def materialize_download_entries(self, conn, patch_id: int) -> int:
        """One denormalised download row per beam of the patch."""
        with conn.cursor() as cur:
            cur.execute(self.materialize_download_statement(), (patch_id,))
            return cur.rowcount

    @database_errors
    def fetch_download_entries(self, conn, patch_id: int) -> List[DownloadEntry]:
        query = sql.SQL("""
            SELECT {columns}
            FROM {download}
            WHERE patch_id = %s
            ORDER BY point_id
        """).format(
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in DOWNLOAD_COLUMNS),
            download=self._table("point_cloud_download"),
        )
        with conn.cursor() as cur:
            cur.execute(query, (patch_id,))
            return [DownloadEntry.model_validate(row) for row in cur.fetchall()]

    @database_errors
    def delete_download_entries(self, conn, patch_id: int) -> int:
        with conn.cursor() as cur:
            cur.execute(sql.SQL("DELETE FROM {download} WHERE patch_id = %s").format(
                download=self._table("point_cloud_download")
            ), (patch_id,))
            return cur.rowcount

