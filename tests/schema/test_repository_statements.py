"""
SensorDataRepository tests against psycopg doubles.

Statements are rendered with Composed.as_string(None); identifiers must be
composed with sql.Identifier and values passed as parameters.
"""

import psycopg
import pytest
from psycopg import sql

from config import DatabaseConfig, PipelineConfig
from core.beams import build_beam_batch
from core.models.point_cloud import PointColumn
from exceptions import DatabaseError
from infrastructure.patch_codec import encode_patch_values
from infrastructure.sensor_data_repository import (
    BEAM_STAGING_COLUMNS,
    DOWNLOAD_COLUMNS,
    SensorDataRepository,
    TableGroup,
)
from tests.factories.point_cloud_factories import make_point_cloud
from tests.factories.store_fakes import RecordingConnection


def _render(query) -> str:
    return query.as_string(None) if isinstance(query, sql.Composable) else query


@pytest.fixture
def repository(database_config):
    return SensorDataRepository(database_config, PipelineConfig(pointcloud_pcid=3))


class TestStatementComposition:

    def test_truncate_association_group(self, repository):
        rendered = _render(repository.truncate_statement(TableGroup.ASSOCIATION))
        for table in ("feature_geometry_exploded", "association_beam_model", "association_point_model", "beam"):
            assert f'"sensor_data"."{table}"' in rendered
        assert rendered.endswith("CASCADE")

    def test_schema_name_is_quoted(self):
        config = DatabaseConfig(connection_string="postgresql://x", sensor_data_schema='lidar"; DROP TABLE beam;--')
        rendered = _render(SensorDataRepository(config, PipelineConfig()).truncate_statement(TableGroup.UPLOAD))
        assert '"lidar""; DROP TABLE beam;--"' in rendered

    def test_point_model_association_is_inclusive_3d_distance(self, repository):
        rendered = _render(repository.point_model_association_statement())
        assert "ST_3DDWithin(g.geometry, b.reflection, %s)" in rendered
        assert '"citydb"."geometry_data"' in rendered
        assert "SELECT DISTINCT" in rendered

    def test_beam_model_association_skips_undefined_lines(self, repository):
        rendered = _render(repository.beam_model_association_statement())
        assert "b.reflection_line IS NOT NULL" in rendered
        assert "g.valid_geometry IS NOT NULL" in rendered
        assert "NOT ST_IsEmpty(intersection)" in rendered

    def test_explode_statement_filters_single_geometry(self, repository):
        assert "%(geometry_data_id)s" not in _render(repository.explode_statement())
        assert "%(geometry_data_id)s" in _render(repository.explode_statement(single_geometry=True))

    def test_download_picks_nearest_feature_with_stable_tie_break(self, repository):
        rendered = _render(repository.materialize_download_statement())
        assert "ORDER BY a.distance, a.feature_id" in rendered
        assert "LIMIT 1" in rendered
        assert "p.name = 'name'" in rendered


class TestUpload:

    def test_insert_patch_sends_pcid_and_encoded_values(self, repository):
        patch = make_point_cloud(4)
        conn = RecordingConnection(results=[[{"id": 17}]])
        assert repository.insert_patch(conn, patch) == 17
        query, params = conn.executed[0]
        assert "PC_MakePatch(%s, %s::float8[])" in _render(query)
        assert params == (3, encode_patch_values(patch))

    def test_list_patch_ids(self, repository):
        conn = RecordingConnection(results=[[{"id": 1}, {"id": 2}]])
        assert repository.list_patch_ids(conn) == [1, 2]
        assert "ORDER BY id" in _render(conn.executed[0][0])

    def test_count_rows_covers_every_table(self, repository):
        conn = RecordingConnection(results=[[{"n": i}] for i in range(6)])
        counts = repository.count_rows(conn)
        assert counts["point_cloud_upload"] == 0
        assert len(counts) == 6


class TestAssociation:

    def test_fetch_patch_points(self, repository):
        rows = [
            {
                "x": 1.0, "y": 2.0, "z": 3.0, "id": float(i), "timestamp_sec": 10.0,
                "timestamp_nanosec": 20.0, "intensity": 0.5,
                "beam_origin_x": 0.0, "beam_origin_y": 0.0, "beam_origin_z": 0.0,
                "message_id": 1.0, "point_id_in_message": float(i), "srid": 25832,
            }
            for i in range(3)
        ]
        conn = RecordingConnection(results=[rows])
        cloud, srid = repository.fetch_patch_points(conn, 5)
        assert srid == 25832
        assert cloud.frame_id == "world"
        assert cloud[PointColumn.ID].tolist() == [0, 1, 2]
        assert conn.executed[0][1] == (5,)
        assert "PC_Get(pt, 'X')::float8" in _render(conn.executed[0][0])

    def test_insert_beams_stages_with_copy(self, repository):
        patch = make_point_cloud(xyz=[[0.0, 0.0, 10.0], [1.0, 1.0, 1.0]], origins=[[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]])
        beams = build_beam_batch(9, patch, 0.2)
        conn = RecordingConnection(default_rowcount=2)

        assert repository.insert_beams(conn, beams, 25832) == 2
        statement, rows = conn.copied[0]
        assert "COPY beam_staging" in _render(statement)
        assert len(rows) == 2 and len(rows[0]) == len(BEAM_STAGING_COLUMNS)
        insert_query, insert_params = conn.executed[1]
        assert insert_params == {"srid": 25832}
        assert "CASE WHEN line_start_x IS NULL THEN NULL" in _render(insert_query)
        assert conn.executed[-1][0] == "TRUNCATE beam_staging"

    def test_insert_empty_beams_is_a_no_op(self, repository):
        conn = RecordingConnection()
        assert repository.insert_beams(conn, build_beam_batch(1, make_point_cloud(0), 0.2), 0) == 0
        assert conn.executed == []

    def test_point_model_parameters(self, repository):
        conn = RecordingConnection(default_rowcount=4)
        assert repository.insert_point_model_associations(conn, 3, 0.2) == 4
        assert conn.executed[0][1] == (0.2, 3)

    def test_explode_bulk_runs_in_one_savepoint(self, repository):
        conn = RecordingConnection(default_rowcount=12)
        assert repository.explode_feature_geometries(conn) == {"inserted": 12, "skipped_geometries": 0}
        assert conn.savepoints == 1

    def test_explode_falls_back_per_geometry(self, repository):
        def fail_on(query, params):
            if "geometry_data_id" not in params:
                return "INSERT INTO" in _render(query)
            return params["geometry_data_id"] == 2

        conn = RecordingConnection(
            results=[[{"id": 1}, {"id": 2}, {"id": 3}]],
            default_rowcount=5,
            fail_on=fail_on,
            error_factory=psycopg.Error,
        )
        assert repository.explode_feature_geometries(conn) == {"inserted": 10, "skipped_geometries": 1}
        assert conn.savepoints == 4

    def test_explode_fallback_listing_failure_is_a_database_error(self, repository):
        conn = RecordingConnection(
            fail_on=lambda query, params: "geometry_data_id" not in params,
            error_factory=psycopg.Error,
        )
        with pytest.raises(DatabaseError, match="explode_feature_geometries"):
            repository.explode_feature_geometries(conn)
        assert conn.savepoints == 1


class TestDatabaseErrors:

    def test_truncate_failure_keeps_driver_error_as_cause(self, repository):
        conn = RecordingConnection(fail_on=lambda query, params: True, error_factory=psycopg.Error)
        with pytest.raises(DatabaseError, match="truncate_group") as excinfo:
            repository.truncate_group(conn, TableGroup.UPLOAD)
        assert isinstance(excinfo.value.__cause__, psycopg.Error)

    @pytest.mark.parametrize("call", [
        lambda repository, conn: repository.list_patch_ids(conn),
        lambda repository, conn: repository.count_patches(conn),
        lambda repository, conn: repository.count_rows(conn),
    ])
    def test_read_failures_are_database_errors(self, repository, call):
        conn = RecordingConnection(fail_on=lambda query, params: True, error_factory=psycopg.Error)
        with pytest.raises(DatabaseError):
            call(repository, conn)

    def test_other_errors_pass_through(self, repository):
        conn = RecordingConnection(fail_on=lambda query, params: True, error_factory=ValueError)
        with pytest.raises(ValueError):
            repository.count_patches(conn)


class TestDownload:

    def test_fetch_download_entries(self, repository):
        row = {column: 0 for column in DOWNLOAD_COLUMNS}
        row.update(
            feature_external_id="wall_1",
            feature_name=None,
            feature_class="WallSurface",
            surface_distance=0.1,
            intersection_angle=None,
        )
        conn = RecordingConnection(results=[[row]])
        entries = repository.fetch_download_entries(conn, 1)
        assert entries[0].feature_external_id == "wall_1"
        assert entries[0].feature_class == "WallSurface"
        assert entries[0].intersection_angle is None
        assert "ORDER BY point_id" in _render(conn.executed[0][0])

    def test_delete_download_entries(self, repository):
        conn = RecordingConnection(default_rowcount=7)
        assert repository.delete_download_entries(conn, 1) == 7
        assert conn.executed[0][1] == (1,)
