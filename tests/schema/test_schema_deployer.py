"""
SensorDataSchemaDeployer tests - idempotent DDL, per-step isolation.
"""

from psycopg import sql

from config import PipelineConfig
from infrastructure.sensor_data_schema import SensorDataSchemaDeployer
from tests.factories.store_fakes import RecordingPool


def _render(query) -> str:
    return query.as_string(None) if isinstance(query, sql.Composable) else query


def _statements(pool: RecordingPool):
    return [(_render(q), p) for conn in pool.connections for q, p in conn.executed]


class TestDeployAll:

    def test_all_steps_succeed(self, database_config):
        pool = RecordingPool()
        result = SensorDataSchemaDeployer(pool, database_config, PipelineConfig(pointcloud_pcid=2)).deploy_all()
        assert result["success"] is True
        assert result["errors"] == []
        assert len(pool.connections) == len(result["steps"]) == 8

    def test_every_statement_is_idempotent(self, database_config):
        pool = RecordingPool()
        SensorDataSchemaDeployer(pool, database_config, PipelineConfig()).deploy_all()
        for statement, _ in _statements(pool):
            assert "IF NOT EXISTS" in statement or "ON CONFLICT" in statement

    def test_tables_live_in_sensor_data_schema(self, database_config):
        pool = RecordingPool()
        SensorDataSchemaDeployer(pool, database_config, PipelineConfig(pointcloud_pcid=2)).deploy_all()
        rendered = "\n".join(statement for statement, _ in _statements(pool))
        for table in ("point_cloud_upload", "beam", "association_point_model",
                      "association_beam_model", "feature_geometry_exploded", "point_cloud_download"):
            assert f'"sensor_data"."{table}"' in rendered
        assert "PCPATCH(2)" in rendered

    def test_pointcloud_format_registration(self, database_config):
        pool = RecordingPool()
        SensorDataSchemaDeployer(pool, database_config, PipelineConfig(pointcloud_pcid=2, srid=4978)).deploy_all()
        params = [p for statement, p in _statements(pool) if "pointcloud_formats" in statement][0]
        assert params[:2] == (2, 4978)
        assert "<pc:PointCloudSchema" in params[2]

    def test_failing_step_does_not_stop_later_steps(self, database_config):
        pool = RecordingPool(fail_on=lambda query, params: "EXTENSION" in _render(query))
        result = SensorDataSchemaDeployer(pool, database_config, PipelineConfig()).deploy_all()
        assert result["success"] is False
        assert result["errors"][0].startswith("create_extensions")
        assert [s["status"] for s in result["steps"]][1:] == ["success"] * 7
