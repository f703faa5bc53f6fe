"""
Config test fixtures - clean environment via monkeypatch.
"""

import pytest

from config import EnvVars, reset_config


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all env vars that config modules might read, for isolation."""
    env_vars_to_clear = [
        EnvVars.DATABASE_URL, EnvVars.MAX_CONNECTIONS, EnvVars.SENSOR_DATA_SCHEMA,
        EnvVars.MODEL_SCHEMA, EnvVars.POINTCLOUD_PCID, EnvVars.SRID,
        EnvVars.CPU_WORKERS, EnvVars.DEBUG_MODE,
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield monkeypatch
    reset_config()
