"""
Pipeline test fixtures - in-memory store behind the real services.
"""

import pytest

from services.pipeline import SensorDataPipeline
from tests.factories.store_fakes import FakeConnectionPool, InMemorySensorDataRepository, ModelPlane


@pytest.fixture
def city_model():
    return [
        ModelPlane(feature_id=1, external_id="ground_3", z=0.0, name="Main Street", feature_class="TrafficArea"),
        ModelPlane(feature_id=2, external_id="roof_7", z=10.0, name="Town Hall", feature_class="RoofSurface"),
    ]


@pytest.fixture
def store(city_model):
    return InMemorySensorDataRepository(model=city_model)


@pytest.fixture
def pool():
    return FakeConnectionPool(max_size=3, hold_seconds=0.002)


@pytest.fixture
def pipeline(app_config, pool, store):
    with SensorDataPipeline(app_config, pool=pool, repository=store) as pipeline:
        yield pipeline
