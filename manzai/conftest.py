# manzai/conftest.py
import os
import random

import pytest

# Keep a developer's real .env out of the module-level app built on import
os.environ.setdefault("ENV", "test")
os.environ["DATABASE_URL"] = ""

from fastapi.testclient import TestClient

from manzai.core.config import PipelineConfig
from manzai.core.database import init_engine, create_all_tables, drop_all_tables
from manzai.features.credits.store import SqlUsageStore
from manzai.features.script.length_band import get_tolerance_policy
from manzai.main import create_app
from manzai.tests.mocks import FakeGenerator, make_script, make_settings


@pytest.fixture
def engine():
    """In-memory SQLite engine with the usage table created."""
    eng = init_engine("sqlite://")
    create_all_tables(eng)
    yield eng
    drop_all_tables(eng)
    eng.dispose()


@pytest.fixture
def store(engine):
    return SqlUsageStore(engine)


@pytest.fixture
def pipeline_config():
    return PipelineConfig(tolerance=get_tolerance_policy("pm10"))


@pytest.fixture
def long_script():
    return make_script(turns=24)


@pytest.fixture
def fake_generator(long_script):
    return FakeGenerator(default=long_script)


@pytest.fixture
def make_client():
    """Factory: make_client(generator=..., store=..., **settings_overrides)."""

    def _make(generator=None, store=None, raise_server_exceptions=True, **overrides):
        app = create_app(
            settings_obj=make_settings(**overrides),
            generator=generator,
            store=store,
            rng=random.Random(7),
        )
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    return _make
