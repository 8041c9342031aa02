"""Shared pytest fixtures."""

from collections import defaultdict

import pytest
import yaml

from retitle.config import DatabaseConfig, RenameConfig, Settings, get_settings
from retitle.db.base import Base
from retitle.db.session import create_engine, create_session_maker
from retitle.lib.hooks import hooks


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
async def engine(db_url):
    """File-backed SQLite engine with the schema created."""
    engine = create_engine(DatabaseConfig(url=db_url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    async with create_session_maker(engine)() as session:
        yield session


@pytest.fixture
def settings(db_url):
    return Settings(db=DatabaseConfig(url=db_url), rename=RenameConfig())


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clean_hooks():
    """Save and restore hooks state around a test."""
    original_filters = defaultdict(list, {k: list(v) for k, v in hooks._filters.items()})
    original_actions = defaultdict(list, {k: list(v) for k, v in hooks._actions.items()})
    yield
    hooks._filters = original_filters
    hooks._actions = original_actions
