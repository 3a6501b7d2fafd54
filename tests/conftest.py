"""
Pytest configuration and shared fixtures for the featuregate test suite.
"""

import os

# Keep settings import independent of a developer's .env / environment
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("FEATUREGATE_ADAPTER", "memory")

import pytest  # noqa: E402
from featuregate.models.feature import StorageLocation  # noqa: E402
from featuregate.services.adapters import MemoryAdapter, SQLAlchemyAdapter  # noqa: E402
from featuregate.services.groups import GroupRegistry  # noqa: E402
from featuregate.services.registry import Registry  # noqa: E402
from featuregate.services.things import Thing  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402


@pytest.fixture
def memory_adapter() -> MemoryAdapter:
    """Fresh in-memory adapter."""
    return MemoryAdapter()


@pytest.fixture
def groups() -> GroupRegistry:
    """Group registry with a beta testers group keyed on the ``beta`` attribute."""
    registry = GroupRegistry()
    registry.register("beta_testers", lambda thing: thing.get("beta", False))
    registry.register("admins", lambda thing: thing.get("role") == "admin")
    return registry


@pytest.fixture
def registry(memory_adapter, groups) -> Registry:
    """Registry over the in-memory adapter."""
    return Registry(memory_adapter, groups=groups)


@pytest.fixture
def sql_engine(tmp_path):
    """SQLite engine backed by a temporary file."""
    engine = create_engine(f"sqlite:///{tmp_path / 'features.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def sql_adapter(sql_engine) -> SQLAlchemyAdapter:
    """SQL adapter using the default table names, tables created."""
    adapter = SQLAlchemyAdapter(sql_engine, StorageLocation())
    adapter.create_tables()
    return adapter


@pytest.fixture
def beta_user() -> Thing:
    return Thing(id="user-1", attributes={"beta": True})


@pytest.fixture
def regular_user() -> Thing:
    return Thing(id="user-2", attributes={"beta": False})


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "feature_flags: Feature flag behaviour")
    config.addinivalue_line("markers", "storage: Tests touching a storage adapter")
