"""Pytest configuration and fixtures."""

import pytest

from tests.shared_utilities import FakeDocumentHandle, FakeMotorClient, FakePool, FakeRelationalHandle

ENVIRONMENT_VARIABLES = [
    "TESTDB_PRESET",
    "POSTGRES_HOST",
    "POSTGRES_PORT",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "POSTGRES_DB",
    "POSTGRES_SSL",
    "POSTGRES_CONNECTION_TIMEOUT",
    "POSTGRES_IDLE_TIMEOUT",
    "POSTGRES_MAX_CONNECTIONS",
    "MONGO_URI",
    "MONGO_USER",
    "MONGO_PASSWORD",
    "MONGO_HOST",
    "MONGO_PORT",
    "MONGO_DB",
    "MONGO_CONNECTION_TIMEOUT",
    "MONGO_SERVER_SELECTION_TIMEOUT",
    "MONGO_TRANSACTIONS",
]


@pytest.fixture
def clean_environment(monkeypatch):
    """Remove connection variables so presets and overrides are the only inputs."""
    for name in ENVIRONMENT_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def fake_pool():
    """Provide an asyncpg pool fake."""
    return FakePool()


@pytest.fixture
def fake_motor_client():
    """Provide a motor client fake."""
    return FakeMotorClient()


@pytest.fixture
def relational_handle():
    return FakeRelationalHandle("pg")


@pytest.fixture
def document_handle():
    return FakeDocumentHandle("mongo")


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests that need running database servers")
    config.addinivalue_line("markers", "unit: marks tests as unit tests (default)")


def pytest_collection_modifyitems(config, items):
    """Add the unit marker to everything not marked integration."""
    for item in items:
        if not any(marker.name == "integration" for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
