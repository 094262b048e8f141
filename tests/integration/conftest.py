"""Pytest configuration for integration tests.

Integration tests need PostgreSQL and MongoDB servers matching the selected
preset; they are skipped when a server cannot be reached.
"""

import socket
from urllib.parse import urlsplit

import pytest

from testdb.core_types.config import get_mongo_config, get_postgres_config


def _reachable(host: str, port: int, timeout: float = 1.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


@pytest.fixture(scope="session")
def postgres_available():
    config = get_postgres_config()
    if not _reachable(config.host, config.port):
        pytest.skip(f"PostgreSQL not reachable at {config.host}:{config.port}")


@pytest.fixture(scope="session")
def mongo_available():
    # first host of the URI is enough to decide
    parts = urlsplit(get_mongo_config().uri)
    host = (parts.hostname or "localhost").split(",")[0]
    port = parts.port or 27017
    if not _reachable(host, port):
        pytest.skip(f"MongoDB not reachable at {host}:{port}")


@pytest.fixture(scope="session")
def testdb_schemas():
    """Tables created in the per-worker database used by the plugin fixtures."""
    return {"users": "(id SERIAL PRIMARY KEY, email TEXT)"}


# Add pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "requires_docker: marks tests that require Docker services")
