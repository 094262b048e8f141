"""pytest plugin exposing the isolation strategies as fixtures.

Registered through the ``pytest11`` entry point, so installing the package
is enough. Override ``testdb_schemas`` in a conftest to provision tables in
the per-worker PostgreSQL database.

The PostgreSQL fixtures live on the session event loop; tests using them
should run there too, e.g. with ``@pytest.mark.asyncio(loop_scope="session")``.
"""

from collections.abc import AsyncGenerator

import asyncpg  # type: ignore[import-untyped]
import pytest
import pytest_asyncio

from .coordination import MultiDatabaseCoordinator
from .core_types.config import EnvironmentPreset
from .core_types.mongodb import MongoTestDB
from .core_types.postgres import PostgresTestDB
from .isolation import PerTestMongoDatabase, PostgresTransactionalHarness, WorkerPostgresDatabase


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("testdb", "multi-engine test databases")
    group.addoption(
        "--testdb-preset",
        action="store",
        default=None,
        choices=[preset.value for preset in EnvironmentPreset],
        help="Environment preset for test database connections (default: TESTDB_PRESET or local)",
    )
    parser.addini("testdb_preset", "Default environment preset for test database connections", default=None)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "postgres: marks tests that need a PostgreSQL server")
    config.addinivalue_line("markers", "mongodb: marks tests that need a MongoDB server")


@pytest.fixture(scope="session")
def testdb_preset(pytestconfig: pytest.Config) -> str | None:
    """Preset chosen on the command line or in the ini file."""
    return pytestconfig.getoption("--testdb-preset") or pytestconfig.getini("testdb_preset") or None


@pytest.fixture(scope="session")
def testdb_worker_id(request: pytest.FixtureRequest) -> str:
    """pytest-xdist worker id, or ``main`` when not distributed."""
    workerinput = getattr(request.config, "workerinput", None)
    if workerinput is None:
        return "main"
    return str(workerinput["workerid"])


@pytest.fixture(scope="session")
def testdb_schemas() -> dict[str, str]:
    """Tables to create in the worker database. Override in conftest."""
    return {}


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def postgres_worker_db(
    testdb_preset: str | None,
    testdb_worker_id: str,
    testdb_schemas: dict[str, str],
) -> AsyncGenerator[PostgresTestDB, None]:
    worker_db = WorkerPostgresDatabase(
        worker_id=f"testdb_{testdb_worker_id}",
        schemas=testdb_schemas,
        preset=testdb_preset,
    )
    db = await worker_db.setup()
    try:
        yield db
    finally:
        await worker_db.teardown()


@pytest_asyncio.fixture(loop_scope="session")
async def postgres_sandbox(postgres_worker_db: PostgresTestDB) -> AsyncGenerator[asyncpg.Connection, None]:
    """Leased connection inside a transaction that is rolled back after the test."""
    harness = PostgresTransactionalHarness(postgres_worker_db)
    async with harness.sandbox() as connection:
        yield connection


@pytest_asyncio.fixture
async def mongo_test_db(testdb_preset: str | None) -> AsyncGenerator[MongoTestDB, None]:
    per_test = PerTestMongoDatabase(preset=testdb_preset)
    db = await per_test.setup()
    try:
        yield db
    finally:
        await per_test.teardown()


@pytest_asyncio.fixture
async def testdb_coordinator() -> AsyncGenerator[MultiDatabaseCoordinator, None]:
    """Coordinator whose leftover eventual-mode work is awaited at teardown."""
    coordinator = MultiDatabaseCoordinator()
    yield coordinator
    await coordinator.drain()
