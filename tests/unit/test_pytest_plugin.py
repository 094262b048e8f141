"""Tests for the fixtures the pytest plugin provides without a server."""

from testdb.coordination import MultiDatabaseCoordinator
from testdb.core_types.models import DatabaseOperation
from tests.shared_utilities import FakeRelationalHandle, recording


def test_default_schemas_are_empty(testdb_schemas):
    assert testdb_schemas == {}


def test_worker_id_without_xdist(testdb_worker_id):
    assert testdb_worker_id == "main" or testdb_worker_id.startswith("gw")


def test_preset_option_registered(pytestconfig):
    assert pytestconfig.getoption("--testdb-preset") in (None, "local", "ci", "docker")


async def test_coordinator_fixture(testdb_coordinator):
    assert isinstance(testdb_coordinator, MultiDatabaseCoordinator)

    result = await testdb_coordinator.execute_eventually_consistent(
        [DatabaseOperation(FakeRelationalHandle("a"), recording([], "a"))]
    )

    assert result.committed == ["postgres://a"]
