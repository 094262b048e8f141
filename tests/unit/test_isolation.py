"""Unit tests for the isolation harnesses."""

import re
from unittest.mock import AsyncMock, Mock, patch

import pytest

from testdb.core_types.config import MongoConfig, PostgresConfig
from testdb.core_types.errors import HarnessStateError, InvalidDatabaseNameError, ProvisioningError
from testdb.core_types.models import ConnectionState
from testdb.core_types.postgres import PostgresTestDB
from testdb.isolation import PerTestMongoDatabase, PostgresTransactionalHarness, WorkerPostgresDatabase
from tests.shared_utilities import FakeConnection, FakeMotorClient


@pytest.fixture
def create_pool(fake_pool):
    with patch("testdb.core_types.postgres.asyncpg.create_pool", new=AsyncMock(return_value=fake_pool)) as mock:
        yield mock


@pytest.fixture
async def shared_db(create_pool):
    db = PostgresTestDB(PostgresConfig(database="shared"))
    await db.connect()
    yield db
    await db.disconnect()


class TestPostgresTransactionalHarness:
    """Test cases for per-test transactional rollback."""

    async def test_setup_and_teardown(self, shared_db, fake_pool):
        harness = PostgresTransactionalHarness(shared_db)

        connection = await harness.setup()
        assert harness.active is True
        assert harness.connection is connection
        await connection.execute("INSERT INTO users VALUES (1)")

        await harness.teardown()

        assert connection.log == ["BEGIN default", "ROLLBACK"]
        assert fake_pool.released == [connection]
        assert harness.active is False

    async def test_double_setup_rejected(self, shared_db, fake_pool):
        harness = PostgresTransactionalHarness(shared_db)
        await harness.setup()

        with pytest.raises(HarnessStateError):
            await harness.setup()

        assert fake_pool.outstanding == 1
        await harness.teardown()
        assert fake_pool.outstanding == 0

    async def test_teardown_without_setup_is_noop(self, shared_db, fake_pool):
        await PostgresTransactionalHarness(shared_db).teardown()
        assert fake_pool.released == []

    def test_connection_before_setup(self, shared_db):
        with pytest.raises(HarnessStateError):
            PostgresTransactionalHarness(shared_db).connection

    async def test_truncates_inside_transaction(self, shared_db):
        harness = PostgresTransactionalHarness(shared_db, tables_to_truncate=["users", "orders"])
        connection = await harness.setup()
        await harness.teardown()

        assert connection.statements == [('TRUNCATE TABLE "users", "orders" CASCADE', ())]
        assert connection.log[-1] == "ROLLBACK"

    async def test_truncate_failure_still_rolls_back_and_releases(self, shared_db, fake_pool):
        harness = PostgresTransactionalHarness(shared_db, tables_to_truncate=["users"])
        connection = await harness.setup()
        connection.fail_execute = RuntimeError("locked")

        with pytest.raises(RuntimeError):
            await harness.teardown()

        assert connection.log[-1] == "ROLLBACK"
        assert fake_pool.outstanding == 0

    async def test_teardown_reraises_first_failure(self, shared_db, fake_pool):
        harness = PostgresTransactionalHarness(shared_db, tables_to_truncate=["users"])
        connection = await harness.setup()
        connection.fail_execute = RuntimeError("truncate failed")
        connection.fail_rollback = ConnectionError("rollback failed")

        with pytest.raises(RuntimeError, match="truncate failed"):
            await harness.teardown()

        assert fake_pool.outstanding == 0

    async def test_failed_begin_releases_connection(self, shared_db, fake_pool):
        broken = FakeConnection()
        broken.fail_start = RuntimeError("cannot begin")
        fake_pool.next_connection = broken
        harness = PostgresTransactionalHarness(shared_db)

        with pytest.raises(RuntimeError):
            await harness.setup()

        assert harness.active is False
        assert fake_pool.outstanding == 0

    async def test_sandbox_rolls_back_on_error(self, shared_db, fake_pool):
        harness = PostgresTransactionalHarness(shared_db)

        with pytest.raises(ValueError):
            async with harness.sandbox() as connection:
                raise ValueError("test failed")

        assert connection.log[-1] == "ROLLBACK"
        assert fake_pool.outstanding == 0


class TestPerTestMongoDatabase:
    """Test cases for per-test MongoDB databases."""

    @pytest.fixture
    def motor_client_cls(self):
        with patch("testdb.core_types.mongodb.AsyncIOMotorClient", new=Mock(side_effect=FakeMotorClient)) as mock:
            yield mock

    async def test_unique_database_per_test(self, motor_client_cls):
        first = PerTestMongoDatabase(MongoConfig())
        second = PerTestMongoDatabase(MongoConfig())

        db_one = await first.setup()
        db_two = await second.setup()

        assert re.fullmatch(r"testdb_[0-9a-f]{8}", db_one.config.database)
        assert db_one.config.database != db_two.config.database

        await first.teardown()
        await second.teardown()

    async def test_teardown_drops_and_disconnects(self, motor_client_cls):
        per_test = PerTestMongoDatabase(MongoConfig(), prefix="orders")
        db = await per_test.setup()
        client = db.client
        name = db.config.database

        await per_test.teardown()

        assert client.dropped == [name]
        assert client.closed is True
        assert db.state is ConnectionState.DISCONNECTED
        with pytest.raises(HarnessStateError):
            per_test.db

    async def test_drop_failure_still_disconnects(self, motor_client_cls):
        per_test = PerTestMongoDatabase(MongoConfig())
        db = await per_test.setup()
        db.client.drop_database = AsyncMock(side_effect=RuntimeError("not authorized"))

        with pytest.raises(ProvisioningError) as exc_info:
            await per_test.teardown()

        assert exc_info.value.action == "drop"
        assert db.state is ConnectionState.DISCONNECTED

    async def test_double_setup_rejected(self, motor_client_cls):
        per_test = PerTestMongoDatabase(MongoConfig())
        await per_test.setup()
        with pytest.raises(HarnessStateError):
            await per_test.setup()
        await per_test.teardown()


class TestWorkerPostgresDatabase:
    """Test cases for per-worker PostgreSQL databases."""

    def test_name_uses_worker_id(self):
        worker_db = WorkerPostgresDatabase(PostgresConfig(), worker_id="w1")
        assert re.fullmatch(r"w1_[0-9a-f]{8}", worker_db.database_name)

    def test_explicit_name_is_validated(self):
        assert WorkerPostgresDatabase(PostgresConfig(), database_name="w1_ab12cd34").database_name == "w1_ab12cd34"
        with pytest.raises(InvalidDatabaseNameError):
            WorkerPostgresDatabase(PostgresConfig(), database_name="bad name")

    async def test_setup_creates_connects_and_applies_schemas(self, create_pool, fake_pool):
        worker_db = WorkerPostgresDatabase(
            PostgresConfig(),
            database_name="w1_ab12cd34",
            schemas={"users": "(id SERIAL PRIMARY KEY, name TEXT, email TEXT)"},
        )

        db = await worker_db.setup()

        dsns = [call.kwargs["dsn"] for call in create_pool.await_args_list]
        assert dsns[0].endswith("/postgres")
        assert dsns[1].endswith("/w1_ab12cd34")
        assert fake_pool.statements[0][0] == 'CREATE DATABASE "w1_ab12cd34"'
        assert fake_pool.statements[1][0] == (
            'CREATE TABLE IF NOT EXISTS "users" (id SERIAL PRIMARY KEY, name TEXT, email TEXT)'
        )
        assert db.is_connected()
        assert worker_db.db is db

        await worker_db.teardown()

        assert db.state is ConnectionState.DISCONNECTED
        assert fake_pool.statements[-1][0] == 'DROP DATABASE IF EXISTS "w1_ab12cd34"'

    async def test_create_failure_is_provisioning_error(self, create_pool, fake_pool):
        fake_pool.fail_execute = RuntimeError("permission denied to create database")
        worker_db = WorkerPostgresDatabase(PostgresConfig(), database_name="w1_ab12cd34")

        with pytest.raises(ProvisioningError) as exc_info:
            await worker_db.setup()

        assert exc_info.value.action == "create"
        assert exc_info.value.database == "w1_ab12cd34"
        with pytest.raises(HarnessStateError):
            worker_db.db

    async def test_transactional_harness_uses_worker_db(self, create_pool):
        worker_db = WorkerPostgresDatabase(PostgresConfig(), database_name="w1_ab12cd34")
        db = await worker_db.setup()

        harness = worker_db.transactional_harness(["users"])

        assert harness.db is db
        assert harness.tables_to_truncate == ["users"]
        await worker_db.teardown()
