"""Unit tests for scoped temporary databases."""

import re
from unittest.mock import AsyncMock, Mock, patch

import pytest

from testdb.core_types.models import ConnectionState
from testdb.lifecycle import (
    TemporaryMongoOptions,
    TemporaryPostgresOptions,
    temporary_mongo_database,
    temporary_postgres_database,
    with_temporary_mongo_database,
    with_temporary_postgres_database,
)
from tests.shared_utilities import FakeMotorClient

pytestmark = pytest.mark.usefixtures("clean_environment")


@pytest.fixture
def create_pool(fake_pool):
    with patch("testdb.core_types.postgres.asyncpg.create_pool", new=AsyncMock(return_value=fake_pool)) as mock:
        yield mock


@pytest.fixture
def motor_client(fake_motor_client):
    with patch("testdb.core_types.mongodb.AsyncIOMotorClient", new=Mock(return_value=fake_motor_client)):
        yield fake_motor_client


class TestTemporaryPostgresDatabase:
    """Test cases for temporary_postgres_database."""

    async def test_create_provision_and_drop(self, create_pool, fake_pool):
        options = TemporaryPostgresOptions(
            database_name="tmp_users",
            schemas={"users": "(id SERIAL PRIMARY KEY)"},
            overrides={"host": "pg.test"},
        )

        async with temporary_postgres_database(options) as (db, config):
            assert db.is_connected()
            assert config.database == "tmp_users"
            assert config.host == "pg.test"

        sql = [statement for statement, _ in fake_pool.statements]
        assert sql[0] == 'CREATE DATABASE "tmp_users"'
        assert sql[1] == 'CREATE TABLE IF NOT EXISTS "users" (id SERIAL PRIMARY KEY)'
        assert sql[-1] == 'DROP DATABASE IF EXISTS "tmp_users"'
        assert db.state is ConnectionState.DISCONNECTED

    async def test_generated_name_uses_prefix(self, create_pool):
        async with temporary_postgres_database() as (_, config):
            assert re.fullmatch(r"testdb_pg_[0-9a-f]{8}", config.database)

    async def test_body_error_still_drops(self, create_pool, fake_pool):
        with pytest.raises(RuntimeError):
            async with temporary_postgres_database(TemporaryPostgresOptions(database_name="tmp_err")):
                raise RuntimeError("test body failed")

        assert fake_pool.statements[-1][0] == 'DROP DATABASE IF EXISTS "tmp_err"'

    async def test_with_helper_returns_body_result(self, create_pool):
        async def body(db, config):
            return config.database

        result = await with_temporary_postgres_database(TemporaryPostgresOptions(database_name="tmp_result"), body)
        assert result == "tmp_result"


class TestTemporaryMongoDatabase:
    """Test cases for temporary_mongo_database."""

    async def test_connect_and_drop(self, motor_client):
        async with temporary_mongo_database(TemporaryMongoOptions(database_name="tmp_docs")) as (db, config):
            assert db.is_connected()
            assert config.database == "tmp_docs"

        assert motor_client.dropped == ["tmp_docs"]
        assert motor_client.closed is True

    async def test_body_error_still_drops(self, motor_client):
        with pytest.raises(KeyError):
            async with temporary_mongo_database() as (_, config):
                name = config.database
                raise KeyError("missing")

        assert re.fullmatch(r"testdb_mongo_[0-9a-f]{8}", name)
        assert motor_client.dropped == [name]

    async def test_with_helper_returns_body_result(self, motor_client):
        async def body(db, config):
            await db.seed({"users": [{"name": "a"}]})
            return await db.collection("users").count_documents({})

        assert await with_temporary_mongo_database(None, body) == 1
