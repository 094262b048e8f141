"""Scoped temporary databases that are always torn down."""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from .core_types.config import (
    CONTROL_DATABASE,
    EnvironmentPreset,
    MongoConfig,
    PostgresConfig,
    create_test_db_config_builder,
)
from .core_types.errors import ProvisioningError
from .core_types.models import unique_database_name, validate_database_name
from .core_types.mongodb import MongoTestDB
from .core_types.postgres import PostgresTestDB
from .core_types.sql import quote_identifier
from .utils.telemetry import span

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class TemporaryPostgresOptions:
    """Options for a throwaway PostgreSQL database."""

    preset: EnvironmentPreset | str | None = None
    database_name: str | None = None
    prefix: str = "testdb_pg"
    schemas: dict[str, str] = field(default_factory=dict)
    overrides: dict[str, Any] = field(default_factory=dict)

    def build_config(self) -> PostgresConfig:
        return create_test_db_config_builder(self.preset).with_postgres(**self.overrides).build_postgres()


@dataclass
class TemporaryMongoOptions:
    """Options for a throwaway MongoDB database."""

    preset: EnvironmentPreset | str | None = None
    database_name: str | None = None
    prefix: str = "testdb_mongo"
    overrides: dict[str, Any] = field(default_factory=dict)

    def build_config(self) -> MongoConfig:
        return create_test_db_config_builder(self.preset).with_mongo(**self.overrides).build_mongo()


async def create_postgres_database(base_config: PostgresConfig, name: str) -> None:
    """Create ``name`` through a short-lived handle on the control database.

    Raises:
        ProvisioningError: If the control connection or CREATE DATABASE fails
    """
    validate_database_name(name)
    admin = PostgresTestDB(base_config.with_database(CONTROL_DATABASE))
    try:
        await admin.connect()
        try:
            await admin.create_database(name)
        finally:
            await admin.disconnect()
    except Exception as e:
        raise ProvisioningError("create", name, e) from e


async def drop_postgres_database(base_config: PostgresConfig, name: str) -> None:
    """Force-drop ``name`` through a short-lived handle on the control database.

    Raises:
        ProvisioningError: If the control connection or DROP DATABASE fails
    """
    validate_database_name(name)
    admin = PostgresTestDB(base_config.with_database(CONTROL_DATABASE))
    try:
        await admin.connect()
        try:
            await admin.drop_database(name)
        finally:
            await admin.disconnect()
    except Exception as e:
        raise ProvisioningError("drop", name, e) from e


async def apply_schemas(db: PostgresTestDB, schemas: dict[str, str] | None) -> None:
    """Create each declared table if it does not exist.

    Args:
        db: Connected handle
        schemas: Table name to column definition, e.g. ``{"users": "(id SERIAL PRIMARY KEY)"}``
    """
    if not schemas:
        return
    for table, definition in schemas.items():
        await db.execute(f"CREATE TABLE IF NOT EXISTS {quote_identifier(table)} {definition}")
        logger.debug("Applied table schema", table=table, database=db.config.database)


@asynccontextmanager
async def temporary_postgres_database(
    options: TemporaryPostgresOptions | None = None,
) -> AsyncIterator[tuple[PostgresTestDB, PostgresConfig]]:
    """Create, connect and provision a PostgreSQL database for the enclosed block.

    Disconnect then drop run on every exit path.

    Yields:
        Tuple of (connected handle, its config)
    """
    options = options or TemporaryPostgresOptions()
    base_config = options.build_config()
    name = options.database_name or unique_database_name(options.prefix)
    config = base_config.with_database(name)

    async with span("postgres.temporary.create", database=name):
        await create_postgres_database(base_config, name)
    logger.info("Temporary PostgreSQL database created", database=name)

    db = PostgresTestDB(config)
    try:
        await db.connect()
        await apply_schemas(db, options.schemas)
        yield db, config
    finally:
        try:
            await db.disconnect()
        finally:
            async with span("postgres.temporary.drop", database=name):
                await drop_postgres_database(base_config, name)
            logger.info("Temporary PostgreSQL database dropped", database=name)


@asynccontextmanager
async def temporary_mongo_database(
    options: TemporaryMongoOptions | None = None,
) -> AsyncIterator[tuple[MongoTestDB, MongoConfig]]:
    """Connect to a uniquely named MongoDB database and drop it afterwards.

    MongoDB creates databases lazily, so provisioning is just the connect.

    Yields:
        Tuple of (connected handle, its config)
    """
    options = options or TemporaryMongoOptions()
    name = options.database_name or unique_database_name(options.prefix)
    config = options.build_config().with_database(name)

    db = MongoTestDB(config)
    await db.connect()
    logger.info("Temporary MongoDB database created", database=name)
    try:
        yield db, config
    finally:
        try:
            async with span("mongodb.temporary.drop", database=name):
                await db.drop_database()
        except Exception as e:
            raise ProvisioningError("drop", name, e) from e
        finally:
            await db.disconnect()
        logger.info("Temporary MongoDB database dropped", database=name)


async def with_temporary_postgres_database(
    options: TemporaryPostgresOptions | None,
    body: Callable[[PostgresTestDB, PostgresConfig], Awaitable[T]],
) -> T:
    """Run ``body(db, config)`` against a throwaway PostgreSQL database."""
    async with temporary_postgres_database(options) as (db, config):
        return await body(db, config)


async def with_temporary_mongo_database(
    options: TemporaryMongoOptions | None,
    body: Callable[[MongoTestDB, MongoConfig], Awaitable[T]],
) -> T:
    """Run ``body(db, config)`` against a throwaway MongoDB database."""
    async with temporary_mongo_database(options) as (db, config):
        return await body(db, config)
