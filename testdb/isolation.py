"""Per-test and per-worker isolation strategies.

* ``PostgresTransactionalHarness`` wraps each test in a transaction on a
  leased connection and always rolls it back.
* ``PerTestMongoDatabase`` gives each test its own uniquely named database.
* ``WorkerPostgresDatabase`` creates one throwaway database per test-runner
  worker; combine it with the transactional harness for per-test rollback.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg  # type: ignore[import-untyped]
import structlog

from .core_types.config import (
    EnvironmentPreset,
    MongoConfig,
    PostgresConfig,
    create_test_db_config_builder,
)
from .core_types.errors import HarnessStateError, ProvisioningError
from .core_types.models import unique_database_name, validate_database_name
from .core_types.mongodb import MongoTestDB
from .core_types.postgres import PostgresTestDB
from .core_types.sql import quote_identifiers
from .lifecycle import apply_schemas, create_postgres_database, drop_postgres_database
from .utils.telemetry import span

logger = structlog.get_logger(__name__)


class PostgresTransactionalHarness:
    """Rollback sandbox holding at most one leased connection at a time."""

    def __init__(self, db: PostgresTestDB, tables_to_truncate: list[str] | None = None) -> None:
        """Initialize the harness.

        Args:
            db: Connected shared handle to lease from
            tables_to_truncate: Tables truncated inside the transaction before rollback
        """
        self.db = db
        self.tables_to_truncate = list(tables_to_truncate or [])
        self._connection: asyncpg.Connection | None = None
        self._transaction: Any = None

    @property
    def active(self) -> bool:
        return self._connection is not None

    @property
    def connection(self) -> asyncpg.Connection:
        """The leased connection tests should write through."""
        if self._connection is None:
            raise HarnessStateError("Transactional harness has no active connection; call setup() first")
        return self._connection

    async def setup(self) -> asyncpg.Connection:
        """Lease a connection and begin the test transaction.

        Raises:
            HarnessStateError: If a previous setup has not been torn down
        """
        if self._connection is not None:
            raise HarnessStateError("Transactional harness already holds a leased connection")

        connection = await self.db.lease_connection()
        try:
            async with span("postgres.per_test.begin", database=self.db.config.database):
                transaction = connection.transaction()
                await transaction.start()
        except BaseException:
            await self.db.release_connection(connection)
            raise

        self._connection = connection
        self._transaction = transaction
        return connection

    async def teardown(self) -> None:
        """Truncate configured tables, roll back and release. No-op without setup."""
        if self._connection is None:
            return

        connection, transaction = self._connection, self._transaction
        self._connection = None
        self._transaction = None
        failure: Exception | None = None
        try:
            try:
                if self.tables_to_truncate:
                    await connection.execute(f"TRUNCATE TABLE {quote_identifiers(self.tables_to_truncate)} CASCADE")
            except Exception as e:
                failure = e

            try:
                async with span("postgres.per_test.rollback", database=self.db.config.database):
                    await transaction.rollback()
            except Exception as e:
                failure = failure or e
        finally:
            await self.db.release_connection(connection)

        if failure is not None:
            raise failure

    @asynccontextmanager
    async def sandbox(self) -> AsyncIterator[asyncpg.Connection]:
        """Setup and teardown around the enclosed block."""
        connection = await self.setup()
        try:
            yield connection
        finally:
            await self.teardown()


class PerTestMongoDatabase:
    """A fresh MongoDB database per test, dropped at teardown."""

    def __init__(
        self,
        config: MongoConfig | None = None,
        prefix: str = "testdb",
        preset: EnvironmentPreset | str | None = None,
    ) -> None:
        self.base_config = config or create_test_db_config_builder(preset).build_mongo()
        self.prefix = prefix
        self._db: MongoTestDB | None = None

    @property
    def db(self) -> MongoTestDB:
        if self._db is None:
            raise HarnessStateError("Per-test MongoDB database accessed before setup()")
        return self._db

    async def setup(self) -> MongoTestDB:
        if self._db is not None:
            raise HarnessStateError("Per-test MongoDB database already set up")

        name = unique_database_name(self.prefix)
        db = MongoTestDB(self.base_config.with_database(name))
        async with span("mongodb.per_test.connect", database=name):
            await db.connect()
        self._db = db
        logger.debug("Per-test MongoDB database ready", database=name)
        return db

    async def teardown(self) -> None:
        if self._db is None:
            return

        db, self._db = self._db, None
        async with span("mongodb.per_test.teardown", database=db.config.database):
            try:
                await db.drop_database()
            except Exception as e:
                raise ProvisioningError("drop", db.config.database, e) from e
            finally:
                await db.disconnect()


class WorkerPostgresDatabase:
    """One throwaway PostgreSQL database shared by every test in a worker."""

    def __init__(
        self,
        config: PostgresConfig | None = None,
        database_name: str | None = None,
        worker_id: str | None = None,
        schemas: dict[str, str] | None = None,
        preset: EnvironmentPreset | str | None = None,
    ) -> None:
        """Initialize without provisioning.

        Args:
            config: Base connection config; the database field is replaced
            database_name: Explicit name; generated when omitted
            worker_id: Test-runner worker id (e.g. pytest-xdist ``gw0``) used as the name prefix
            schemas: Table name to column definition applied after creation
            preset: Environment preset used when ``config`` is omitted
        """
        self.base_config = config or create_test_db_config_builder(preset).build_postgres()
        if database_name:
            self.database_name = validate_database_name(database_name)
        else:
            self.database_name = unique_database_name(worker_id or "testdb")
        self.schemas = dict(schemas or {})
        self._db: PostgresTestDB | None = None

    @property
    def db(self) -> PostgresTestDB:
        if self._db is None:
            raise HarnessStateError("Worker database accessed before setup()")
        return self._db

    async def setup(self) -> PostgresTestDB:
        """Create the database, connect to it and apply schemas.

        Raises:
            HarnessStateError: If already set up
            ProvisioningError: If the database cannot be created
        """
        if self._db is not None:
            raise HarnessStateError("Worker database already set up")

        await create_postgres_database(self.base_config, self.database_name)

        db = PostgresTestDB(self.base_config.with_database(self.database_name))
        try:
            async with span("postgres.worker.connect", database=self.database_name):
                await db.connect()
            await apply_schemas(db, self.schemas)
        except BaseException:
            await db.disconnect()
            await drop_postgres_database(self.base_config, self.database_name)
            raise

        self._db = db
        logger.info("Worker database ready", database=self.database_name, tables=list(self.schemas))
        return db

    async def teardown(self) -> None:
        """Disconnect the scoped handle, then force-drop through the control database."""
        if self._db is None:
            return

        db, self._db = self._db, None
        async with span("postgres.worker.teardown", database=self.database_name):
            try:
                await db.disconnect()
            finally:
                await drop_postgres_database(self.base_config, self.database_name)
        logger.info("Worker database dropped", database=self.database_name)

    def transactional_harness(self, tables_to_truncate: list[str] | None = None) -> PostgresTransactionalHarness:
        """Per-test rollback sandbox inside this worker database."""
        return PostgresTransactionalHarness(self.db, tables_to_truncate)
