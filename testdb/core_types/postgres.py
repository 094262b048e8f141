"""PostgreSQL engine handle backed by an asyncpg connection pool."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from ..utils.telemetry import span
from .config import PostgresConfig, sanitize_postgres_config, validate_postgres_config
from .engine import EngineHandle
from .errors import ConfigurationError
from .models import EngineKind, validate_database_name
from .sql import build_insert_statement, quote_identifier, quote_identifiers

logger = logging.getLogger(__name__)


class PostgresTestDB(EngineHandle):
    """PostgreSQL test database handle.

    Provides connection pooling, leased connections for native transactions,
    and create/drop of throwaway databases when bound to a control database.
    """

    engine_kind = EngineKind.RELATIONAL
    engine_name = "PostgreSQL"

    def __init__(self, config: PostgresConfig) -> None:
        """Initialize the handle without connecting.

        Args:
            config: Connection configuration

        Raises:
            ConfigurationError: If required connection fields are missing
        """
        if not validate_postgres_config(config):
            raise ConfigurationError("Invalid PostgreSQL configuration")
        super().__init__()
        self.config = config
        self._pool: asyncpg.Pool | None = None
        logger.info(f"PostgreSQL client initialized: {sanitize_postgres_config(config)}")

    @property
    def participant_id(self) -> str:
        return f"postgres://{self.config.host}:{self.config.port}/{self.config.database}"

    @property
    def pool(self) -> asyncpg.Pool:
        self._require_connected()
        assert self._pool is not None
        return self._pool

    async def _open(self) -> None:
        async with span("postgres.connect", database=self.config.database):
            self._pool = await asyncpg.create_pool(
                dsn=self.config.dsn,
                min_size=self.config.min_connections,
                max_size=self.config.max_connections,
                timeout=self.config.connection_timeout,
                max_inactive_connection_lifetime=self.config.idle_timeout,
                ssl=self.config.ssl or None,
            )

    async def _close(self) -> None:
        if self._pool is None:
            return
        try:
            async with span("postgres.disconnect", database=self.config.database):
                await self._pool.close()
        except Exception:
            self._pool.terminate()
            raise

    def _abandon(self) -> None:
        self._pool = None

    async def query(self, sql: str, *args: Any) -> list[asyncpg.Record]:
        """Execute a query and return all rows."""
        logger.debug(f"Executing query with {len(args)} parameters: {sql}")
        try:
            async with span("postgres.query"):
                return await self.pool.fetch(sql, *args)
        except Exception as e:
            logger.error(f"Query execution failed: {e} ({sql})")
            raise

    async def fetch_one(self, sql: str, *args: Any) -> asyncpg.Record | None:
        """Execute a query and return the first row, if any."""
        rows = await self.query(sql, *args)
        return rows[0] if rows else None

    async def execute(self, sql: str, *args: Any) -> str:
        """Execute a statement and return the command status."""
        logger.debug(f"Executing statement with {len(args)} parameters: {sql}")
        return await self.pool.execute(sql, *args)

    async def lease_connection(self) -> asyncpg.Connection:
        """Borrow a dedicated connection from the pool.

        The caller owns the connection until ``release_connection``.
        """
        return await self.pool.acquire()

    async def release_connection(self, connection: asyncpg.Connection) -> None:
        """Return a leased connection to the pool."""
        if self._pool is None:
            logger.warning("Releasing a connection after the pool was closed")
            return
        await self._pool.release(connection)

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """Run a block in a transaction that commits on success.

        Yields:
            Leased connection with an open transaction
        """
        connection = await self.lease_connection()
        try:
            async with span("postgres.transaction"):
                async with connection.transaction():
                    yield connection
        finally:
            await self.release_connection(connection)

    @asynccontextmanager
    async def rollback_only(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """Run a block in a transaction that is always rolled back.

        Yields:
            Leased connection with an open transaction
        """
        connection = await self.lease_connection()
        try:
            tx = connection.transaction()
            await tx.start()
            try:
                yield connection
            finally:
                await tx.rollback()
                logger.debug("Transactional test rolled back")
        finally:
            await self.release_connection(connection)

    async def truncate_tables(self, tables: list[str]) -> None:
        if not tables:
            return
        try:
            async with span("postgres.truncate", tables=tables):
                await self.execute(f"TRUNCATE TABLE {quote_identifiers(tables)} CASCADE")
            logger.info(f"Truncated tables: {tables}")
        except Exception as e:
            logger.error(f"Failed to truncate tables {tables}: {e}")
            raise

    async def create_database(self, name: str) -> None:
        """Create a database. The handle should be bound to a control database."""
        validate_database_name(name)
        async with span("postgres.database.create", database=name):
            await self.execute(f"CREATE DATABASE {quote_identifier(name)}")
        logger.info(f"Created database {name}")

    async def drop_database(self, name: str) -> None:
        """Force-drop a database, terminating any sessions still attached to it."""
        validate_database_name(name)
        async with span("postgres.database.drop", database=name):
            await self.execute(
                """
                SELECT pg_terminate_backend(pg_stat_activity.pid)
                FROM pg_stat_activity
                WHERE pg_stat_activity.datname = $1
                AND pid <> pg_backend_pid()
                """,
                name,
            )
            await self.execute(f"DROP DATABASE IF EXISTS {quote_identifier(name)}")
        logger.info(f"Dropped database {name}")

    async def seed(self, data: dict[str, list[dict[str, Any]]]) -> None:
        """Insert rows table by table."""
        self._require_connected()
        async with span("postgres.seed", tables=list(data)):
            for table, rows in data.items():
                if not isinstance(rows, list):
                    logger.warning(f"Invalid seed data for table {table}")
                    continue
                for row in rows:
                    statement = build_insert_statement(table, row)
                    await self.execute(statement.sql, *statement.values)
        logger.info("Database seeded successfully")
