"""MongoDB engine handle backed by the motor asyncio client."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo.errors import OperationFailure

from ..utils.telemetry import span
from .config import MongoConfig, sanitize_mongo_config, validate_mongo_config
from .engine import EngineHandle
from .errors import ConfigurationError
from .models import EngineKind

logger = logging.getLogger(__name__)

NAMESPACE_NOT_FOUND = 26


class MongoTestDB(EngineHandle):
    """MongoDB test database handle scoped to a single database."""

    engine_kind = EngineKind.DOCUMENT
    engine_name = "MongoDB"

    def __init__(self, config: MongoConfig) -> None:
        """Initialize the handle without connecting.

        Args:
            config: Connection configuration

        Raises:
            ConfigurationError: If the URI or database name is missing
        """
        if not validate_mongo_config(config):
            raise ConfigurationError("Invalid MongoDB configuration")
        super().__init__()
        self.config = config
        self._client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None
        logger.info(f"MongoDB client initialized: {sanitize_mongo_config(config)}")

    @property
    def participant_id(self) -> str:
        return f"mongodb://{self.config.database}"

    @property
    def supports_transactions(self) -> bool:
        return self.config.supports_transactions

    @property
    def client(self) -> AsyncIOMotorClient:
        self._require_connected()
        assert self._client is not None
        return self._client

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """Database object for direct access."""
        self._require_connected()
        assert self._db is not None
        return self._db

    async def _open(self) -> None:
        async with span("mongodb.connect", database=self.config.database):
            self._client = AsyncIOMotorClient(
                self.config.uri,
                connectTimeoutMS=int(self.config.connection_timeout * 1000),
                serverSelectionTimeoutMS=int(self.config.server_selection_timeout * 1000),
                maxPoolSize=self.config.max_pool_size,
                minPoolSize=self.config.min_pool_size,
            )
            # Verify connection
            await self._client.admin.command("ping")
            self._db = self._client[self.config.database]

    async def _close(self) -> None:
        if self._client is not None:
            self._client.close()

    def _abandon(self) -> None:
        if self._client is not None and self._db is None:
            # connect failed after the client was built
            self._client.close()
        self._client = None
        self._db = None

    def collection(self, name: str) -> Any:
        """Get a collection."""
        return self.database[name]

    async def drop_collection(self, name: str) -> None:
        """Drop a collection, ignoring one that does not exist."""
        try:
            await self.database.drop_collection(name)
            logger.info(f"Dropped collection {name}")
        except OperationFailure as e:
            if e.code != NAMESPACE_NOT_FOUND and "ns not found" not in str(e):
                logger.error(f"Failed to drop collection {name}: {e}")
                raise

    async def drop_database(self) -> None:
        """Drop the database this handle is bound to."""
        async with span("mongodb.database.drop", database=self.config.database):
            await self.client.drop_database(self.config.database)
        logger.info(f"Dropped database {self.config.database}")

    async def start_session(self) -> AsyncIOMotorClientSession:
        """Start a client session; the caller must end it."""
        return await self.client.start_session()

    async def with_transaction(self, callback: Callable[[AsyncIOMotorClientSession], Awaitable[Any]]) -> Any:
        """Run ``callback(session)`` inside a multi-document transaction.

        The driver retries the callback on transient transaction errors and
        commits when it returns.
        """
        async with span("mongodb.transaction", database=self.config.database):
            async with await self.client.start_session() as session:
                return await session.with_transaction(callback)

    async def transaction(self, callback: Callable[[AsyncIOMotorClientSession], Awaitable[Any]]) -> Any:
        return await self.with_transaction(callback)

    async def seed(self, data: dict[str, list[dict[str, Any]]]) -> None:
        """Insert documents collection by collection."""
        async with span("mongodb.seed", collections=list(data)):
            for collection_name, documents in data.items():
                if not isinstance(documents, list):
                    logger.warning(f"Invalid seed data for collection {collection_name}")
                    continue
                if documents:
                    # insert_many mutates documents by adding _id
                    await self.database[collection_name].insert_many([dict(document) for document in documents])
        logger.info("Database seeded successfully")
