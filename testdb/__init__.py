"""Isolated, consistent PostgreSQL and MongoDB state for integration tests."""

__version__ = "0.1.0"

from .coordination import (
    MultiDatabaseCoordinator,
    check_multi_database_consistency,
    execute_coordinated_transaction,
    execute_eventually_consistent,
    execute_saga_transaction,
)
from .core_types import (
    CoordinationResult,
    DatabaseOperation,
    IsolationLevel,
    MongoConfig,
    MongoTestDB,
    PostgresConfig,
    PostgresTestDB,
    TransactionConfig,
)
from .isolation import PerTestMongoDatabase, PostgresTransactionalHarness, WorkerPostgresDatabase
from .lifecycle import (
    TemporaryMongoOptions,
    TemporaryPostgresOptions,
    temporary_mongo_database,
    temporary_postgres_database,
    with_temporary_mongo_database,
    with_temporary_postgres_database,
)

__all__ = [
    "CoordinationResult",
    "DatabaseOperation",
    "IsolationLevel",
    "MongoConfig",
    "MongoTestDB",
    "MultiDatabaseCoordinator",
    "PerTestMongoDatabase",
    "PostgresConfig",
    "PostgresTestDB",
    "PostgresTransactionalHarness",
    "TemporaryMongoOptions",
    "TemporaryPostgresOptions",
    "TransactionConfig",
    "WorkerPostgresDatabase",
    "check_multi_database_consistency",
    "execute_coordinated_transaction",
    "execute_eventually_consistent",
    "execute_saga_transaction",
    "temporary_mongo_database",
    "temporary_postgres_database",
    "with_temporary_mongo_database",
    "with_temporary_postgres_database",
]
