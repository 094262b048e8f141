"""Core types for the test database harness - configs, engine handles and result models."""

__version__ = "0.1.0"

from .config import (
    CONTROL_DATABASE,
    DatabaseConfigBuilder,
    EnvironmentPreset,
    MongoConfig,
    PostgresConfig,
    create_test_db_config_builder,
    get_mongo_config,
    get_postgres_config,
    sanitize_mongo_config,
    sanitize_postgres_config,
    validate_mongo_config,
    validate_postgres_config,
)
from .engine import EngineHandle
from .errors import (
    ConfigurationError,
    ConnectionStateError,
    HarnessStateError,
    InvalidDatabaseNameError,
    InvalidDurationError,
    ProvisioningError,
    TestDBError,
    UnsupportedParticipantError,
)
from .models import (
    ActiveTransaction,
    ConnectionState,
    ConsistencyReport,
    CoordinationResult,
    DatabaseOperation,
    DocumentContext,
    EngineKind,
    IsolationLevel,
    ParticipantError,
    ParticipantFailure,
    TransactionConfig,
    TransactionState,
    parse_duration,
    unique_database_name,
    validate_database_name,
)
from .mongodb import MongoTestDB
from .postgres import PostgresTestDB

__all__ = [
    "CONTROL_DATABASE",
    "ActiveTransaction",
    "ConfigurationError",
    "ConnectionState",
    "ConnectionStateError",
    "ConsistencyReport",
    "CoordinationResult",
    "DatabaseConfigBuilder",
    "DatabaseOperation",
    "DocumentContext",
    "EngineHandle",
    "EngineKind",
    "EnvironmentPreset",
    "HarnessStateError",
    "InvalidDatabaseNameError",
    "InvalidDurationError",
    "IsolationLevel",
    "MongoConfig",
    "MongoTestDB",
    "ParticipantError",
    "ParticipantFailure",
    "PostgresConfig",
    "PostgresTestDB",
    "ProvisioningError",
    "TestDBError",
    "TransactionConfig",
    "TransactionState",
    "UnsupportedParticipantError",
    "create_test_db_config_builder",
    "get_mongo_config",
    "get_postgres_config",
    "parse_duration",
    "sanitize_mongo_config",
    "sanitize_postgres_config",
    "unique_database_name",
    "validate_database_name",
    "validate_mongo_config",
    "validate_postgres_config",
]
