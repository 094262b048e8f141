"""Exceptions raised by the test database harness."""

from typing import Any


class TestDBError(Exception):
    """Base exception for test database harness errors."""

    __test__ = False

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize harness error.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(TestDBError):
    """Exception raised for invalid engine configuration."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error
            details: Additional error details
        """
        error_details = details or {}
        if config_key is not None:
            error_details["config_key"] = config_key
        super().__init__(message, error_details)
        self.config_key = config_key


class InvalidDatabaseNameError(ConfigurationError):
    """Exception raised when a database name is not a safe identifier."""

    def __init__(self, name: str) -> None:
        """Initialize invalid database name error.

        Args:
            name: The rejected database name
        """
        super().__init__(f"Invalid database name: {name!r}", config_key="database", details={"name": name})
        self.name = name


class InvalidDurationError(TestDBError, ValueError):
    """Exception raised when a duration string cannot be parsed."""

    def __init__(self, value: Any) -> None:
        """Initialize invalid duration error.

        Args:
            value: The malformed duration value
        """
        super().__init__(f"Invalid duration: {value!r}", {"value": value})
        self.value = value


class ConnectionStateError(TestDBError):
    """Exception raised when an operation needs a connected handle."""

    def __init__(self, engine: str, state: str) -> None:
        """Initialize connection state error.

        Args:
            engine: Participant identifier of the handle
            state: Current connection state
        """
        super().__init__("Database is not connected", {"engine": engine, "state": state})
        self.engine = engine
        self.state = state


class UnsupportedParticipantError(TestDBError):
    """Exception raised when a participant has no known transaction capability."""

    def __init__(self, participant: Any) -> None:
        """Initialize unsupported participant error.

        Args:
            participant: The object handed to the coordinator
        """
        type_name = type(participant).__name__
        super().__init__(f"Unsupported database type: {type_name}", {"type": type_name})
        self.participant = participant


class HarnessStateError(TestDBError):
    """Exception raised when an isolation harness is used out of order."""


class ProvisioningError(TestDBError):
    """Exception raised when an ephemeral database cannot be created or dropped."""

    def __init__(self, action: str, database: str, cause: BaseException | None = None) -> None:
        """Initialize provisioning error.

        Args:
            action: Provisioning step that failed ("create" or "drop")
            database: Name of the database being provisioned
            cause: Underlying engine error
        """
        message = f"Failed to {action} database {database!r}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, {"action": action, "database": database})
        self.action = action
        self.database = database
