"""Shared identifiers, value objects and result types for multi-engine tests."""

import re
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import InvalidDatabaseNameError, InvalidDurationError

DATABASE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_DATABASE_NAME_LENGTH = 63

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class ConnectionState(Enum):
    """Lifecycle state of an engine handle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class EngineKind(Enum):
    """Capability set an engine handle implements."""

    RELATIONAL = "relational"
    DOCUMENT = "document"


class IsolationLevel(Enum):
    """Transaction isolation levels understood by relational participants."""

    READ_UNCOMMITTED = "read_uncommitted"
    READ_COMMITTED = "read_committed"
    REPEATABLE_READ = "repeatable_read"
    SERIALIZABLE = "serializable"

    @property
    def sql(self) -> str:
        """SQL spelling of the isolation level."""
        return self.value.replace("_", " ").upper()


class ParticipantFailure(Enum):
    """Where in a coordinated call a participant failed."""

    PREPARE = "prepare"
    OPERATION = "operation"
    COMMIT = "commit"
    ROLLBACK = "rollback"
    COMPENSATION = "compensation"
    CONSISTENCY_CHECK = "consistency_check"
    COORDINATOR = "coordinator"


class TransactionState(Enum):
    """State of a prepared native transaction."""

    PREPARED = "prepared"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def parse_duration(value: float | int | str | None) -> float | None:
    """Convert a duration into seconds.

    Numbers are taken as seconds. Strings accept an optional unit suffix:
    ``"250ms"``, ``"5s"``, ``"2m"``, ``"1h"``; a bare number string is seconds.

    Args:
        value: Duration as a number of seconds or a duration string

    Returns:
        Duration in seconds, or None when value is None

    Raises:
        InvalidDurationError: If the value is negative or cannot be parsed
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidDurationError(value)
    if isinstance(value, int | float):
        if value < 0:
            raise InvalidDurationError(value)
        return float(value)
    if not isinstance(value, str):
        raise InvalidDurationError(value)

    match = _DURATION_PATTERN.match(value)
    if not match:
        raise InvalidDurationError(value)
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit or "s"]


def validate_database_name(name: str) -> str:
    """Ensure a database name is safe to interpolate as a quoted identifier.

    Raises:
        InvalidDatabaseNameError: If the name is empty, too long or has unsafe characters
    """
    if not name or len(name) > MAX_DATABASE_NAME_LENGTH or not DATABASE_NAME_PATTERN.match(name):
        raise InvalidDatabaseNameError(name)
    return name


def unique_database_name(prefix: str) -> str:
    """Generate ``{prefix}_{8 hex chars}`` with 32 bits of randomness."""
    return validate_database_name(f"{prefix}_{secrets.token_hex(4)}")


@dataclass(frozen=True)
class TransactionConfig:
    """Options applied to each participant's native transaction where supported."""

    isolation: IsolationLevel = IsolationLevel.READ_COMMITTED
    timeout: float | str | None = None
    retry_attempts: int = 1
    retry_delay: float = 0.0

    def timeout_seconds(self) -> float | None:
        """Timeout normalised to seconds."""
        return parse_duration(self.timeout)


@dataclass(frozen=True)
class DatabaseOperation:
    """A unit of work bound to the participant it runs against.

    ``work`` receives the participant's native context: a leased connection
    for relational engines, a ``DocumentContext`` for document engines in
    coordinated mode, and the participant handle itself in saga and
    eventual modes.
    """

    participant: Any
    work: Callable[[Any], Awaitable[Any]]
    label: str | None = None

    @property
    def description(self) -> str:
        if self.label:
            return self.label
        return getattr(self.participant, "participant_id", repr(self.participant))


@dataclass(frozen=True)
class DocumentContext:
    """Native context handed to document-engine work in coordinated mode."""

    database: Any
    session: Any | None = None


@dataclass(frozen=True)
class ParticipantError:
    """One failure recorded against a participant."""

    participant: str
    message: str
    kind: ParticipantFailure = ParticipantFailure.OPERATION


@dataclass
class CoordinationResult:
    """Outcome of a multi-engine coordinated, saga or eventual call."""

    transaction_id: str
    success: bool = True
    duration: float = 0.0
    committed: list[str] = field(default_factory=list)
    rolled_back: list[str] = field(default_factory=list)
    errors: list[ParticipantError] = field(default_factory=list)
    # commits that landed while another participant's commit failed
    partially_committed: list[str] = field(default_factory=list)

    def add_error(self, participant: str, error: BaseException | str, kind: ParticipantFailure) -> None:
        """Record a failure and mark the result unsuccessful."""
        self.errors.append(ParticipantError(participant=participant, message=str(error), kind=kind))
        self.success = False


@dataclass
class ConsistencyReport:
    """Result of a cross-engine consistency predicate."""

    is_consistent: bool
    duration: float
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ActiveTransaction:
    """Diagnostic view of an in-flight coordinated transaction."""

    id: str
    participants: list[str]
    elapsed: float
