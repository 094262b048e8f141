"""Connection lifecycle shared by the relational and document engine handles."""

import logging
from abc import ABC, abstractmethod

from .errors import ConnectionStateError
from .models import ConnectionState, EngineKind

logger = logging.getLogger(__name__)


class EngineHandle(ABC):
    """Base for engine handles with a four-state connection lifecycle.

    disconnected -> connecting -> connected -> disconnecting -> disconnected.
    Subclasses implement ``_open`` and ``_close``; the state bookkeeping,
    duplicate-connect warnings and failure reverts live here.
    """

    engine_kind: EngineKind
    engine_name: str = "engine"

    def __init__(self) -> None:
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    @abstractmethod
    def participant_id(self) -> str:
        """Stable identifier used in coordination results."""

    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._state is ConnectionState.CONNECTED

    def _require_connected(self) -> None:
        if not self.is_connected():
            raise ConnectionStateError(self.participant_id, self._state.value)

    @abstractmethod
    async def _open(self) -> None:
        """Establish the underlying client or pool."""

    @abstractmethod
    async def _close(self) -> None:
        """Tear down the underlying client or pool."""

    @abstractmethod
    def _abandon(self) -> None:
        """Drop references to the client after a failed open or close."""

    async def connect(self) -> None:
        """Connect to the database.

        Calling this while connecting, connected or disconnecting only logs a
        warning. A failure while connecting reverts the state to
        disconnected and propagates the error.
        """
        if self._state is not ConnectionState.DISCONNECTED:
            logger.warning(f"{self.engine_name} connection already in progress or established ({self._state.value})")
            return

        self._state = ConnectionState.CONNECTING
        try:
            await self._open()
        except Exception as e:
            self._abandon()
            self._state = ConnectionState.DISCONNECTED
            logger.error(f"Failed to connect to {self.engine_name}: {e}")
            raise

        self._state = ConnectionState.CONNECTED
        logger.info(f"Connected to {self.engine_name} database {self.participant_id}")

    async def disconnect(self) -> None:
        """Disconnect from the database. No-op when already disconnected."""
        if self._state is ConnectionState.DISCONNECTED:
            return
        if self._state is not ConnectionState.CONNECTED:
            logger.warning(f"{self.engine_name} disconnect requested while {self._state.value}")
            return

        self._state = ConnectionState.DISCONNECTING
        try:
            await self._close()
        except Exception as e:
            logger.error(f"Error disconnecting from {self.engine_name}: {e}")
            raise
        finally:
            self._abandon()
            self._state = ConnectionState.DISCONNECTED

        logger.info(f"Disconnected from {self.engine_name} database {self.participant_id}")

    async def cleanup(self) -> None:
        """Close all connections."""
        await self.disconnect()
