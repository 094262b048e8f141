"""Shared test utilities for the multi-engine test database suite.

Hand-written fakes for the asyncpg and motor objects the harness drives, so
unit tests can assert on the exact calls made without running servers.
"""

from .database_helpers import (
    FakeConnection,
    FakeDocumentHandle,
    FakeMotorClient,
    FakeMotorCollection,
    FakeMotorDatabase,
    FakeMotorSession,
    FakePool,
    FakeRelationalHandle,
    FakeTransaction,
)
from .async_helpers import failing, recording

__all__ = [
    "FakeConnection",
    "FakeDocumentHandle",
    "FakeMotorClient",
    "FakeMotorCollection",
    "FakeMotorDatabase",
    "FakeMotorSession",
    "FakePool",
    "FakeRelationalHandle",
    "FakeTransaction",
    "failing",
    "recording",
]
