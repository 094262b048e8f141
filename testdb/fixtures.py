"""Seed fixtures for the test engines."""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from .core_types.mongodb import MongoTestDB
from .core_types.postgres import PostgresTestDB
from .utils.telemetry import span

logger = structlog.get_logger(__name__)

_STATEMENT_SEPARATOR = re.compile(r";\s*\n")


@dataclass
class MongoFixture:
    """Documents to insert into one collection."""

    collection: str
    documents: list[dict[str, Any]] = field(default_factory=list)


def split_sql_statements(sql: str) -> list[str]:
    """Split a fixture file on semicolons that end a line."""
    return [statement.strip() for statement in _STATEMENT_SEPARATOR.split(sql) if statement.strip()]


async def apply_sql_fixtures(
    db: PostgresTestDB,
    fixture_paths: list[str | Path],
    stop_on_error: bool = False,
) -> int:
    """Run every statement from each SQL fixture file in order.

    Args:
        db: Connected handle
        fixture_paths: SQL files to apply
        stop_on_error: Re-raise the first failing statement instead of logging it

    Returns:
        Number of statements applied successfully
    """
    applied = 0
    for fixture_path in fixture_paths:
        path = Path(fixture_path).resolve()
        statements = split_sql_statements(path.read_text(encoding="utf-8"))

        for statement in statements:
            try:
                async with span("postgres.fixture.apply", fixture=str(path)):
                    await db.execute(statement)
                applied += 1
            except Exception as e:
                logger.error("Failed to apply SQL fixture", fixture=str(path), error=str(e))
                if stop_on_error:
                    raise

    return applied


async def apply_mongo_fixtures(db: MongoTestDB, fixtures: list[MongoFixture]) -> None:
    for fixture in fixtures:
        if not fixture.documents:
            continue
        async with span("mongodb.fixture.apply", collection=fixture.collection):
            await db.collection(fixture.collection).insert_many([dict(document) for document in fixture.documents])


async def snapshot_table_schema(db: PostgresTestDB, table: str) -> list[dict[str, Any]]:
    """Column definitions of ``table`` in ordinal order."""
    rows = await db.query(
        """
        SELECT column_name, data_type, is_nullable, column_default
        FROM information_schema.columns
        WHERE table_name = $1
        ORDER BY ordinal_position
        """,
        table,
    )
    return [dict(row) for row in rows]
