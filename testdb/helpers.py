"""CRUD shortcuts for test bodies."""

from typing import Any

from .core_types.mongodb import MongoTestDB
from .core_types.postgres import PostgresTestDB
from .core_types.sql import (
    build_delete_statement,
    build_insert_statement,
    build_update_statement,
    build_where_clause,
    quote_identifier,
)


async def create_table(db: PostgresTestDB, table: str, schema: str) -> None:
    await db.execute(f"CREATE TABLE IF NOT EXISTS {quote_identifier(table)} {schema}")


async def drop_table(db: PostgresTestDB, table: str) -> None:
    await db.execute(f"DROP TABLE IF EXISTS {quote_identifier(table)} CASCADE")


async def insert_data(db: PostgresTestDB, table: str, rows: list[dict[str, Any]]) -> None:
    for row in rows:
        statement = build_insert_statement(table, row)
        await db.execute(statement.sql, *statement.values)


async def fetch_data(db: PostgresTestDB, table: str, where: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    clause = build_where_clause(where)
    rows = await db.query(f"SELECT * FROM {quote_identifier(table)}{clause.sql}", *clause.values)
    return [dict(row) for row in rows]


async def count_records(db: PostgresTestDB, table: str, where: dict[str, Any] | None = None) -> int:
    clause = build_where_clause(where)
    row = await db.fetch_one(f"SELECT COUNT(*) AS count FROM {quote_identifier(table)}{clause.sql}", *clause.values)
    return int(row["count"]) if row else 0


async def update_data(db: PostgresTestDB, table: str, updates: dict[str, Any], where: dict[str, Any]) -> None:
    statement = build_update_statement(table, updates, where)
    await db.execute(statement.sql, *statement.values)


async def delete_data(db: PostgresTestDB, table: str, where: dict[str, Any]) -> None:
    statement = build_delete_statement(table, where)
    await db.execute(statement.sql, *statement.values)


async def reset_sequence(db: PostgresTestDB, table: str, column: str = "id") -> None:
    """Restart the serial sequence behind ``table.column`` at 1."""
    await db.execute(f"ALTER SEQUENCE {quote_identifier(f'{table}_{column}_seq')} RESTART WITH 1")


async def insert_documents(db: MongoTestDB, collection: str, documents: list[dict[str, Any]]) -> None:
    if documents:
        await db.collection(collection).insert_many([dict(document) for document in documents])


async def find_documents(
    db: MongoTestDB, collection: str, query: dict[str, Any] | None = None
) -> list[dict[str, Any]]:
    return await db.collection(collection).find(query or {}).to_list(length=None)


async def count_documents(db: MongoTestDB, collection: str, query: dict[str, Any] | None = None) -> int:
    return await db.collection(collection).count_documents(query or {})


async def clear_collection(db: MongoTestDB, collection: str) -> None:
    await db.collection(collection).delete_many({})
