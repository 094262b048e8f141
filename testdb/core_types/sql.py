"""Parameterised SQL statement builders using asyncpg ``$n`` placeholders."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SqlStatement:
    """SQL text plus its positional parameters."""

    sql: str
    values: list[Any] = field(default_factory=list)


def quote_identifier(name: str) -> str:
    """Quote a table or column name for PostgreSQL."""
    return '"' + name.replace('"', '""') + '"'


def quote_identifiers(names: list[str]) -> str:
    return ", ".join(quote_identifier(name) for name in names)


def build_where_clause(where: dict[str, Any] | None, start_index: int = 1) -> SqlStatement:
    """Build an ``AND``-joined equality filter.

    Args:
        where: Column to value mapping; empty or None yields no clause
        start_index: Number of the first placeholder

    Returns:
        Statement whose ``sql`` is either empty or starts with `` WHERE``
    """
    if not where:
        return SqlStatement("")

    conditions = [f"{quote_identifier(column)} = ${start_index + index}" for index, column in enumerate(where)]
    return SqlStatement(f" WHERE {' AND '.join(conditions)}", list(where.values()))


def build_insert_statement(table: str, row: dict[str, Any]) -> SqlStatement:
    columns = list(row)
    placeholders = ", ".join(f"${index + 1}" for index in range(len(columns)))
    return SqlStatement(
        f"INSERT INTO {quote_identifier(table)} ({quote_identifiers(columns)}) VALUES ({placeholders})",
        [row[column] for column in columns],
    )


def build_update_statement(table: str, updates: dict[str, Any], where: dict[str, Any]) -> SqlStatement:
    if not updates:
        raise ValueError("updates must not be empty")

    assignments = ", ".join(f"{quote_identifier(column)} = ${index + 1}" for index, column in enumerate(updates))
    where_clause = build_where_clause(where, start_index=len(updates) + 1)
    return SqlStatement(
        f"UPDATE {quote_identifier(table)} SET {assignments}{where_clause.sql}",
        [*updates.values(), *where_clause.values],
    )


def build_delete_statement(table: str, where: dict[str, Any]) -> SqlStatement:
    where_clause = build_where_clause(where)
    return SqlStatement(f"DELETE FROM {quote_identifier(table)}{where_clause.sql}", where_clause.values)
