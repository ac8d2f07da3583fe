"""Point-query interface to the remote record store.

Only single-statement operations are available: select with equality,
inclusion-list or case-insensitive pattern filters, update by id, and insert
of one row. Nothing here opens a transaction.
"""

from typing import Any
from uuid import UUID

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

import core.db as db
from dataview.fields import is_record_id


# SQLSTATE codes reported by the store
INVALID_TEXT_REPRESENTATION = "22P02"
DATATYPE_MISMATCH = "42804"


class StoreError(Exception):
    """A failed store operation, carrying the store's error code."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def is_column_type_mismatch(self) -> bool:
        """True when a list was written into a single-id column."""
        if self.code == DATATYPE_MISMATCH:
            return True
        return (
            self.code == INVALID_TEXT_REPRESENTATION
            and "invalid input syntax for type uuid" in self.message.lower()
        )


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so a term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class RecordStore:
    """Remote query interface consumed by the data view engine."""

    async def select(
        self,
        table: str,
        columns: list[str],
        *,
        eq: dict[str, Any] | None = None,
        in_: tuple[str, list[Any]] | None = None,
        ilike: tuple[str, str] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def update(self, table: str, record_id: str, values: dict[str, Any]) -> int:
        """Update columns of one record, returning the number of rows touched."""
        raise NotImplementedError

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# SQL Queries
# ---------------------------------------------------------------------------


def table_identifier(table: str) -> sql.Identifier:
    """Quote a possibly schema-qualified table name."""
    parts = [p for p in table.split(".") if p]
    if not parts or len(parts) > 2:
        raise StoreError(f"Invalid table name: {table!r}")
    return sql.Identifier(*parts)


def sql_select(
    table: str,
    columns: list[str],
    *,
    eq: dict[str, Any] | None = None,
    in_: tuple[str, list[Any]] | None = None,
    ilike: tuple[str, str] | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> tuple[sql.Composed, dict[str, Any]]:
    """Build a filtered SELECT over one table."""
    params: dict[str, Any] = {}
    conditions: list[sql.Composable] = []

    for i, (column, value) in enumerate((eq or {}).items()):
        if value is None:
            conditions.append(sql.SQL("{} IS NULL").format(sql.Identifier(column)))
            continue
        key = f"eq_{i}"
        params[key] = value
        conditions.append(
            sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder(key))
        )

    if in_ is not None:
        column, values = in_
        if not values:
            conditions.append(sql.SQL("FALSE"))
        else:
            placeholders = []
            for i, value in enumerate(values):
                key = f"in_{i}"
                params[key] = value
                placeholders.append(sql.Placeholder(key))
            conditions.append(
                sql.SQL("{} IN ({})").format(
                    sql.Identifier(column), sql.SQL(", ").join(placeholders)
                )
            )

    if ilike is not None:
        column, pattern = ilike
        params["ilike"] = pattern
        conditions.append(
            sql.SQL("{}::text ILIKE {}").format(
                sql.Identifier(column), sql.Placeholder("ilike")
            )
        )

    if columns == ["*"]:
        select_list: sql.Composable = sql.SQL("*")
    else:
        select_list = sql.SQL(", ").join(sql.Identifier(c) for c in columns)

    query = sql.SQL("SELECT {} FROM {}").format(select_list, table_identifier(table))
    if conditions:
        query += sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
    if order_by:
        query += sql.SQL(" ORDER BY {}").format(sql.Identifier(order_by))
    if limit is not None:
        params["limit"] = limit
        query += sql.SQL(" LIMIT {}").format(sql.Placeholder("limit"))
    if offset is not None:
        params["offset"] = offset
        query += sql.SQL(" OFFSET {}").format(sql.Placeholder("offset"))
    return query, params


def sql_update_by_id(table: str, columns: list[str]) -> sql.Composed:
    """Update columns of one row by id."""
    assignments = sql.SQL(", ").join(
        sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder(f"set_{i}"))
        for i, c in enumerate(columns)
    )
    return sql.SQL("UPDATE {} SET {} WHERE id = {}").format(
        table_identifier(table), assignments, sql.Placeholder("id")
    )


def sql_insert_row(table: str, columns: list[str]) -> sql.Composed:
    """Insert one row."""
    return sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
        table_identifier(table),
        sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        sql.SQL(", ").join(sql.Placeholder(f"val_{i}") for i in range(len(columns))),
    )


def adapt_value(value: Any) -> Any:
    """Prepare a Python value for a parameter slot."""
    if isinstance(value, dict):
        return Jsonb(value)
    if isinstance(value, list):
        # Id lists go out as uuid[]; other lists keep their element type
        if value and all(is_record_id(v) for v in value):
            return [UUID(v) for v in value]
        if any(isinstance(v, (dict, list)) for v in value):
            return Jsonb(value)
    return value


def to_plain(value: Any) -> Any:
    """Convert driver values back into plain JSON-like values."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, list):
        return [to_plain(v) for v in value]
    return value


class PostgresStore(RecordStore):
    """Record store over the shared psycopg connection pool."""

    async def select(self, table, columns, *, eq=None, in_=None, ilike=None,
                     order_by=None, limit=None, offset=None):
        query, params = sql_select(
            table, columns, eq=eq, in_=in_, ilike=ilike,
            order_by=order_by, limit=limit, offset=offset,
        )
        try:
            rows = await db.fetch_all(query, params)
        except psycopg.Error as e:
            raise StoreError(str(e), e.sqlstate) from e
        return [{k: to_plain(v) for k, v in row.items()} for row in rows]

    async def update(self, table, record_id, values):
        if not values:
            return 0
        columns = list(values)
        params: dict[str, Any] = {"id": record_id}
        for i, column in enumerate(columns):
            params[f"set_{i}"] = adapt_value(values[column])
        try:
            return await db.execute(sql_update_by_id(table, columns), params)
        except psycopg.Error as e:
            raise StoreError(str(e), e.sqlstate) from e

    async def insert(self, table, row):
        columns = list(row)
        params = {f"val_{i}": adapt_value(row[c]) for i, c in enumerate(columns)}
        try:
            inserted = await db.execute_returning(sql_insert_row(table, columns), params)
        except psycopg.Error as e:
            raise StoreError(str(e), e.sqlstate) from e
        if not inserted:
            raise StoreError(f"Insert into {table} returned no row")
        return {k: to_plain(v) for k, v in inserted.items()}
