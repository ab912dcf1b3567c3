"""Data Access Gateway.

Row-level select/insert/update/delete/upsert against named tables with
equality (``match``) and inclusion (``in_``) filters, plus limit/offset
paging. Everything above this module talks to storage only through
``DataGateway`` so it can be swapped for an in-memory implementation in tests.

Usage:
    gateway = PostgresGateway(pool)
    rows = await gateway.select("tabs", "id", in_=("project_id", project_ids))
    await gateway.upsert("task_tag_links", links, on_conflict="task_id,tag_id")
"""

import abc
import asyncio
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

import asyncpg

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

PRIMARY_KEY_SQL = (
    "SELECT a.attname FROM pg_index i "
    "JOIN pg_attribute a ON a.attrelid = i.indrelid AND a.attnum = ANY(i.indkey) "
    "WHERE i.indrelid = $1::regclass AND i.indisprimary "
    "ORDER BY array_position(i.indkey::int2[], a.attnum)"
)

Row = Dict[str, Any]
InFilter = Tuple[str, Sequence[Any]]


class GatewayError(Exception):
    """Raised when a data access operation fails."""


def quote_ident(name: str) -> str:
    """Validate and double-quote a table or column name."""
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name):
        raise GatewayError(f"Invalid identifier: {name!r}")
    return f'"{name}"'


def split_columns(columns: str) -> List[str]:
    """Split a comma separated column list ("task_id,tag_id")."""
    return [c.strip() for c in columns.split(",") if c.strip()]


class _Params:
    """Collects positional query arguments and hands out $n placeholders."""

    def __init__(self):
        self.values: List[Any] = []

    def add(self, value: Any) -> str:
        self.values.append(value)
        return f"${len(self.values)}"


def _where_clause(
    params: _Params,
    match: Optional[Mapping[str, Any]],
    in_: Optional[InFilter],
    qualifier: Optional[str] = None,
) -> str:
    prefix = f"{quote_ident(qualifier)}." if qualifier else ""
    clauses = []
    for column, value in (match or {}).items():
        col = prefix + quote_ident(column)
        if value is None:
            clauses.append(f"{col} IS NULL")
        else:
            clauses.append(f"{col} = {params.add(value)}")
    if in_ is not None:
        column, values = in_
        clauses.append(f"{prefix}{quote_ident(column)} = ANY({params.add(list(values))})")
    if not clauses:
        return ""
    return " WHERE " + " AND ".join(clauses)


def _row_columns(rows: Sequence[Mapping[str, Any]]) -> List[str]:
    columns: List[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


def build_select(
    table: str,
    columns: str = "*",
    match: Optional[Mapping[str, Any]] = None,
    in_: Optional[InFilter] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[str, List[Any]]:
    params = _Params()
    if columns.strip() == "*":
        column_sql = "*"
    else:
        column_sql = ", ".join(quote_ident(c) for c in split_columns(columns))
    sql = f"SELECT {column_sql} FROM {quote_ident(table)}"
    sql += _where_clause(params, match, in_)
    if order_by:
        sql += f" ORDER BY {quote_ident(order_by)} {'DESC' if descending else 'ASC'}"
    if limit is not None:
        sql += f" LIMIT {params.add(int(limit))}"
    if offset:
        sql += f" OFFSET {params.add(int(offset))}"
    return sql, params.values


def build_insert(
    table: str,
    rows: Sequence[Mapping[str, Any]],
    on_conflict: Optional[str] = None,
    ignore_duplicates: bool = False,
    upsert: bool = False,
) -> Tuple[str, List[Any]]:
    """Build an INSERT (or upsert) that lets Postgres coerce JSON values.

    Rows are sent as a single jsonb array and expanded with
    jsonb_populate_recordset, so ISO dates and UUID strings land in typed
    columns without per-column casts.
    """
    params = _Params()
    table_sql = quote_ident(table)
    columns = _row_columns(rows)
    if not columns:
        raise GatewayError(f"No columns to write into {table}")
    column_sql = ", ".join(quote_ident(c) for c in columns)
    sql = (
        f"INSERT INTO {table_sql} ({column_sql}) "
        f"SELECT {column_sql} FROM jsonb_populate_recordset(NULL::{table_sql}, {params.add(list(rows))}::jsonb)"
    )
    if upsert:
        if not on_conflict:
            raise GatewayError(f"Upsert into {table} needs conflict columns")
        conflict_columns = split_columns(on_conflict)
        conflict_sql = ", ".join(quote_ident(c) for c in conflict_columns)
        update_columns = [c for c in columns if c not in conflict_columns]
        if ignore_duplicates or not update_columns:
            sql += f" ON CONFLICT ({conflict_sql}) DO NOTHING"
        else:
            assignments = ", ".join(
                f"{quote_ident(c)} = EXCLUDED.{quote_ident(c)}" for c in update_columns
            )
            sql += f" ON CONFLICT ({conflict_sql}) DO UPDATE SET {assignments}"
    sql += " RETURNING *"
    return sql, params.values


def build_update(
    table: str,
    values: Mapping[str, Any],
    match: Optional[Mapping[str, Any]] = None,
    in_: Optional[InFilter] = None,
) -> Tuple[str, List[Any]]:
    if not values:
        raise GatewayError(f"No values to update in {table}")
    params = _Params()
    table_sql = quote_ident(table)
    source = params.add(dict(values))
    assignments = ", ".join(f"{quote_ident(c)} = src.{quote_ident(c)}" for c in values)
    sql = (
        f"UPDATE {table_sql} SET {assignments} "
        f"FROM jsonb_populate_record(NULL::{table_sql}, {source}::jsonb) AS src"
    )
    where = _where_clause(params, match, in_, qualifier=table)
    if not where:
        raise GatewayError(f"Refusing to update {table} without a filter")
    sql += where + f" RETURNING {table_sql}.*"
    return sql, params.values


def build_delete(
    table: str,
    match: Optional[Mapping[str, Any]] = None,
    in_: Optional[InFilter] = None,
) -> Tuple[str, List[Any]]:
    params = _Params()
    where = _where_clause(params, match, in_)
    if not where:
        raise GatewayError(f"Refusing to delete from {table} without a filter")
    return f"DELETE FROM {quote_ident(table)}{where} RETURNING *", params.values


def record_to_dict(record: Mapping[str, Any]) -> Row:
    return {key: str(value) if isinstance(value, UUID) else value for key, value in record.items()}


class DataGateway(abc.ABC):
    """Row-level access to the workspace tables."""

    @abc.abstractmethod
    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        match: Optional[Mapping[str, Any]] = None,
        in_: Optional[InFilter] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        ...

    @abc.abstractmethod
    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Row]:
        ...

    @abc.abstractmethod
    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        match: Optional[Mapping[str, Any]] = None,
        in_: Optional[InFilter] = None,
    ) -> List[Row]:
        ...

    @abc.abstractmethod
    async def delete(
        self,
        table: str,
        *,
        match: Optional[Mapping[str, Any]] = None,
        in_: Optional[InFilter] = None,
    ) -> List[Row]:
        ...

    @abc.abstractmethod
    async def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        on_conflict: Optional[str] = None,
        ignore_duplicates: bool = False,
    ) -> List[Row]:
        ...

    async def select_one(self, table: str, columns: str = "*", **filters) -> Optional[Row]:
        """Return the first matching row or None."""
        rows = await self.select(table, columns, limit=1, **filters)
        return rows[0] if rows else None


class PostgresGateway(DataGateway):
    """DataGateway backed by an asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool
        self._primary_keys: Dict[str, str] = {}

    async def _fetch(self, sql: str, args: Iterable[Any]) -> List[Row]:
        logger.debug("SQL: %s", sql)
        try:
            async with self.pool.acquire() as conn:
                records = await conn.fetch(sql, *args)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            raise GatewayError(str(e)) from e
        return [record_to_dict(r) for r in records]

    async def primary_key(self, table: str) -> str:
        """Primary key columns of a table ("task_id,tag_id"), looked up once."""
        if table not in self._primary_keys:
            rows = await self._fetch(PRIMARY_KEY_SQL, [quote_ident(table)])
            if not rows:
                raise GatewayError(f"Table {table} has no primary key")
            self._primary_keys[table] = ",".join(r["attname"] for r in rows)
        return self._primary_keys[table]

    async def select(
        self,
        table,
        columns="*",
        *,
        match=None,
        in_=None,
        order_by=None,
        descending=False,
        limit=None,
        offset=None,
    ):
        sql, args = build_select(table, columns, match, in_, order_by, descending, limit, offset)
        return await self._fetch(sql, args)

    async def insert(self, table, rows):
        if not rows:
            return []
        sql, args = build_insert(table, rows)
        return await self._fetch(sql, args)

    async def update(self, table, values, *, match=None, in_=None):
        sql, args = build_update(table, values, match, in_)
        return await self._fetch(sql, args)

    async def delete(self, table, *, match=None, in_=None):
        sql, args = build_delete(table, match, in_)
        return await self._fetch(sql, args)

    async def upsert(self, table, rows, *, on_conflict=None, ignore_duplicates=False):
        if not rows:
            return []
        if not on_conflict:
            on_conflict = await self.primary_key(table)
        sql, args = build_insert(
            table, rows, on_conflict=on_conflict, ignore_duplicates=ignore_duplicates, upsert=True
        )
        return await self._fetch(sql, args)
