"""Async SQL database adapter.

Provides ``AsyncSQLAdapter``, an async implementation of the
``DatabaseClient`` protocol using SQLAlchemy's async engine.  SQLite URLs
run on the ``aiosqlite`` driver (the local staging store); PostgreSQL URLs
run on ``asyncpg`` (install the ``postgres`` extra).

Usage:
    from mapping_stage.adapters.sql import AsyncSQLAdapter

    adapter = AsyncSQLAdapter("sqlite:///stage.db")
    rows = await adapter.select("stage_services", "id, current_name")
    await adapter.close()
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine


def normalize_url(database_url: str) -> str:
    """Rewrite a plain database URL to its async-driver form.

    - ``sqlite://`` -> ``sqlite+aiosqlite://``
    - ``postgres://`` -> ``postgresql://`` (Heroku, Railway, Supabase alias)
    - ``postgresql://`` -> ``postgresql+asyncpg://``

    URLs that already name a driver are returned unchanged.

    Example:
        >>> normalize_url("sqlite:///stage.db")
        'sqlite+aiosqlite:///stage.db'
        >>> normalize_url("postgres://u:p@host/db")
        'postgresql+asyncpg://u:p@host/db'
    """
    url = database_url
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://"):]
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def create_async_engine_for(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async SQLAlchemy engine suited to the URL's backend.

    SQLite engines use the driver's default pool.  Server databases get
    pooled connections:

    - ``pool_size=5``, ``max_overflow=10``
    - ``pool_pre_ping=True``: Validate connections before checkout.
    - ``pool_recycle=300``: Recycle connections every 5 minutes.

    Args:
        database_url: Normalized URL (see ``normalize_url``).
        **kwargs: Additional keyword arguments forwarded to
            ``create_async_engine``; they override the defaults.
    """
    defaults: dict[str, Any] = {"echo": False}
    if not database_url.startswith("sqlite"):
        defaults.update(
            {
                "pool_size": 5,
                "max_overflow": 10,
                "pool_pre_ping": True,
                "pool_recycle": 300,
            }
        )
    merged = {**defaults, **kwargs}

    return create_async_engine(database_url, **merged)


def _serialize_value(value: Any) -> Any:
    """Convert driver result values to JSON-compatible types."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _serialize_row(row: dict) -> dict:
    return {k: _serialize_value(v) for k, v in row.items()}


def _where(filters: dict[str, Any], prefix: str, params: dict[str, Any]) -> str:
    """Build an AND-joined WHERE body, registering named parameters."""
    parts: list[str] = []
    for i, (k, v) in enumerate(filters.items()):
        param_name = f"{prefix}_{i}"
        parts.append(f"{k} = :{param_name}")
        params[param_name] = v
    return " AND ".join(parts)


class _BoundClient:
    """``DatabaseClient`` operations running on one open connection."""

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        params: dict[str, Any] = {}
        where_clause = f" WHERE {_where(filters, 'p', params)}" if filters else ""
        order_clause = f" ORDER BY {order_by}" if order_by else ""

        query = text(f"SELECT {columns} FROM {table}{where_clause}{order_clause}")
        result = await self._conn.execute(query, params)
        col_names = list(result.keys())
        return [_serialize_row(dict(zip(col_names, row))) for row in result.fetchall()]

    async def insert(self, table: str, data: dict) -> dict:
        # Keys starting with "_" are caller metadata, never columns
        clean_data = {k: v for k, v in data.items() if not k.startswith("_")}
        columns = list(clean_data.keys())
        placeholders = [f":{col}" for col in columns]

        query = text(
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)}) RETURNING *"
        )
        result = await self._conn.execute(query, clean_data)
        row = result.fetchone()
        col_names = list(result.keys())
        return _serialize_row(dict(zip(col_names, row)))

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        params: dict[str, Any] = {}
        set_parts: list[str] = []
        for i, (k, v) in enumerate(data.items()):
            param_name = f"set_{i}"
            set_parts.append(f"{k} = :{param_name}")
            params[param_name] = v

        where_clause = _where(filters, "where", params)
        query = text(
            f"UPDATE {table} SET {', '.join(set_parts)} "
            f"WHERE {where_clause} RETURNING *"
        )
        result = await self._conn.execute(query, params)
        row = result.fetchone()
        if row is None:
            raise ValueError(f"No rows matched filters: {filters}")
        col_names = list(result.keys())
        return _serialize_row(dict(zip(col_names, row)))

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        params: dict[str, Any] = {}
        where_clause = _where(filters, "p", params)
        await self._conn.execute(text(f"DELETE FROM {table} WHERE {where_clause}"), params)

    async def execute(self, sql: str, params: dict | None = None) -> None:
        await self._conn.execute(text(sql), params or {})

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["_BoundClient"]:
        # Already inside a transaction; nested blocks share it
        yield self

    async def close(self) -> None:
        """Connection lifetime belongs to the owning adapter."""


class AsyncSQLAdapter:
    """Async SQLAlchemy implementation of the ``DatabaseClient`` protocol.

    Each CRUD call runs in its own short transaction (``engine.begin()``),
    so a single write either fully succeeds or fully fails.  Use
    ``transaction()`` to group several statements atomically.

    Args:
        database_url: Connection URL.  Plain ``sqlite://``, ``postgres://``
            and ``postgresql://`` schemes are normalized to their async
            drivers automatically.
        **engine_kwargs: Additional keyword arguments forwarded to
            ``create_async_engine_for``.

    Example:
        adapter = AsyncSQLAdapter("sqlite:///stage.db")
        row = await adapter.insert("stage_services", {"current_name": "billing"})
        await adapter.close()
    """

    def __init__(self, database_url: str, **engine_kwargs: Any) -> None:
        self._url = normalize_url(database_url)
        self._engine: AsyncEngine = create_async_engine_for(self._url, **engine_kwargs)

    @property
    def url(self) -> str:
        """Normalized connection URL."""
        return self._url

    # ------------------------------------------------------------------
    # CRUD Methods
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Select rows from table using raw SQL."""
        async with self._engine.connect() as conn:
            return await _BoundClient(conn).select(table, columns, filters, order_by)

    async def insert(self, table: str, data: dict) -> dict:
        """Insert row and return created row with all fields."""
        async with self._engine.begin() as conn:
            return await _BoundClient(conn).insert(table, data)

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        """Update rows and return first updated row."""
        async with self._engine.begin() as conn:
            return await _BoundClient(conn).update(table, data, filters)

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete rows from table."""
        async with self._engine.begin() as conn:
            await _BoundClient(conn).delete(table, filters)

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Execute a raw SQL statement (DDL or other non-query operations).

        Example:
            await adapter.execute(
                "CREATE INDEX IF NOT EXISTS idx_fields_table ON stage_fields (table_id)"
            )
        """
        async with self._engine.begin() as conn:
            await conn.execute(text(sql), params or {})

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_BoundClient]:
        """Yield a client whose statements share one transaction."""
        async with self._engine.begin() as conn:
            yield _BoundClient(conn)

    async def close(self) -> None:
        """Close the async engine and dispose of the connection pool."""
        if self._engine:
            await self._engine.dispose()
