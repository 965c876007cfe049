"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that the local entity store and the
reference mapping server are written against.  All methods are
``async def`` -- callers must ``await`` every operation and issue them one
at a time.

Usage:
    from mapping_stage.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.select("stage_fields", "*", filters={"table_id": 3})
        await client.insert("stage_fields", {"table_id": 3, "source_name": "id"})
        async with client.transaction() as tx:
            await tx.delete("stage_fields", {"table_id": 3})
        await client.close()
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    Every write is a single statement that either fully succeeds or fully
    fails.  Multi-statement atomicity is only available through
    ``transaction()``.
    """

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name.
            columns: Comma-separated column names (e.g., ``"id, current_name"``).
            filters: Optional dict of field=value filters (all must match via AND).
            order_by: Optional column name to sort by.

        Returns:
            List of dicts, one per row.  Empty list if no matches.
        """
        ...

    async def insert(self, table: str, data: dict) -> dict:
        """Insert row into table and return the created row.

        Args:
            table: Table name.
            data: Dict of field=value pairs to insert.

        Returns:
            Dict representing the created row (includes the assigned id).

        Raises:
            Exception: If duplicate key or constraint violation.
        """
        ...

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        """Update rows in table and return the first updated row.

        Raises:
            ValueError: If no rows match filters.
        """
        ...

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete rows from table matching all filters."""
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Execute a raw SQL statement (DDL or other non-query operations)."""
        ...

    def transaction(self) -> AbstractAsyncContextManager["DatabaseClient"]:
        """Open a transaction and yield a client bound to it.

        The transaction commits when the block exits normally and rolls
        back when it raises.

        Example:
            async with client.transaction() as tx:
                await tx.delete("dms_tables", {"service_name": "billing"})
                await tx.insert("dms_tables", row)
        """
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources."""
        ...
