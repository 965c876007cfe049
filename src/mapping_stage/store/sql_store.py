"""SQL-backed entity store.

Persists the four staged collections as tables in any ``DatabaseClient``
(normally a local SQLite file through ``AsyncSQLAdapter``).  Each child
table carries an index on its parent id, and fields also on ``row_order``,
so cascading reads never scan a whole collection.

Usage:
    from mapping_stage.adapters.sql import AsyncSQLAdapter
    from mapping_stage.store.sql_store import SQLEntityStore

    store = SQLEntityStore(AsyncSQLAdapter("sqlite:///stage.db"))
    await store.initialize()
    services = await store.get_all(EntityKind.SERVICE)
"""

import logging
from typing import Any

from mapping_stage.adapters.base import DatabaseClient
from mapping_stage.errors import EntityNotFoundError
from mapping_stage.store.models import (
    RECORD_TYPES,
    BaseRecord,
    EntityKind,
    EntityStatus,
)

logger = logging.getLogger(__name__)


_DDL: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS stage_services (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        original_name TEXT NOT NULL,
        current_name TEXT NOT NULL,
        target_db_type TEXT NOT NULL DEFAULT '',
        database_count INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stage_databases (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        service_id INTEGER NOT NULL,
        original_name TEXT NOT NULL,
        current_name TEXT NOT NULL,
        source_schema TEXT NOT NULL DEFAULT '',
        target_db_name TEXT NOT NULL DEFAULT '',
        target_schema TEXT NOT NULL DEFAULT '',
        source_db_type TEXT NOT NULL DEFAULT '',
        table_count INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stage_tables (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        database_id INTEGER NOT NULL,
        original_name TEXT NOT NULL,
        current_name TEXT NOT NULL,
        target_name TEXT NOT NULL DEFAULT '',
        field_count INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL
    )
    """,
    # Field ids are server-assigned when hydrated, so no AUTOINCREMENT:
    # locally added fields take max(id) + 1
    """
    CREATE TABLE IF NOT EXISTS stage_fields (
        id INTEGER PRIMARY KEY,
        table_id INTEGER NOT NULL,
        source_name TEXT NOT NULL,
        source_type TEXT NOT NULL DEFAULT '',
        target_name TEXT NOT NULL DEFAULT '',
        target_type TEXT NOT NULL DEFAULT '',
        target_default_value TEXT NOT NULL DEFAULT '',
        is_primary_key INTEGER NOT NULL DEFAULT 0,
        row_order INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_stage_databases_service ON stage_databases (service_id)",
    "CREATE INDEX IF NOT EXISTS idx_stage_tables_database ON stage_tables (database_id)",
    "CREATE INDEX IF NOT EXISTS idx_stage_fields_table ON stage_fields (table_id)",
    "CREATE INDEX IF NOT EXISTS idx_stage_fields_row_order ON stage_fields (row_order)",
]


class SQLEntityStore:
    """``EntityStore`` implementation over a ``DatabaseClient``.

    Args:
        client: Database client holding the staged tables.  The store owns
            it from here on and closes it in ``close()``.
    """

    def __init__(self, client: DatabaseClient) -> None:
        self._client = client

    async def initialize(self) -> None:
        for statement in _DDL:
            await self._client.execute(statement)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def _to_records(
        kind: EntityKind, rows: list[dict], include_deleted: bool
    ) -> list[BaseRecord]:
        model = RECORD_TYPES[kind]
        records = [model.model_validate(row) for row in rows]
        if include_deleted:
            return records
        return [r for r in records if r.status != EntityStatus.DELETED]

    async def get(
        self, kind: EntityKind, entity_id: int, include_deleted: bool = False
    ) -> BaseRecord | None:
        model = RECORD_TYPES[kind]
        rows = await self._client.select(model.table_name, "*", filters={"id": entity_id})
        records = self._to_records(kind, rows, include_deleted)
        return records[0] if records else None

    async def get_all(
        self, kind: EntityKind, include_deleted: bool = False
    ) -> list[BaseRecord]:
        model = RECORD_TYPES[kind]
        rows = await self._client.select(model.table_name, "*", order_by="id")
        return self._to_records(kind, rows, include_deleted)

    async def get_children(
        self, kind: EntityKind, parent_id: int, include_deleted: bool = False
    ) -> list[BaseRecord]:
        model = RECORD_TYPES[kind]
        if model.parent_field is None:
            raise ValueError(f"{kind} records have no parent")
        order_by = "row_order, id" if kind == EntityKind.FIELD else "id"
        rows = await self._client.select(
            model.table_name,
            "*",
            filters={model.parent_field: parent_id},
            order_by=order_by,
        )
        return self._to_records(kind, rows, include_deleted)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(self, record: BaseRecord) -> int:
        row = await self._client.insert(record.table_name, record.to_row())
        logger.debug(f"Stored {record.kind} {row['id']} ({record.status})")
        return row["id"]

    async def update(
        self, kind: EntityKind, entity_id: int, partial: dict[str, Any]
    ) -> BaseRecord:
        model = RECORD_TYPES[kind]
        data = {
            k: (v.value if isinstance(v, EntityStatus) else v)
            for k, v in partial.items()
            if k != "id"
        }
        if not data:
            current = await self.get(kind, entity_id, include_deleted=True)
            if current is None:
                raise EntityNotFoundError(kind, entity_id)
            return current
        try:
            row = await self._client.update(model.table_name, data, {"id": entity_id})
        except ValueError as e:
            raise EntityNotFoundError(kind, entity_id) from e
        return model.model_validate(row)

    async def hard_delete(self, kind: EntityKind, entity_id: int) -> None:
        await self._client.delete(RECORD_TYPES[kind].table_name, {"id": entity_id})
        logger.debug(f"Purged {kind} {entity_id}")

    async def clear(self) -> None:
        async with self._client.transaction() as tx:
            for model in RECORD_TYPES.values():
                await tx.execute(f"DELETE FROM {model.table_name}")

    async def close(self) -> None:
        await self._client.close()
