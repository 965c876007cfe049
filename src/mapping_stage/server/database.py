"""Mapping server backed by one flat SQL table.

``DatabaseMappingServer`` keeps one row per field, each carrying its
service, database and table names, in a table shaped like:

    id, service_name, target_db_type, source_db_name, source_db_type,
    source_schema_name, source_table_name, source_field_name,
    source_field_type, target_db_name, target_schema_name,
    target_table_name, target_field_name, target_field_type,
    target_field_value, is_id, row_num

A change-set is applied in one transaction, in this order:

1. Services: delete by name, then update
2. Databases: delete by name, then update
3. Tables: delete by name, then update
4. Fields: delete by id, update by id, then insert the added rows

Parents are matched by their original names, so renames issued earlier
in the same change-set are already visible to the later steps.
"""

import logging
from typing import Any

from mapping_stage.adapters.base import DatabaseClient
from mapping_stage.staging.models import ChangeSet

logger = logging.getLogger(__name__)


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY,
    service_name TEXT NOT NULL DEFAULT '',
    target_db_type TEXT NOT NULL DEFAULT '',
    source_db_name TEXT NOT NULL DEFAULT '',
    source_db_type TEXT NOT NULL DEFAULT '',
    source_schema_name TEXT NOT NULL DEFAULT '',
    source_table_name TEXT NOT NULL DEFAULT '',
    source_field_name TEXT NOT NULL DEFAULT '',
    source_field_type TEXT NOT NULL DEFAULT '',
    target_db_name TEXT NOT NULL DEFAULT '',
    target_schema_name TEXT NOT NULL DEFAULT '',
    target_table_name TEXT NOT NULL DEFAULT '',
    target_field_name TEXT NOT NULL DEFAULT '',
    target_field_type TEXT NOT NULL DEFAULT '',
    target_field_value TEXT NOT NULL DEFAULT '',
    is_id INTEGER NOT NULL DEFAULT 0,
    row_num INTEGER NOT NULL DEFAULT 0
)
"""


def _in_clause(values: list[Any], params: dict[str, Any]) -> str:
    names = []
    for i, value in enumerate(values):
        params[f"v{i}"] = value
        names.append(f":v{i}")
    return ", ".join(names)


class DatabaseMappingServer:
    """``MappingServer`` over a ``DatabaseClient``.

    Args:
        client: Client connected to the server database.
        table: Name of the flat mapping table.
    """

    def __init__(self, client: DatabaseClient, table: str = "dms_tables") -> None:
        self._client = client
        self._table = table

    @property
    def table(self) -> str:
        return self._table

    async def create_table(self) -> None:
        """Create the mapping table if it does not exist (fixtures, demos)."""
        await self._client.execute(_CREATE_TABLE.format(table=self._table))

    async def fetch_rows(self) -> list[dict[str, Any]]:
        rows = await self._client.select(self._table, "*", order_by="id")
        logger.debug(f"Fetched {len(rows)} mapping row(s) from {self._table}")
        return rows

    async def _delete_in(self, tx: DatabaseClient, column: str, values: list[Any]) -> None:
        if not values:
            return
        params: dict[str, Any] = {}
        await tx.execute(
            f"DELETE FROM {self._table} WHERE {column} IN ({_in_clause(values, params)})",
            params,
        )

    async def save_all(self, changes: ChangeSet) -> None:
        """Apply ``changes`` in a single transaction.

        Raises:
            Exception: Any database error; the transaction is rolled back.
        """
        t = self._table
        async with self._client.transaction() as tx:
            await self._delete_in(tx, "service_name", changes.services.deleted)
            for service in changes.services.updated:
                await tx.execute(
                    f"UPDATE {t} SET service_name = :name, target_db_type = :db_type "
                    "WHERE service_name = :original",
                    {
                        "name": service.service_name,
                        "db_type": service.target_db_type,
                        "original": service.service_name_original,
                    },
                )

            await self._delete_in(tx, "source_db_name", changes.databases.deleted)
            for database in changes.databases.updated:
                await tx.execute(
                    f"UPDATE {t} SET source_db_name = :source_db_name, "
                    "source_schema_name = :source_schema_name, "
                    "target_db_name = :target_db_name, "
                    "target_schema_name = :target_schema_name, "
                    "source_db_type = :source_db_type "
                    "WHERE source_db_name = :source_db_name_original",
                    database.model_dump(),
                )

            await self._delete_in(tx, "source_table_name", changes.tables.deleted)
            for table in changes.tables.updated:
                await tx.execute(
                    f"UPDATE {t} SET source_table_name = :source_table_name, "
                    "target_table_name = :target_table_name "
                    "WHERE source_table_name = :source_table_name_original",
                    table.model_dump(),
                )

            await self._delete_in(tx, "id", changes.fields.deleted)
            for field in changes.fields.updated:
                await tx.execute(
                    f"UPDATE {t} SET source_field_name = :source_field_name, "
                    "source_field_type = :source_field_type, "
                    "target_field_name = :target_field_name, "
                    "target_field_type = :target_field_type, "
                    "target_field_value = :target_field_value, "
                    "is_id = :is_id, row_num = :row_num "
                    "WHERE id = :id",
                    field.model_dump(),
                )

            for addition in changes.fields.added:
                await tx.insert(t, addition.model_dump())

        logger.info(f"Applied {changes.change_count} change(s) to {t}: {changes.summary()}")

    async def close(self) -> None:
        await self._client.close()
