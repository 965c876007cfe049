"""Hydration: rebuild the local tree from a flat server row-set.

Hydration is destructive and total. The store is cleared first, then the
rows are grouped level by level:

1. Services by ``(service_name, target_db_type)``
2. Databases by ``source_db_name`` within a service
3. Tables by ``(source_schema_name, source_table_name)`` within a database
4. One field per row, keeping the server's field id

Every record is written with ``status = unchanged``.

Rows are reduced best-effort: a row that does not parse, or that repeats
a field id already seen, is dropped with a warning instead of aborting
the load.
"""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from mapping_stage.staging.models import HydrationSummary, SourceRow
from mapping_stage.store.base import EntityStore
from mapping_stage.store.models import (
    DatabaseRecord,
    EntityStatus,
    FieldRecord,
    ServiceRecord,
    TableRecord,
)

logger = logging.getLogger(__name__)

ServiceKey = tuple[str, str]
TableKey = tuple[str, str]


def _parse_rows(rows: Iterable[dict[str, Any]]) -> tuple[list[SourceRow], int]:
    """Parse raw rows, dropping malformed ones and repeated field ids."""
    parsed: list[SourceRow] = []
    seen_ids: set[int] = set()
    dropped = 0

    for index, raw in enumerate(rows):
        try:
            row = SourceRow.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Dropping row {index}: {e.error_count()} invalid column(s)")
            dropped += 1
            continue
        if row.id in seen_ids:
            logger.warning(f"Dropping row {index}: duplicate field id {row.id}")
            dropped += 1
            continue
        seen_ids.add(row.id)
        parsed.append(row)

    return parsed, dropped


def _group_rows(
    rows: list[SourceRow],
) -> dict[ServiceKey, dict[str, dict[TableKey, list[SourceRow]]]]:
    """Nest rows as service -> database -> table, keeping first-seen order."""
    tree: dict[ServiceKey, dict[str, dict[TableKey, list[SourceRow]]]] = {}
    for row in rows:
        databases = tree.setdefault((row.service_name, row.target_db_type), {})
        tables = databases.setdefault(row.source_db_name, {})
        tables.setdefault((row.source_schema_name, row.source_table_name), []).append(row)
    return tree


async def hydrate(store: EntityStore, rows: Iterable[dict[str, Any]]) -> HydrationSummary:
    """Replace the whole store content with the hierarchy built from ``rows``.

    Args:
        store: Entity store to rebuild.
        rows: Flat server rows, one per field.

    Returns:
        HydrationSummary with the number of records written per level and
        the number of rows dropped.
    """
    parsed, dropped = _parse_rows(rows)
    tree = _group_rows(parsed)
    summary = HydrationSummary(dropped_rows=dropped)

    await store.clear()

    for (service_name, target_db_type), databases in tree.items():
        service_id = await store.add(
            ServiceRecord(
                original_name=service_name,
                current_name=service_name,
                target_db_type=target_db_type,
                database_count=sum(1 for name in databases if name.strip()),
                status=EntityStatus.UNCHANGED,
            )
        )
        summary.services += 1

        for db_name, tables in databases.items():
            first = next(iter(tables.values()))[0]
            database_id = await store.add(
                DatabaseRecord(
                    service_id=service_id,
                    original_name=db_name,
                    current_name=db_name,
                    source_schema=first.source_schema_name,
                    target_db_name=first.target_db_name,
                    target_schema=first.target_schema_name,
                    source_db_type=first.source_db_type,
                    table_count=len(tables),
                    status=EntityStatus.UNCHANGED,
                )
            )
            summary.databases += 1

            for (_schema, table_name), table_rows in tables.items():
                table_id = await store.add(
                    TableRecord(
                        database_id=database_id,
                        original_name=table_name,
                        current_name=table_name,
                        target_name=table_rows[0].target_table_name,
                        field_count=len(table_rows),
                        status=EntityStatus.UNCHANGED,
                    )
                )
                summary.tables += 1

                for row in table_rows:
                    await store.add(
                        FieldRecord(
                            id=row.id,
                            table_id=table_id,
                            source_name=row.source_field_name,
                            source_type=row.source_field_type,
                            target_name=row.target_field_name,
                            target_type=row.target_field_type,
                            target_default_value=row.target_field_value,
                            is_primary_key=row.is_id,
                            row_order=row.row_num,
                            status=EntityStatus.UNCHANGED,
                        )
                    )
                    summary.fields += 1

    if dropped:
        logger.warning(f"Hydration dropped {dropped} row(s)")
    logger.info(
        f"Hydrated {summary.services} services, {summary.databases} databases, "
        f"{summary.tables} tables, {summary.fields} fields"
    )
    return summary
