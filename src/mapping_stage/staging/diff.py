"""Collect the pending local edits into a commit change-set.

The tree is walked top-down, tombstones included:

- ``deleted`` records contribute their original key (fields their id)
- ``updated`` records contribute their current values keyed by the
  original key
- ``added`` fields contribute a full row with every ancestor's current
  names and types

Services, databases and tables that are only ``added`` are not sent on
their own. The server creates them from the names carried by their added
fields.
"""

import logging

from mapping_stage.staging.models import (
    ChangeSet,
    DatabaseUpdate,
    FieldAddition,
    FieldUpdate,
    ServiceUpdate,
    TableUpdate,
)
from mapping_stage.store.base import EntityStore
from mapping_stage.store.models import (
    DatabaseRecord,
    EntityKind,
    EntityStatus,
    FieldRecord,
    ServiceRecord,
    TableRecord,
)

logger = logging.getLogger(__name__)


def _field_addition(
    service: ServiceRecord,
    database: DatabaseRecord,
    table: TableRecord,
    field: FieldRecord,
) -> FieldAddition:
    return FieldAddition(
        service_name=service.current_name,
        source_db_name=database.current_name,
        source_schema_name=database.source_schema,
        source_table_name=table.current_name,
        source_field_name=field.source_name,
        source_field_type=field.source_type,
        target_db_name=database.target_db_name,
        target_schema_name=database.target_schema,
        target_table_name=table.target_name,
        target_field_name=field.target_name,
        target_field_type=field.target_type,
        target_field_value=field.target_default_value,
        is_id=field.is_primary_key,
        row_num=field.row_order,
        source_db_type=database.source_db_type,
        target_db_type=service.target_db_type,
    )


def _collect_fields(
    changes: ChangeSet,
    service: ServiceRecord,
    database: DatabaseRecord,
    table: TableRecord,
    fields: list[FieldRecord],
) -> None:
    for field in fields:
        if field.status == EntityStatus.DELETED:
            changes.fields.deleted.append(field.id)
        elif field.status == EntityStatus.UPDATED:
            changes.fields.updated.append(
                FieldUpdate(
                    id=field.id,
                    source_field_name=field.source_name,
                    source_field_type=field.source_type,
                    target_field_name=field.target_name,
                    target_field_type=field.target_type,
                    target_field_value=field.target_default_value,
                    is_id=field.is_primary_key,
                    row_num=field.row_order,
                )
            )
        elif field.status == EntityStatus.ADDED:
            changes.fields.added.append(_field_addition(service, database, table, field))


async def collect_changes(store: EntityStore) -> ChangeSet:
    """Build the change-set for every pending edit in ``store``.

    A freshly hydrated store yields an empty change-set.
    """
    changes = ChangeSet()

    for service in await store.get_all(EntityKind.SERVICE, include_deleted=True):
        if service.status == EntityStatus.DELETED:
            changes.services.deleted.append(service.original_name)
        elif service.status == EntityStatus.UPDATED:
            changes.services.updated.append(
                ServiceUpdate(
                    service_name_original=service.original_name,
                    service_name=service.current_name,
                    target_db_type=service.target_db_type,
                )
            )

        for database in await store.get_children(
            EntityKind.DATABASE, service.id, include_deleted=True
        ):
            if database.status == EntityStatus.DELETED:
                changes.databases.deleted.append(database.original_name)
            elif database.status == EntityStatus.UPDATED:
                changes.databases.updated.append(
                    DatabaseUpdate(
                        source_db_name_original=database.original_name,
                        source_db_name=database.current_name,
                        source_schema_name=database.source_schema,
                        target_db_name=database.target_db_name,
                        target_schema_name=database.target_schema,
                        source_db_type=database.source_db_type,
                    )
                )

            for table in await store.get_children(
                EntityKind.TABLE, database.id, include_deleted=True
            ):
                if table.status == EntityStatus.DELETED:
                    changes.tables.deleted.append(table.original_name)
                elif table.status == EntityStatus.UPDATED:
                    changes.tables.updated.append(
                        TableUpdate(
                            source_table_name_original=table.original_name,
                            source_table_name=table.current_name,
                            target_table_name=table.target_name,
                        )
                    )

                fields = await store.get_children(
                    EntityKind.FIELD, table.id, include_deleted=True
                )
                _collect_fields(changes, service, database, table, fields)

    logger.debug(f"Collected {changes.change_count} change(s): {changes.summary()}")
    return changes
