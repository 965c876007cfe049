"""Add, update, delete and reorder operations for the four entity kinds.

Every mutator takes the store handle explicitly. Adds and updates are
validated before anything is written; a failed check raises
``MappingValidationError`` carrying every violation.

Delete cascades run children before parent:

- Fields below a deleted table are always purged physically, tombstones
  included. The server drops them together with their table.
- Tables, databases and services are purged when ``added`` and
  tombstoned otherwise, each decided on its own status.

A cascade is a sequence of single-record writes and is not rolled back
if one of them fails. The failure is logged and raised as
``CascadeError`` listing the writes already applied.
"""

import logging
from typing import Any, Literal

from mapping_stage.errors import CascadeError, EntityNotFoundError, MappingValidationError
from mapping_stage.staging.status import (
    has_pending_change,
    is_purged_on_delete,
    status_after_update,
)
from mapping_stage.staging.validator import (
    check_database,
    check_field,
    check_service,
    check_table,
)
from mapping_stage.store.base import EntityStore
from mapping_stage.store.models import (
    RECORD_TYPES,
    BaseRecord,
    DatabaseRecord,
    EntityKind,
    EntityStatus,
    FieldRecord,
    ServiceRecord,
    TableRecord,
)

logger = logging.getLogger(__name__)

# Keys a caller may pass but that never reach the store through an update
_PROTECTED_KEYS = frozenset(
    {
        "id",
        "status",
        "original_name",
        "service_id",
        "database_id",
        "table_id",
        "database_count",
        "table_count",
        "field_count",
    }
)


async def _require(
    store: EntityStore, kind: EntityKind, entity_id: int | None
) -> BaseRecord:
    record = await store.get(kind, entity_id) if entity_id is not None else None
    if record is None:
        raise EntityNotFoundError(kind, entity_id)
    return record


def _merge_changes(kind: EntityKind, changes: dict[str, Any]) -> dict:
    """Filter ``changes`` down to editable attributes that actually apply.

    Raises:
        ValueError: If a key is neither editable nor a protected attribute.
    """
    editable = RECORD_TYPES[kind].editable
    unknown = sorted(set(changes) - editable - _PROTECTED_KEYS)
    if unknown:
        raise ValueError(f"Unknown {kind} attribute(s): {', '.join(unknown)}")
    return {k: v for k, v in changes.items() if k in editable}


def _raise_if(errors: list[str]) -> None:
    if errors:
        raise MappingValidationError(errors)


# ============================================================================
# Add
# ============================================================================


async def add_service(
    store: EntityStore, current_name: str, target_db_type: str = ""
) -> ServiceRecord:
    _raise_if(await check_service(store, current_name, target_db_type))
    record = ServiceRecord(
        original_name=current_name,
        current_name=current_name,
        target_db_type=target_db_type,
        status=EntityStatus.ADDED,
    )
    record.id = await store.add(record)
    logger.debug(f"Added service {record.id} ({current_name})")
    return record


async def add_database(
    store: EntityStore,
    service_id: int,
    current_name: str,
    source_schema: str = "",
    target_db_name: str = "",
    target_schema: str = "",
    source_db_type: str = "",
) -> DatabaseRecord:
    await _require(store, EntityKind.SERVICE, service_id)
    _raise_if(await check_database(store, service_id, current_name))
    record = DatabaseRecord(
        service_id=service_id,
        original_name=current_name,
        current_name=current_name,
        source_schema=source_schema,
        target_db_name=target_db_name,
        target_schema=target_schema,
        source_db_type=source_db_type,
        status=EntityStatus.ADDED,
    )
    record.id = await store.add(record)
    logger.debug(f"Added database {record.id} ({current_name}) to service {service_id}")
    return record


async def add_table(
    store: EntityStore, database_id: int, current_name: str, target_name: str = ""
) -> TableRecord:
    await _require(store, EntityKind.DATABASE, database_id)
    _raise_if(await check_table(store, database_id, current_name))
    record = TableRecord(
        database_id=database_id,
        original_name=current_name,
        current_name=current_name,
        target_name=target_name,
        status=EntityStatus.ADDED,
    )
    record.id = await store.add(record)
    logger.debug(f"Added table {record.id} ({current_name}) to database {database_id}")
    return record


async def _next_row_order(store: EntityStore, table_id: int) -> int:
    fields = await store.get_children(EntityKind.FIELD, table_id)
    return max((f.row_order for f in fields), default=0) + 1


async def add_field(
    store: EntityStore,
    table_id: int,
    source_name: str,
    source_type: str = "",
    target_name: str = "",
    target_type: str = "",
    target_default_value: str = "",
    is_primary_key: int = 0,
    row_order: int | None = None,
) -> FieldRecord:
    """Add a field to a table.

    ``row_order`` defaults to one past the highest order among the table's
    non-deleted fields. The store assigns the field id.
    """
    await _require(store, EntityKind.TABLE, table_id)
    _raise_if(await check_field(store, table_id, source_name, is_primary_key))
    if row_order is None:
        row_order = await _next_row_order(store, table_id)
    record = FieldRecord(
        table_id=table_id,
        source_name=source_name,
        source_type=source_type,
        target_name=target_name,
        target_type=target_type,
        target_default_value=target_default_value,
        is_primary_key=is_primary_key,
        row_order=row_order,
        status=EntityStatus.ADDED,
    )
    record.id = await store.add(record)
    logger.debug(f"Added field {record.id} ({source_name}) to table {table_id}")
    return record


# ============================================================================
# Update
# ============================================================================


async def _apply_update(
    store: EntityStore, current: BaseRecord, data: dict[str, Any]
) -> BaseRecord:
    data["status"] = status_after_update(current.status)
    updated = await store.update(current.kind, current.id, data)
    logger.debug(f"Updated {current.kind} {current.id} -> {updated.status}")
    return updated


async def update_service(
    store: EntityStore, service_id: int, changes: dict[str, Any]
) -> ServiceRecord:
    """Merge ``changes`` into a service.

    ``original_name`` is never touched, so the commit can still find the
    server record after a rename.
    """
    current = await _require(store, EntityKind.SERVICE, service_id)
    data = _merge_changes(EntityKind.SERVICE, changes)
    merged = current.model_copy(update=data)
    _raise_if(
        await check_service(
            store, merged.current_name, merged.target_db_type, exclude_id=service_id
        )
    )
    return await _apply_update(store, current, data)


async def update_database(
    store: EntityStore, database_id: int, changes: dict[str, Any]
) -> DatabaseRecord:
    current = await _require(store, EntityKind.DATABASE, database_id)
    data = _merge_changes(EntityKind.DATABASE, changes)
    merged = current.model_copy(update=data)
    _raise_if(
        await check_database(
            store, current.service_id, merged.current_name, exclude_id=database_id
        )
    )
    return await _apply_update(store, current, data)


async def update_table(
    store: EntityStore, table_id: int, changes: dict[str, Any]
) -> TableRecord:
    current = await _require(store, EntityKind.TABLE, table_id)
    data = _merge_changes(EntityKind.TABLE, changes)
    merged = current.model_copy(update=data)
    _raise_if(
        await check_table(store, current.database_id, merged.current_name, exclude_id=table_id)
    )
    return await _apply_update(store, current, data)


async def update_field(
    store: EntityStore, field_id: int, changes: dict[str, Any]
) -> FieldRecord:
    current = await _require(store, EntityKind.FIELD, field_id)
    data = _merge_changes(EntityKind.FIELD, changes)
    merged = current.model_copy(update=data)
    _raise_if(
        await check_field(
            store,
            current.table_id,
            merged.source_name,
            merged.is_primary_key,
            exclude_id=field_id,
        )
    )
    return await _apply_update(store, current, data)


# ============================================================================
# Delete
# ============================================================================


async def _retire(store: EntityStore, record: BaseRecord, completed: list[str]) -> None:
    """Purge an ``added`` record, tombstone any other."""
    if is_purged_on_delete(record.status):
        await store.hard_delete(record.kind, record.id)
        completed.append(f"purged {record.kind} {record.id}")
    elif not record.is_deleted:
        await store.update(record.kind, record.id, {"status": EntityStatus.DELETED})
        completed.append(f"tombstoned {record.kind} {record.id}")


async def _purge_fields(store: EntityStore, table_id: int, completed: list[str]) -> None:
    for field in await store.get_children(EntityKind.FIELD, table_id, include_deleted=True):
        await store.hard_delete(EntityKind.FIELD, field.id)
        completed.append(f"purged field {field.id}")


async def _cascade_table(store: EntityStore, table: BaseRecord, completed: list[str]) -> None:
    await _purge_fields(store, table.id, completed)
    await _retire(store, table, completed)


async def _cascade_database(
    store: EntityStore, database: BaseRecord, completed: list[str]
) -> None:
    for table in await store.get_children(EntityKind.TABLE, database.id, include_deleted=True):
        await _cascade_table(store, table, completed)
    await _retire(store, database, completed)


async def _cascade_service(
    store: EntityStore, service: BaseRecord, completed: list[str]
) -> None:
    for database in await store.get_children(
        EntityKind.DATABASE, service.id, include_deleted=True
    ):
        await _cascade_database(store, database, completed)
    await _retire(store, service, completed)


_CASCADES = {
    EntityKind.SERVICE: _cascade_service,
    EntityKind.DATABASE: _cascade_database,
    EntityKind.TABLE: _cascade_table,
}


async def _delete_with_cascade(store: EntityStore, kind: EntityKind, entity_id: int) -> list[str]:
    record = await _require(store, kind, entity_id)
    completed: list[str] = []
    try:
        await _CASCADES[kind](store, record, completed)
    except Exception as e:
        logger.error(
            f"Cascading delete of {kind} {entity_id} stopped after "
            f"{len(completed)} step(s): {e}"
        )
        raise CascadeError(kind, entity_id, completed, e) from e
    logger.debug(f"Deleted {kind} {entity_id} ({len(completed)} step(s))")
    return completed


async def delete_service(store: EntityStore, service_id: int) -> list[str]:
    """Delete a service with all its databases, tables and fields.

    Returns:
        The writes applied, in order, e.g. ``["purged field 3", ...]``.

    Raises:
        EntityNotFoundError: If the service is absent or already deleted.
        CascadeError: If a write fails partway through.
    """
    return await _delete_with_cascade(store, EntityKind.SERVICE, service_id)


async def delete_database(store: EntityStore, database_id: int) -> list[str]:
    return await _delete_with_cascade(store, EntityKind.DATABASE, database_id)


async def delete_table(store: EntityStore, table_id: int) -> list[str]:
    return await _delete_with_cascade(store, EntityKind.TABLE, table_id)


async def delete_field(store: EntityStore, field_id: int) -> list[str]:
    field = await _require(store, EntityKind.FIELD, field_id)
    completed: list[str] = []
    await _retire(store, field, completed)
    logger.debug(f"Deleted field {field_id}")
    return completed


# ============================================================================
# Reorder and import
# ============================================================================


async def move_field(
    store: EntityStore, field_id: int, direction: Literal["up", "down"]
) -> list[FieldRecord]:
    """Swap a field with its neighbour among the table's non-deleted fields.

    Row orders are renumbered densely from 1. Every field whose
    ``row_order`` changed is persisted immediately; ``unchanged`` ones
    become ``updated``. Moving past either end is a no-op.

    Returns:
        The fields that were rewritten.
    """
    if direction not in ("up", "down"):
        raise ValueError(f"Invalid direction: {direction}")

    field = await _require(store, EntityKind.FIELD, field_id)
    siblings = await store.get_children(EntityKind.FIELD, field.table_id)
    index = next(i for i, f in enumerate(siblings) if f.id == field_id)
    target = index - 1 if direction == "up" else index + 1
    if target < 0 or target >= len(siblings):
        return []

    siblings[index], siblings[target] = siblings[target], siblings[index]

    changed: list[FieldRecord] = []
    for position, sibling in enumerate(siblings, start=1):
        if sibling.row_order == position:
            continue
        data: dict[str, Any] = {"row_order": position}
        if not has_pending_change(sibling.status):
            data["status"] = EntityStatus.UPDATED
        changed.append(await store.update(EntityKind.FIELD, sibling.id, data))

    logger.debug(f"Moved field {field_id} {direction}, rewrote {len(changed)} field(s)")
    return changed


async def import_fields(
    store: EntityStore, table_id: int, fields: list[dict[str, Any]]
) -> list[FieldRecord]:
    """Apply parsed column definitions to a table.

    Each entry is keyed by ``source_name``. Existing non-deleted fields
    with that name are updated, the rest are added after the current last
    field. The batch is validated as a whole before any write.

    Args:
        store: Entity store.
        table_id: Table receiving the columns.
        fields: Column definitions using field attribute names, e.g.
            ``{"source_name": "id", "source_type": "int", "is_primary_key": 1}``.

    Returns:
        The updated and added fields, in input order.

    Raises:
        EntityNotFoundError: If the table is absent or deleted.
        ValueError: If an entry carries an unknown attribute.
        MappingValidationError: If the resulting field set breaks a rule.
    """
    await _require(store, EntityKind.TABLE, table_id)
    existing: dict[str, FieldRecord] = {
        f.source_name: f for f in await store.get_children(EntityKind.FIELD, table_id)
    }

    errors: list[str] = []
    planned: list[tuple[FieldRecord | None, dict[str, Any]]] = []
    seen: set[str] = set()
    for position, entry in enumerate(fields, start=1):
        name = entry.get("source_name") or ""
        if not isinstance(name, str):
            errors.append(f"Column {position}: source field name must be text, got {name!r}")
            continue
        if not name.strip():
            errors.append(f"Column {position}: source field name is required")
            continue
        if name in seen:
            errors.append(f'Column "{name}" appears more than once')
            continue
        seen.add(name)
        if entry.get("is_primary_key", 0) not in (0, 1):
            errors.append(
                f'Column "{name}": is_primary_key must be 0 or 1, '
                f"got {entry['is_primary_key']}"
            )
            continue
        current = existing.get(name)
        data = _merge_changes(EntityKind.FIELD, entry)
        planned.append((current, data))

    # Primary keys after the import: untouched fields plus the batch
    key_names = {n for n, f in existing.items() if n not in seen and f.is_primary_key == 1}
    for current, data in planned:
        flag = data.get("is_primary_key", current.is_primary_key if current else 0)
        if flag == 1:
            key_names.add(data["source_name"])
    if len(key_names) > 1:
        errors.append(
            f"Only one field can be marked as primary key per table "
            f"({', '.join(sorted(key_names))})"
        )
    _raise_if(errors)

    next_order = await _next_row_order(store, table_id)
    result: list[FieldRecord] = []
    for current, data in planned:
        if current is not None:
            result.append(await _apply_update(store, current, data))
            continue
        data.setdefault("row_order", next_order)
        next_order = max(next_order, data["row_order"]) + 1
        record = FieldRecord(table_id=table_id, status=EntityStatus.ADDED, **data)
        record.id = await store.add(record)
        result.append(record)

    logger.info(f"Imported {len(result)} column(s) into table {table_id}")
    return result
