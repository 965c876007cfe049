"""Structural validation of the staged tree.

Two levels:

- Per-edit checks (``check_*``) run before a mutator writes anything.
  They look at required values and sibling uniqueness, excluding the
  record being edited.
- ``validate_before_commit`` walks every non-deleted entity and
  additionally requires non-empty levels and exactly one primary key per
  table.

Both return every violation found, never just the first.
"""

import logging
from collections import Counter

from mapping_stage.staging.models import ValidationResult
from mapping_stage.store.base import EntityStore
from mapping_stage.store.models import (
    DatabaseRecord,
    EntityKind,
    FieldRecord,
    ServiceRecord,
    TableRecord,
)

logger = logging.getLogger(__name__)


def _blank(value: str | None) -> bool:
    return value is None or value.strip() == ""


# ============================================================================
# Per-edit checks
# ============================================================================


async def check_service(
    store: EntityStore,
    current_name: str,
    target_db_type: str,
    exclude_id: int | None = None,
) -> list[str]:
    errors: list[str] = []
    if _blank(current_name):
        errors.append("Service name is required")
    if _blank(target_db_type):
        errors.append("Target DB type is required")
    if errors:
        return errors

    for service in await store.get_all(EntityKind.SERVICE):
        if service.id == exclude_id:
            continue
        if (
            service.current_name == current_name
            and service.target_db_type == target_db_type
        ):
            errors.append(
                f'Service with name "{current_name}" and type "{target_db_type}" '
                "already exists"
            )
            break
    return errors


async def check_database(
    store: EntityStore,
    service_id: int | None,
    current_name: str,
    exclude_id: int | None = None,
) -> list[str]:
    errors: list[str] = []
    if _blank(current_name):
        errors.append("Source database name is required")
    if not service_id:
        errors.append("Service ID is required")
    if errors:
        return errors

    for database in await store.get_children(EntityKind.DATABASE, service_id):
        if database.id != exclude_id and database.current_name == current_name:
            errors.append(
                f'Database with name "{current_name}" already exists for this service'
            )
            break
    return errors


async def check_table(
    store: EntityStore,
    database_id: int | None,
    current_name: str,
    exclude_id: int | None = None,
) -> list[str]:
    errors: list[str] = []
    if _blank(current_name):
        errors.append("Source table name is required")
    if not database_id:
        errors.append("Database ID is required")
    if errors:
        return errors

    for table in await store.get_children(EntityKind.TABLE, database_id):
        if table.id != exclude_id and table.current_name == current_name:
            errors.append(
                f'Table with name "{current_name}" already exists for this database'
            )
            break
    return errors


async def check_field(
    store: EntityStore,
    table_id: int | None,
    source_name: str,
    is_primary_key: int,
    exclude_id: int | None = None,
) -> list[str]:
    """Check a field against its non-deleted siblings.

    At most one field per table may carry ``is_primary_key = 1``.
    """
    errors: list[str] = []
    if _blank(source_name):
        errors.append("Source field name is required")
    if not table_id:
        errors.append("Table ID is required")
    if is_primary_key not in (0, 1):
        errors.append(f"is_primary_key must be 0 or 1, got {is_primary_key}")
    if not table_id:
        return errors

    siblings = [
        f for f in await store.get_children(EntityKind.FIELD, table_id) if f.id != exclude_id
    ]
    if source_name and any(f.source_name == source_name for f in siblings):
        errors.append(f'Field with name "{source_name}" already exists in this table')
    if is_primary_key == 1 and any(f.is_primary_key == 1 for f in siblings):
        errors.append("Only one field can be marked as primary key per table")
    return errors


# ============================================================================
# Pre-commit validation
# ============================================================================


def _duplicates(names: list[str]) -> list[str]:
    return [name for name, count in Counter(names).items() if count > 1]


def _check_fields(
    fields: list[FieldRecord], table: TableRecord, where: str, errors: list[str]
) -> None:
    label = f'Table "{table.current_name}" {where}'

    if not fields:
        errors.append(f"{label} has no fields. Each table must have at least one field.")
        return

    for field in fields:
        if _blank(field.source_name):
            errors.append(f"{label} has field {field.id} with no source name")
    for name in _duplicates([f.source_name for f in fields if not _blank(f.source_name)]):
        errors.append(f'{label} has more than one field named "{name}"')

    id_fields = [f for f in fields if f.is_primary_key == 1]
    if not id_fields:
        errors.append(
            f"{label} has no field marked as primary key. "
            "Each table must have exactly one primary key field."
        )
    elif len(id_fields) > 1:
        names = ", ".join(f.source_name for f in id_fields)
        errors.append(
            f"{label} has {len(id_fields)} fields marked as primary key ({names}). "
            "Each table must have exactly one primary key field."
        )


async def validate_before_commit(store: EntityStore) -> ValidationResult:
    """Validate the whole non-deleted tree before it is sent to the server.

    Checks, for every non-deleted entity:
    1. Required names are present and unique among siblings
    2. Each service has at least one database
    3. Each database has at least one table
    4. Each table has at least one field and exactly one primary key

    Args:
        store: Entity store to validate.

    Returns:
        ValidationResult carrying every violation found.
    """
    errors: list[str] = []

    services: list[ServiceRecord] = await store.get_all(EntityKind.SERVICE)
    for key in _duplicates([f"{s.current_name}::{s.target_db_type}" for s in services]):
        name, db_type = key.split("::", 1)
        errors.append(f'Service "{name}" ({db_type}) is defined more than once')

    for service in services:
        if _blank(service.current_name):
            errors.append(f"Service {service.id} has no name")

        databases: list[DatabaseRecord] = await store.get_children(
            EntityKind.DATABASE, service.id
        )
        if not databases:
            errors.append(
                f'Service "{service.current_name}" ({service.target_db_type}) has no '
                "databases. Each service must have at least one database."
            )
            continue
        for name in _duplicates([d.current_name for d in databases]):
            errors.append(
                f'Service "{service.current_name}" has more than one database named "{name}"'
            )

        for database in databases:
            if _blank(database.current_name):
                errors.append(
                    f'Database {database.id} in service "{service.current_name}" has no name'
                )
            tables: list[TableRecord] = await store.get_children(
                EntityKind.TABLE, database.id
            )
            if not tables:
                errors.append(
                    f'Database "{database.current_name}" in service '
                    f'"{service.current_name}" has no tables. '
                    "Each database must have at least one table."
                )
                continue
            for name in _duplicates([t.current_name for t in tables]):
                errors.append(
                    f'Database "{database.current_name}" in service '
                    f'"{service.current_name}" has more than one table named "{name}"'
                )

            where = (
                f'in database "{database.current_name}" '
                f'(service "{service.current_name}")'
            )
            for table in tables:
                if _blank(table.current_name):
                    errors.append(f"Table {table.id} {where} has no name")
                fields = await store.get_children(EntityKind.FIELD, table.id)
                _check_fields(fields, table, where, errors)

    if errors:
        logger.info(f"Pre-commit validation found {len(errors)} problem(s)")
    return ValidationResult(valid=not errors, errors=errors)
