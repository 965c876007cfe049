"""Pydantic models for the four staged entity kinds.

The hierarchy is strict: service -> source database -> table -> field.
Each record carries the id assigned by the local store, the id of its
parent, its own attributes and a change-tracking ``status``.

Services, databases and tables keep an ``original_name``: the name last
known to the server.  It never changes between hydrations and is what the
commit payload uses to find the server record after a local rename.
"""

from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class EntityKind(StrEnum):
    """The four collections of the entity store."""

    SERVICE = "service"
    DATABASE = "database"
    TABLE = "table"
    FIELD = "field"


class EntityStatus(StrEnum):
    """Pending local change for one entity."""

    UNCHANGED = "unchanged"
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


# ============================================================================
# Records
# ============================================================================


class BaseRecord(BaseModel):
    """Common shape of a stored entity."""

    model_config = ConfigDict(validate_assignment=True)

    kind: ClassVar[EntityKind]
    table_name: ClassVar[str]
    parent_field: ClassVar[str | None] = None
    # Attributes a caller may change through an update
    editable: ClassVar[frozenset[str]] = frozenset()

    id: int | None = None
    status: EntityStatus = EntityStatus.UNCHANGED

    @property
    def parent_id(self) -> int | None:
        """Id of the owning record, ``None`` for services."""
        if self.parent_field is None:
            return None
        return getattr(self, self.parent_field)

    @property
    def is_deleted(self) -> bool:
        return self.status == EntityStatus.DELETED

    def to_row(self) -> dict:
        """Column values for the store, without ``id`` when unassigned."""
        row = self.model_dump(mode="json")
        if row["id"] is None:
            del row["id"]
        return row


class ServiceRecord(BaseRecord):
    """A service: the top level, unique by (current_name, target_db_type)."""

    kind: ClassVar[EntityKind] = EntityKind.SERVICE
    table_name: ClassVar[str] = "stage_services"
    editable: ClassVar[frozenset[str]] = frozenset({"current_name", "target_db_type"})

    original_name: str
    current_name: str
    target_db_type: str = ""
    database_count: int = 0


class DatabaseRecord(BaseRecord):
    """A source database inside a service."""

    kind: ClassVar[EntityKind] = EntityKind.DATABASE
    table_name: ClassVar[str] = "stage_databases"
    parent_field: ClassVar[str | None] = "service_id"
    editable: ClassVar[frozenset[str]] = frozenset(
        {
            "current_name",
            "source_schema",
            "target_db_name",
            "target_schema",
            "source_db_type",
        }
    )

    service_id: int
    original_name: str
    current_name: str
    source_schema: str = ""
    target_db_name: str = ""
    target_schema: str = ""
    source_db_type: str = ""
    table_count: int = 0


class TableRecord(BaseRecord):
    """A source table inside a database."""

    kind: ClassVar[EntityKind] = EntityKind.TABLE
    table_name: ClassVar[str] = "stage_tables"
    parent_field: ClassVar[str | None] = "database_id"
    editable: ClassVar[frozenset[str]] = frozenset({"current_name", "target_name"})

    database_id: int
    original_name: str
    current_name: str
    target_name: str = ""
    field_count: int = 0


class FieldRecord(BaseRecord):
    """A field mapping inside a table.

    Field ids come from the server when hydrated and from the store when
    added locally.
    """

    kind: ClassVar[EntityKind] = EntityKind.FIELD
    table_name: ClassVar[str] = "stage_fields"
    parent_field: ClassVar[str | None] = "table_id"
    editable: ClassVar[frozenset[str]] = frozenset(
        {
            "source_name",
            "source_type",
            "target_name",
            "target_type",
            "target_default_value",
            "is_primary_key",
            "row_order",
        }
    )

    table_id: int
    source_name: str
    source_type: str = ""
    target_name: str = ""
    target_type: str = ""
    target_default_value: str = ""
    is_primary_key: int = 0
    row_order: int = 0


RECORD_TYPES: dict[EntityKind, type[BaseRecord]] = {
    EntityKind.SERVICE: ServiceRecord,
    EntityKind.DATABASE: DatabaseRecord,
    EntityKind.TABLE: TableRecord,
    EntityKind.FIELD: FieldRecord,
}
