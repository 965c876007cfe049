"""Local entity store: records, protocol and the SQL implementation.

Usage:
    from mapping_stage.store import SQLEntityStore, EntityKind, ServiceRecord
"""

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
from mapping_stage.store.sql_store import SQLEntityStore

__all__ = [
    "EntityStore",
    "SQLEntityStore",
    "EntityKind",
    "EntityStatus",
    "BaseRecord",
    "ServiceRecord",
    "DatabaseRecord",
    "TableRecord",
    "FieldRecord",
    "RECORD_TYPES",
]
