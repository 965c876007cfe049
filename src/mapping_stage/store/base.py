"""Entity store protocol.

The staging engine talks to the local store only through this interface.
A store handle is passed explicitly to every hydration, mutator, validator
and diff call, so several isolated stores can live side by side.

All reads skip ``deleted`` tombstones unless ``include_deleted=True``.
All writes are single-record operations; the caller awaits each one before
issuing the next.
"""

from typing import Any, Protocol

from mapping_stage.store.models import BaseRecord, EntityKind


class EntityStore(Protocol):
    """Keyed, parent-indexed storage for the four entity collections."""

    async def initialize(self) -> None:
        """Create collections and indexes if they do not exist yet."""
        ...

    async def get(
        self, kind: EntityKind, entity_id: int, include_deleted: bool = False
    ) -> BaseRecord | None:
        """Fetch one record by id, ``None`` when absent (or tombstoned)."""
        ...

    async def get_all(
        self, kind: EntityKind, include_deleted: bool = False
    ) -> list[BaseRecord]:
        """Fetch every record of a kind, in id order."""
        ...

    async def get_children(
        self, kind: EntityKind, parent_id: int, include_deleted: bool = False
    ) -> list[BaseRecord]:
        """Fetch the records of ``kind`` owned by ``parent_id``.

        Fields come back ordered by ``row_order``; other kinds by id.
        """
        ...

    async def add(self, record: BaseRecord) -> int:
        """Insert a record and return its id.

        A record whose ``id`` is already set keeps it (hydrated fields).
        """
        ...

    async def update(
        self, kind: EntityKind, entity_id: int, partial: dict[str, Any]
    ) -> BaseRecord:
        """Merge ``partial`` into a record and return the stored result.

        Raises:
            EntityNotFoundError: If no record has this id, tombstones included.
        """
        ...

    async def hard_delete(self, kind: EntityKind, entity_id: int) -> None:
        """Physically remove one record."""
        ...

    async def clear(self) -> None:
        """Remove every record from all four collections."""
        ...

    async def close(self) -> None:
        """Release the underlying connection."""
        ...
