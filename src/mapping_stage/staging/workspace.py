"""Staging workspace: the commit/revert protocol around one store.

``StagingWorkspace`` ties an entity store to the mapping server. It
loads the tree, exposes listing views and editing methods, and runs the
commit protocol:

    idle -> validating -> collecting -> sending -> reconciling -> idle

- Invalid trees return to idle with every violation; nothing is sent.
- An empty change-set returns to idle without contacting the server.
- A server failure returns to idle with the error text; local edits stay.
- An accepted commit reloads the whole tree from the server.

``revert()`` performs the same reload unconditionally, discarding every
local edit. Confirmation is the caller's job.

Usage:
    workspace = StagingWorkspace(store, server)
    await workspace.load()
    await workspace.add_field(table_id, "email", source_type="varchar")
    result = await workspace.commit()
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Literal, TypeVar

from mapping_stage.errors import EntityNotFoundError, StageBusyError
from mapping_stage.staging import mutators
from mapping_stage.staging.diff import collect_changes
from mapping_stage.staging.hydration import hydrate
from mapping_stage.staging.models import (
    ChangeSet,
    CommitResult,
    CommitState,
    HydrationSummary,
    TableContext,
    ValidationResult,
)
from mapping_stage.staging.validator import validate_before_commit
from mapping_stage.store.base import EntityStore
from mapping_stage.store.models import (
    DatabaseRecord,
    EntityKind,
    FieldRecord,
    ServiceRecord,
    TableRecord,
)

if TYPE_CHECKING:
    from mapping_stage.server.base import MappingServer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StagingWorkspace:
    """Offline-editable copy of the server's mapping tree.

    Args:
        store: Initialized entity store. The workspace never closes it.
        server: Mapping server to load from and commit to.

    Attributes:
        state: Current ``CommitState``.
        loading: True while the store is being rebuilt (load, revert or
            the reconcile step of a commit). Edits raise
            ``StageBusyError`` meanwhile.
    """

    def __init__(self, store: EntityStore, server: "MappingServer") -> None:
        self.store = store
        self.server = server
        self.state = CommitState.IDLE
        self.loading = False

    # ------------------------------------------------------------------
    # Load / revert
    # ------------------------------------------------------------------

    async def _reload(self) -> HydrationSummary:
        self.loading = True
        try:
            rows = await self.server.fetch_rows()
            return await hydrate(self.store, rows)
        finally:
            self.loading = False

    async def load(self) -> HydrationSummary:
        """Replace the local tree with the server's current rows."""
        self._ensure_idle()
        return await self._reload()

    async def revert(self) -> HydrationSummary:
        """Discard every local edit and reload from the server."""
        self._ensure_idle()
        changes = await collect_changes(self.store)
        if not changes.is_empty:
            logger.warning(f"Reverting {changes.change_count} pending change(s)")
        return await self._reload()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    async def validate(self) -> ValidationResult:
        return await validate_before_commit(self.store)

    async def pending_changes(self) -> ChangeSet:
        return await collect_changes(self.store)

    async def has_changes(self) -> bool:
        return not (await collect_changes(self.store)).is_empty

    async def services(self) -> list[ServiceRecord]:
        """Non-deleted services with ``database_count`` from live children."""
        result = []
        for service in await self.store.get_all(EntityKind.SERVICE):
            children = await self.store.get_children(EntityKind.DATABASE, service.id)
            result.append(service.model_copy(update={"database_count": len(children)}))
        return result

    async def databases(self, service_id: int) -> list[DatabaseRecord]:
        result = []
        for database in await self.store.get_children(EntityKind.DATABASE, service_id):
            children = await self.store.get_children(EntityKind.TABLE, database.id)
            result.append(database.model_copy(update={"table_count": len(children)}))
        return result

    async def tables(self, database_id: int) -> list[TableRecord]:
        result = []
        for table in await self.store.get_children(EntityKind.TABLE, database_id):
            children = await self.store.get_children(EntityKind.FIELD, table.id)
            result.append(table.model_copy(update={"field_count": len(children)}))
        return result

    async def fields(self, table_id: int) -> list[FieldRecord]:
        """Non-deleted fields of a table, in ``row_order``."""
        return await self.store.get_children(EntityKind.FIELD, table_id)

    async def table_context(self, table_id: int) -> TableContext:
        """Resolve a table's ancestry through the parent ids.

        Raises:
            EntityNotFoundError: If the table or one of its ancestors is
                absent or deleted.
        """
        table = await self.store.get(EntityKind.TABLE, table_id)
        if table is None:
            raise EntityNotFoundError(EntityKind.TABLE, table_id)
        database = await self.store.get(EntityKind.DATABASE, table.database_id)
        if database is None:
            raise EntityNotFoundError(EntityKind.DATABASE, table.database_id)
        service = await self.store.get(EntityKind.SERVICE, database.service_id)
        if service is None:
            raise EntityNotFoundError(EntityKind.SERVICE, database.service_id)

        return TableContext(
            service_name=service.current_name,
            target_db_type=service.target_db_type,
            source_db_name=database.current_name,
            source_schema=database.source_schema,
            target_db_name=database.target_db_name,
            target_schema=database.target_schema,
            source_db_type=database.source_db_type,
            table_name=table.current_name,
            target_table_name=table.target_name,
        )

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        if self.loading or self.state != CommitState.IDLE:
            raise StageBusyError(
                f"Workspace is busy ({'loading' if self.loading else self.state}); "
                "editing is disabled"
            )

    async def _edit(self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        self._ensure_idle()
        return await operation(self.store, *args, **kwargs)

    async def add_service(self, current_name: str, target_db_type: str = "") -> ServiceRecord:
        return await self._edit(mutators.add_service, current_name, target_db_type)

    async def add_database(
        self, service_id: int, current_name: str, **attrs: Any
    ) -> DatabaseRecord:
        return await self._edit(mutators.add_database, service_id, current_name, **attrs)

    async def add_table(self, database_id: int, current_name: str, **attrs: Any) -> TableRecord:
        return await self._edit(mutators.add_table, database_id, current_name, **attrs)

    async def add_field(self, table_id: int, source_name: str, **attrs: Any) -> FieldRecord:
        return await self._edit(mutators.add_field, table_id, source_name, **attrs)

    async def update_service(self, service_id: int, changes: dict[str, Any]) -> ServiceRecord:
        return await self._edit(mutators.update_service, service_id, changes)

    async def update_database(
        self, database_id: int, changes: dict[str, Any]
    ) -> DatabaseRecord:
        return await self._edit(mutators.update_database, database_id, changes)

    async def update_table(self, table_id: int, changes: dict[str, Any]) -> TableRecord:
        return await self._edit(mutators.update_table, table_id, changes)

    async def update_field(self, field_id: int, changes: dict[str, Any]) -> FieldRecord:
        return await self._edit(mutators.update_field, field_id, changes)

    async def delete_service(self, service_id: int) -> list[str]:
        return await self._edit(mutators.delete_service, service_id)

    async def delete_database(self, database_id: int) -> list[str]:
        return await self._edit(mutators.delete_database, database_id)

    async def delete_table(self, table_id: int) -> list[str]:
        return await self._edit(mutators.delete_table, table_id)

    async def delete_field(self, field_id: int) -> list[str]:
        return await self._edit(mutators.delete_field, field_id)

    async def move_field(
        self, field_id: int, direction: Literal["up", "down"]
    ) -> list[FieldRecord]:
        return await self._edit(mutators.move_field, field_id, direction)

    async def import_fields(
        self, table_id: int, fields: list[dict[str, Any]]
    ) -> list[FieldRecord]:
        return await self._edit(mutators.import_fields, table_id, fields)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def commit(self) -> CommitResult:
        """Validate, collect and send all pending edits, then reload.

        Returns:
            CommitResult describing how far the protocol got.

        Raises:
            StageBusyError: If a load or another commit is in progress.
        """
        self._ensure_idle()
        try:
            self.state = CommitState.VALIDATING
            validation = await validate_before_commit(self.store)
            if not validation.valid:
                logger.info(f"Commit refused: {validation.error_count} validation error(s)")
                return CommitResult(outcome="invalid", validation=validation)

            self.state = CommitState.COLLECTING
            changes = await collect_changes(self.store)
            if changes.is_empty:
                logger.info("Nothing to commit")
                return CommitResult(outcome="no_changes", validation=validation, changes=changes)

            self.state = CommitState.SENDING
            try:
                await self.server.save_all(changes)
            except Exception as e:
                logger.error(f"Commit of {changes.change_count} change(s) failed: {e}")
                return CommitResult(
                    outcome="failed",
                    validation=validation,
                    changes=changes,
                    change_count=changes.change_count,
                    error=str(e),
                )

            self.state = CommitState.RECONCILING
            logger.info(f"Committed {changes.change_count} change(s), reloading")
            result = CommitResult(
                outcome="committed",
                validation=validation,
                changes=changes,
                change_count=changes.change_count,
            )
            try:
                result.hydration = await self._reload()
            except Exception as e:
                logger.error(f"Reload after commit failed: {e}")
                result.error = f"Reload after commit failed: {e}"
            return result
        finally:
            self.state = CommitState.IDLE
