"""Tests for StagingWorkspace: load, revert, inspection and the commit protocol."""

import logging
from unittest.mock import AsyncMock

import pytest
from conftest import tree_rows

from mapping_stage.errors import EntityNotFoundError, StageBusyError
from mapping_stage.staging import CommitState, StagingWorkspace
from mapping_stage.staging.models import ChangeSet
from mapping_stage.store import EntityKind, SQLEntityStore


@pytest.fixture
def server() -> AsyncMock:
    """Mapping server whose fetch_rows always returns the sample tree."""
    mock = AsyncMock()
    mock.fetch_rows.return_value = tree_rows()
    return mock


@pytest.fixture
async def workspace(store: SQLEntityStore, server: AsyncMock) -> StagingWorkspace:
    ws = StagingWorkspace(store, server)
    await ws.load()
    return ws


async def _first_table_id(workspace: StagingWorkspace) -> int:
    [service] = await workspace.services()
    database = (await workspace.databases(service.id))[0]
    return (await workspace.tables(database.id))[0].id


# ------------------------------------------------------------------
# Load / inspection
# ------------------------------------------------------------------


class TestLoadAndInspect:
    async def test_load_summary(self, store: SQLEntityStore, server: AsyncMock) -> None:
        """load() hydrates from the server and returns the counts."""
        workspace = StagingWorkspace(store, server)
        summary = await workspace.load()
        assert (summary.services, summary.databases, summary.tables, summary.fields) == (
            1,
            2,
            4,
            12,
        )
        assert workspace.loading is False

    async def test_live_counts(self, workspace: StagingWorkspace) -> None:
        """Listing counts follow deletes without a reload."""
        [service] = await workspace.services()
        databases = await workspace.databases(service.id)
        assert service.database_count == 2
        assert [d.table_count for d in databases] == [2, 2]

        table_id = (await workspace.tables(databases[0].id))[0].id
        await workspace.delete_field((await workspace.fields(table_id))[2].id)
        await workspace.delete_database(databases[1].id)

        [service] = await workspace.services()
        assert service.database_count == 1
        [table_a, _table_b] = await workspace.tables(databases[0].id)
        assert table_a.field_count == 2

    async def test_fields_in_row_order(self, workspace: StagingWorkspace) -> None:
        """fields() returns non-deleted fields sorted by row_order."""
        table_id = await _first_table_id(workspace)
        fields = await workspace.fields(table_id)
        await workspace.move_field(fields[2].id, "up")

        names = [f.source_name for f in await workspace.fields(table_id)]
        assert names == ["col1", "col3", "col2"]

    async def test_table_context(self, workspace: StagingWorkspace) -> None:
        """The table's ancestry is resolved with current names."""
        table_id = await _first_table_id(workspace)
        [service] = await workspace.services()
        await workspace.update_service(service.id, {"current_name": "renamed"})

        context = await workspace.table_context(table_id)

        assert context.service_name == "renamed"
        assert context.target_db_type == "mysql"
        assert context.source_db_name == "d1"
        assert context.target_db_name == "dw"
        assert context.target_schema == "stage"
        assert context.source_db_type == "postgres"
        assert context.table_name == "a"
        assert context.target_table_name == "a_tgt"

    async def test_table_context_missing(self, workspace: StagingWorkspace) -> None:
        """A deleted table has no context."""
        table_id = await _first_table_id(workspace)
        await workspace.delete_table(table_id)
        with pytest.raises(EntityNotFoundError):
            await workspace.table_context(table_id)


# ------------------------------------------------------------------
# Commit
# ------------------------------------------------------------------


class TestCommit:
    """The idle -> validating -> collecting -> sending -> reconciling protocol."""

    async def test_invalid_tree_not_sent(
        self, workspace: StagingWorkspace, server: AsyncMock
    ) -> None:
        """Validation failures return every error and skip the server."""
        await workspace.store.update(EntityKind.FIELD, 101, {"is_primary_key": 0})

        result = await workspace.commit()

        assert result.outcome == "invalid"
        assert not result.success
        assert result.validation.error_count == 1
        server.save_all.assert_not_awaited()
        assert workspace.state == CommitState.IDLE

    async def test_no_changes(self, workspace: StagingWorkspace, server: AsyncMock) -> None:
        """An empty change-set never reaches the server."""
        result = await workspace.commit()

        assert result.outcome == "no_changes"
        assert result.success
        server.save_all.assert_not_awaited()
        assert server.fetch_rows.await_count == 1

    async def test_failed_keeps_local_edits(
        self, workspace: StagingWorkspace, server: AsyncMock
    ) -> None:
        """A transport failure reports the error and leaves the store untouched."""
        server.save_all.side_effect = ConnectionError("connection refused")
        table_id = await _first_table_id(workspace)
        await workspace.add_field(table_id, "email")

        result = await workspace.commit()

        assert result.outcome == "failed"
        assert result.error == "connection refused"
        assert result.change_count == 1
        assert await workspace.has_changes()
        assert workspace.state == CommitState.IDLE

    async def test_committed_reloads(
        self, workspace: StagingWorkspace, server: AsyncMock
    ) -> None:
        """An accepted commit sends one change-set, then rebuilds the tree."""
        table_id = await _first_table_id(workspace)
        await workspace.add_field(table_id, "email")
        await workspace.update_field(101, {"target_name": "pk"})

        result = await workspace.commit()

        assert result.outcome == "committed"
        assert result.change_count == 2
        assert result.error is None
        assert result.hydration.fields == 12
        server.save_all.assert_awaited_once()
        [sent] = server.save_all.await_args.args
        assert isinstance(sent, ChangeSet)
        assert [f.source_field_name for f in sent.fields.added] == ["email"]
        assert server.fetch_rows.await_count == 2
        assert not await workspace.has_changes()

    async def test_reload_failure_after_commit(
        self, workspace: StagingWorkspace, server: AsyncMock
    ) -> None:
        """The commit stands when only the reload fails."""
        server.fetch_rows.side_effect = RuntimeError("server went away")
        await workspace.update_field(101, {"target_name": "pk"})

        result = await workspace.commit()

        assert result.outcome == "committed"
        assert result.success
        assert result.error == "Reload after commit failed: server went away"
        assert result.hydration is None
        assert workspace.loading is False
        assert workspace.state == CommitState.IDLE

    async def test_edits_blocked_while_sending(
        self, workspace: StagingWorkspace, server: AsyncMock
    ) -> None:
        """Mutators raise StageBusyError until the commit returns to idle."""

        async def edit_during_send(changes: ChangeSet) -> None:
            assert workspace.state == CommitState.SENDING
            await workspace.add_service("late", "mysql")

        server.save_all.side_effect = edit_during_send
        await workspace.update_field(101, {"target_name": "pk"})

        result = await workspace.commit()

        assert result.outcome == "failed"
        assert "busy" in result.error
        await workspace.add_service("late", "mysql")


# ------------------------------------------------------------------
# Revert / busy
# ------------------------------------------------------------------


class TestRevert:
    async def test_revert_discards_edits(
        self, workspace: StagingWorkspace, caplog: pytest.LogCaptureFixture
    ) -> None:
        """revert() reloads unconditionally and warns about lost changes."""
        [service] = await workspace.services()
        await workspace.delete_service(service.id)

        with caplog.at_level(logging.WARNING, logger="mapping_stage.staging.workspace"):
            summary = await workspace.revert()

        assert summary.services == 1
        assert not await workspace.has_changes()
        assert "Reverting" in caplog.text

    async def test_revert_clean_tree(self, workspace: StagingWorkspace, server: AsyncMock) -> None:
        """Reverting without edits still reloads."""
        await workspace.revert()
        assert server.fetch_rows.await_count == 2

    async def test_edits_blocked_while_loading(self, workspace: StagingWorkspace) -> None:
        """Every mutator refuses to run during a reload."""
        workspace.loading = True
        with pytest.raises(StageBusyError):
            await workspace.add_service("svc2", "mysql")
        with pytest.raises(StageBusyError):
            await workspace.move_field(102, "up")
        with pytest.raises(StageBusyError):
            await workspace.commit()
